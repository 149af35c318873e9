"""Tests for ProjectDAO, TaskDAO and UserDAO (PostgreSQL)."""

import pytest
from sqlalchemy.exc import IntegrityError

from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.task_dao import TaskDAO
from ontrackr.dao.user_dao import UserDAO

project_dao = ProjectDAO()
task_dao = TaskDAO()
user_dao = UserDAO()


async def _user(session, name, github_username=None):
    return await user_dao.create(
        session,
        name=name.title(),
        email=f"{name}@example.com",
        github_username=github_username,
    )


async def _project(session, lead, repo="widgets"):
    return await project_dao.create(
        session,
        name=repo.title(),
        github_owner="acme",
        github_repo=repo,
        github_repo_url=f"https://github.com/acme/{repo}",
        created_by=lead.id,
    )


class TestProjectDAO:
    async def test_get_by_repo(self, db_session):
        lead = await _user(db_session, "lead", "Lead")
        project = await _project(db_session, lead)

        found = await project_dao.get_by_repo(db_session, "acme", "widgets")
        assert found.id == project.id
        assert await project_dao.get_by_repo(db_session, "acme", "gadgets") is None

    async def test_repo_unique(self, db_session):
        lead = await _user(db_session, "lead")
        await _project(db_session, lead)

        with pytest.raises(IntegrityError):
            async with db_session.begin_nested():
                await _project(db_session, lead)

    async def test_add_members_skips_existing(self, db_session):
        lead = await _user(db_session, "lead")
        dev = await _user(db_session, "dev")
        project = await _project(db_session, lead)

        assert await project_dao.add_members(db_session, project.id, [lead.id, dev.id]) == 2
        assert await project_dao.add_members(db_session, project.id, [dev.id]) == 0
        assert await project_dao.add_members(db_session, project.id, []) == 0
        assert set(await project_dao.list_member_ids(db_session, project.id)) == {lead.id, dev.id}

    async def test_authorized_usernames(self, db_session):
        lead = await _user(db_session, "lead", "TheLead")
        alice = await _user(db_session, "alice", "Alice")
        await _user(db_session, "mallory", "mallory")
        nogh = await _user(db_session, "nogh")
        project = await _project(db_session, lead)
        await project_dao.add_members(db_session, project.id, [alice.id, nogh.id])

        usernames = await project_dao.list_authorized_usernames(db_session, project.id)
        # lead counts even without a membership row
        assert usernames == {"thelead", "alice"}

    async def test_get_names(self, db_session):
        lead = await _user(db_session, "lead")
        project = await _project(db_session, lead)

        assert await project_dao.get_names(db_session, {project.id}) == {project.id: "Widgets"}
        assert await project_dao.get_names(db_session, set()) == {}


class TestTaskDAO:
    async def _task(self, session, project, assignee, title="Fix login bug", status="To Do"):
        return await task_dao.create(
            session,
            project_id=project.id,
            title=title,
            status=status,
            assigned_to=assignee.id,
            keywords=["bug", "fix", "login"],
        )

    async def test_list_by_status(self, db_session):
        lead = await _user(db_session, "lead")
        project = await _project(db_session, lead)
        pending = await self._task(db_session, project, lead)
        await self._task(db_session, project, lead, status="Done")

        result = await task_dao.list_by_status(db_session, project.id, "To Do")
        assert [t.id for t in result] == [pending.id]

    async def test_set_status_guarded(self, db_session):
        lead = await _user(db_session, "lead")
        project = await _project(db_session, lead)
        task = await self._task(db_session, project, lead)

        assert await task_dao.set_status(
            db_session, task.id, status="In Review", expected_status="To Do"
        )
        # already moved: a second guarded write is a no-op
        assert not await task_dao.set_status(
            db_session, task.id, status="Done", expected_status="To Do"
        )
        await db_session.refresh(task)
        assert task.status == "In Review"

    async def test_status_check_constraint(self, db_session):
        lead = await _user(db_session, "lead")
        project = await _project(db_session, lead)

        with pytest.raises(IntegrityError):
            async with db_session.begin_nested():
                await self._task(db_session, project, lead, status="Blocked")

    async def test_list_by_project_filters_assignee(self, db_session):
        lead = await _user(db_session, "lead")
        dev = await _user(db_session, "dev")
        project = await _project(db_session, lead)
        await self._task(db_session, project, lead)
        mine = await self._task(db_session, project, dev, title="Signup form")

        result = await task_dao.list_by_project(db_session, project.id, assigned_to=dev.id)
        assert [t.id for t in result] == [mine.id]


class TestUserDAO:
    async def test_get_github_username(self, db_session):
        alice = await _user(db_session, "alice", "Alice")
        nogh = await _user(db_session, "nogh")

        assert await user_dao.get_github_username(db_session, alice.id) == "Alice"
        assert await user_dao.get_github_username(db_session, nogh.id) is None

    async def test_list_by_ids(self, db_session):
        alice = await _user(db_session, "alice")
        assert [u.id for u in await user_dao.list_by_ids(db_session, [alice.id])] == [alice.id]
        assert await user_dao.list_by_ids(db_session, []) == []
