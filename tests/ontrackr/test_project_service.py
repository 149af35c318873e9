"""Tests for ProjectService."""

import uuid
from datetime import datetime, timezone
from unittest.mock import AsyncMock

import pytest

from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.user_dao import UserDAO
from ontrackr.models.project import Project
from ontrackr.models.user import User
from ontrackr.services import ConflictError, NotFoundError, ValidationError
from ontrackr.services.project_service import ProjectService

LEAD_ID = uuid.uuid4()
DEV_ID = uuid.uuid4()


def _make_user(user_id: uuid.UUID, github_username: str) -> User:
    return User(
        id=user_id,
        name=github_username.title(),
        email=f"{github_username}@example.com",
        role="developer",
        github_username=github_username,
    )


def _make_project(**overrides) -> Project:
    defaults = {
        "id": uuid.uuid4(),
        "name": "Widgets",
        "description": "",
        "github_owner": "acme",
        "github_repo": "widgets",
        "github_repo_url": "https://github.com/acme/widgets",
        "status": "Active",
        "created_by": LEAD_ID,
        "deadline_at": None,
        "created_at": datetime.now(timezone.utc),
        "updated_at": datetime.now(timezone.utc),
    }
    defaults.update(overrides)
    return Project(**defaults)


def _make_service():
    project_dao = AsyncMock(spec=ProjectDAO)
    user_dao = AsyncMock(spec=UserDAO)
    return ProjectService(project_dao, user_dao), project_dao, user_dao


class TestCreate:
    async def test_parses_repo_and_adds_members(self):
        svc, project_dao, user_dao = _make_service()
        session = AsyncMock()
        project = _make_project()
        project_dao.get_by_repo.return_value = None
        project_dao.create.return_value = project
        user_dao.list_by_ids.return_value = [_make_user(LEAD_ID, "lead"), _make_user(DEV_ID, "dev")]

        result = await svc.create(
            session,
            name="Widgets",
            github_repo_url="https://github.com/acme/widgets.git",
            created_by=LEAD_ID,
            member_ids=[DEV_ID, LEAD_ID],
        )

        kwargs = project_dao.create.call_args.kwargs
        assert (kwargs["github_owner"], kwargs["github_repo"]) == ("acme", "widgets")
        project_dao.add_members.assert_awaited_once_with(session, project.id, [LEAD_ID, DEV_ID])
        assert result["project"] is project
        assert result["member_ids"] == [LEAD_ID, DEV_ID]
        assert result["unknown_member_ids"] == []

    async def test_unknown_members_reported(self):
        svc, project_dao, user_dao = _make_service()
        ghost = uuid.uuid4()
        project_dao.get_by_repo.return_value = None
        project_dao.create.return_value = _make_project()
        user_dao.list_by_ids.return_value = [_make_user(LEAD_ID, "lead")]

        result = await svc.create(
            AsyncMock(),
            name="Widgets",
            github_repo_url="https://github.com/acme/widgets",
            created_by=LEAD_ID,
            member_ids=[ghost],
        )
        assert result["member_ids"] == [LEAD_ID]
        assert result["unknown_member_ids"] == [ghost]

    async def test_invalid_url(self):
        svc, project_dao, _ = _make_service()

        with pytest.raises(ValidationError):
            await svc.create(
                AsyncMock(), name="X", github_repo_url="not a url", created_by=LEAD_ID
            )
        project_dao.create.assert_not_awaited()

    async def test_repo_already_tracked(self):
        svc, project_dao, _ = _make_service()
        project_dao.get_by_repo.return_value = _make_project()

        with pytest.raises(ConflictError):
            await svc.create(
                AsyncMock(),
                name="Dup",
                github_repo_url="https://github.com/acme/widgets",
                created_by=LEAD_ID,
            )
        project_dao.create.assert_not_awaited()

    async def test_unknown_creator(self):
        svc, project_dao, user_dao = _make_service()
        project_dao.get_by_repo.return_value = None
        user_dao.list_by_ids.return_value = []

        with pytest.raises(NotFoundError, match="creator"):
            await svc.create(
                AsyncMock(),
                name="X",
                github_repo_url="https://github.com/acme/widgets",
                created_by=LEAD_ID,
            )


class TestGet:
    async def test_with_members(self):
        svc, project_dao, _ = _make_service()
        project = _make_project()
        project_dao.get_by_id.return_value = project
        project_dao.list_member_ids.return_value = [LEAD_ID]

        result = await svc.get(AsyncMock(), project.id)
        assert result == {"project": project, "member_ids": [LEAD_ID]}

    async def test_not_found(self):
        svc, project_dao, _ = _make_service()
        project_dao.get_by_id.return_value = None

        with pytest.raises(NotFoundError):
            await svc.get(AsyncMock(), uuid.uuid4())


class TestAddMember:
    async def test_added(self):
        svc, project_dao, user_dao = _make_service()
        project_dao.exists.return_value = True
        user_dao.exists.return_value = True
        project_dao.add_members.return_value = 1

        assert await svc.add_member(AsyncMock(), uuid.uuid4(), DEV_ID) is True

    async def test_already_member(self):
        svc, project_dao, user_dao = _make_service()
        project_dao.exists.return_value = True
        user_dao.exists.return_value = True
        project_dao.add_members.return_value = 0

        assert await svc.add_member(AsyncMock(), uuid.uuid4(), DEV_ID) is False

    async def test_unknown_user(self):
        svc, project_dao, user_dao = _make_service()
        project_dao.exists.return_value = True
        user_dao.exists.return_value = False

        with pytest.raises(NotFoundError, match="user"):
            await svc.add_member(AsyncMock(), uuid.uuid4(), DEV_ID)
        project_dao.add_members.assert_not_awaited()
