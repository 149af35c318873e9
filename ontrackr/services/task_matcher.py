"""TaskMatcher — moves tasks along the workflow from commit and merge text."""

from __future__ import annotations

import uuid
from dataclasses import dataclass

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.core.keywords import extract_keywords, keywords_overlap
from ontrackr.core.task_state import MatchEvent, source_status, target_status
from ontrackr.dao.task_dao import TaskDAO
from ontrackr.dao.user_dao import UserDAO

log = structlog.get_logger("ontrackr.task_matcher")


@dataclass
class TaskTransition:
    task_id: uuid.UUID
    title: str
    from_status: str
    to_status: str


class TaskMatcher:
    """Stateless keyword matcher over a project's candidate tasks.

    A task transitions when its assignee's GitHub username equals the actor
    (case-insensitive) and at least one title keyword appears in the event
    text. There is no scoring: every qualifying task moves.
    """

    def __init__(self, task_dao: TaskDAO, user_dao: UserDAO) -> None:
        self._task_dao = task_dao
        self._user_dao = user_dao

    async def match_commit(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        message: str,
        github_username: str,
        *,
        default_branch: bool,
    ) -> list[TaskTransition]:
        """To Do → In Review (feature branch) or Done (main/master)."""
        return await self._match(
            session, project_id, "commit", message, github_username, default_branch
        )

    async def match_merge(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        pr_title: str,
        pr_body: str | None,
        github_username: str,
    ) -> list[TaskTransition]:
        """In Review → Done for a PR merged into main/master."""
        text = f"{pr_title} {pr_body or ''}"
        return await self._match(session, project_id, "merge", text, github_username, True)

    async def _match(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        event: MatchEvent,
        text: str,
        github_username: str,
        default_branch: bool,
    ) -> list[TaskTransition]:
        event_keywords = extract_keywords(text)
        if not event_keywords or not github_username:
            return []

        from_status = source_status(event)
        to_status = target_status(event, default_branch)
        actor = github_username.lower()

        candidates = await self._task_dao.list_by_status(session, project_id, from_status)
        log.debug(
            "task_matcher.candidates",
            project_id=str(project_id),
            match_event=event,
            status=from_status,
            count=len(candidates),
            keywords=sorted(event_keywords),
        )

        assignee_usernames: dict[uuid.UUID, str | None] = {}
        transitions: list[TaskTransition] = []
        for task in candidates:
            if task.assigned_to not in assignee_usernames:
                assignee_usernames[task.assigned_to] = await self._user_dao.get_github_username(
                    session, task.assigned_to
                )
            assignee = assignee_usernames[task.assigned_to]
            if not assignee or assignee.lower() != actor:
                continue
            if not keywords_overlap(task.keywords, event_keywords):
                continue

            updated = await self._task_dao.set_status(
                session, task.id, status=to_status, expected_status=from_status
            )
            if not updated:
                # moved by someone else since we read it
                continue
            transitions.append(TaskTransition(task.id, task.title, from_status, to_status))
            log.info(
                "task_matcher.transitioned",
                task_id=str(task.id),
                from_status=from_status,
                to_status=to_status,
                github_username=github_username,
            )
        return transitions
