"""ActivityService — the GitHub activity store: idempotent appends and feeds."""

from __future__ import annotations

import re
import uuid
from dataclasses import asdict, dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.github_activity_dao import GitHubActivityDAO
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.models.github_activity import ACTIVITY_TYPES, GitHubActivity

ISSUE_TYPES = ("issue_opened", "issue_closed")

_ISSUE_ID = re.compile(r"^issue-(\d+)-(opened|closed)$")


@dataclass
class ActivityRecord:
    """One activity row to be written. ``github_id`` is the dedup id."""

    project_id: uuid.UUID
    activity_type: str
    github_id: str
    title: str
    github_username: str
    github_url: str
    branch: str | None = None
    repository_full_name: str | None = None
    avatar_url: str | None = None


def commit_github_id(sha: str) -> str:
    return sha


def pull_request_github_id(number: int, action: str) -> str:
    return f"pr-{number}-{action}"


def issue_github_id(number: int, action: str) -> str:
    return f"issue-{number}-{action}"


def issue_number(github_id: str) -> int | None:
    """``issue-17-opened`` → 17; None for anything that is not an issue id."""
    match = _ISSUE_ID.match(github_id or "")
    return int(match.group(1)) if match else None


class ActivityService:
    """Stateless service over the append-only activity store."""

    def __init__(self, activity_dao: GitHubActivityDAO, project_dao: ProjectDAO) -> None:
        self._activity_dao = activity_dao
        self._project_dao = project_dao

    # ── idempotent writes ─────────────────────────────────────────────────

    async def exists(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        activity_type: str,
        github_id: str,
    ) -> bool:
        return await self._activity_dao.exists_by_key(
            session, project_id, activity_type, github_id
        )

    async def append(self, session: AsyncSession, record: ActivityRecord) -> bool:
        """Write *record*. Returns False if its key was already taken.

        Callers check :meth:`exists` first; the unique constraint behind the
        insert catches the writer that loses a concurrent check-then-write.
        """
        if record.activity_type not in ACTIVITY_TYPES:
            raise ValueError(f"unknown activity type: {record.activity_type!r}")
        return await self._activity_dao.insert_if_absent(session, asdict(record))

    async def link_task(
        self, session: AsyncSession, record: ActivityRecord, task_id: uuid.UUID
    ) -> bool:
        """Point an appended activity at the first task it moved."""
        return await self._activity_dao.link_task(
            session, record.project_id, record.activity_type, record.github_id, task_id
        )

    # ── feeds ─────────────────────────────────────────────────────────────

    async def list_by_project(
        self, session: AsyncSession, project_id: uuid.UUID, limit: int = 20
    ) -> list[GitHubActivity]:
        return await self._activity_dao.list_by_project(session, project_id, limit)

    async def list_by_user(
        self, session: AsyncSession, github_username: str, limit: int = 10
    ) -> list[dict]:
        """A user's activity across projects, newest first, with project names."""
        activities = await self._activity_dao.list_by_username(
            session, github_username, limit=limit
        )
        names = await self._project_dao.get_names(session, {a.project_id for a in activities})
        return [
            {"activity": a, "project_name": names.get(a.project_id, "Unknown Project")}
            for a in activities
        ]

    async def list_open_issues_for_user(
        self, session: AsyncSession, github_username: str
    ) -> list[dict]:
        """Issues the user opened that have no ``issue_closed`` record yet.

        One entry per (project, issue number).
        """
        opened = await self._activity_dao.list_by_username(
            session, github_username, activity_types=("issue_opened",)
        )
        if not opened:
            return []

        project_ids = {a.project_id for a in opened}
        issue_keys = await self._activity_dao.list_issue_keys(session, project_ids)
        names = await self._project_dao.get_names(session, project_ids)

        issues: dict[tuple[uuid.UUID, int], dict] = {}
        for activity in opened:
            number = issue_number(activity.github_id)
            if number is None:
                continue
            if (activity.project_id, issue_github_id(number, "closed")) in issue_keys:
                continue
            issues.setdefault(
                (activity.project_id, number),
                {
                    "activity": activity,
                    "number": number,
                    "project_name": names.get(activity.project_id, "Unknown Project"),
                },
            )
        return list(issues.values())
