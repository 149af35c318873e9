"""ProjectService — project registration and membership."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.core.github import parse_repo_url
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.user_dao import UserDAO
from ontrackr.services import ConflictError, NotFoundError, ValidationError

log = structlog.get_logger("ontrackr.projects")


class ProjectService:
    """Stateless service for project CRUD and team membership."""

    def __init__(self, project_dao: ProjectDAO, user_dao: UserDAO) -> None:
        self._project_dao = project_dao
        self._user_dao = user_dao

    async def get(self, session: AsyncSession, project_id: uuid.UUID) -> dict:
        """Return the project with its member ids.

        Raises :class:`NotFoundError` if the project does not exist.
        """
        project = await self._project_dao.get_by_id(session, project_id)
        if project is None:
            raise NotFoundError("project not found")
        member_ids = await self._project_dao.list_member_ids(session, project.id)
        return {"project": project, "member_ids": member_ids}

    async def create(
        self,
        session: AsyncSession,
        *,
        name: str,
        github_repo_url: str,
        created_by: uuid.UUID,
        member_ids: list[uuid.UUID] | None = None,
        description: str | None = None,
        deadline_in_days: int | None = None,
    ) -> dict:
        """Register a project for a GitHub repository.

        The creator becomes the lead and is always a member.
        """
        try:
            owner, repo = parse_repo_url(github_repo_url)
        except ValueError as exc:
            raise ValidationError("invalid GitHub repository URL") from exc

        # 1. Check uniqueness
        existing = await self._project_dao.get_by_repo(session, owner, repo)
        if existing is not None:
            raise ConflictError(f"repository '{owner}/{repo}' is already tracked by a project")

        # 2. Only known users can be members
        requested = list(dict.fromkeys([created_by, *(member_ids or [])]))
        known = {u.id for u in await self._user_dao.list_by_ids(session, requested)}
        if created_by not in known:
            raise NotFoundError("creator not found")
        unknown = [uid for uid in requested if uid not in known]

        deadline_at = None
        if deadline_in_days is not None and deadline_in_days > 0:
            deadline_at = datetime.now(timezone.utc) + timedelta(days=deadline_in_days)

        project = await self._project_dao.create(
            session,
            name=name,
            description=description or "",
            github_owner=owner,
            github_repo=repo,
            github_repo_url=github_repo_url,
            created_by=created_by,
            deadline_at=deadline_at,
        )
        members = [uid for uid in requested if uid in known]
        await self._project_dao.add_members(session, project.id, members)
        log.info("project.created", project_id=str(project.id), repository=f"{owner}/{repo}")
        return {"project": project, "member_ids": members, "unknown_member_ids": unknown}

    async def add_member(
        self, session: AsyncSession, project_id: uuid.UUID, user_id: uuid.UUID
    ) -> bool:
        """Add *user_id* to the project. Returns False if already a member."""
        if not await self._project_dao.exists(session, project_id):
            raise NotFoundError("project not found")
        if not await self._user_dao.exists(session, user_id):
            raise NotFoundError("user not found")
        inserted = await self._project_dao.add_members(session, project_id, [user_id])
        return inserted > 0
