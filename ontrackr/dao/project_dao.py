"""ProjectDAO — projects and project_members table operations."""

import uuid

from sqlalchemy import func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.base import BaseDAO
from ontrackr.models.project import Project
from ontrackr.models.project_member import ProjectMember
from ontrackr.models.user import User


class ProjectDAO(BaseDAO[Project]):
    model = Project

    # ── read ──────────────────────────────────────────────────────────────

    async def get_by_repo(self, session: AsyncSession, owner: str, repo: str) -> Project | None:
        """Exact (owner, repo) lookup for webhook routing.

        ``uq_projects_github_owner_repo`` guarantees zero or one row.
        """
        stmt = select(Project).where(
            Project.github_owner == owner,
            Project.github_repo == repo,
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_member_ids(self, session: AsyncSession, project_id: uuid.UUID) -> list[uuid.UUID]:
        stmt = select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_authorized_usernames(
        self, session: AsyncSession, project_id: uuid.UUID
    ) -> set[str]:
        """Lowercased GitHub usernames of the project's members and its lead.

        Members and the lead are resolved in one query; users without a
        GitHub username are left out.
        """
        member_ids = select(ProjectMember.user_id).where(ProjectMember.project_id == project_id)
        lead_id = select(Project.created_by).where(Project.id == project_id)
        stmt = select(func.lower(User.github_username)).where(
            User.github_username.is_not(None),
            or_(User.id.in_(member_ids), User.id.in_(lead_id)),
        )
        result = await session.execute(stmt)
        return set(result.scalars().all())

    async def get_names(
        self, session: AsyncSession, project_ids: set[uuid.UUID]
    ) -> dict[uuid.UUID, str]:
        """Batch-fetch project names by IDs."""
        if not project_ids:
            return {}
        stmt = select(Project.id, Project.name).where(Project.id.in_(project_ids))
        rows = await session.execute(stmt)
        return {row.id: row.name for row in rows}

    # ── write ─────────────────────────────────────────────────────────────

    async def add_members(
        self, session: AsyncSession, project_id: uuid.UUID, user_ids: list[uuid.UUID]
    ) -> int:
        """Add members, skipping ones already present.

        ON CONFLICT (project_id, user_id) DO NOTHING.
        Returns the number of rows actually inserted.
        """
        if not user_ids:
            return 0
        stmt = (
            insert(ProjectMember)
            .values([{"project_id": project_id, "user_id": uid} for uid in user_ids])
            .on_conflict_do_nothing(index_elements=["project_id", "user_id"])
        )
        result = await session.execute(stmt)
        return result.rowcount
