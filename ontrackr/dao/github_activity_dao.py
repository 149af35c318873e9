"""GitHubActivityDAO — github_activity table operations.

Rows are insert-only. The one write after insert is linking the task a
record moved, set once while ``related_task_id`` is still NULL.
"""

import uuid
from typing import Any

from sqlalchemy import select, update
from sqlalchemy import exists as sa_exists
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.base import BaseDAO
from ontrackr.models.github_activity import GitHubActivity


class GitHubActivityDAO(BaseDAO[GitHubActivity]):
    model = GitHubActivity

    # ── read ──────────────────────────────────────────────────────────────

    async def exists_by_key(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        activity_type: str,
        github_id: str,
    ) -> bool:
        """Idempotency check on (project_id, activity_type, github_id)."""
        stmt = select(
            sa_exists().where(
                GitHubActivity.project_id == project_id,
                GitHubActivity.activity_type == activity_type,
                GitHubActivity.github_id == github_id,
            )
        )
        result = await session.execute(stmt)
        return result.scalar_one()

    async def list_by_project(
        self, session: AsyncSession, project_id: uuid.UUID, limit: int
    ) -> list[GitHubActivity]:
        stmt = (
            select(GitHubActivity)
            .where(GitHubActivity.project_id == project_id)
            .order_by(GitHubActivity.created_at.desc(), GitHubActivity.id.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_username(
        self,
        session: AsyncSession,
        github_username: str,
        activity_types: tuple[str, ...] | None = None,
        limit: int | None = None,
    ) -> list[GitHubActivity]:
        """Activity authored by *github_username* across all projects, newest first."""
        stmt = select(GitHubActivity).where(GitHubActivity.github_username == github_username)
        if activity_types:
            stmt = stmt.where(GitHubActivity.activity_type.in_(activity_types))
        stmt = stmt.order_by(GitHubActivity.created_at.desc(), GitHubActivity.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_issue_keys(
        self, session: AsyncSession, project_ids: set[uuid.UUID]
    ) -> set[tuple[uuid.UUID, str]]:
        """(project_id, github_id) pairs of every issue activity in *project_ids*."""
        if not project_ids:
            return set()
        stmt = select(GitHubActivity.project_id, GitHubActivity.github_id).where(
            GitHubActivity.project_id.in_(project_ids),
            GitHubActivity.activity_type.in_(("issue_opened", "issue_closed")),
        )
        rows = await session.execute(stmt)
        return {(row.project_id, row.github_id) for row in rows}

    # ── write ─────────────────────────────────────────────────────────────

    async def insert_if_absent(self, session: AsyncSession, values: dict[str, Any]) -> bool:
        """Insert one activity row.

        ON CONFLICT (project_id, activity_type, github_id) DO NOTHING.
        Returns False when the key already existed.
        """
        stmt = (
            insert(GitHubActivity)
            .values(**values)
            .on_conflict_do_nothing(constraint="uq_github_activity_project_type_github_id")
            .returning(GitHubActivity.id)
        )
        result = await session.execute(stmt)
        return result.scalar_one_or_none() is not None

    async def link_task(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        activity_type: str,
        github_id: str,
        task_id: uuid.UUID,
    ) -> bool:
        """Set ``related_task_id`` on the keyed row unless it is already set."""
        stmt = (
            update(GitHubActivity)
            .where(
                GitHubActivity.project_id == project_id,
                GitHubActivity.activity_type == activity_type,
                GitHubActivity.github_id == github_id,
                GitHubActivity.related_task_id.is_(None),
            )
            .values(related_task_id=task_id)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0
