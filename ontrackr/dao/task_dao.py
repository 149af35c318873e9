"""TaskDAO — tasks table operations."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.base import BaseDAO
from ontrackr.models.task import Task


class TaskDAO(BaseDAO[Task]):
    model = Task

    # ── read ──────────────────────────────────────────────────────────────

    async def list_by_status(
        self, session: AsyncSession, project_id: uuid.UUID, status: str
    ) -> list[Task]:
        """Candidate tasks for matching, oldest first."""
        stmt = (
            select(Task)
            .where(Task.project_id == project_id, Task.status == status)
            .order_by(Task.created_at.asc(), Task.id.asc())
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())

    async def list_by_project(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        assigned_to: uuid.UUID | None = None,
    ) -> list[Task]:
        """Project tasks ordered by deadline (tasks without one last)."""
        stmt = select(Task).where(Task.project_id == project_id)
        if assigned_to is not None:
            stmt = stmt.where(Task.assigned_to == assigned_to)
        stmt = stmt.order_by(Task.deadline_at.asc().nulls_last(), Task.created_at.asc())
        result = await session.execute(stmt)
        return list(result.scalars().all())

    # ── write ─────────────────────────────────────────────────────────────

    async def set_status(
        self,
        session: AsyncSession,
        pk: uuid.UUID,
        *,
        status: str,
        expected_status: str | None = None,
    ) -> bool:
        """Write a new status and stamp ``updated_at``.

        With *expected_status* the update only applies while the row still
        has that status, so two deliveries racing on one task move it once.
        Returns True if a row was updated.
        """
        self._require_pk(pk)
        stmt = (
            update(Task)
            .where(Task.id == pk)
            .values(status=status, updated_at=datetime.now(timezone.utc))
        )
        if expected_status is not None:
            stmt = stmt.where(Task.status == expected_status)
        result = await session.execute(stmt)
        return result.rowcount > 0
