"""TaskService — task creation and explicit status changes."""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.core.keywords import extract_keywords
from ontrackr.core.task_state import STATUSES, TO_DO, can_transition
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.task_dao import TaskDAO
from ontrackr.models.task import Task
from ontrackr.services import NotFoundError, ValidationError


def _deadline(deadline_in_days: int | None) -> datetime | None:
    if deadline_in_days is None or deadline_in_days <= 0:
        return None
    return datetime.now(timezone.utc) + timedelta(days=deadline_in_days)


class TaskService:
    """Stateless service for task CRUD and the manual side of the workflow."""

    def __init__(self, task_dao: TaskDAO, project_dao: ProjectDAO) -> None:
        self._task_dao = task_dao
        self._project_dao = project_dao

    async def get(self, session: AsyncSession, task_id: uuid.UUID) -> Task:
        """Raises :class:`NotFoundError` if the task does not exist."""
        task = await self._task_dao.get_by_id(session, task_id)
        if task is None:
            raise NotFoundError("task not found")
        return task

    async def list_by_project(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        assigned_to: uuid.UUID | None = None,
    ) -> list[Task]:
        await self._ensure_project(session, project_id)
        return await self._task_dao.list_by_project(session, project_id, assigned_to=assigned_to)

    async def create(
        self,
        session: AsyncSession,
        *,
        project_id: uuid.UUID,
        title: str,
        assigned_to: uuid.UUID,
        assigned_to_name: str | None = None,
        description: str | None = None,
        deadline_in_days: int | None = None,
    ) -> Task:
        """Create a ``To Do`` task; its match keywords come from the title."""
        await self._ensure_project(session, project_id)
        title = title.strip()
        if not title:
            raise ValidationError("task title must not be empty")

        return await self._task_dao.create(
            session,
            project_id=project_id,
            title=title,
            description=description,
            status=TO_DO,
            assigned_to=assigned_to,
            assigned_to_name=assigned_to_name,
            keywords=sorted(extract_keywords(title)),
            deadline_at=_deadline(deadline_in_days),
            reminder_enabled=True,
            reminder_sent=False,
        )

    async def set_status(self, session: AsyncSession, task_id: uuid.UUID, status: str) -> Task:
        """Explicit status change; only forward moves are accepted.

        Raises :class:`ValidationError` for unknown statuses, backward moves,
        and anything out of ``Done``.
        """
        if status not in STATUSES:
            raise ValidationError(f"invalid status '{status}'")
        task = await self.get(session, task_id)
        if task.status == status:
            return task
        if not can_transition(task.status, status):
            raise ValidationError(f"cannot transition task from '{task.status}' to '{status}'")

        await self._task_dao.set_status(session, task.id, status=status, expected_status=task.status)
        await session.refresh(task)
        return task

    async def update_deadline(
        self, session: AsyncSession, task_id: uuid.UUID, deadline_in_days: int
    ) -> Task:
        """Move the deadline to now + *deadline_in_days* and re-arm the reminder."""
        if deadline_in_days <= 0:
            raise ValidationError("deadline_in_days must be positive")
        task = await self.get(session, task_id)
        updated = await self._task_dao.update(
            session,
            task.id,
            deadline_at=_deadline(deadline_in_days),
            reminder_sent=False,
            updated_at=datetime.now(timezone.utc),
        )
        return updated

    async def _ensure_project(self, session: AsyncSession, project_id: uuid.UUID) -> None:
        if not await self._project_dao.exists(session, project_id):
            raise NotFoundError("project not found")
