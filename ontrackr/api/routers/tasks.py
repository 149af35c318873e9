"""Tasks router — explicit status and deadline changes."""

from __future__ import annotations

import uuid

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.api.deps import get_session, get_task_service
from ontrackr.api.schemas.task import TaskDeadlineUpdate, TaskItem, TaskStatusUpdate
from ontrackr.services.task_service import TaskService

router = APIRouter()


@router.get("/{task_id}", response_model=TaskItem)
async def get_task(
    task_id: uuid.UUID,
    session: AsyncSession = Depends(get_session),
    svc: TaskService = Depends(get_task_service),
) -> TaskItem:
    return TaskItem.model_validate(await svc.get(session, task_id))


@router.patch("/{task_id}/status", response_model=TaskItem)
async def update_task_status(
    task_id: uuid.UUID,
    body: TaskStatusUpdate,
    session: AsyncSession = Depends(get_session),
    svc: TaskService = Depends(get_task_service),
) -> TaskItem:
    return TaskItem.model_validate(await svc.set_status(session, task_id, body.status))


@router.patch("/{task_id}/deadline", response_model=TaskItem)
async def update_task_deadline(
    task_id: uuid.UUID,
    body: TaskDeadlineUpdate,
    session: AsyncSession = Depends(get_session),
    svc: TaskService = Depends(get_task_service),
) -> TaskItem:
    task = await svc.update_deadline(session, task_id, body.deadline_in_days)
    return TaskItem.model_validate(task)
