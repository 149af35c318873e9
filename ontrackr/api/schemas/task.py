"""Task request/response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TaskCreate(BaseModel):
    title: str = Field(min_length=1)
    assigned_to: uuid.UUID
    assigned_to_name: str | None = None
    description: str | None = None
    deadline_in_days: int | None = None


class TaskStatusUpdate(BaseModel):
    status: Literal["To Do", "In Review", "Done"]


class TaskDeadlineUpdate(BaseModel):
    deadline_in_days: int = Field(gt=0)


class TaskItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    title: str
    description: str | None
    status: str
    assigned_to: uuid.UUID
    assigned_to_name: str | None
    keywords: list[str]
    deadline_at: datetime | None
    reminder_enabled: bool
    reminder_sent: bool
    created_at: datetime
    updated_at: datetime
