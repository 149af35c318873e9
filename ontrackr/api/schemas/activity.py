"""Activity feed response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict


class ActivityItem(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    project_id: uuid.UUID
    activity_type: str
    github_id: str
    title: str
    github_username: str
    github_url: str
    branch: str | None
    repository_full_name: str | None
    related_task_id: uuid.UUID | None
    avatar_url: str | None
    created_at: datetime


class UserActivityItem(ActivityItem):
    project_name: str


class OpenIssueItem(BaseModel):
    id: uuid.UUID
    project_id: uuid.UUID
    project_name: str
    number: int
    title: str
    state: str = "open"
    github_url: str
    github_username: str
    created_at: datetime
