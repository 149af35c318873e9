"""Project request/response schemas."""

from __future__ import annotations

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ProjectCreate(BaseModel):
    name: str = Field(min_length=1)
    github_repo_url: str
    created_by: uuid.UUID
    member_ids: list[uuid.UUID] = []
    description: str | None = None
    deadline_in_days: int | None = None


class ProjectDetail(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    description: str | None
    github_owner: str
    github_repo: str
    github_repo_url: str
    status: str
    created_by: uuid.UUID
    deadline_at: datetime | None
    created_at: datetime
    member_ids: list[uuid.UUID] = []


class ProjectCreateResponse(ProjectDetail):
    unknown_member_ids: list[uuid.UUID] = []


class MemberAdd(BaseModel):
    user_id: uuid.UUID


class MemberAddResponse(BaseModel):
    added: bool
