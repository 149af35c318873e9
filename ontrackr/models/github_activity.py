"""github_activity table — one immutable row per logical GitHub event."""

import uuid
from typing import Optional

from sqlalchemy import ForeignKey, Index, Text, UniqueConstraint, desc, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ontrackr.core.database import Base, CreatedAtMixin

ACTIVITY_TYPES = (
    "commit",
    "pull_request_opened",
    "pull_request_merged",
    "issue_opened",
    "issue_closed",
)


class GitHubActivity(CreatedAtMixin, Base):
    __tablename__ = "github_activity"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    activity_type: Mapped[str] = mapped_column(Text, nullable=False)
    github_id: Mapped[str] = mapped_column(Text, nullable=False)
    title: Mapped[str] = mapped_column(Text, nullable=False)
    github_username: Mapped[str] = mapped_column(Text, nullable=False)
    github_url: Mapped[str] = mapped_column(Text, nullable=False)
    branch: Mapped[Optional[str]] = mapped_column(Text)
    repository_full_name: Mapped[Optional[str]] = mapped_column(Text)
    related_task_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        UUID(as_uuid=True), ForeignKey("tasks.id", ondelete="SET NULL")
    )
    avatar_url: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint(
            "project_id",
            "activity_type",
            "github_id",
            name="uq_github_activity_project_type_github_id",
        ),
        Index("idx_github_activity_project_created", "project_id", desc("created_at")),
        Index("idx_github_activity_username", "github_username"),
    )
