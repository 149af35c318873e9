"""github_events table — verbatim webhook audit log."""

import uuid
from typing import Any, Optional

from sqlalchemy import ForeignKey, Index, Text, desc, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from ontrackr.core.database import Base, CreatedAtMixin


class WebhookEvent(CreatedAtMixin, Base):
    __tablename__ = "github_events"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    project_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("projects.id", ondelete="CASCADE"),
        nullable=False,
    )
    event_type: Mapped[str] = mapped_column(Text, nullable=False)
    action: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'unknown'")
    )
    delivery_id: Mapped[Optional[str]] = mapped_column(Text)
    repository: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    sender: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSONB, nullable=False)

    __table_args__ = (
        Index("idx_github_events_project_created", "project_id", desc("created_at")),
    )
