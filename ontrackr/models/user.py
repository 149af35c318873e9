"""users table."""

import uuid
from typing import Optional

from sqlalchemy import Index, Text, func, text
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from ontrackr.core.database import Base, TimestampMixin


class User(TimestampMixin, Base):
    __tablename__ = "users"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), primary_key=True, server_default=func.gen_random_uuid()
    )
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(Text, unique=True, nullable=False)
    role: Mapped[str] = mapped_column(
        Text, nullable=False, server_default=text("'developer'")
    )
    github_username: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        Index("idx_users_github_username", "github_username"),
    )
