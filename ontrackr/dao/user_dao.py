"""UserDAO — users table operations."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.base import BaseDAO
from ontrackr.models.user import User


class UserDAO(BaseDAO[User]):
    model = User

    async def get_github_username(self, session: AsyncSession, user_id: uuid.UUID) -> str | None:
        """Return the user's GitHub username, or None if unset or no such user."""
        self._require_pk(user_id)
        stmt = select(User.github_username).where(User.id == user_id)
        result = await session.execute(stmt)
        return result.scalar_one_or_none()

    async def list_by_ids(self, session: AsyncSession, user_ids: list[uuid.UUID]) -> list[User]:
        if not user_ids:
            return []
        stmt = select(User).where(User.id.in_(user_ids))
        result = await session.execute(stmt)
        return list(result.scalars().all())
