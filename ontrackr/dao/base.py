"""Generic base DAO — CRUD by primary key and single-row lookups (ORM).

DAOs never commit: callers own the transaction (a request-scoped
``session.begin()`` or the webhook dispatcher's delivery transaction).
"""

import uuid
from typing import Any, ClassVar, Generic, TypeVar

from sqlalchemy import exists as sa_exists
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.core.database import Base

ModelT = TypeVar("ModelT", bound=Base)


class BaseDAO(Generic[ModelT]):
    """Base data-access object. Subclasses set ``model`` class attribute."""

    model: type[ModelT]

    # append-only columns; writers may not touch them after insert
    immutable: ClassVar[frozenset[str]] = frozenset({"id", "created_at"})

    @staticmethod
    def _require_pk(pk: uuid.UUID) -> None:
        if pk is None:
            raise ValueError("pk must not be None")

    def _check_writable(self, values: dict[str, Any]) -> None:
        columns = self.model.__mapper__.column_attrs.keys()
        for key in values:
            if key in self.immutable:
                raise AttributeError(f"'{key}' is immutable and cannot be updated")
            if key not in columns:
                raise AttributeError(f"{self.model.__name__} has no column '{key}'")

    async def get_by_id(self, session: AsyncSession, pk: uuid.UUID) -> ModelT | None:
        self._require_pk(pk)
        return await session.get(self.model, pk)

    async def create(self, session: AsyncSession, **values: Any) -> ModelT:
        """Insert one row and return it with server defaults loaded."""
        obj = self.model(**values)
        session.add(obj)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def update(self, session: AsyncSession, pk: uuid.UUID, **values: Any) -> ModelT | None:
        """Set *values* on the row; None if it does not exist."""
        self._require_pk(pk)
        self._check_writable(values)
        obj = await session.get(self.model, pk)
        if obj is None:
            return None
        for key, val in values.items():
            setattr(obj, key, val)
        await session.flush()
        await session.refresh(obj)
        return obj

    async def exists(self, session: AsyncSession, pk: uuid.UUID) -> bool:
        self._require_pk(pk)
        stmt = select(sa_exists().where(self.model.__table__.c.id == pk))
        return (await session.execute(stmt)).scalar_one()

    async def get_by_field(self, session: AsyncSession, **filters: Any) -> ModelT | None:
        """First row matching every equality filter, e.g. ``email="a@x.io"``."""
        if not filters:
            raise ValueError("get_by_field() requires at least one filter")
        stmt = select(self.model).filter_by(**filters).limit(1)
        return (await session.execute(stmt)).scalars().first()
