"""WebhookEventDAO — github_events (raw audit log) operations."""

import uuid

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.base import BaseDAO
from ontrackr.models.webhook_event import WebhookEvent


class WebhookEventDAO(BaseDAO[WebhookEvent]):
    model = WebhookEvent

    async def list_recent(
        self, session: AsyncSession, project_id: uuid.UUID, limit: int
    ) -> list[WebhookEvent]:
        stmt = (
            select(WebhookEvent)
            .where(WebhookEvent.project_id == project_id)
            .order_by(WebhookEvent.created_at.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return list(result.scalars().all())
