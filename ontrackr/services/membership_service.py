"""MembershipService — may this GitHub user generate activity for a project?"""

from __future__ import annotations

import uuid

import structlog
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ontrackr.dao.project_dao import ProjectDAO

log = structlog.get_logger("ontrackr.membership")


class MembershipService:
    """Stateless membership guard.

    *fail_open* decides what a failed lookup means: True records the
    activity anyway (availability over strictness), False drops it.
    """

    def __init__(self, project_dao: ProjectDAO, *, fail_open: bool = True) -> None:
        self._project_dao = project_dao
        self._fail_open = fail_open

    @property
    def fail_open(self) -> bool:
        return self._fail_open

    async def is_authorized(
        self,
        session: AsyncSession,
        project_id: uuid.UUID,
        github_username: str | None,
    ) -> bool:
        """True if *github_username* belongs to a member or the lead (case-insensitive)."""
        if not github_username:
            return False
        try:
            # own savepoint: a failed lookup must not abort the caller's one
            async with session.begin_nested():
                usernames = await self._project_dao.list_authorized_usernames(
                    session, project_id
                )
        except (SQLAlchemyError, OSError):
            log.warning(
                "membership.lookup_failed",
                project_id=str(project_id),
                github_username=github_username,
                fail_open=self._fail_open,
                exc_info=True,
            )
            return self._fail_open
        return github_username.lower() in usernames
