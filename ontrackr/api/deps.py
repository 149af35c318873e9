"""Dependency injection — sessions and service singletons."""

from __future__ import annotations

from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from ontrackr.core.config import get_settings
from ontrackr.dao.github_activity_dao import GitHubActivityDAO
from ontrackr.dao.project_dao import ProjectDAO
from ontrackr.dao.task_dao import TaskDAO
from ontrackr.dao.user_dao import UserDAO
from ontrackr.dao.webhook_event_dao import WebhookEventDAO
from ontrackr.services.activity_service import ActivityService
from ontrackr.services.membership_service import MembershipService
from ontrackr.services.project_service import ProjectService
from ontrackr.services.task_matcher import TaskMatcher
from ontrackr.services.task_service import TaskService
from ontrackr.services.webhook_service import WebhookDispatcher

_settings = get_settings()

# ---------------------------------------------------------------------------
# DAO singletons
# ---------------------------------------------------------------------------
_user_dao = UserDAO()
_project_dao = ProjectDAO()
_task_dao = TaskDAO()
_activity_dao = GitHubActivityDAO()
_webhook_event_dao = WebhookEventDAO()

# ---------------------------------------------------------------------------
# Service singletons
# ---------------------------------------------------------------------------
_activity_service = ActivityService(_activity_dao, _project_dao)
_membership_service = MembershipService(
    _project_dao, fail_open=_settings.membership_fail_open
)
_task_matcher = TaskMatcher(_task_dao, _user_dao)
_task_service = TaskService(_task_dao, _project_dao)
_project_service = ProjectService(_project_dao, _user_dao)
_webhook_dispatcher = WebhookDispatcher(
    _project_dao,
    _webhook_event_dao,
    _activity_service,
    _membership_service,
    _task_matcher,
    webhook_secret=_settings.webhook_secret,
    verify_signatures=_settings.verify_signatures,
)

# ---------------------------------------------------------------------------
# Engine / session factory (initialised by app lifespan)
# ---------------------------------------------------------------------------
_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_session_factory(database_url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory. Called once at startup."""
    global _engine, _session_factory  # noqa: PLW0603
    url = database_url or _settings.database_url
    _engine = create_async_engine(
        url,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_recycle=1800,
    )
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    return _session_factory


async def dispose_engine() -> None:
    """Dispose the async engine, closing all pooled connections."""
    global _engine  # noqa: PLW0603
    if _engine is not None:
        await _engine.dispose()
        _engine = None


def _require_factory() -> async_sessionmaker[AsyncSession]:
    if _session_factory is None:
        raise RuntimeError("call init_session_factory() before handling requests")
    return _session_factory


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a per-request session with automatic commit/rollback."""
    async with _require_factory()() as session:
        async with session.begin():
            yield session


async def get_webhook_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session with no transaction open; the dispatcher owns it."""
    async with _require_factory()() as session:
        yield session


# ---------------------------------------------------------------------------
# Service getters (for Depends())
# ---------------------------------------------------------------------------


def get_activity_service() -> ActivityService:
    return _activity_service


def get_project_service() -> ProjectService:
    return _project_service


def get_task_service() -> TaskService:
    return _task_service


def get_webhook_dispatcher() -> WebhookDispatcher:
    return _webhook_dispatcher


def get_webhook_event_dao() -> WebhookEventDAO:
    return _webhook_event_dao
