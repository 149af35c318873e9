"""Ontrackr REST API — FastAPI application factory."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ontrackr.api.deps import dispose_engine, init_session_factory
from ontrackr.api.errors import register_error_handlers
from ontrackr.api.middleware.request_id import RequestIDMiddleware
from ontrackr.api.routers import debug, projects, tasks, users, webhooks
from ontrackr.core.config import get_settings
from ontrackr.core.logging import setup_logging


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup: init DB engine. Shutdown: dispose it."""
    init_session_factory()
    yield
    await dispose_engine()


def create_app() -> FastAPI:
    """Build and return the FastAPI application."""
    setup_logging()
    settings = get_settings()

    app = FastAPI(
        title="Ontrackr",
        docs_url="/api/v1/docs",
        openapi_url="/api/v1/openapi.json",
        lifespan=_lifespan,
    )

    register_error_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[o.strip() for o in settings.cors_origins.split(",")],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health", tags=["ops"])
    async def health() -> JSONResponse:
        return JSONResponse({"status": "ok"})

    app.include_router(webhooks.router, prefix="/api/webhooks", tags=["webhooks"])
    app.include_router(projects.router, prefix="/api/v1/projects", tags=["projects"])
    app.include_router(tasks.router, prefix="/api/v1/tasks", tags=["tasks"])
    app.include_router(users.router, prefix="/api/v1/users", tags=["users"])
    app.include_router(debug.router, prefix="/api/v1/debug", tags=["debug"])

    return app
