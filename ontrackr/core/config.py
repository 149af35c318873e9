"""Runtime settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass

_TRUTHY = {"1", "true", "yes", "on"}


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in _TRUTHY


@dataclass
class Settings:
    database_url: str = "postgresql+asyncpg://localhost/ontrackr"
    webhook_secret: str | None = None
    verify_signatures: bool = True
    membership_fail_open: bool = True
    cors_origins: str = "http://localhost:3000"

    @classmethod
    def from_env(cls) -> "Settings":
        settings = cls()

        if url := os.environ.get("ONTRACKR_DATABASE_URL"):
            settings.database_url = url

        settings.webhook_secret = os.environ.get("ONTRACKR_WEBHOOK_SECRET") or None
        settings.verify_signatures = _env_bool("ONTRACKR_VERIFY_SIGNATURES", True)
        settings.membership_fail_open = _env_bool("ONTRACKR_MEMBERSHIP_FAIL_OPEN", True)

        if origins := os.environ.get("ONTRACKR_CORS_ORIGINS"):
            settings.cors_origins = origins

        return settings


def get_settings() -> Settings:
    return Settings.from_env()
