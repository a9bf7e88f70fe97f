"""
Central configuration for the trail sync client.

All settings are read from environment variables with the ``TRAILSYNC_``
prefix (e.g. ``TRAILSYNC_API_BASE_URL=...``). Pydantic validates and casts
values on startup.

Usage::

    from trailsync.settings import get_settings
    settings = get_settings()
    print(settings.api_base_url, settings.poll_interval_seconds)
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from ``TRAILSYNC_*`` environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRAILSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Environment ──────────────────────────────────────────────────
    env: Literal["local", "dev", "staging", "prod"] = "local"

    # ── Remote service ───────────────────────────────────────────────
    api_base_url: str = "http://localhost:8080/api"
    # Opaque bearer token issued by the session service. Empty = no header.
    api_token: str = ""
    request_timeout_seconds: float = 30.0

    # ── Generation tracking ──────────────────────────────────────────
    poll_interval_seconds: float = 3.0
    max_active_trails: int = 3

    # ── Observability ────────────────────────────────────────────────
    log_level: str = "INFO"

    @model_validator(mode="after")
    def _validate_config(self) -> Settings:
        """Collect every misconfiguration and fail once."""
        errors: list[str] = []

        if not 0 < self.poll_interval_seconds <= 60:
            errors.append(
                "TRAILSYNC_POLL_INTERVAL_SECONDS must be in (0, 60] "
                f"(got {self.poll_interval_seconds})"
            )

        if self.max_active_trails < 1:
            errors.append(
                f"TRAILSYNC_MAX_ACTIVE_TRAILS must be positive (got {self.max_active_trails})"
            )

        if self.request_timeout_seconds <= 0:
            errors.append("TRAILSYNC_REQUEST_TIMEOUT_SECONDS must be positive")

        if self.env != "local":
            if "localhost" in self.api_base_url or "127.0.0.1" in self.api_base_url:
                errors.append(
                    f"TRAILSYNC_API_BASE_URL must not point to localhost (env={self.env!r})"
                )
            if not self.api_token:
                errors.append(f"TRAILSYNC_API_TOKEN is required in env={self.env!r}")

        if errors:
            raise ValueError(
                f"[trailsync env={self.env!r}] Configuration errors:\n  - " + "\n  - ".join(errors)
            )

        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the cached client settings singleton."""
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache (used in tests)."""
    get_settings.cache_clear()
