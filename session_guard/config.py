"""
Configuration.

``AppConfig`` is read from environment variables and an optional ``.env``
file.  The lifetime policy is configurable, with the 30-minute lifetime
and 30-second safety poll as defaults.  Pass an ``AppConfig`` explicitly
where possible; ``get_config()`` exists for the logger and the entry
point.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from pydantic import Field, SecretStr, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

if TYPE_CHECKING:
    from session_guard.services.expiry import SessionPolicy

_log = logging.getLogger("session_guard.config")


class AppConfig(BaseSettings):
    """SessionGuard settings."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore",
    )

    # Supabase Auth
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")

    # Session lifetime
    SESSION_MAX_MINUTES: int = Field(default=30, gt=0)
    SAFETY_POLL_INTERVAL_S: float = Field(default=30.0, gt=0)
    SESSION_START_KEY: str = Field(default="wz_session_start_ms", min_length=1)

    # Local database and routing
    SQLITE_PATH: str = "session_guard_local.db"
    LANDING_PATH: str = "/"

    # Log output
    LOG_FILE: str = "session_guard.log"
    LOG_MAX_BYTES: int = 5 * 1024 * 1024
    LOG_BACKUP_COUNT: int = 3

    @model_validator(mode="after")
    def _warn_if_unconfigured(self) -> "AppConfig":
        """Missing settings fall back to defaults silently; say so once."""
        if not Path(".env").exists():
            _log.warning("No .env file; using environment variables and defaults.")
        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; every session will resolve as signed out."
            )
        return self

    def session_policy(self) -> SessionPolicy:
        # Imported here: the services package imports this module.
        from session_guard.services.expiry import SessionPolicy

        return SessionPolicy(
            max_ms=self.SESSION_MAX_MINUTES * 60_000,
            poll_interval_s=self.SAFETY_POLL_INTERVAL_S,
        )


_config: Optional[AppConfig] = None
_config_lock = threading.Lock()


def get_config() -> AppConfig:
    """Process-wide ``AppConfig``, created on first use."""
    global _config
    if _config is None:
        with _config_lock:
            if _config is None:
                _config = AppConfig()
    return _config
