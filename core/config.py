"""
core/config.py -- Process-level settings via pydantic-settings.

All environment variable reads happen here. No module should call
os.getenv() directly -- import get_settings() instead.

Two configuration tiers exist:
  Settings (this module): how the process behaves -- where the persisted
      configuration lives, session lifetime, ban window, penalty delays.
      Read from environment variables and an optional .env file.
  ConfigStore (core/store.py): what the server publishes -- root directory,
      HTTP port, admin path, users, permissions. Persisted as JSON and edited
      from the admin console at runtime.

Singleton via lru_cache: get_settings() instantiates Settings once and
returns the cached instance afterwards. Tests call get_settings.cache_clear()
after changing environment variables.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
from datetime import timedelta
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("piccolo.config")

_DEFAULT_CONFIG_DIR = str(Path(__file__).resolve().parent.parent / "settings")


class Settings(BaseSettings):
    """Settings loaded from environment variables and .env file.

    Every field has a default so Settings() works in tests without a .env
    file. Field names map to upper-case environment variables
    (e.g. ban_threshold reads BAN_THRESHOLD).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Directory with params.json, users.json and permissions.json.
    # The CLI overrides it with -c.
    config_dir: str = _DEFAULT_CONFIG_DIR

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    # Idle lifetime; every access renews it.
    session_lifetime_minutes: int = 360
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Brute-force guard
    # ------------------------------------------------------------------

    ban_window_minutes: int = 20
    ban_threshold: int = 5
    # Request ceiling for POST /login_action, per client IP (slowapi syntax).
    login_rate_limit: str = "30/minute"

    # ------------------------------------------------------------------
    # Browsing
    # ------------------------------------------------------------------

    # Applied to every not-found answer to blunt path probing.
    not_found_delay_seconds: float = 4.0

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_limits(self) -> "Settings":
        """Reject values that would silently disable sessions or the guard.

        A zero lifetime would expire every session on the next sweep; a zero
        threshold would ban every IP; a zero window would never ban anyone.
        """
        if self.session_lifetime_minutes <= 0:
            raise ValueError("SESSION_LIFETIME_MINUTES must be positive.")
        if self.ban_window_minutes <= 0:
            raise ValueError("BAN_WINDOW_MINUTES must be positive.")
        if self.ban_threshold <= 0:
            raise ValueError("BAN_THRESHOLD must be positive.")
        if self.not_found_delay_seconds < 0:
            raise ValueError("NOT_FOUND_DELAY_SECONDS cannot be negative.")
        return self

    @property
    def session_lifetime(self) -> timedelta:
        return timedelta(minutes=self.session_lifetime_minutes)

    @property
    def ban_window(self) -> timedelta:
        return timedelta(minutes=self.ban_window_minutes)


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() if you need to inject
    different environment variables.
    """
    return Settings()
