"""
Application Configuration.

Pydantic Settings model for the StaffDesk service layer.
All configuration is loaded from environment variables and .env files.
Inject an AppConfig instance via dependency injection where needed.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field, SecretStr, model_validator


class AppConfig(BaseSettings):
    """Central configuration loaded from environment variables and defaults."""

    # --- Supabase ---
    SUPABASE_URL: str = ""
    SUPABASE_ANON_KEY: SecretStr = SecretStr("")
    SUPABASE_SERVICE_ROLE_KEY: SecretStr = SecretStr("")  # Admin API: orphan cleanup only

    # --- Document store ---
    USERS_TABLE: str = "users"

    # PostgREST / Postgres error codes treated as "the compound roster
    # query has no supporting index".  57014 is the statement timeout a
    # sequential scan hits under the role's statement_timeout.
    INDEX_MISSING_ERROR_CODES: list[str] = Field(
        default_factory=lambda: ["57014", "failed-precondition"],
    )

    # --- Local SQLite (reconciliation queue + audit log) ---
    LOCAL_DB_PATH: Path = Path("staffdesk_local.db")

    # --- Provisioning ---
    MIN_PASSWORD_LENGTH: int = 6
    SUPERADMIN_EMAILS: list[str] = Field(default_factory=list)
    RECONCILIATION_MAX_ATTEMPTS: int = 5

    # --- Logging ---
    LOG_FILE: str = "staffdesk.log"
    LOG_MAX_BYTES: int = 5_242_880  # 5 MB
    LOG_BACKUP_COUNT: int = 3

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @model_validator(mode="after")
    def _warn_missing_env(self) -> "AppConfig":
        """Emit a startup warning when critical configuration is empty.

        Pydantic silently falls back to defaults when ``.env`` is missing,
        so operators need a hint that the service layer is running with
        placeholder values.
        """
        _log = logging.getLogger("staffdesk.config")

        if not Path(".env").exists():
            _log.warning(
                "No .env file found; all configuration loaded from "
                "environment variables or defaults."
            )

        if not self.SUPABASE_URL:
            _log.warning(
                "SUPABASE_URL is empty; backend connectivity is disabled."
            )

        if not self.SUPABASE_SERVICE_ROLE_KEY.get_secret_value():
            _log.warning(
                "SUPABASE_SERVICE_ROLE_KEY is empty; orphaned identities "
                "will be queued for reconciliation instead of deleted."
            )

        return self

    @property
    def normalized_superadmin_emails(self) -> frozenset[str]:
        """``SUPERADMIN_EMAILS`` stripped and lower-cased."""
        return frozenset(e.strip().lower() for e in self.SUPERADMIN_EMAILS if e.strip())


# ---------------------------------------------------------------------------
# Module-level singleton factory
# ---------------------------------------------------------------------------

_config_instance: Optional[AppConfig] = None
_config_lock: threading.Lock = threading.Lock()


def get_config() -> AppConfig:
    """Return a cached ``AppConfig`` singleton.

    On first call, creates an ``AppConfig`` instance (reading from ``.env``).
    Subsequent calls return the same instance.  Uses a check-lock-check
    pattern so the fast path skips the lock.

    Prefer direct constructor injection of ``AppConfig`` in new code.
    """
    global _config_instance
    if _config_instance is None:
        with _config_lock:
            if _config_instance is None:
                _config_instance = AppConfig()
    return _config_instance
