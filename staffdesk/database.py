"""
Backend Connection Layer.

Owns every connection the service layer talks through:

- **Supabase (anon key)**: the shared client.  Its auth session is the
  signed-in user's session and its PostgREST interface serves the
  ``users`` table.

- **Supabase (service-role key, optional)**: the admin client.  Only used
  to delete identities orphaned by a failed provisioning.

- **Isolated auth clients**: throwaway clients with no persisted session.
  Account provisioning creates new identities on one of these so that the
  signed-in super administrator's session is never replaced by the new
  identity's session.

- **SQLite (local)**: the reconciliation queue for orphaned identities
  and the persistent audit log.

Data access is performed through the Repository pattern.  This module only
manages the raw *connections*; it contains no query logic.

Usage (dependency injection at startup)::

    from staffdesk.database import DatabaseManager
    from staffdesk.logger import StructuredLogger

    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=config.LOCAL_DB_PATH,
        logger=StructuredLogger(name="database"),
    )
"""

from __future__ import annotations

import sqlite3
import threading
from pathlib import Path
from typing import Optional, Union

from supabase import ClientOptions, create_client, Client as SupabaseClient

from staffdesk.logger import StructuredLogger


class DatabaseManager:
    """Manages the Supabase clients and the local SQLite connection.

    Fully configured at construction time via dependency injection.

    When ``supabase_url`` or ``supabase_key`` is empty no Supabase client
    is created and the ``supabase`` property raises ``RuntimeError``.
    Services catch that and report the backend as unreachable.

    Parameters
    ----------
    supabase_url:
        The Supabase project URL (e.g. ``https://xyz.supabase.co``).
    supabase_key:
        The Supabase anonymous key.
    service_role_key:
        The Supabase service-role key.  May be empty; the admin client is
        then unavailable and orphaned identities are queued instead of
        deleted.
    sqlite_path:
        Filesystem path for the local SQLite database file, or
        ``":memory:"``.
    logger:
        A ``StructuredLogger`` instance for structured JSON log output.
    """

    def __init__(
        self,
        supabase_url: str,
        supabase_key: str,
        sqlite_path: Union[Path, str],
        logger: StructuredLogger,
        service_role_key: str = "",
    ) -> None:
        self._logger: StructuredLogger = logger
        self._write_lock: threading.RLock = threading.RLock()
        self._supabase_url: str = supabase_url
        self._supabase_key: str = supabase_key

        self._supabase: Optional[SupabaseClient] = self._create_client(
            supabase_key, label="anon",
        )
        self._admin: Optional[SupabaseClient] = None
        if self._supabase is not None and service_role_key:
            self._admin = self._create_client(
                service_role_key,
                label="service-role",
                options=ClientOptions(auto_refresh_token=False, persist_session=False),
            )

        self._sqlite_conn: Optional[sqlite3.Connection] = self._connect_sqlite(sqlite_path)

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def supabase(self) -> SupabaseClient:
        """Return the shared Supabase client.

        Raises
        ------
        RuntimeError
            If the client was not initialised (missing credentials).
        """
        if self._supabase is None:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        return self._supabase

    @property
    def admin(self) -> SupabaseClient:
        """Return the service-role client used for identity cleanup.

        Raises
        ------
        RuntimeError
            If no service-role key was configured.
        """
        if self._admin is None:
            raise RuntimeError(
                "Supabase admin client is not initialised. "
                "Set SUPABASE_SERVICE_ROLE_KEY to enable identity cleanup."
            )
        return self._admin

    @property
    def is_online(self) -> bool:
        """``True`` when the shared Supabase client is available."""
        return self._supabase is not None

    @property
    def has_admin(self) -> bool:
        """``True`` when the service-role client is available."""
        return self._admin is not None

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Return the local SQLite connection."""
        if self._sqlite_conn is None:
            raise RuntimeError("SQLite connection is closed.")
        return self._sqlite_conn

    @property
    def write_lock(self) -> threading.RLock:
        """Return the lock guarding SQLite writes.

        All code that writes to SQLite acquires this first::

            with db.write_lock:
                db.sqlite.execute("INSERT ...")
                db.sqlite.commit()
        """
        return self._write_lock

    # ------------------------------------------------------------------
    # Client factories
    # ------------------------------------------------------------------

    def create_isolated_client(self) -> SupabaseClient:
        """Return a fresh anon-key client whose auth session is not persisted.

        Signing up or signing out on this client never touches the shared
        client's session.

        Raises
        ------
        RuntimeError
            If Supabase credentials are not configured.
        """
        if not self.is_online:
            raise RuntimeError(
                "Supabase client is not initialised. "
                "Set SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        return create_client(
            self._supabase_url,
            self._supabase_key,
            options=ClientOptions(auto_refresh_token=False, persist_session=False),
        )

    # ------------------------------------------------------------------
    # Lifecycle helpers
    # ------------------------------------------------------------------

    def get_pending_reconciliation_count(self) -> int:
        """Return the number of orphaned identities awaiting cleanup.

        Returns ``0`` when the table does not exist yet or the query fails,
        so it is safe to call at any point during startup.
        """
        with self._write_lock:
            try:
                row = self.sqlite.execute(
                    "SELECT COUNT(*) AS cnt FROM orphaned_identities "
                    "WHERE status = 'pending'",
                ).fetchone()
                return int(row["cnt"]) if row else 0
            except (sqlite3.Error, RuntimeError):
                self._logger.debug(
                    "get_pending_reconciliation_count query failed; returning 0.",
                    exc_info=True,
                )
                return 0

    def close(self) -> None:
        """Close the local SQLite connection.

        Safe to call multiple times; subsequent calls are no-ops.
        """
        with self._write_lock:
            if self._sqlite_conn is not None:
                try:
                    self._sqlite_conn.close()
                    self._logger.info("SQLite connection closed.")
                except sqlite3.ProgrammingError:
                    pass
                self._sqlite_conn = None

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _create_client(
        self,
        key: str,
        *,
        label: str,
        options: Optional[ClientOptions] = None,
    ) -> Optional[SupabaseClient]:
        if not (self._supabase_url and key):
            self._logger.warning(
                "Supabase %s credentials not configured; client disabled.", label,
            )
            return None
        try:
            if options is None:
                client = create_client(self._supabase_url, key)
            else:
                client = create_client(self._supabase_url, key, options=options)
            self._logger.info("Supabase %s client initialized.", label)
            return client
        except (ValueError, TypeError) as exc:
            self._logger.warning(
                "Supabase %s credential format error: %s. Client disabled.",
                label,
                exc,
            )
        except Exception as exc:
            self._logger.error(
                "Unexpected Supabase %s initialization failure: %s. "
                "Client disabled.",
                label,
                exc,
                exc_info=True,
            )
        return None

    def _connect_sqlite(self, path: Union[Path, str]) -> sqlite3.Connection:
        """Open (or create) the local SQLite database.

        Raises
        ------
        PermissionError
            If the OS denies access to the database file or its directory.
        """
        try:
            conn = sqlite3.connect(str(path), check_same_thread=False)
            conn.row_factory = sqlite3.Row
            if str(path) != ":memory:":
                conn.execute("PRAGMA journal_mode=WAL;")
            self._logger.info("SQLite database opened at %s", path)
            return conn
        except PermissionError as exc:
            msg = (
                f"Cannot open the local database at '{path}'. "
                "The file or its directory may be read-only or locked by "
                "another process.  Please check file permissions and try again."
            )
            self._logger.error(msg)
            raise PermissionError(msg) from exc
