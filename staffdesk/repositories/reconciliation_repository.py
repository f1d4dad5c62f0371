"""
Orphaned Identity Repository.

Local SQLite queue of identities left without a profile row.  Rows start
``pending``, become ``resolved`` once the identity is deleted, or
``failed`` after too many attempts.
"""

from __future__ import annotations

import sqlite3

from staffdesk.models.enums import ReconciliationStatus
from staffdesk.models.service_models import OrphanedIdentity
from staffdesk.repositories.base_repository import BaseRepository


class ReconciliationRepository(BaseRepository):
    """Data access layer for the ``orphaned_identities`` table."""

    TABLE = "orphaned_identities"

    def enqueue(self, identity_id: str, email: str, reason: str) -> int:
        """Record an orphaned identity and return the queue row id."""
        with self._db.write_lock:
            cursor = self.sqlite.execute(
                f"""
                INSERT INTO {self.TABLE} (identity_id, email, reason)
                VALUES (?, ?, ?)
                """,
                (identity_id, email, reason),
            )
            self.sqlite.commit()
        queue_id = int(cursor.lastrowid)
        self._logger.info(
            "Queued orphaned identity %s (%s) as row %d", identity_id, email, queue_id,
        )
        return queue_id

    def list_pending(self, limit: int = 50) -> list[OrphanedIdentity]:
        """Oldest pending rows first."""
        rows = self.sqlite.execute(
            f"""
            SELECT id, identity_id, email, reason, status, attempts, error_message
            FROM {self.TABLE}
            WHERE status = ?
            ORDER BY id ASC
            LIMIT ?
            """,
            (str(ReconciliationStatus.PENDING), limit),
        ).fetchall()
        return [OrphanedIdentity(**dict(row)) for row in rows]

    def mark_resolved(self, queue_id: int) -> None:
        """Transition a row from ``pending`` to ``resolved``."""
        try:
            with self._db.write_lock:
                self.sqlite.execute(
                    f"""
                    UPDATE {self.TABLE}
                    SET status = ?, attempts = attempts + 1,
                        attempted_at = CURRENT_TIMESTAMP, error_message = NULL
                    WHERE id = ?
                    """,
                    (str(ReconciliationStatus.RESOLVED), queue_id),
                )
                self.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to mark orphaned_identities row %d as resolved: %s",
                queue_id,
                exc,
            )

    def record_failure(
        self,
        queue_id: int,
        error_message: str,
        max_attempts: int,
    ) -> ReconciliationStatus:
        """Count a failed attempt; the row becomes ``failed`` at *max_attempts*.

        Returns the row's status after the update.  When the update itself
        fails the row is left untouched and reported as ``pending``.
        """
        try:
            with self._db.write_lock:
                row = self.sqlite.execute(
                    f"SELECT attempts FROM {self.TABLE} WHERE id = ?", (queue_id,),
                ).fetchone()
                attempts = (int(row["attempts"]) if row else 0) + 1
                status = (
                    ReconciliationStatus.FAILED
                    if attempts >= max_attempts
                    else ReconciliationStatus.PENDING
                )
                self.sqlite.execute(
                    f"""
                    UPDATE {self.TABLE}
                    SET status = ?, attempts = ?,
                        attempted_at = CURRENT_TIMESTAMP, error_message = ?
                    WHERE id = ?
                    """,
                    (str(status), attempts, error_message, queue_id),
                )
                self.sqlite.commit()
        except sqlite3.Error as exc:
            self._logger.warning(
                "Failed to record attempt for orphaned_identities row %d: %s",
                queue_id,
                exc,
            )
            return ReconciliationStatus.PENDING
        return status
