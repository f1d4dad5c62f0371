"""
Base Repository.

Provides shared infrastructure for all repositories:
- DatabaseManager reference (Supabase + SQLite)
- Logger reference
- Convenience properties for accessing clients
- Translation of backend exceptions into the typed error hierarchy
"""

from __future__ import annotations

import sqlite3
from typing import Callable, Iterable, TypeVar

from postgrest.exceptions import APIError
from supabase import Client as SupabaseClient

from staffdesk.database import DatabaseManager
from staffdesk.exceptions import DocumentStoreError, IndexMissingError, StaffDeskError
from staffdesk.logger import StructuredLogger

T = TypeVar("T")

_INDEX_HINTS: tuple[str, ...] = ("requires an index", "missing index", "no supporting index")


class BaseRepository:
    """Base class for all repositories. Receives dependencies via __init__."""

    TABLE: str = ""

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        index_missing_codes: Iterable[str] = (),
    ) -> None:
        self._db = db
        self._logger = logger
        self._index_missing_codes: frozenset[str] = frozenset(index_missing_codes)

    @property
    def supabase(self) -> SupabaseClient:
        """Returns the shared Supabase client for table operations."""
        return self._db.supabase

    @property
    def sqlite(self) -> sqlite3.Connection:
        """Returns the local SQLite connection."""
        return self._db.sqlite

    def _execute_remote(self, op: Callable[[], T], *, operation_name: str) -> T:
        """Run a Supabase table operation and normalise its failures.

        Raises
        ------
        IndexMissingError
            The store rejected the query for lack of a supporting index.
        DocumentStoreError
            Any other failure, including an unconfigured client.
        """
        try:
            return op()
        except StaffDeskError:
            raise
        except RuntimeError as exc:
            self._logger.error("Supabase unavailable for %s: %s", operation_name, exc)
            raise DocumentStoreError(
                "The backend is not configured or unreachable.", original_error=exc,
            ) from exc
        except APIError as exc:
            if self._is_index_missing(exc):
                self._logger.warning(
                    "Index missing for %s (code=%s): %s",
                    operation_name,
                    exc.code,
                    exc.message,
                )
                raise IndexMissingError(
                    f"{operation_name} requires an index the store does not have.",
                    original_error=exc,
                ) from exc
            self._logger.error(
                "Supabase rejected %s (code=%s): %s", operation_name, exc.code, exc.message,
            )
            raise DocumentStoreError(
                f"{operation_name} failed: {exc.message}", original_error=exc,
            ) from exc
        except Exception as exc:
            self._logger.error("Supabase call failed for %s: %s", operation_name, exc)
            raise DocumentStoreError(
                f"{operation_name} failed: {exc}", original_error=exc,
            ) from exc

    def _is_index_missing(self, exc: APIError) -> bool:
        code = str(exc.code or "")
        if code in self._index_missing_codes:
            return True
        text = " ".join(str(part or "") for part in (exc.message, exc.hint, exc.details)).lower()
        return any(hint in text for hint in _INDEX_HINTS)
