"""
User Record Repository.

All access to the Supabase ``users`` table.  Every method either returns
typed models or raises ``DocumentStoreError`` / ``IndexMissingError``.
"""

from __future__ import annotations

from typing import Iterable, Optional

from staffdesk.database import DatabaseManager
from staffdesk.exceptions import ProfileNotFoundError
from staffdesk.logger import StructuredLogger
from staffdesk.models.enums import RoleType
from staffdesk.models.user import UserRecord
from staffdesk.repositories.base_repository import BaseRepository


class UserRepository(BaseRepository):
    """Data access layer for ``UserRecord`` rows.

    There is no ``delete()``: profile rows are never removed.  Uniqueness
    of ``identity_id`` is a convention of the provisioning flow, not a
    constraint checked here.
    """

    TABLE = "users"

    def __init__(
        self,
        db: DatabaseManager,
        logger: StructuredLogger,
        table: str = "users",
        index_missing_codes: Iterable[str] = (),
    ) -> None:
        super().__init__(db, logger, index_missing_codes=index_missing_codes)
        self.TABLE = table

    def get_by_identity_id(self, identity_id: str) -> Optional[UserRecord]:
        """Fetch the row owned by an auth identity, or ``None``."""
        def _op() -> Optional[UserRecord]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("identity_id", identity_id)
                .limit(1)
                .execute()
            )
            return UserRecord(**response.data[0]) if response.data else None

        return self._execute_remote(_op, operation_name="get_by_identity_id (users)")

    def get_by_id(self, record_id: str) -> Optional[UserRecord]:
        """Fetch a row by its own key, or ``None``."""
        def _op() -> Optional[UserRecord]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("id", record_id)
                .limit(1)
                .execute()
            )
            return UserRecord(**response.data[0]) if response.data else None

        return self._execute_remote(_op, operation_name="get_by_id (users)")

    def insert(self, record: UserRecord) -> UserRecord:
        """Insert a new row.  Never checks for an existing ``identity_id``."""
        def _op() -> UserRecord:
            response = self.supabase.table(self.TABLE).insert(record.to_row()).execute()
            return UserRecord(**response.data[0]) if response.data else record

        created = self._execute_remote(_op, operation_name="insert (users)")
        self._logger.info("User record inserted: %s", created.id)
        return created

    def update(self, record_id: str, fields: dict[str, object]) -> UserRecord:
        """Apply *fields* to one row and return the stored result.

        Raises
        ------
        ProfileNotFoundError
            No row has ``id == record_id``.
        """
        def _op() -> Optional[UserRecord]:
            response = (
                self.supabase.table(self.TABLE)
                .update(fields)
                .eq("id", record_id)
                .execute()
            )
            return UserRecord(**response.data[0]) if response.data else None

        updated = self._execute_remote(_op, operation_name="update (users)")
        if updated is None:
            raise ProfileNotFoundError(f"No user record with id {record_id}.")
        return updated

    def list_roster(self, site_location: str) -> list[UserRecord]:
        """Approved employees of one site, newest first.

        A single compound filter + sort.  Raises ``IndexMissingError``
        when the store cannot serve it.
        """
        def _op() -> list[UserRecord]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("role_type", str(RoleType.EMPLOYEE))
                .eq("approved", True)
                .eq("assigned_site_location", site_location)
                .order("created_at", desc=True)
                .execute()
            )
            return [UserRecord(**row) for row in response.data]

        return self._execute_remote(_op, operation_name="list_roster (users)")

    def list_approved_employees(self) -> list[UserRecord]:
        """Approved employees of every site, unordered."""
        def _op() -> list[UserRecord]:
            response = (
                self.supabase.table(self.TABLE)
                .select("*")
                .eq("role_type", str(RoleType.EMPLOYEE))
                .eq("approved", True)
                .execute()
            )
            return [UserRecord(**row) for row in response.data]

        return self._execute_remote(_op, operation_name="list_approved_employees (users)")
