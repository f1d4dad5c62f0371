"""
Profile Synchronization Service.

Reads a user's own ``users`` row by identity and writes edits back.
Used by the self-service profile, the admin profile and the admin
dashboard.

There is no record locking: two sessions saving the same row race and
the later write wins.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Callable, Optional

from staffdesk.auth import SessionGateway
from staffdesk.exceptions import InvalidInputError, PermissionDeniedError, ProfileNotFoundError
from staffdesk.logger import StructuredLogger
from staffdesk.models.auth_models import ValidationResult
from staffdesk.models.user import ProfilePatch, UserRecord
from staffdesk.repositories.user_repository import UserRepository
from staffdesk.services.auth_service import AuthService
from staffdesk.services.base_service import BaseService
from staffdesk.utils.audit import log_audit_event


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProfileSyncService(BaseService):
    """Fetch and save a user's own profile row."""

    def __init__(
        self,
        repo: UserRepository,
        session: SessionGateway,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._session = session
        self._audit_conn = audit_conn
        self._clock = clock

    def fetch(self, identity_id: str) -> UserRecord:
        """Return the row owned by *identity_id*.

        Raises:
            ProfileNotFoundError: No row references the identity.
            DocumentStoreError: The query itself failed.
        """
        record = self._repo.get_by_identity_id(identity_id)
        if record is None:
            raise ProfileNotFoundError(f"No profile for identity {identity_id}.")
        return record

    def fetch_current(self) -> UserRecord:
        """Return the signed-in identity's row.

        Raises:
            NotAuthenticatedError: Nobody is signed in.
        """
        return self.fetch(self._session.require_identity().id)

    @staticmethod
    def validate_patch(patch: ProfilePatch) -> ValidationResult:
        """``name`` and ``phone_number`` must be non-empty after trimming."""
        for field, label in (("name", "full name"), ("phone_number", "phone number")):
            check = AuthService.validate_required(getattr(patch, field), field, label)
            if not check.is_valid:
                return check
        return ValidationResult(is_valid=True)

    def save(self, record_id: str, patch: ProfilePatch) -> UserRecord:
        """Write *patch* to row *record_id* and return the stored row.

        Strings are trimmed and ``updated_at`` is set to now.  Only the
        signed-in owner of the row may save it.

        Raises:
            InvalidInputError: A required field is empty; nothing was sent.
            NotAuthenticatedError: Nobody is signed in.
            ProfileNotFoundError: The row does not exist.
            PermissionDeniedError: The row belongs to another identity.
            DocumentStoreError: The write failed.
        """
        check = self.validate_patch(patch)
        if not check.is_valid:
            raise InvalidInputError(check.error_message or "Invalid profile", field=check.field)

        identity = self._session.require_identity()
        existing = self._repo.get_by_id(record_id)
        if existing is None:
            raise ProfileNotFoundError(f"No user record with id {record_id}.")
        if existing.identity_id != identity.id:
            self._logger.warning(
                "Identity %s tried to save profile %s owned by %s.",
                identity.id,
                record_id,
                existing.identity_id,
            )
            raise PermissionDeniedError("You can only update your own profile.")

        fields: dict[str, object] = dict(patch.to_update())
        fields["updated_at"] = self._clock().isoformat()

        updated = self._repo.update(record_id, fields)

        log_audit_event(
            logger=self._logger,
            action="PROFILE_UPDATE",
            entity_type="UserRecord",
            entity_id=record_id,
            user_id=identity.id,
            details={"fields": ",".join(sorted(patch.to_update()))},
            conn=self._audit_conn,
        )
        return updated
