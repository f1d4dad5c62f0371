"""
Profile Editor.

State holder behind a "my profile" screen.  Replaces loose ``editing`` /
``updating`` flags with explicit states::

    VIEWING --begin_edit--> EDITING --save--> SAVING --ack--> VIEWING
                              |  ^                |
                           cancel |             failure
                              v  |                |
                            VIEWING           EDITING

Any state moves to ``CLOSED`` when the session's identity goes away.

The displayed record changes only after the backend acknowledges a save.
A failed save leaves both the record and the form as they were.
"""

from __future__ import annotations

import threading
from typing import Callable, Optional

from staffdesk.auth import SessionGateway
from staffdesk.exceptions import (
    DocumentStoreError,
    EditStateError,
    InvalidInputError,
    NotAuthenticatedError,
    PermissionDeniedError,
    ProfileNotFoundError,
)
from staffdesk.logger import StructuredLogger
from staffdesk.models.enums import EditState
from staffdesk.models.service_models import ServiceResult
from staffdesk.models.user import MUTABLE_PROFILE_FIELDS, Identity, ProfilePatch, UserRecord
from staffdesk.services.profile_sync import ProfileSyncService


class ProfileEditor:
    """Edit session for the signed-in user's own profile."""

    def __init__(
        self,
        profile_service: ProfileSyncService,
        session: SessionGateway,
        logger: StructuredLogger,
    ) -> None:
        self._profile_service = profile_service
        self._logger = logger
        self._lock: threading.RLock = threading.RLock()
        self._state: EditState = EditState.VIEWING
        self._record: Optional[UserRecord] = None
        self._form: dict[str, str] = {}
        self._remove_listener: Optional[Callable[[], None]] = session.add_listener(
            self._on_identity_changed,
        )

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def state(self) -> EditState:
        with self._lock:
            return self._state

    @property
    def record(self) -> Optional[UserRecord]:
        with self._lock:
            return self._record

    @property
    def form(self) -> dict[str, str]:
        """A copy of the form values."""
        with self._lock:
            return dict(self._form)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def load(self) -> ServiceResult:
        """Fetch the signed-in user's row and show it (enters VIEWING)."""
        with self._lock:
            self._require_state(EditState.VIEWING)
        try:
            record = self._profile_service.fetch_current()
        except NotAuthenticatedError as exc:
            return ServiceResult(success=False, error=exc.message, status_code=401)
        except ProfileNotFoundError:
            return ServiceResult(success=False, error="User profile not found", status_code=404)
        except DocumentStoreError as exc:
            self._logger.error("Failed to load profile: %s", exc.message)
            return ServiceResult(success=False, error="Failed to load profile data", status_code=503)

        with self._lock:
            if self._state == EditState.CLOSED:
                return ServiceResult(success=False, error="Session ended", status_code=401)
            self._record = record
            self._form = self._form_from(record)
            self._state = EditState.VIEWING
        return ServiceResult(success=True, data=record)

    def begin_edit(self) -> None:
        """VIEWING -> EDITING, form seeded from the record."""
        with self._lock:
            self._require_state(EditState.VIEWING)
            if self._record is None:
                raise EditStateError("No profile loaded.")
            self._form = self._form_from(self._record)
            self._state = EditState.EDITING

    def update_field(self, field: str, value: str) -> None:
        """Change one form value while EDITING."""
        if field not in MUTABLE_PROFILE_FIELDS:
            raise ValueError(f"Field {field!r} cannot be edited.")
        with self._lock:
            self._require_state(EditState.EDITING)
            self._form[field] = value

    def cancel(self) -> None:
        """EDITING -> VIEWING, discarding form changes."""
        with self._lock:
            self._require_state(EditState.EDITING)
            if self._record is not None:
                self._form = self._form_from(self._record)
            self._state = EditState.VIEWING

    def save(self) -> ServiceResult:
        """EDITING -> SAVING -> VIEWING on success, back to EDITING on failure."""
        with self._lock:
            self._require_state(EditState.EDITING)
            record = self._record
            if record is None or record.id is None:
                raise EditStateError("No profile loaded.")
            patch = ProfilePatch(**self._form)
            check = ProfileSyncService.validate_patch(patch)
            if not check.is_valid:
                return ServiceResult(
                    success=False,
                    error="Please fill in all required fields",
                    status_code=400,
                )
            self._state = EditState.SAVING

        try:
            updated = self._profile_service.save(record.id, patch)
        except (
            InvalidInputError,
            NotAuthenticatedError,
            PermissionDeniedError,
            ProfileNotFoundError,
            DocumentStoreError,
        ) as exc:
            self._logger.error("Failed to update profile %s: %s", record.id, exc.message)
            with self._lock:
                if self._state == EditState.CLOSED:
                    return ServiceResult(success=False, error="Session ended", status_code=401)
                self._state = EditState.EDITING
            return ServiceResult(
                success=False,
                error="Failed to update profile. Please try again.",
                status_code=500,
            )

        with self._lock:
            if self._state == EditState.CLOSED:
                self._logger.info("Discarding save result for closed editor (%s).", record.id)
                return ServiceResult(success=False, error="Session ended", status_code=401)
            self._record = updated
            self._form = self._form_from(updated)
            self._state = EditState.VIEWING
        return ServiceResult(success=True, data=updated)

    def close(self) -> None:
        """Release the record and stop following the session."""
        with self._lock:
            self._state = EditState.CLOSED
            self._record = None
            self._form = {}
            remove = self._remove_listener
            self._remove_listener = None
        if remove is not None:
            remove()

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _on_identity_changed(self, identity: Optional[Identity]) -> None:
        with self._lock:
            record = self._record
        if identity is None or (record is not None and record.identity_id != identity.id):
            self._logger.info("Session identity changed; closing profile editor.")
            self.close()

    def _require_state(self, expected: EditState) -> None:
        if self._state != expected:
            raise EditStateError(
                f"Action requires state {expected}, editor is {self._state}.",
            )

    @staticmethod
    def _form_from(record: UserRecord) -> dict[str, str]:
        return {field: getattr(record, field) or "" for field in MUTABLE_PROFILE_FIELDS}
