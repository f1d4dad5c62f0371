"""
Account Provisioning Service.

Creates an employee or admin account: a Supabase Auth identity plus its
``users`` row.  Only super administrators may provision.

Steps, strictly in order:
    1. Create the identity on an isolated auth client.
    2. Insert the profile row referencing the new identity.
    3. Sign the new identity out of the isolated client.

Compensation:
    - If step 1 fails nothing was written; the error is classified
      (email already in use, weak password, invalid email, network).
    - If step 2 fails the identity is orphaned.  It is deleted through
      the admin API; when that is impossible it is queued in the local
      ``orphaned_identities`` table for the reconciliation sweep.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from typing import Callable, Optional

from staffdesk.auth import SessionGateway
from staffdesk.config import AppConfig
from staffdesk.exceptions import DocumentStoreError, IdentityProviderError
from staffdesk.logger import StructuredLogger
from staffdesk.models.auth_models import AuthErrorCode, ProvisioningResult, ValidationResult
from staffdesk.models.enums import RoleType
from staffdesk.models.user import Identity, ProvisioningRequest, UserRecord
from staffdesk.repositories.identity_repository import IdentityRepository
from staffdesk.repositories.reconciliation_repository import ReconciliationRepository
from staffdesk.repositories.user_repository import UserRepository
from staffdesk.services.auth_service import AuthService
from staffdesk.services.base_service import BaseService
from staffdesk.utils.audit import log_audit_event

CREATED_BY_SUPERADMIN: str = "superadmin"

# (field, label) in the order the form is checked.
_REQUIRED_TEXT_FIELDS: tuple[tuple[str, str], ...] = (
    ("name", "employee name"),
    ("phone_number", "phone number"),
    ("email", "email address"),
)
_REQUIRED_DETAIL_FIELDS: tuple[tuple[str, str], ...] = (
    ("job_role", "job role"),
    ("assigned_site_location", "assigned site location"),
    ("working_schedule", "working schedule"),
)

_PROVISIONABLE_ROLES: frozenset[RoleType] = frozenset({RoleType.EMPLOYEE, RoleType.ADMIN})


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AccountProvisioningService(BaseService):
    """Orchestrates identity + profile creation for new staff accounts."""

    def __init__(
        self,
        identity_repo: IdentityRepository,
        user_repo: UserRepository,
        reconciliation_repo: ReconciliationRepository,
        session: SessionGateway,
        config: AppConfig,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        super().__init__(logger)
        self._identity_repo = identity_repo
        self._user_repo = user_repo
        self._reconciliation_repo = reconciliation_repo
        self._session = session
        self._config = config
        self._audit_conn = audit_conn
        self._clock = clock

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def validate_request(self, request: ProvisioningRequest) -> ValidationResult:
        """Check every field, stopping at the first failure.

        The email pattern is checked last, after every field is known to
        be present, so an empty form reports the first missing field.
        """
        for field, label in _REQUIRED_TEXT_FIELDS:
            check = AuthService.validate_required(getattr(request, field), field, label)
            if not check.is_valid:
                return check

        check = AuthService.validate_password(
            request.password, self._config.MIN_PASSWORD_LENGTH,
        )
        if not check.is_valid:
            return check

        for field, label in _REQUIRED_DETAIL_FIELDS:
            check = AuthService.validate_required(getattr(request, field), field, label)
            if not check.is_valid:
                return check

        check = AuthService.validate_email(request.email)
        if not check.is_valid:
            return check

        if request.role_type not in _PROVISIONABLE_ROLES:
            return ValidationResult(
                is_valid=False,
                field="role_type",
                error_message="Only employee or admin accounts can be added",
            )
        return ValidationResult(is_valid=True)

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def provision(self, request: ProvisioningRequest) -> ProvisioningResult:
        """Create the identity and profile row for *request*.

        Returns a ``ProvisioningResult``; never raises for backend
        failures.
        """
        check = self.validate_request(request)
        if not check.is_valid:
            return ProvisioningResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=check.error_message,
                invalid_field=check.field,
            )

        caller, denied = self._authorize_caller()
        if denied is not None:
            return denied

        email = AuthService.normalize_email(request.email)

        # --- 1. Identity ---
        try:
            identity = self._identity_repo.create_identity(email, request.password)
        except IdentityProviderError as exc:
            self._logger.warning(
                "Provisioning aborted for %s: %s", email, exc.code,
                extra={"event": "PROVISION_FAILED", "error_code": str(exc.code)},
            )
            return ProvisioningResult(
                success=False,
                error_code=exc.code,
                error_message=exc.message,
                role_type=request.role_type,
            )

        # --- 2. Profile row ---
        record = self._build_record(request, identity, email)
        try:
            created = self._user_repo.insert(record)
        except DocumentStoreError as exc:
            return self._compensate(identity, email, request.role_type, exc)

        # --- 3. Sign the new identity out ---
        self._sign_out_quietly(identity.id)

        log_audit_event(
            logger=self._logger,
            action="PROVISION",
            entity_type="UserRecord",
            entity_id=created.id or identity.id,
            user_id=caller.id,
            details={
                "identity_id": identity.id,
                "email": email,
                "role_type": str(request.role_type),
                "site": created.assigned_site_location,
            },
            conn=self._audit_conn,
        )

        return ProvisioningResult(
            success=True,
            identity_id=identity.id,
            record_id=created.id,
            role_type=request.role_type,
        )

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _authorize_caller(self) -> tuple[Identity, Optional[ProvisioningResult]]:
        """Return the caller and, when they may not provision, the refusal."""
        caller = self._session.current_identity
        if caller is None:
            return Identity(id=""), self._denied(
                "Sign in as a super administrator to add accounts.",
            )

        if caller.email and caller.email.strip().lower() in self._config.normalized_superadmin_emails:
            return caller, None

        try:
            profile = self._user_repo.get_by_identity_id(caller.id)
        except DocumentStoreError as exc:
            self._logger.error("Could not verify provisioning rights for %s: %s", caller.id, exc)
            return caller, ProvisioningResult(
                success=False,
                error_code=AuthErrorCode.NETWORK_ERROR,
                error_message="Could not verify your permissions. Please try again.",
            )

        if profile is None or profile.role_type != RoleType.SUPERADMIN:
            return caller, self._denied("Only super administrators can add accounts.")
        return caller, None

    @staticmethod
    def _denied(message: str) -> ProvisioningResult:
        return ProvisioningResult(
            success=False,
            error_code=AuthErrorCode.NOT_AUTHORIZED,
            error_message=message,
        )

    def _build_record(
        self,
        request: ProvisioningRequest,
        identity: Identity,
        email: str,
    ) -> UserRecord:
        # Employees are visible on their roster immediately; admins carry
        # the "admin access approved" choice from the form.
        approved = True if request.role_type == RoleType.EMPLOYEE else request.approved
        return UserRecord(
            identity_id=identity.id,
            name=request.name.strip(),
            phone_number=request.phone_number.strip(),
            email=email,
            job_role=request.job_role.strip(),
            assigned_site_location=request.assigned_site_location.strip(),
            working_schedule=request.working_schedule.strip(),
            role_type=request.role_type,
            approved=approved,
            created_by=CREATED_BY_SUPERADMIN,
            created_at=self._clock(),
        )

    def _compensate(
        self,
        identity: Identity,
        email: str,
        role_type: RoleType,
        cause: DocumentStoreError,
    ) -> ProvisioningResult:
        """Undo step 1 after step 2 failed."""
        self._logger.error(
            "Profile write failed for new identity %s (%s): %s",
            identity.id,
            email,
            cause.message,
            extra={"event": "PROVISION_PROFILE_WRITE_FAILED"},
        )
        self._sign_out_quietly(identity.id)

        compensated = False
        queued = False
        try:
            self._identity_repo.delete_identity(identity.id)
            compensated = True
            log_audit_event(
                logger=self._logger,
                action="ORPHAN_DELETED",
                entity_type="Identity",
                entity_id=identity.id,
                user_id=identity.id,
                details={"email": email},
                conn=self._audit_conn,
            )
        except IdentityProviderError as delete_exc:
            reason = (
                f"profile write failed: {cause.message}; "
                f"delete failed: {delete_exc.message}"
            )
            try:
                self._reconciliation_repo.enqueue(identity.id, email, reason)
                queued = True
            except sqlite3.Error as queue_exc:
                self._logger.critical(
                    "Orphaned identity %s (%s) could not be queued: %s",
                    identity.id,
                    email,
                    queue_exc,
                )

        return ProvisioningResult(
            success=False,
            error_code=AuthErrorCode.PROFILE_WRITE_FAILED,
            error_message="Failed to add employee. Please try again.",
            identity_id=identity.id,
            role_type=role_type,
            compensated=compensated,
            reconciliation_queued=queued,
        )

    def _sign_out_quietly(self, identity_id: str) -> None:
        try:
            self._identity_repo.sign_out_identity(identity_id)
        except IdentityProviderError as exc:
            self._logger.warning(
                "Could not sign out provisioned identity %s: %s", identity_id, exc.message,
            )
