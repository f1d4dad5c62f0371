"""
Authentication Service.

Sign-in and sign-out for the person using the client, plus the field
validators shared with account provisioning.

Sits between the UI layer and the identity repository / session gateway
so that a sign-in form stays a thin handler.  All methods return typed
``AuthResult`` or ``ValidationResult`` models; the UI never inspects raw
exceptions.
"""

from __future__ import annotations

import re
import sqlite3
from typing import Optional

from staffdesk.auth import SessionGateway
from staffdesk.exceptions import IdentityProviderError
from staffdesk.logger import StructuredLogger
from staffdesk.models.auth_models import AuthErrorCode, AuthResult, ValidationResult
from staffdesk.repositories.identity_repository import IdentityRepository
from staffdesk.services.base_service import BaseService
from staffdesk.utils.audit import log_audit_event


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

_EMAIL_RE: re.Pattern[str] = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")

DEFAULT_MIN_PASSWORD_LENGTH: int = 6


class AuthService(BaseService):
    """Sign-in / sign-out orchestrator.

    Parameters
    ----------
    identity_repo:
        Access to Supabase Auth.
    session:
        The shared session gateway.
    logger:
        Structured JSON logger.
    audit_conn:
        Optional SQLite connection for persisted audit events.
    """

    def __init__(
        self,
        identity_repo: IdentityRepository,
        session: SessionGateway,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._identity_repo = identity_repo
        self._session = session
        self._audit_conn = audit_conn

    # ==================================================================
    # Validation helpers
    # ==================================================================

    @staticmethod
    def validate_email(email: str) -> ValidationResult:
        """Check *email* is present and looks like ``local@domain.tld``."""
        if not email or not email.strip():
            return ValidationResult(
                is_valid=False,
                field="email",
                error_message="Please enter email address",
            )
        if not _EMAIL_RE.match(email.strip()):
            return ValidationResult(
                is_valid=False,
                field="email",
                error_message="Please enter a valid email address",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_password(
        password: str,
        min_length: int = DEFAULT_MIN_PASSWORD_LENGTH,
    ) -> ValidationResult:
        """Enforce the minimum password length."""
        if not password or len(password) < min_length:
            return ValidationResult(
                is_valid=False,
                field="password",
                error_message=f"Password must be at least {min_length} characters long",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def validate_required(value: str, field: str, label: str) -> ValidationResult:
        """Reject empty or whitespace-only text."""
        if not value or not value.strip():
            return ValidationResult(
                is_valid=False,
                field=field,
                error_message=f"Please enter {label}",
            )
        return ValidationResult(is_valid=True)

    @staticmethod
    def normalize_email(email: str) -> str:
        """Normalise an email address: strip whitespace and lowercase."""
        return email.strip().lower()

    # ==================================================================
    # Sign-in
    # ==================================================================

    def sign_in(self, email: str, password: str) -> AuthResult:
        """Authenticate against Supabase Auth and make the identity current."""
        email_check = self.validate_email(email)
        if not email_check.is_valid:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message=email_check.error_message,
            )
        if not password:
            return AuthResult(
                success=False,
                error_code=AuthErrorCode.VALIDATION_ERROR,
                error_message="Please enter your password",
            )

        email = self.normalize_email(email)
        try:
            identity = self._identity_repo.sign_in(email, password)
        except IdentityProviderError as exc:
            self._logger.warning(
                "Sign-in failed for %s: %s", email, exc.code,
                extra={"event": "SIGN_IN_FAILED", "error_code": str(exc.code)},
            )
            return AuthResult(
                success=False,
                error_code=exc.code,
                error_message=exc.message,
            )

        self._session.set_identity(identity)
        log_audit_event(
            logger=self._logger,
            action="SIGN_IN",
            entity_type="Identity",
            entity_id=identity.id,
            user_id=identity.id,
            details={"email": identity.email},
            conn=self._audit_conn,
        )
        return AuthResult(success=True, identity_id=identity.id, email=identity.email)

    # ==================================================================
    # Sign-out
    # ==================================================================

    def sign_out(self) -> None:
        """End the session.  Dependent components are told through the gateway."""
        identity = self._session.current_identity
        self._session.sign_out()
        if identity is not None:
            log_audit_event(
                logger=self._logger,
                action="SIGN_OUT",
                entity_type="Identity",
                entity_id=identity.id,
                user_id=identity.id,
                conn=self._audit_conn,
            )
