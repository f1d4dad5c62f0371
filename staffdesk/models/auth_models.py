"""
Authentication & Provisioning Result Models.

Pydantic models and enumerations for the contracts between the auth /
provisioning services and whatever UI sits on top of them.  Every
operation returns a structured, inspectable result rather than raw
strings or exception side-channels.
"""

from __future__ import annotations

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel

from staffdesk.models.enums import RoleType


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

class AuthErrorCode(StrEnum):
    """Categories of identity-provider and provisioning failures."""

    EMAIL_ALREADY_IN_USE = "email-already-in-use"
    WEAK_PASSWORD = "weak-password"
    INVALID_EMAIL = "invalid-email"
    INVALID_CREDENTIALS = "invalid-credentials"
    NOT_AUTHORIZED = "not-authorized"
    NETWORK_ERROR = "network-error"
    VALIDATION_ERROR = "validation-error"
    PROFILE_WRITE_FAILED = "profile-write-failed"
    UNKNOWN_ERROR = "unknown-error"


# ---------------------------------------------------------------------------
# Supabase Auth error-code mapping
# ---------------------------------------------------------------------------

# Keys are matched against ``AuthApiError.code`` first and then, lower
# cased, against the exception text.  Order matters for the text match.
SUPABASE_ERROR_MAP: dict[str, tuple[AuthErrorCode, str]] = {
    "user_already_exists": (
        AuthErrorCode.EMAIL_ALREADY_IN_USE,
        "This email address is already registered.",
    ),
    "email_exists": (
        AuthErrorCode.EMAIL_ALREADY_IN_USE,
        "This email address is already registered.",
    ),
    "already registered": (
        AuthErrorCode.EMAIL_ALREADY_IN_USE,
        "This email address is already registered.",
    ),
    "weak_password": (
        AuthErrorCode.WEAK_PASSWORD,
        "Password is too weak. Please choose a stronger password.",
    ),
    "email_address_invalid": (
        AuthErrorCode.INVALID_EMAIL,
        "Please enter a valid email address.",
    ),
    "invalid format": (
        AuthErrorCode.INVALID_EMAIL,
        "Please enter a valid email address.",
    ),
    "invalid_credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
    "invalid login credentials": (
        AuthErrorCode.INVALID_CREDENTIALS,
        "Incorrect email or password.",
    ),
}


# ---------------------------------------------------------------------------
# Validation result
# ---------------------------------------------------------------------------

class ValidationResult(BaseModel):
    """Result of a single client-side field validation check."""

    is_valid: bool
    field: Optional[str] = None
    error_message: Optional[str] = None


# ---------------------------------------------------------------------------
# Sign-in response
# ---------------------------------------------------------------------------

class AuthResult(BaseModel):
    """Response of a sign-in attempt.

    Attributes
    ----------
    success:
        ``True`` when the identity provider accepted the credentials.
    error_code:
        Structured error category (``None`` on success).
    error_message:
        Human-readable error description (``None`` on success).
    identity_id:
        The Supabase UUID of the signed-in identity.
    email:
        The normalised email address.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    identity_id: Optional[str] = None
    email: Optional[str] = None


# ---------------------------------------------------------------------------
# Provisioning response
# ---------------------------------------------------------------------------

class ProvisioningResult(BaseModel):
    """Response of an account-provisioning attempt.

    Attributes
    ----------
    success:
        ``True`` when the identity and its profile row both exist.
    error_code:
        Failure category (``None`` on success).
    error_message:
        Text to show the operator.
    invalid_field:
        Name of the request field that failed validation, if any.
    identity_id:
        The new identity's id, also set when the profile write failed
        after the identity was created.
    record_id:
        Key of the inserted ``users`` row.
    role_type:
        The provisioned account type.
    compensated:
        ``True`` when an orphaned identity was deleted again.
    reconciliation_queued:
        ``True`` when an orphaned identity was queued for later cleanup.
    """

    success: bool
    error_code: Optional[AuthErrorCode] = None
    error_message: Optional[str] = None
    invalid_field: Optional[str] = None
    identity_id: Optional[str] = None
    record_id: Optional[str] = None
    role_type: Optional[RoleType] = None
    compensated: bool = False
    reconciliation_queued: bool = False
