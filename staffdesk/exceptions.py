"""
Exception Hierarchy.

Repositories raise these typed errors; services catch them and convert
them into result models so callers never inspect raw backend exceptions.
"""

from __future__ import annotations

from typing import Optional

from staffdesk.models.auth_models import AuthErrorCode


class StaffDeskError(Exception):
    """Base exception for every error raised by the service layer."""

    def __init__(self, message: str, original_error: Optional[Exception] = None) -> None:
        self.message: str = message
        self.original_error: Optional[Exception] = original_error
        super().__init__(self.message)


class NotAuthenticatedError(StaffDeskError):
    """Raised when an operation needs a signed-in identity and there is none."""


class ProfileNotFoundError(StaffDeskError):
    """Raised when no ``users`` row matches the requested identity or id."""


class DocumentStoreError(StaffDeskError):
    """Raised when a ``users`` table query or write fails."""


class IndexMissingError(DocumentStoreError):
    """The store rejected a compound filter+sort for lack of a supporting index."""


class IdentityProviderError(StaffDeskError):
    """Raised when Supabase Auth rejects an identity operation."""

    def __init__(
        self,
        code: AuthErrorCode,
        message: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.code: AuthErrorCode = code
        super().__init__(message, original_error=original_error)


class InvalidInputError(StaffDeskError):
    """Raised when caller-supplied data fails validation.  No remote call was made."""

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        self.field: Optional[str] = field
        super().__init__(message)


class EditStateError(StaffDeskError):
    """Raised when a profile editor action is not allowed in its current state."""


class PermissionDeniedError(StaffDeskError):
    """Raised when the signed-in identity may not act on the target record."""
