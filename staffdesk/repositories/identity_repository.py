"""
Identity Repository.

Wraps Supabase Auth.  Sign-in and sign-out of the signed-in user run on
the shared client; identities created during provisioning live on
isolated clients so the shared session is never replaced.  Deleting an
identity uses the service-role admin client.

All failures surface as ``IdentityProviderError`` carrying an
``AuthErrorCode``.
"""

from __future__ import annotations

import threading
from typing import Optional

from supabase import Client as SupabaseClient

from staffdesk.database import DatabaseManager
from staffdesk.exceptions import IdentityProviderError
from staffdesk.logger import StructuredLogger
from staffdesk.models.auth_models import SUPABASE_ERROR_MAP, AuthErrorCode
from staffdesk.models.user import Identity


class IdentityRepository:
    """Access to the identity provider."""

    def __init__(self, db: DatabaseManager, logger: StructuredLogger) -> None:
        self._db = db
        self._logger = logger
        self._lock: threading.Lock = threading.Lock()
        self._provisioning_clients: dict[str, SupabaseClient] = {}

    # ------------------------------------------------------------------
    # Provisioning
    # ------------------------------------------------------------------

    def create_identity(self, email: str, password: str) -> Identity:
        """Create an identity on a fresh isolated client.

        The client stays signed in as the new identity until
        :meth:`sign_out_identity` is called for it.
        """
        try:
            client = self._db.create_isolated_client()
            response = client.auth.sign_up({"email": email, "password": password})
        except Exception as exc:
            raise self._classify(exc, "create_identity") from exc

        user = response.user
        if user is None:
            raise IdentityProviderError(
                AuthErrorCode.UNKNOWN_ERROR,
                "The identity provider returned no user.",
            )
        # With email confirmation on, signing up a registered address
        # returns an obfuscated user that has no identities.
        if getattr(user, "identities", None) == []:
            self._logger.warning("Sign-up for %s matched an existing account.", email)
            raise IdentityProviderError(
                AuthErrorCode.EMAIL_ALREADY_IN_USE,
                "This email address is already registered.",
            )

        identity = Identity(id=user.id, email=user.email or email)
        with self._lock:
            self._provisioning_clients[identity.id] = client
        self._logger.info("Identity created: %s", identity.id)
        return identity

    def sign_out_identity(self, identity_id: str) -> None:
        """Sign a provisioned identity out of its isolated client."""
        with self._lock:
            client = self._provisioning_clients.pop(identity_id, None)
        if client is None:
            return
        try:
            client.auth.sign_out()
        except Exception as exc:
            raise self._classify(exc, "sign_out_identity") from exc

    def delete_identity(self, identity_id: str) -> None:
        """Delete an identity through the admin API.

        An identity that no longer exists counts as deleted.  Raises
        ``IdentityProviderError`` (``NETWORK_ERROR``) when no service-role
        client is configured.
        """
        with self._lock:
            self._provisioning_clients.pop(identity_id, None)
        try:
            self._db.admin.auth.admin.delete_user(identity_id)
        except Exception as exc:
            if self._is_user_not_found(exc):
                self._logger.info("Identity %s was already deleted.", identity_id)
                return
            raise self._classify(exc, "delete_identity") from exc
        self._logger.info("Identity deleted: %s", identity_id)

    # ------------------------------------------------------------------
    # Session on the shared client
    # ------------------------------------------------------------------

    def sign_in(self, email: str, password: str) -> Identity:
        """Authenticate on the shared client and return the identity."""
        try:
            response = self._db.supabase.auth.sign_in_with_password(
                {"email": email, "password": password},
            )
        except Exception as exc:
            raise self._classify(exc, "sign_in") from exc

        user = response.user
        if user is None:
            raise IdentityProviderError(
                AuthErrorCode.INVALID_CREDENTIALS, "Incorrect email or password.",
            )
        return Identity(id=user.id, email=user.email or email)

    # ------------------------------------------------------------------
    # Error classification
    # ------------------------------------------------------------------

    @staticmethod
    def _is_user_not_found(exc: Exception) -> bool:
        if getattr(exc, "code", None) == "user_not_found":
            return True
        return getattr(exc, "status", None) == 404 and "not found" in str(exc).lower()

    def _classify(self, exc: Exception, operation: str) -> IdentityProviderError:
        """Map a Supabase Auth or network exception to an ``IdentityProviderError``."""
        if isinstance(exc, RuntimeError):
            return IdentityProviderError(
                AuthErrorCode.NETWORK_ERROR,
                "The identity provider is not configured or unreachable.",
                original_error=exc,
            )
        if isinstance(exc, (ConnectionError, TimeoutError)):
            self._logger.warning("Network error during %s: %s", operation, exc)
            return IdentityProviderError(
                AuthErrorCode.NETWORK_ERROR,
                "Cannot reach the server. Check your internet connection.",
                original_error=exc,
            )

        code: Optional[str] = getattr(exc, "code", None)
        if code and code in SUPABASE_ERROR_MAP:
            error_code, human_message = SUPABASE_ERROR_MAP[code]
            self._logger.warning("Auth error during %s (%s): %s", operation, code, exc)
            return IdentityProviderError(error_code, human_message, original_error=exc)

        error_str = str(exc).lower()
        for code_key, (error_code, human_message) in SUPABASE_ERROR_MAP.items():
            if code_key in error_str:
                self._logger.warning(
                    "Auth error during %s (%s): %s", operation, code_key, exc,
                )
                return IdentityProviderError(error_code, human_message, original_error=exc)

        self._logger.warning("Unknown auth error during %s: %s", operation, exc)
        return IdentityProviderError(
            AuthErrorCode.UNKNOWN_ERROR,
            "An unexpected error occurred. Please try again later.",
            original_error=exc,
        )
