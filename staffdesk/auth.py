"""
Session Gateway.

Provides an injectable ``SessionGateway`` that holds the signed-in
identity for the lifetime of one client session and tells interested
components when it changes.

Usage::

    from staffdesk.auth import SessionGateway

    session = SessionGateway(logger=get_logger("session"))
    session.attach(db.supabase.auth)          # follow provider events
    unsubscribe = session.add_listener(on_identity_changed)
    identity = session.require_identity()
    ...
    session.sign_out()                        # listeners receive None
    session.close()
"""

from __future__ import annotations

import threading
from typing import Any, Callable, Optional

from staffdesk.exceptions import NotAuthenticatedError
from staffdesk.logger import StructuredLogger
from staffdesk.models.user import Identity

IdentityListener = Callable[[Optional[Identity]], None]

_SIGNED_OUT_EVENTS: frozenset[str] = frozenset({"SIGNED_OUT", "USER_DELETED"})


class SessionGateway:
    """Injectable holder for the current identity.

    Each instance maintains its own state, so there are no module-level
    globals.  Pass a single ``SessionGateway`` through the composition
    root so every component shares it.

    The gateway is initialised empty, follows the identity provider once
    :meth:`attach` is called, and is torn down with :meth:`close`.
    """

    def __init__(self, logger: StructuredLogger) -> None:
        self._logger: StructuredLogger = logger
        self._lock: threading.RLock = threading.RLock()
        self._identity: Optional[Identity] = None
        self._listeners: list[IdentityListener] = []
        self._auth_client: Any = None
        self._subscription: Any = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def attach(self, auth_client: Any) -> None:
        """Follow *auth_client*'s session changes.

        *auth_client* is a Supabase ``client.auth`` object.  The current
        session, if any, becomes the starting identity.
        """
        with self._lock:
            self._auth_client = auth_client
            self._subscription = auth_client.on_auth_state_change(self.handle_auth_event)
        session = auth_client.get_session()
        self.handle_auth_event("INITIAL_SESSION", session)

    def close(self) -> None:
        """Stop following the provider and drop the identity."""
        with self._lock:
            subscription = self._subscription
            self._subscription = None
            self._auth_client = None
        if subscription is not None:
            try:
                subscription.unsubscribe()
            except Exception as exc:
                self._logger.warning("Auth subscription teardown failed: %s", exc)
        self._set_identity(None)

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def current_identity(self) -> Optional[Identity]:
        """The signed-in identity, or ``None``."""
        with self._lock:
            return self._identity

    @property
    def is_authenticated(self) -> bool:
        """``True`` when an identity is signed in."""
        with self._lock:
            return self._identity is not None

    def require_identity(self) -> Identity:
        """Return the signed-in identity.

        Raises:
            NotAuthenticatedError: If nobody is signed in.
        """
        with self._lock:
            if self._identity is None:
                raise NotAuthenticatedError("No user is signed in. Sign-in required.")
            return self._identity

    def set_identity(self, identity: Identity) -> None:
        """Record *identity* as signed in."""
        self._set_identity(identity)

    def add_listener(self, listener: IdentityListener) -> Callable[[], None]:
        """Call *listener* on every identity transition.

        Returns a zero-argument function that removes the listener.
        """
        with self._lock:
            self._listeners.append(listener)

        def _remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _remove

    # ------------------------------------------------------------------
    # Provider events
    # ------------------------------------------------------------------

    def handle_auth_event(self, event: str, session: Any) -> None:
        """Apply one ``on_auth_state_change`` notification."""
        user = getattr(session, "user", None) if session is not None else None
        if str(event) in _SIGNED_OUT_EVENTS or user is None:
            self._set_identity(None)
            return
        self._set_identity(Identity(id=user.id, email=getattr(user, "email", None)))

    def sign_out(self) -> None:
        """Revoke the server session and clear local state.

        The server call is best effort; local state is cleared even when
        it fails, so listeners always see the transition to ``None``.
        """
        with self._lock:
            auth_client = self._auth_client
        if auth_client is not None:
            try:
                auth_client.sign_out()
            except Exception as exc:
                self._logger.warning("Server-side sign_out failed: %s", exc)
        self._set_identity(None)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _set_identity(self, identity: Optional[Identity]) -> None:
        with self._lock:
            previous = self._identity
            changed = (previous is None) != (identity is None) or (
                previous is not None and identity is not None and previous.id != identity.id
            )
            self._identity = identity
            listeners = list(self._listeners) if changed else []

        if not changed:
            return

        self._logger.info(
            "Session identity changed: %s -> %s",
            previous.id if previous else None,
            identity.id if identity else None,
        )
        for listener in listeners:
            try:
                listener(identity)
            except Exception:
                self._logger.exception("Session listener raised; continuing.")
