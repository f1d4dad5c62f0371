from __future__ import annotations

import io
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Optional
from uuid import uuid4

import pytest

from staffdesk.auth import SessionGateway
from staffdesk.config import AppConfig
from staffdesk.database import DatabaseManager
from staffdesk.exceptions import DocumentStoreError, IdentityProviderError, IndexMissingError, ProfileNotFoundError
from staffdesk.logger import StructuredLogger
from staffdesk.models.auth_models import AuthErrorCode
from staffdesk.models.enums import RoleType
from staffdesk.models.user import Identity, UserRecord
from staffdesk.schema import initialize_schema

SUPERADMIN_EMAIL = "boss@example.com"


class FakeIdentityRepo:
    """In-memory identity provider."""

    def __init__(self):
        self.identities: dict[str, Identity] = {}
        self.passwords: dict[str, str] = {}
        self.signed_in: set[str] = set()
        self.deleted: list[str] = []
        self.create_error: Optional[IdentityProviderError] = None
        self.delete_error: Optional[IdentityProviderError] = None

    def create_identity(self, email, password):
        if self.create_error is not None:
            raise self.create_error
        if any(i.email == email for i in self.identities.values()):
            raise IdentityProviderError(
                AuthErrorCode.EMAIL_ALREADY_IN_USE,
                "This email address is already registered.",
            )
        identity = Identity(id=str(uuid4()), email=email)
        self.identities[identity.id] = identity
        self.passwords[identity.id] = password
        self.signed_in.add(identity.id)
        return identity

    def sign_out_identity(self, identity_id):
        self.signed_in.discard(identity_id)

    def delete_identity(self, identity_id):
        if self.delete_error is not None:
            raise self.delete_error
        self.identities.pop(identity_id, None)
        self.signed_in.discard(identity_id)
        self.deleted.append(identity_id)

    def sign_in(self, email, password):
        for identity_id, identity in self.identities.items():
            if identity.email == email and self.passwords[identity_id] == password:
                return identity
        raise IdentityProviderError(AuthErrorCode.INVALID_CREDENTIALS, "Incorrect email or password.")


class FakeUserRepo:
    """In-memory ``users`` table."""

    def __init__(self):
        self.rows: dict[str, UserRecord] = {}
        self.insert_error: Optional[DocumentStoreError] = None
        self.update_error: Optional[DocumentStoreError] = None
        self.read_error: Optional[DocumentStoreError] = None
        self.index_missing = False
        self.roster_calls = 0
        self.fallback_calls = 0
        self.update_hook = None

    def add(self, record: UserRecord) -> UserRecord:
        stored = record.model_copy(update={"id": record.id or str(uuid4())})
        self.rows[stored.id] = stored
        return stored

    def get_by_identity_id(self, identity_id):
        if self.read_error is not None:
            raise self.read_error
        for row in self.rows.values():
            if row.identity_id == identity_id:
                return row
        return None

    def get_by_id(self, record_id):
        return self.rows.get(record_id)

    def insert(self, record):
        if self.insert_error is not None:
            raise self.insert_error
        return self.add(record)

    def update(self, record_id, fields):
        if self.update_hook is not None:
            self.update_hook()
        if self.update_error is not None:
            raise self.update_error
        if record_id not in self.rows:
            raise ProfileNotFoundError(f"No user record with id {record_id}.")
        merged = UserRecord.model_validate({**self.rows[record_id].model_dump(), **fields})
        self.rows[record_id] = merged
        return merged

    def _approved_employees(self):
        return [
            r for r in self.rows.values()
            if r.role_type == RoleType.EMPLOYEE and r.approved
        ]

    def list_roster(self, site_location):
        self.roster_calls += 1
        if self.read_error is not None:
            raise self.read_error
        if self.index_missing:
            raise IndexMissingError("list_roster (users) requires an index the store does not have.")
        matching = [r for r in self._approved_employees() if r.assigned_site_location == site_location]
        return sorted(matching, key=lambda r: r.created_at, reverse=True)

    def list_approved_employees(self):
        self.fallback_calls += 1
        # insertion order, deliberately not sorted
        return self._approved_employees()


class FakeAuthError(Exception):
    """Mimics ``AuthApiError``: a message plus an optional error code."""

    def __init__(self, message, code=None):
        super().__init__(message)
        self.code = code


class FakeAuth:
    def __init__(self, sign_up_user=None, delete_error=None):
        self.sign_up_user = sign_up_user
        self.sign_up_calls = []
        self.sign_out_calls = 0
        self.deleted = []
        self._delete_error = delete_error
        self.admin = self

    def sign_up(self, credentials):
        self.sign_up_calls.append(credentials)
        return SimpleNamespace(user=self.sign_up_user)

    def sign_out(self):
        self.sign_out_calls += 1

    def delete_user(self, identity_id):
        if self._delete_error is not None:
            raise self._delete_error
        self.deleted.append(identity_id)


class FakeAuthDb:
    """Shared, admin and isolated clients, each with its own auth."""

    def __init__(self, sign_up_user=None, delete_error=None):
        self.supabase = SimpleNamespace(auth=FakeAuth())
        self.admin = SimpleNamespace(auth=FakeAuth(delete_error=delete_error))
        self.isolated = []
        self._sign_up_user = sign_up_user

    def create_isolated_client(self):
        client = SimpleNamespace(auth=FakeAuth(sign_up_user=self._sign_up_user))
        self.isolated.append(client)
        return client


class StepClock:
    """Deterministic clock advancing one minute per call."""

    def __init__(self, start=datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        current = self.now
        self.now = self.now + timedelta(minutes=1)
        return current


@pytest.fixture(scope="session")
def logger(tmp_path_factory):
    log_file = tmp_path_factory.mktemp("logs") / "staffdesk-test.log"
    return StructuredLogger(name="staffdesk.tests", stream=io.StringIO(), log_file=str(log_file))


@pytest.fixture
def config():
    return AppConfig(
        SUPABASE_URL="",
        SUPERADMIN_EMAILS=[SUPERADMIN_EMAIL],
        RECONCILIATION_MAX_ATTEMPTS=3,
    )


@pytest.fixture
def db(logger):
    manager = DatabaseManager(
        supabase_url="",
        supabase_key="",
        sqlite_path=":memory:",
        logger=logger,
    )
    initialize_schema(manager.sqlite, logger)
    yield manager
    manager.close()


@pytest.fixture
def session(logger):
    return SessionGateway(logger=logger)


@pytest.fixture
def identity_repo():
    return FakeIdentityRepo()


@pytest.fixture
def user_repo():
    return FakeUserRepo()


@pytest.fixture
def clock():
    return StepClock()
