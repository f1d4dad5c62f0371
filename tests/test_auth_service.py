from __future__ import annotations

import json

import pytest

from staffdesk.models.auth_models import AuthErrorCode
from staffdesk.models.user import Identity
from staffdesk.services.auth_service import AuthService
from staffdesk.utils.audit import log_audit_event


@pytest.fixture
def service(identity_repo, session, logger, db):
    return AuthService(identity_repo=identity_repo, session=session, logger=logger, audit_conn=db.sqlite)


@pytest.mark.parametrize("email, valid", [
    ("a@b.co", True),
    ("  a@b.co ", True),
    ("a@b", False),
    ("a b@c.de", False),
    ("", False),
])
def test_validate_email(email, valid):
    assert AuthService.validate_email(email).is_valid is valid


def test_validate_password_boundary():
    assert AuthService.validate_password("12345").is_valid is False
    assert AuthService.validate_password("123456").is_valid is True


def test_sign_in_sets_session(service, identity_repo, session, db):
    identity = identity_repo.create_identity("ana@example.com", "secret1")

    result = service.sign_in("ANA@example.com", "secret1")

    assert result.success is True
    assert session.current_identity == identity
    row = db.sqlite.execute("SELECT user_id FROM audit_log WHERE action = 'SIGN_IN'").fetchone()
    assert row["user_id"] == identity.id


def test_sign_in_wrong_password(service, identity_repo, session):
    identity_repo.create_identity("ana@example.com", "secret1")

    result = service.sign_in("ana@example.com", "nope")

    assert result.error_code == AuthErrorCode.INVALID_CREDENTIALS
    assert session.current_identity is None


def test_sign_in_requires_password(service):
    result = service.sign_in("ana@example.com", "")

    assert result.error_code == AuthErrorCode.VALIDATION_ERROR


def test_sign_out_clears_session_and_audits(service, session, db):
    session.set_identity(Identity(id="u-1"))

    service.sign_out()

    assert session.current_identity is None
    assert db.sqlite.execute("SELECT COUNT(*) FROM audit_log WHERE action = 'SIGN_OUT'").fetchone()[0] == 1


def test_audit_event_persisted_with_details(logger, db):
    event = log_audit_event(
        logger=logger,
        action="PROFILE_UPDATE",
        entity_type="UserRecord",
        entity_id="r-1",
        user_id="u-1",
        details={"fields": "name"},
        conn=db.sqlite,
    )

    row = db.sqlite.execute("SELECT * FROM audit_log").fetchone()
    assert row["timestamp"] == event.timestamp
    assert json.loads(row["details"]) == {"fields": "name"}


def test_audit_persistence_failure_is_not_raised(logger, db):
    db.sqlite.execute("DROP TABLE audit_log")

    event = log_audit_event(logger, "SIGN_OUT", "Identity", "u-1", "u-1", conn=db.sqlite)

    assert event.action == "SIGN_OUT"
