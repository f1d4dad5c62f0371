from __future__ import annotations

import pytest

from staffdesk.exceptions import DocumentStoreError, IdentityProviderError
from staffdesk.models.auth_models import AuthErrorCode
from staffdesk.models.enums import RoleType
from staffdesk.models.user import Identity, ProvisioningRequest, UserRecord
from staffdesk.repositories.reconciliation_repository import ReconciliationRepository
from staffdesk.services.account_provisioning import AccountProvisioningService

from conftest import SUPERADMIN_EMAIL


def _request(**overrides) -> ProvisioningRequest:
    data = dict(
        name="Ana Perez",
        phone_number="555-0100",
        email="Ana@Example.com ",
        password="secret1",
        job_role="Guard",
        assigned_site_location="Branch A",
        working_schedule="Mon-Fri 8-16",
    )
    data.update(overrides)
    return ProvisioningRequest(**data)


@pytest.fixture
def reconciliation_repo(db, logger):
    return ReconciliationRepository(db=db, logger=logger)


@pytest.fixture
def service(identity_repo, user_repo, reconciliation_repo, session, config, logger, db, clock):
    session.set_identity(Identity(id="sa-1", email=SUPERADMIN_EMAIL))
    return AccountProvisioningService(
        identity_repo=identity_repo,
        user_repo=user_repo,
        reconciliation_repo=reconciliation_repo,
        session=session,
        config=config,
        logger=logger,
        audit_conn=db.sqlite,
        clock=clock,
    )


def test_provision_employee_creates_identity_and_record(service, identity_repo, user_repo, session):
    result = service.provision(_request())

    assert result.success is True
    assert result.role_type == RoleType.EMPLOYEE
    assert len(identity_repo.identities) == 1
    assert len(user_repo.rows) == 1

    record = user_repo.rows[result.record_id]
    assert record.identity_id == result.identity_id
    assert record.email == "ana@example.com"
    assert record.approved is True
    assert record.created_by == "superadmin"
    assert record.created_at is not None

    # new identity signed out; caller untouched
    assert identity_repo.signed_in == set()
    assert session.current_identity.id == "sa-1"


def test_provision_admin_keeps_requested_approval(service, user_repo):
    result = service.provision(_request(role_type=RoleType.ADMIN, approved=False))

    assert result.success is True
    assert user_repo.rows[result.record_id].approved is False
    assert user_repo.rows[result.record_id].role_type == RoleType.ADMIN


@pytest.mark.parametrize(
    "overrides, field",
    [
        ({"password": "12345"}, "password"),
        ({"email": "a@b"}, "email"),
        ({"name": ""}, "name"),
        ({"name": "   "}, "name"),
        ({"working_schedule": ""}, "working_schedule"),
        ({"role_type": RoleType.SUPERADMIN}, "role_type"),
    ],
)
def test_invalid_request_makes_no_remote_call(service, identity_repo, user_repo, overrides, field):
    result = service.provision(_request(**overrides))

    assert result.success is False
    assert result.error_code == AuthErrorCode.VALIDATION_ERROR
    assert result.invalid_field == field
    assert identity_repo.identities == {}
    assert user_repo.rows == {}


def test_empty_form_reports_first_missing_field(service):
    result = service.provision(ProvisioningRequest())

    assert result.invalid_field == "name"
    assert result.error_message == "Please enter employee name"


def test_password_message_names_minimum_length(service):
    result = service.provision(_request(password="12345"))

    assert result.error_message == "Password must be at least 6 characters long"


def test_duplicate_email_is_classified(service, identity_repo, user_repo):
    assert service.provision(_request()).success is True

    result = service.provision(_request(name="Someone Else"))

    assert result.success is False
    assert result.error_code == AuthErrorCode.EMAIL_ALREADY_IN_USE
    assert result.error_message == "This email address is already registered."
    assert len(identity_repo.identities) == 1
    assert len(user_repo.rows) == 1


def test_network_failure_on_identity_creation(service, identity_repo, user_repo):
    identity_repo.create_error = IdentityProviderError(
        AuthErrorCode.NETWORK_ERROR, "Cannot reach the server. Check your internet connection.",
    )

    result = service.provision(_request())

    assert result.error_code == AuthErrorCode.NETWORK_ERROR
    assert user_repo.rows == {}


def test_profile_write_failure_deletes_orphaned_identity(service, identity_repo, user_repo, db):
    user_repo.insert_error = DocumentStoreError("insert (users) failed: boom")

    result = service.provision(_request())

    assert result.success is False
    assert result.error_code == AuthErrorCode.PROFILE_WRITE_FAILED
    assert result.error_message == "Failed to add employee. Please try again."
    assert result.compensated is True
    assert result.reconciliation_queued is False
    assert identity_repo.identities == {}
    assert identity_repo.deleted == [result.identity_id]
    assert db.get_pending_reconciliation_count() == 0


def test_orphan_is_queued_when_delete_fails(service, identity_repo, user_repo, reconciliation_repo):
    user_repo.insert_error = DocumentStoreError("insert (users) failed: boom")
    identity_repo.delete_error = IdentityProviderError(
        AuthErrorCode.NETWORK_ERROR, "The identity provider is not configured or unreachable.",
    )

    result = service.provision(_request())

    assert result.compensated is False
    assert result.reconciliation_queued is True
    pending = reconciliation_repo.list_pending()
    assert [p.identity_id for p in pending] == [result.identity_id]
    assert pending[0].email == "ana@example.com"
    assert "delete failed" in pending[0].reason


def test_caller_must_be_signed_in(service, session, identity_repo):
    session.sign_out()

    result = service.provision(_request())

    assert result.error_code == AuthErrorCode.NOT_AUTHORIZED
    assert identity_repo.identities == {}


def test_non_superadmin_is_refused(service, session, user_repo, identity_repo):
    admin = user_repo.add(UserRecord(
        identity_id="admin-1",
        name="Site Admin",
        email="admin@example.com",
        role_type=RoleType.ADMIN,
        approved=True,
    ))
    session.set_identity(Identity(id=admin.identity_id, email=admin.email))

    result = service.provision(_request())

    assert result.error_code == AuthErrorCode.NOT_AUTHORIZED
    assert identity_repo.identities == {}


def test_superadmin_by_profile_role(service, session, user_repo):
    user_repo.add(UserRecord(
        identity_id="sa-2",
        name="Other Boss",
        email="other@example.com",
        role_type=RoleType.SUPERADMIN,
    ))
    session.set_identity(Identity(id="sa-2", email="other@example.com"))

    assert service.provision(_request()).success is True


def test_successful_provision_is_audited(service, db):
    service.provision(_request())

    row = db.sqlite.execute(
        "SELECT action, user_id FROM audit_log WHERE action = 'PROVISION'",
    ).fetchone()
    assert row["user_id"] == "sa-1"
