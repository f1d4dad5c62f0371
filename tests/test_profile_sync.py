from __future__ import annotations

from datetime import datetime, timezone

import pytest

from staffdesk.exceptions import InvalidInputError, NotAuthenticatedError, PermissionDeniedError, ProfileNotFoundError
from staffdesk.models.user import Identity, ProfilePatch, UserRecord
from staffdesk.services.profile_sync import ProfileSyncService


@pytest.fixture
def stored(user_repo):
    return user_repo.add(UserRecord(
        identity_id="u-1",
        name="Ana Perez",
        phone_number="555-0100",
        email="ana@example.com",
        job_role="Guard",
        assigned_site_location="Branch A",
        working_schedule="Mon-Fri",
        approved=True,
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        updated_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    ))


@pytest.fixture
def service(user_repo, session, logger, clock):
    return ProfileSyncService(repo=user_repo, session=session, logger=logger, clock=clock)


@pytest.fixture
def owner(session, stored):
    session.set_identity(Identity(id=stored.identity_id, email=stored.email))
    return stored


def test_fetch_returns_record(service, stored):
    assert service.fetch("u-1").id == stored.id


def test_fetch_unknown_identity(service):
    with pytest.raises(ProfileNotFoundError):
        service.fetch("nobody")


def test_fetch_current_requires_session(service, stored, session):
    with pytest.raises(NotAuthenticatedError):
        service.fetch_current()

    session.set_identity(Identity(id="u-1"))
    assert service.fetch_current().name == "Ana Perez"


def test_save_name_only_leaves_other_fields(service, stored, user_repo, owner):
    updated = service.save(stored.id, ProfilePatch(name="B", phone_number="555-0100"))

    assert updated.name == "B"
    assert updated.job_role == "Guard"
    assert updated.assigned_site_location == "Branch A"
    assert updated.working_schedule == "Mon-Fri"
    assert updated.updated_at > stored.updated_at
    assert user_repo.rows[stored.id].name == "B"


def test_save_trims_and_allows_clearing_optional_fields(service, stored, owner):
    updated = service.save(
        stored.id,
        ProfilePatch(name="  Ana  ", phone_number=" 555 ", job_role="", working_schedule="  Nights "),
    )

    assert updated.name == "Ana"
    assert updated.phone_number == "555"
    assert updated.job_role == ""
    assert updated.working_schedule == "Nights"


@pytest.mark.parametrize("patch", [
    ProfilePatch(name="", phone_number="555"),
    ProfilePatch(name="Ana", phone_number="   "),
])
def test_save_rejects_missing_required_fields(service, stored, user_repo, owner, patch):
    with pytest.raises(InvalidInputError):
        service.save(stored.id, patch)
    assert user_repo.rows[stored.id] == stored


def test_save_unknown_record(service, owner):
    with pytest.raises(ProfileNotFoundError):
        service.save("missing", ProfilePatch(name="A", phone_number="1"))


def test_interleaved_saves_last_write_wins(user_repo, session, logger, clock, stored, owner):
    first = ProfileSyncService(repo=user_repo, session=session, logger=logger, clock=clock)
    second = ProfileSyncService(repo=user_repo, session=session, logger=logger, clock=clock)

    first.save(stored.id, ProfilePatch(name="From A", phone_number="111", job_role="Lead"))
    second.save(stored.id, ProfilePatch(name="From B", phone_number="222"))

    final = user_repo.rows[stored.id]
    assert final.name == "From B"
    assert final.phone_number == "222"
    # not overlapping, so the earlier write survives
    assert final.job_role == "Lead"


def test_save_requires_signed_in_user(service, stored, user_repo):
    with pytest.raises(NotAuthenticatedError):
        service.save(stored.id, ProfilePatch(name="B", phone_number="555"))
    assert user_repo.rows[stored.id] == stored


def test_save_refuses_another_users_record(service, stored, user_repo, session):
    session.set_identity(Identity(id="u-2", email="other@example.com"))

    with pytest.raises(PermissionDeniedError):
        service.save(stored.id, ProfilePatch(name="Hijacked", phone_number="000"))
    assert user_repo.rows[stored.id].name == "Ana Perez"
