from __future__ import annotations

from datetime import datetime, timezone

import pytest

from staffdesk.exceptions import DocumentStoreError, EditStateError
from staffdesk.models.enums import EditState
from staffdesk.models.user import Identity, UserRecord
from staffdesk.services.profile_editor import ProfileEditor
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
        created_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    ))


@pytest.fixture
def editor(user_repo, session, logger, clock, stored):
    session.set_identity(Identity(id="u-1", email="ana@example.com"))
    service = ProfileSyncService(repo=user_repo, session=session, logger=logger, clock=clock)
    editor = ProfileEditor(profile_service=service, session=session, logger=logger)
    assert editor.load().success is True
    return editor


def test_load_enters_viewing_with_record(editor, stored):
    assert editor.state == EditState.VIEWING
    assert editor.record.id == stored.id
    assert editor.form["name"] == "Ana Perez"


def test_load_without_profile(user_repo, session, logger):
    session.set_identity(Identity(id="ghost"))
    service = ProfileSyncService(repo=user_repo, session=session, logger=logger)
    editor = ProfileEditor(profile_service=service, session=session, logger=logger)

    result = editor.load()

    assert result.success is False
    assert result.status_code == 404
    assert result.error == "User profile not found"


def test_edit_and_save(editor, user_repo, stored):
    editor.begin_edit()
    editor.update_field("name", "Ana P.")

    result = editor.save()

    assert result.success is True
    assert editor.state == EditState.VIEWING
    assert editor.record.name == "Ana P."
    assert user_repo.rows[stored.id].name == "Ana P."
    assert editor.record.updated_at is not None


def test_cancel_discards_changes(editor):
    editor.begin_edit()
    editor.update_field("job_role", "Manager")
    editor.cancel()

    assert editor.state == EditState.VIEWING
    assert editor.form["job_role"] == "Guard"


def test_invalid_save_stays_editing(editor, user_repo, stored):
    editor.begin_edit()
    editor.update_field("phone_number", "  ")

    result = editor.save()

    assert result.status_code == 400
    assert result.error == "Please fill in all required fields"
    assert editor.state == EditState.EDITING
    assert user_repo.rows[stored.id].phone_number == "555-0100"


def test_failed_write_keeps_record_and_form(editor, user_repo):
    editor.begin_edit()
    editor.update_field("name", "Changed")
    user_repo.update_error = DocumentStoreError("update (users) failed: offline")

    result = editor.save()

    assert result.success is False
    assert result.error == "Failed to update profile. Please try again."
    assert editor.state == EditState.EDITING
    assert editor.record.name == "Ana Perez"
    assert editor.form["name"] == "Changed"


def test_actions_rejected_in_wrong_state(editor):
    with pytest.raises(EditStateError):
        editor.update_field("name", "x")
    with pytest.raises(EditStateError):
        editor.save()
    editor.begin_edit()
    with pytest.raises(EditStateError):
        editor.begin_edit()


def test_unknown_field_rejected(editor):
    editor.begin_edit()
    with pytest.raises(ValueError):
        editor.update_field("role_type", "superadmin")


def test_sign_out_closes_editor(editor, session):
    editor.begin_edit()

    session.sign_out()

    assert editor.state == EditState.CLOSED
    assert editor.record is None
    with pytest.raises(EditStateError):
        editor.begin_edit()


def test_save_completing_after_close_is_discarded(editor, session, user_repo):
    editor.begin_edit()
    editor.update_field("name", "Late")
    user_repo.update_hook = session.sign_out

    result = editor.save()

    assert result.success is False
    assert editor.state == EditState.CLOSED
    assert editor.record is None
