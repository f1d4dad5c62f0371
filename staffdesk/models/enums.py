"""
Shared Enumerations for StaffDesk Models.

StrEnum values compare equal to their string equivalents, so a row
fetched from the ``users`` table (``role_type = 'employee'``) compares
directly against ``RoleType.EMPLOYEE``.
"""

from __future__ import annotations
from enum import StrEnum


class RoleType(StrEnum):
    """Account types.

    ``SUPERADMIN`` accounts are never provisioned through the service
    layer; they exist in the backend from the start.
    """

    EMPLOYEE = "employee"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class EditState(StrEnum):
    """States of a profile edit session.

    ``CLOSED`` is entered when the session's identity signs out; the
    editor holds no record from then on.
    """

    VIEWING = "VIEWING"
    EDITING = "EDITING"
    SAVING = "SAVING"
    CLOSED = "CLOSED"


class ReconciliationStatus(StrEnum):
    """Lifecycle of an ``orphaned_identities`` row."""

    PENDING = "pending"
    RESOLVED = "resolved"
    FAILED = "failed"
