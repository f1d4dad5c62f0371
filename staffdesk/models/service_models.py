"""
Service Layer Data Transfer Objects.

Pydantic models for validated output at service boundaries.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, Field

from staffdesk.models.enums import ReconciliationStatus
from staffdesk.models.user import UserRecord

__all__ = [
    "OrphanedIdentity",
    "ReconciliationReport",
    "RosterResult",
    "ServiceResult",
]


class ServiceResult(BaseModel):
    """Generic service outcome.

    ``status_code`` follows HTTP semantics (404 not found, 400 invalid
    input, 503 backend unreachable) so callers can branch on the category
    without parsing ``error``.
    """

    success: bool
    data: Optional[UserRecord] = None
    error: Optional[str] = None
    status_code: int = 200


class RosterResult(BaseModel):
    """Employees of one site, most recently created first.

    ``success`` is ``False`` whenever ``error`` is set; ``status_code``
    uses the same categories as ``ServiceResult`` (401 signed out, 404 no
    admin profile, 422 admin without a site, 503 store failure).
    """

    success: bool
    site_location: Optional[str] = None
    employees: list[UserRecord] = Field(default_factory=list)
    used_fallback: bool = False
    error: Optional[str] = None
    status_code: int = 200

    @property
    def total_employees(self) -> int:
        return len(self.employees)


class OrphanedIdentity(BaseModel):
    """One row of the local ``orphaned_identities`` queue."""

    id: int
    identity_id: str
    email: str
    reason: str = ""
    status: ReconciliationStatus = ReconciliationStatus.PENDING
    attempts: int = 0
    error_message: Optional[str] = None


class ReconciliationReport(BaseModel):
    """Counts produced by one reconciliation sweep."""

    examined: int = 0
    resolved: int = 0
    failed: int = 0
    still_pending: int = 0
