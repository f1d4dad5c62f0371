from __future__ import annotations

"""
Data Models Package.

Re-exports the Pydantic models for short imports:
    from staffdesk.models import UserRecord, ProfilePatch, RoleType
"""

from staffdesk.models.enums import EditState, ReconciliationStatus, RoleType
from staffdesk.models.user import Identity, ProfilePatch, ProvisioningRequest, UserRecord
from staffdesk.models.auth_models import AuthErrorCode, AuthResult, ProvisioningResult
from staffdesk.models.service_models import RosterResult, ServiceResult

__all__ = [
    "AuthErrorCode",
    "AuthResult",
    "EditState",
    "Identity",
    "ProfilePatch",
    "ProvisioningRequest",
    "ProvisioningResult",
    "ReconciliationStatus",
    "RoleType",
    "RosterResult",
    "ServiceResult",
    "UserRecord",
]
