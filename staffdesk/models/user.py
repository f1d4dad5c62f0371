"""
User Models.

``UserRecord`` mirrors one row of the Supabase ``users`` table.  The
``id`` column is the row's own key; ``identity_id`` is the Supabase Auth
user id the row belongs to.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from staffdesk.models.enums import RoleType

# Fields a user may change on their own record.
MUTABLE_PROFILE_FIELDS: tuple[str, ...] = (
    "name",
    "phone_number",
    "job_role",
    "assigned_site_location",
    "working_schedule",
)


class Identity(BaseModel):
    """A Supabase Auth identity as seen by the session layer."""

    id: str  # Supabase UUID
    email: Optional[str] = None

    model_config = {"from_attributes": True}


class UserRecord(BaseModel):
    """Represents a staff member's profile row.

    ``approved`` gates roster visibility.  For admin rows it doubles as
    "admin access approved".
    """

    id: Optional[str] = None
    identity_id: str
    name: str
    phone_number: str = ""
    email: str
    job_role: str = ""
    assigned_site_location: str = ""
    working_schedule: str = ""
    role_type: RoleType = RoleType.EMPLOYEE
    approved: bool = False
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = {"from_attributes": True, "extra": "ignore"}

    def to_row(self) -> dict[str, object]:
        """Serialise for an insert.  ``id`` is left to the store."""
        return self.model_dump(mode="json", exclude={"id"}, exclude_none=True)


class ProfilePatch(BaseModel):
    """An edit to a user's own record.

    ``None`` leaves a field unchanged.  An empty string clears an
    optional field.
    """

    name: str
    phone_number: str
    job_role: Optional[str] = None
    assigned_site_location: Optional[str] = None
    working_schedule: Optional[str] = None

    def to_update(self) -> dict[str, str]:
        """Return the trimmed, non-``None`` fields."""
        return {
            field: value.strip()
            for field, value in self.model_dump().items()
            if value is not None
        }


class ProvisioningRequest(BaseModel):
    """Form data for creating an employee or admin account.

    Fields are unvalidated strings on purpose: the provisioning service
    checks them one by one so it can name the offending field.
    """

    name: str = ""
    phone_number: str = ""
    email: str = ""
    password: str = Field(default="", repr=False)
    job_role: str = ""
    assigned_site_location: str = ""
    working_schedule: str = ""
    role_type: RoleType = RoleType.EMPLOYEE
    approved: bool = False
