"""
Roster Service.

Lists the approved employees of one site, most recently created first.

The primary path is one compound filtered + sorted query.  When the store
rejects it for lack of an index, a two-predicate query fetches approved
employees of every site; the site filter and the ordering are then
applied here so both paths return the same list.
"""

from __future__ import annotations

from datetime import datetime, timezone

from staffdesk.exceptions import (
    DocumentStoreError,
    IndexMissingError,
    NotAuthenticatedError,
    ProfileNotFoundError,
)
from staffdesk.logger import StructuredLogger
from staffdesk.models.service_models import RosterResult
from staffdesk.models.user import UserRecord
from staffdesk.repositories.user_repository import UserRepository
from staffdesk.services.base_service import BaseService
from staffdesk.services.profile_sync import ProfileSyncService

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _created_at_key(record: UserRecord) -> datetime:
    created = record.created_at
    if created is None:
        return _EPOCH
    if created.tzinfo is None:
        return created.replace(tzinfo=timezone.utc)
    return created


class RosterService(BaseService):
    """Roster reads for administrators."""

    def __init__(
        self,
        repo: UserRepository,
        profile_service: ProfileSyncService,
        logger: StructuredLogger,
    ) -> None:
        super().__init__(logger)
        self._repo = repo
        self._profile_service = profile_service

    def list_roster(self, site_location: str) -> list[UserRecord]:
        """Approved employees at *site_location*, newest first.

        Raises:
            DocumentStoreError: Both query paths are unavailable, or the
                primary failed for a reason other than a missing index.
        """
        employees, _ = self._query(site_location)
        return employees

    def load_roster(self, site_location: str) -> RosterResult:
        """``list_roster`` wrapped in a result; never raises for store errors."""
        try:
            employees, used_fallback = self._query(site_location)
        except DocumentStoreError as exc:
            self._logger.error("Failed to fetch roster for %s: %s", site_location, exc.message)
            return RosterResult(
                success=False,
                site_location=site_location,
                error="Failed to fetch employees data",
                status_code=503,
            )
        return RosterResult(
            success=True,
            site_location=site_location,
            employees=employees,
            used_fallback=used_fallback,
        )

    def load_dashboard(self) -> RosterResult:
        """Roster of the signed-in admin's own site."""
        try:
            admin = self._profile_service.fetch_current()
        except NotAuthenticatedError as exc:
            return RosterResult(success=False, error=exc.message, status_code=401)
        except ProfileNotFoundError:
            return RosterResult(success=False, error="Admin profile not found", status_code=404)
        except DocumentStoreError as exc:
            self._logger.error("Failed to load admin profile: %s", exc.message)
            return RosterResult(
                success=False, error="Failed to load admin profile", status_code=503,
            )

        site = admin.assigned_site_location.strip()
        if not site:
            self._logger.info("Admin %s has no assigned site location.", admin.identity_id)
            return RosterResult(
                success=False,
                error="No assigned site location found for admin",
                status_code=422,
            )
        return self.load_roster(site)

    # ------------------------------------------------------------------
    # Private helpers
    # ------------------------------------------------------------------

    def _query(self, site_location: str) -> tuple[list[UserRecord], bool]:
        try:
            return self._repo.list_roster(site_location), False
        except IndexMissingError:
            self._logger.warning(
                "Roster index missing; falling back to client-side filtering for %s.",
                site_location,
            )

        candidates = self._repo.list_approved_employees()
        matching = [e for e in candidates if e.assigned_site_location == site_location]
        matching.sort(key=_created_at_key, reverse=True)
        return matching, True
