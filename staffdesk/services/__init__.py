"""
Business Logic Services Package.

Services depend on the Repository layer for data access and on the
``SessionGateway`` for the signed-in identity.

The ``create_services()`` factory wires every repository and service together,
returning a typed dict that a UI or command layer can consume without
knowing the internal dependency graph.
"""

from __future__ import annotations

from typing import TypedDict

from staffdesk.auth import SessionGateway
from staffdesk.config import AppConfig
from staffdesk.database import DatabaseManager
from staffdesk.logger import get_logger
from staffdesk.repositories.identity_repository import IdentityRepository
from staffdesk.repositories.reconciliation_repository import ReconciliationRepository
from staffdesk.repositories.user_repository import UserRepository
from staffdesk.services.account_provisioning import AccountProvisioningService
from staffdesk.services.auth_service import AuthService
from staffdesk.services.profile_editor import ProfileEditor
from staffdesk.services.profile_sync import ProfileSyncService
from staffdesk.services.reconciliation import ReconciliationService
from staffdesk.services.roster import RosterService


class ServiceContainer(TypedDict):
    """Typed container for all application services."""

    auth_service: AuthService
    provisioning_service: AccountProvisioningService
    profile_service: ProfileSyncService
    roster_service: RosterService
    reconciliation_service: ReconciliationService


def create_services(
    db: DatabaseManager,
    config: AppConfig,
    session: SessionGateway,
) -> ServiceContainer:
    """
    Wire all repositories and services together.

    This is the single composition root for the service layer.  The
    entry-point calls this once at startup.

    Args:
        db: Initialised DatabaseManager with the local schema applied.
        config: Application configuration.
        session: The shared session gateway.

    Returns:
        ServiceContainer mapping service names to fully-wired instances.
    """
    logger = get_logger("services")
    audit_conn = db.sqlite

    # ------------------------------------------------------------------
    # 1. Repositories (data-access layer)
    # ------------------------------------------------------------------
    user_repo = UserRepository(
        db=db,
        logger=logger,
        table=config.USERS_TABLE,
        index_missing_codes=config.INDEX_MISSING_ERROR_CODES,
    )
    identity_repo = IdentityRepository(db=db, logger=logger)
    reconciliation_repo = ReconciliationRepository(db=db, logger=logger)

    # ------------------------------------------------------------------
    # 2. Services
    # ------------------------------------------------------------------
    auth_service = AuthService(
        identity_repo=identity_repo,
        session=session,
        logger=logger,
        audit_conn=audit_conn,
    )
    profile_service = ProfileSyncService(
        repo=user_repo,
        session=session,
        logger=logger,
        audit_conn=audit_conn,
    )
    provisioning_service = AccountProvisioningService(
        identity_repo=identity_repo,
        user_repo=user_repo,
        reconciliation_repo=reconciliation_repo,
        session=session,
        config=config,
        logger=logger,
        audit_conn=audit_conn,
    )
    roster_service = RosterService(
        repo=user_repo,
        profile_service=profile_service,
        logger=logger,
    )
    reconciliation_service = ReconciliationService(
        identity_repo=identity_repo,
        reconciliation_repo=reconciliation_repo,
        config=config,
        logger=logger,
        audit_conn=audit_conn,
    )

    return ServiceContainer(
        auth_service=auth_service,
        provisioning_service=provisioning_service,
        profile_service=profile_service,
        roster_service=roster_service,
        reconciliation_service=reconciliation_service,
    )


def create_profile_editor(services: ServiceContainer, session: SessionGateway) -> ProfileEditor:
    """Return a fresh editor for one "my profile" screen."""
    return ProfileEditor(
        profile_service=services["profile_service"],
        session=session,
        logger=get_logger("profile_editor"),
    )
