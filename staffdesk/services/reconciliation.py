"""
Orphaned Identity Reconciliation.

Drains the local ``orphaned_identities`` queue: each pending identity is
deleted through the admin API.  Rows that keep failing are parked as
``failed`` after ``RECONCILIATION_MAX_ATTEMPTS`` tries so an operator can
look at them.
"""

from __future__ import annotations

import sqlite3
from typing import Optional

from staffdesk.config import AppConfig
from staffdesk.exceptions import IdentityProviderError
from staffdesk.logger import StructuredLogger
from staffdesk.models.enums import ReconciliationStatus
from staffdesk.models.service_models import ReconciliationReport
from staffdesk.repositories.identity_repository import IdentityRepository
from staffdesk.repositories.reconciliation_repository import ReconciliationRepository
from staffdesk.services.base_service import BaseService
from staffdesk.utils.audit import log_audit_event


class ReconciliationService(BaseService):
    """One-shot sweep over the orphaned identity queue."""

    _BATCH_SIZE: int = 50

    def __init__(
        self,
        identity_repo: IdentityRepository,
        reconciliation_repo: ReconciliationRepository,
        config: AppConfig,
        logger: StructuredLogger,
        audit_conn: Optional[sqlite3.Connection] = None,
    ) -> None:
        super().__init__(logger)
        self._identity_repo = identity_repo
        self._reconciliation_repo = reconciliation_repo
        self._config = config
        self._audit_conn = audit_conn

    def sweep(self, limit: Optional[int] = None) -> ReconciliationReport:
        """Try to delete every pending orphaned identity once."""
        report = ReconciliationReport()
        try:
            pending = self._reconciliation_repo.list_pending(limit or self._BATCH_SIZE)
        except sqlite3.Error as exc:
            self._logger.error("Cannot read the orphaned identity queue: %s", exc)
            return report

        for orphan in pending:
            report.examined += 1
            try:
                self._identity_repo.delete_identity(orphan.identity_id)
            except IdentityProviderError as exc:
                status = self._reconciliation_repo.record_failure(
                    orphan.id,
                    exc.message,
                    self._config.RECONCILIATION_MAX_ATTEMPTS,
                )
                if status == ReconciliationStatus.FAILED:
                    report.failed += 1
                    self._logger.error(
                        "Giving up on orphaned identity %s (%s): %s",
                        orphan.identity_id,
                        orphan.email,
                        exc.message,
                    )
                else:
                    report.still_pending += 1
                continue

            self._reconciliation_repo.mark_resolved(orphan.id)
            report.resolved += 1
            log_audit_event(
                logger=self._logger,
                action="ORPHAN_DELETED",
                entity_type="Identity",
                entity_id=orphan.identity_id,
                user_id=orphan.identity_id,
                details={"email": orphan.email, "queue_id": orphan.id},
                conn=self._audit_conn,
            )

        if report.examined:
            self._logger.info(
                "Reconciliation sweep: %d examined, %d resolved, %d failed, %d pending.",
                report.examined,
                report.resolved,
                report.failed,
                report.still_pending,
            )
        return report
