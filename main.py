"""
StaffDesk Service Layer Entry Point.

Bootstraps the entire dependency graph via constructor injection,
initialises the local SQLite schema, follows the signed-in session and
runs the orphaned identity reconciliation sweep.  Every subsystem is
wired here; there are no module-level globals.

Usage::

    python main.py
"""

from __future__ import annotations

import atexit
import sys

from staffdesk.auth import SessionGateway
from staffdesk.config import get_config
from staffdesk.database import DatabaseManager
from staffdesk.logger import StructuredLogger, get_logger
from staffdesk.schema import initialize_schema
from staffdesk.services import create_services


def main() -> int:
    """Wire dependencies and run one reconciliation sweep.

    Returns the process exit code.
    """
    logger: StructuredLogger = get_logger("main")
    logger.info("Starting StaffDesk...")

    # ------------------------------------------------------------------
    # 1. Configuration (from .env / environment variables)
    # ------------------------------------------------------------------
    config = get_config()

    # ------------------------------------------------------------------
    # 2. Database Manager (Supabase optional, SQLite always)
    # ------------------------------------------------------------------
    db = DatabaseManager(
        supabase_url=config.SUPABASE_URL,
        supabase_key=config.SUPABASE_ANON_KEY.get_secret_value(),
        service_role_key=config.SUPABASE_SERVICE_ROLE_KEY.get_secret_value(),
        sqlite_path=config.LOCAL_DB_PATH,
        logger=StructuredLogger(name="database"),
    )
    # close() is idempotent, so the atexit hook is safe alongside finally.
    atexit.register(db.close)

    # ------------------------------------------------------------------
    # 3. SQLite Schema Initialization (idempotent)
    # ------------------------------------------------------------------
    initialize_schema(db.sqlite, StructuredLogger(name="schema"))

    # ------------------------------------------------------------------
    # 4. Session Gateway
    # ------------------------------------------------------------------
    session = SessionGateway(logger=get_logger("session"))
    if db.is_online:
        session.attach(db.supabase.auth)
    else:
        logger.warning("Supabase is not configured; running without a session.")

    try:
        # --------------------------------------------------------------
        # 5. Service Container (single composition root)
        # --------------------------------------------------------------
        services = create_services(db=db, config=config, session=session)

        # --------------------------------------------------------------
        # 6. Orphaned identity reconciliation
        # --------------------------------------------------------------
        pending = db.get_pending_reconciliation_count()
        if pending and not db.has_admin:
            logger.warning(
                "%d orphaned identities pending but no service-role key is set.",
                pending,
            )
        elif pending:
            report = services["reconciliation_service"].sweep()
            logger.info(
                "Reconciliation finished.",
                extra={
                    "resolved": report.resolved,
                    "failed": report.failed,
                    "still_pending": report.still_pending,
                },
            )
        return 0
    finally:
        session.close()
        db.close()
        logger.info("StaffDesk shut down.")


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        pass
