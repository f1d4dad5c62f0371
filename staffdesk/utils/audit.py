"""
Structured Audit Logging Utility.

Every state change the service layer causes (account provisioned,
orphaned identity cleaned up, profile edited, sign-in, sign-out) is
logged as one validated JSON object, and optionally stored in the local
``audit_log`` table.
"""

from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Optional, Union

from pydantic import BaseModel, Field

from staffdesk.logger import StructuredLogger

__all__ = ["AuditEvent", "log_audit_event"]

# Flat scalars only; nested structures do not belong in an audit line.
DetailValue = Union[str, int, float, bool, None]


class AuditEvent(BaseModel):
    """Schema-validated representation of a single audit trail entry."""

    timestamp: str
    action: str
    entity_type: str
    entity_id: str
    user_id: str
    details: dict[str, DetailValue] = Field(default_factory=dict)


def log_audit_event(
    logger: StructuredLogger,
    action: str,
    entity_type: str,
    entity_id: str,
    user_id: str,
    details: Optional[dict[str, DetailValue]] = None,
    conn: Optional[sqlite3.Connection] = None,
) -> AuditEvent:
    """Log a structured JSON audit event, with optional SQLite persistence.

    Args:
        logger: The logger instance to write to.
        action: What happened (e.g. ``"PROVISION"``, ``"PROFILE_UPDATE"``).
        entity_type: Type of entity affected (``"UserRecord"``, ``"Identity"``).
        entity_id: Key of the affected entity.
        user_id: Identity that performed the action.
        details: Optional additional context (e.g. changed fields).
        conn: When given, the event is also inserted into ``audit_log``.
            Persistence errors are logged and never propagated.

    Returns:
        The validated event.
    """
    event = AuditEvent(
        timestamp=datetime.now(timezone.utc).isoformat(),
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        user_id=user_id,
        details=details or {},
    )
    logger.info("AUDIT: %s", json.dumps(event.model_dump(), default=str))

    if conn is not None:
        try:
            conn.execute(
                """
                INSERT INTO audit_log (timestamp, action, entity_type, entity_id, user_id, details)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    event.timestamp,
                    event.action,
                    event.entity_type,
                    event.entity_id,
                    event.user_id,
                    json.dumps(event.details, default=str),
                ),
            )
            conn.commit()
        except sqlite3.Error as db_err:
            logger.warning("Failed to persist audit event to SQLite: %s", db_err)

    return event
