"""Shared utilities for the StaffDesk service layer."""

from staffdesk.utils.audit import AuditEvent, log_audit_event

__all__ = [
    "AuditEvent",
    "log_audit_event",
]
