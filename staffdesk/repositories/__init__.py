"""
Repository Layer Package.

Provides data-access abstractions over Supabase (identities and the
``users`` table) and SQLite (local reconciliation queue).  Services never
touch ``db.supabase`` or ``db.sqlite`` directly.

Usage:
    from staffdesk.repositories.user_repository import UserRepository
"""

from staffdesk.repositories.base_repository import BaseRepository
from staffdesk.repositories.identity_repository import IdentityRepository
from staffdesk.repositories.reconciliation_repository import ReconciliationRepository
from staffdesk.repositories.user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "IdentityRepository",
    "ReconciliationRepository",
    "UserRepository",
]
