"""
Database layer: SQLAlchemy models and session management.

SQLite by default; PostgreSQL when BROKER_DB_URL / DATABASE_URL is set.
"""

from lookup_broker.database.models import (
    AppSettings,
    AuditEntry,
    Base,
    CacheEntry,
    Principal,
    ProtectionRecord,
    RedeemCode,
)
from lookup_broker.database.session import (
    get_engine,
    init_db,
    reset_engine_for_test,
    session_scope,
)

__all__ = [
    "AppSettings",
    "AuditEntry",
    "Base",
    "CacheEntry",
    "Principal",
    "ProtectionRecord",
    "RedeemCode",
    "get_engine",
    "init_db",
    "reset_engine_for_test",
    "session_scope",
]
