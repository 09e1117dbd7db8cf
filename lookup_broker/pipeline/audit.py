"""
Audit log: append-only record of every attempted lookup.

append() writes inside the caller's transaction (the charge step uses it so a
debit is never committed without its SUCCESS row). record() is the standalone
write for the other terminal outcomes: retried, and on failure reported to
operational logging instead of failing the response.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, ContextManager

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger, mask_query
from lookup_broker.database.models import AuditEntry
from lookup_broker.database.session import session_scope
from lookup_broker.pipeline.normalize import Service

logger = get_logger(__name__)

DEFAULT_WRITE_ATTEMPTS = 2
MAX_HISTORY_LIMIT = 50


class AuditStatus(str, Enum):
    SUCCESS = "SUCCESS"
    FAILED_NO_CREDITS = "FAILED_NO_CREDITS"
    DENIED = "DENIED"
    NOT_FOUND = "NOT_FOUND"
    PROVIDER_ERROR = "PROVIDER_ERROR"
    PROVIDER_EXHAUSTED = "PROVIDER_EXHAUSTED"


class AuditLog:
    def __init__(
        self,
        sessions: Callable[[], ContextManager[Session]] = session_scope,
        *,
        write_attempts: int = DEFAULT_WRITE_ATTEMPTS,
    ) -> None:
        self._sessions = sessions
        self._write_attempts = max(1, write_attempts)

    def append(
        self,
        session: Session,
        principal_id: str,
        service: Service | str,
        query: str,
        status: AuditStatus | str,
        payload: dict[str, Any] | None = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            principal_id=principal_id,
            service=Service(service).value,
            query=query,
            status=AuditStatus(status).value,
            result=payload,
        )
        session.add(entry)
        session.flush()
        return entry

    def record(
        self,
        principal_id: str,
        service: Service | str,
        query: str,
        status: AuditStatus | str,
        payload: dict[str, Any] | None = None,
    ) -> bool:
        """Append in its own transaction. Returns False (after logging) if every attempt failed."""
        last_error: Exception | None = None
        for attempt in range(1, self._write_attempts + 1):
            try:
                with self._sessions() as session:
                    self.append(session, principal_id, service, query, status, payload)
                return True
            except SQLAlchemyError as e:
                last_error = e
                logger.warning("audit_write_retry", attempt=attempt, principal_id=principal_id, error=str(e))
        logger.error(
            "audit_write_failed",
            principal_id=principal_id,
            service=Service(service).value,
            query=mask_query(query),
            status=AuditStatus(status).value,
            error=str(last_error),
        )
        return False

    def history(
        self,
        session: Session,
        principal_id: str,
        *,
        limit: int = 10,
        offset: int = 0,
    ) -> list[AuditEntry]:
        """Entries for one principal, newest first."""
        limit = max(1, min(limit, MAX_HISTORY_LIMIT))
        return (
            session.query(AuditEntry)
            .filter(AuditEntry.principal_id == principal_id)
            .order_by(AuditEntry.created_at.desc(), AuditEntry.id.desc())
            .offset(max(0, offset))
            .limit(limit)
            .all()
        )
