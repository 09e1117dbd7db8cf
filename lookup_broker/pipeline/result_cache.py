"""
Result cache: (service, normalized query) -> last successful provider payload.

Only successful payloads are ever stored, so a failed or "not found" lookup can
succeed later once the provider recovers. Concurrent writers for one key are
last-writer-wins. Staleness is explicit: ttl_sec (0 keeps entries forever)
and invalidate().
"""

from __future__ import annotations

import time
from typing import Any, Callable

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger
from lookup_broker.database.models import CacheEntry
from lookup_broker.pipeline.normalize import Service

logger = get_logger(__name__)


class ResultCache:
    def __init__(self, ttl_sec: int = 0, *, clock: Callable[[], float] = time.time) -> None:
        self._ttl_sec = max(0, int(ttl_sec))
        self._clock = clock

    def _now(self) -> int:
        return int(self._clock())

    def _row(self, session: Session, service: Service | str, query: str) -> CacheEntry | None:
        return (
            session.query(CacheEntry)
            .filter(CacheEntry.service == Service(service).value, CacheEntry.query == query)
            .first()
        )

    def get(self, session: Session, service: Service | str, query: str) -> dict[str, Any] | None:
        row = self._row(session, service, query)
        if row is None:
            return None
        if self._ttl_sec and self._now() - row.created_at >= self._ttl_sec:
            logger.debug("cache_entry_stale", service=Service(service).value, age_sec=self._now() - row.created_at)
            return None
        return dict(row.payload)

    def put(self, session: Session, service: Service | str, query: str, payload: dict[str, Any]) -> None:
        service = Service(service)
        now = self._now()
        row = self._row(session, service, query)
        if row is None:
            try:
                with session.begin_nested():
                    session.add(CacheEntry(service=service.value, query=query, payload=payload, created_at=now))
                return
            except IntegrityError:
                # a concurrent request inserted the same key first; overwrite it
                row = self._row(session, service, query)
                if row is None:
                    raise
        row.payload = payload
        row.created_at = now
        session.flush()

    def invalidate(self, session: Session, service: Service | str, query: str) -> bool:
        removed = (
            session.query(CacheEntry)
            .filter(CacheEntry.service == Service(service).value, CacheEntry.query == query)
            .delete()
        )
        logger.info("cache_entry_invalidated", service=Service(service).value, removed=removed)
        return removed > 0
