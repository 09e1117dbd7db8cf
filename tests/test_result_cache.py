"""
Tests for the result cache: keying, overwrite, TTL staleness and invalidation.
"""

from __future__ import annotations

from lookup_broker.database.models import CacheEntry
from lookup_broker.pipeline import ResultCache, Service


class Clock:
    def __init__(self, now: float = 1_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def test_miss_then_hit(broker_db):
    cache = ResultCache()
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.MOBILE, "9876543210") is None
        cache.put(session, Service.MOBILE, "9876543210", {"name": "Test User"})
    with broker_db.session_scope() as session:
        assert cache.get(session, "mobile", "9876543210") == {"name": "Test User"}
        # keyed by service as well as query
        assert cache.get(session, Service.VEHICLE, "9876543210") is None


def test_put_overwrites_existing_entry(broker_db):
    cache = ResultCache()
    with broker_db.session_scope() as session:
        cache.put(session, Service.IP, "8.8.8.8", {"country": "A"})
    with broker_db.session_scope() as session:
        cache.put(session, Service.IP, "8.8.8.8", {"country": "B"})
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.IP, "8.8.8.8") == {"country": "B"}
        assert session.query(CacheEntry).count() == 1


def test_ttl_expiry(broker_db):
    clock = Clock()
    cache = ResultCache(ttl_sec=60, clock=clock)
    with broker_db.session_scope() as session:
        cache.put(session, Service.MOBILE, "9876543210", {"name": "Test User"})
    clock.now += 59
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.MOBILE, "9876543210") is not None
    clock.now += 1
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.MOBILE, "9876543210") is None


def test_zero_ttl_never_expires(broker_db):
    clock = Clock()
    cache = ResultCache(ttl_sec=0, clock=clock)
    with broker_db.session_scope() as session:
        cache.put(session, Service.MOBILE, "9876543210", {"name": "Test User"})
    clock.now += 10 * 365 * 86400
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.MOBILE, "9876543210") == {"name": "Test User"}


def test_invalidate(broker_db):
    cache = ResultCache()
    with broker_db.session_scope() as session:
        cache.put(session, Service.VEHICLE, "MH12AB1234", {"owner_name": "X"})
    with broker_db.session_scope() as session:
        assert cache.invalidate(session, Service.VEHICLE, "MH12AB1234") is True
        assert cache.invalidate(session, Service.VEHICLE, "MH12AB1234") is False
    with broker_db.session_scope() as session:
        assert cache.get(session, Service.VEHICLE, "MH12AB1234") is None
