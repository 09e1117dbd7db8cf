"""
Engine and session management for the broker database.

Uses BROKER_DB_URL / DATABASE_URL for PostgreSQL when set; otherwise falls back
to SQLite (DATABASE_PATH or broker.db). The engine is created lazily and cached
for the process; tests call reset_engine_for_test() after pointing the env at a
fresh database.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

from lookup_broker.broker_logging import get_logger
from lookup_broker.config import get_settings
from lookup_broker.database.models import Base

logger = get_logger(__name__)

_engine: Engine | None = None
_SessionLocal: sessionmaker | None = None


def _safe_url(url: str) -> str:
    """Strip credentials and query string before logging a database URL."""
    return url.split("?")[0].split("@")[-1].split("//")[-1]


def get_engine() -> Engine:
    """Create or return cached engine. Thread-safe for typical FastAPI usage."""
    global _engine
    if _engine is None:
        url = get_settings().database_url
        connect_args: dict[str, Any] = {}
        if url.startswith("sqlite"):
            connect_args["check_same_thread"] = False
            connect_args["timeout"] = 15
        _engine = create_engine(url, connect_args=connect_args, pool_pre_ping=True)
        logger.info("broker_db_engine", url=_safe_url(url))
    return _engine


def _get_session_factory() -> sessionmaker:
    global _SessionLocal
    if _SessionLocal is None:
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            expire_on_commit=False,
            bind=get_engine(),
        )
    return _SessionLocal


@contextmanager
def session_scope() -> Iterator[Session]:
    """Context manager for a single session. Commits on success, rolls back on error."""
    session = _get_session_factory()()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def init_db() -> None:
    """Create broker tables if they do not exist. Safe to call on every startup."""
    try:
        engine = get_engine()
        Base.metadata.create_all(bind=engine)
        logger.info("broker_init_db", url=_safe_url(get_settings().database_url))
    except Exception as e:
        logger.exception("broker_init_db_failed", error=str(e))
        raise


def reset_engine_for_test() -> None:
    """Dispose and forget the cached engine. For tests only; use with a new DATABASE_PATH."""
    global _engine, _SessionLocal
    if _engine is not None:
        _engine.dispose()
    _engine = None
    _SessionLocal = None
