"""
Pytest fixtures for lookup broker tests. Uses a temporary SQLite DB per test.
"""

from __future__ import annotations

from typing import Any

import jwt
import pytest

TEST_TOKEN_SECRET = "test-token-secret"
TEST_ADMIN_KEY = "test-admin-key"


@pytest.fixture
def broker_db(tmp_path, monkeypatch):
    """
    Point the broker at a temporary SQLite DB and init tables.
    Resets engine cache so each test gets a fresh DB. Unset DB URLs so we use SQLite.
    """
    monkeypatch.delenv("BROKER_DB_URL", raising=False)
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_PATH", str(tmp_path / "broker.db"))
    monkeypatch.setenv("AUTH_TOKEN_SECRET", TEST_TOKEN_SECRET)
    monkeypatch.setenv("ADMIN_API_KEY", TEST_ADMIN_KEY)
    monkeypatch.setenv("UPSTREAM_BACKOFF_SEC", "0")
    monkeypatch.setenv("UPSTREAM_MAX_ATTEMPTS", "3")
    monkeypatch.setenv("CACHE_TTL_SEC", "0")

    import lookup_broker.database.session as db

    db.reset_engine_for_test()
    db.init_db()
    yield db
    db.reset_engine_for_test()


@pytest.fixture
def make_principal(broker_db):
    """Insert a principal directly. Returns its id."""
    from lookup_broker.database.models import Principal

    def _make(principal_id: str = "user-1", credits: int = 5, **fields: Any) -> str:
        fields.setdefault("email", f"{principal_id}@example.com")
        fields.setdefault("username", principal_id)
        with broker_db.session_scope() as session:
            session.add(Principal(id=principal_id, credits=credits, **fields))
        return principal_id

    return _make


@pytest.fixture
def set_cost(broker_db):
    """Set the per-service cost in app settings."""
    from lookup_broker.pipeline import ServiceSettings

    def _set(service: str, cost: int) -> None:
        with broker_db.session_scope() as session:
            ServiceSettings().update(session, service_costs={service: cost})

    return _set


class StubProvider:
    """Provider callback that replays a list of outcomes and counts calls."""

    def __init__(self, *outcomes: Any) -> None:
        self.outcomes = list(outcomes) or [{"name": "Test User"}]
        self.calls: list[str] = []

    def __call__(self, query: str) -> Any:
        self.calls.append(query)
        outcome = self.outcomes[min(len(self.calls), len(self.outcomes)) - 1]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def stub_providers():
    """One StubProvider per service, all answering with a simple success payload."""
    from lookup_broker.pipeline import Service

    return {
        Service.MOBILE: StubProvider({"name": "Test User", "carrier": "Jio"}),
        Service.VEHICLE: StubProvider({"rc_number": "MH12AB1234", "owner_name": "Test Owner"}),
        Service.IP: StubProvider({"query": "8.8.8.8", "country": "United States", "city": "Mountain View"}),
        Service.NATIONAL_ID: StubProvider({"state": "Maharashtra", "gender": "M"}),
    }


@pytest.fixture
def client(broker_db, stub_providers):
    """FastAPI TestClient with stub providers. Depends on broker_db so temp DB is set before app runs."""
    from fastapi.testclient import TestClient

    from lookup_broker.api_server.server import app, get_providers

    app.dependency_overrides[get_providers] = lambda: stub_providers
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def make_token(sub: str = "user-1", **claims: Any) -> str:
    claims.setdefault("email", f"{sub}@example.com")
    return jwt.encode({"sub": sub, **claims}, TEST_TOKEN_SECRET, algorithm="HS256")


def auth_headers(sub: str = "user-1", **claims: Any) -> dict[str, str]:
    return {"Authorization": f"Bearer {make_token(sub, **claims)}"}


def admin_headers(key: str = TEST_ADMIN_KEY) -> dict[str, str]:
    return {"X-Admin-Key": key}
