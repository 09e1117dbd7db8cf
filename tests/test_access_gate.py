"""
Tests for the access gate: check order (account, origin, protection) and the
protection registry.
"""

from __future__ import annotations

import pytest

from lookup_broker.core.exceptions import AccessDenied
from lookup_broker.database.models import Principal
from lookup_broker.pipeline.access_gate import (
    ACCOUNT_RESTRICTED_MESSAGE,
    DEFAULT_PROTECTION_REASON,
    ORIGIN_RESTRICTED_MESSAGE,
    PROTECTED_MESSAGE,
    AccessGate,
)


def _check(db, principal_id: str, query: str):
    with db.session_scope() as session:
        principal = session.get(Principal, principal_id)
        return AccessGate().check_access(session, principal, query)


def test_allowed_by_default(broker_db, make_principal):
    make_principal("alice")
    decision = _check(broker_db, "alice", "9876543210")
    assert decision.allowed is True
    decision.raise_if_denied()


def test_account_block_beats_origin_and_protection(broker_db, make_principal):
    make_principal("alice", is_blocked=True, is_ip_blocked=True, last_ip="10.0.0.1")
    with broker_db.session_scope() as session:
        AccessGate().protect(session, "9876543210", "VIP")
    decision = _check(broker_db, "alice", "9876543210")
    assert decision.allowed is False
    assert decision.kind == "account"
    assert decision.message == ACCOUNT_RESTRICTED_MESSAGE


def test_origin_block_beats_protection(broker_db, make_principal):
    make_principal("alice", is_ip_blocked=True)
    with broker_db.session_scope() as session:
        AccessGate().protect(session, "9876543210", "VIP")
    decision = _check(broker_db, "alice", "9876543210")
    assert decision.kind == "origin"
    assert decision.message == ORIGIN_RESTRICTED_MESSAGE


def test_origin_block_shared_address(broker_db, make_principal):
    """Another principal last seen from the same address with its IP blocked blocks this one too."""
    make_principal("mallory", is_ip_blocked=True, last_ip="10.0.0.7")
    make_principal("alice", last_ip="10.0.0.7")
    make_principal("bob", last_ip="10.0.0.8")
    assert _check(broker_db, "alice", "9876543210").kind == "origin"
    assert _check(broker_db, "bob", "9876543210").allowed is True


def test_protected_query_denied_with_reason(broker_db, make_principal):
    make_principal("alice")
    with broker_db.session_scope() as session:
        AccessGate().protect(session, "98765-43210", "Court order")
    decision = _check(broker_db, "alice", "9876543210")
    assert decision.allowed is False
    assert decision.kind == "protected"
    assert decision.message == PROTECTED_MESSAGE
    assert decision.reason == "Court order"
    with pytest.raises(AccessDenied) as exc_info:
        decision.raise_if_denied()
    assert exc_info.value.status_code == 403
    assert exc_info.value.to_payload() == {
        "success": False,
        "message": PROTECTED_MESSAGE,
        "reason": "Court order",
    }


def test_protection_default_reason(broker_db, make_principal):
    make_principal("alice")
    with broker_db.session_scope() as session:
        AccessGate().protect(session, "MH12AB1234")
    assert _check(broker_db, "alice", "MH12AB1234").reason == DEFAULT_PROTECTION_REASON


def test_protect_is_idempotent_and_unprotect(broker_db):
    gate = AccessGate()
    with broker_db.session_scope() as session:
        assert gate.protect(session, "9876543210") is True
        assert gate.protect(session, "98765 43210") is False
        assert [r.number for r in gate.list_protected(session)] == ["9876543210"]
    with broker_db.session_scope() as session:
        assert gate.unprotect(session, "9876543210") is True
        assert gate.unprotect(session, "9876543210") is False
        assert gate.list_protected(session) == []


def test_protect_empty_number(broker_db):
    with broker_db.session_scope() as session:
        with pytest.raises(ValueError, match="non-empty"):
            AccessGate().protect(session, "  - ")
