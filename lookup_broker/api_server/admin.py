"""
Admin API router: operator actions on principals, protection records,
redeem codes, the cost table and cached results.

Every route requires the X-Admin-Key header to match ADMIN_API_KEY.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from lookup_broker.api_server.context import require_admin
from lookup_broker.broker_logging import get_logger
from lookup_broker.core.exceptions import PrincipalNotFound
from lookup_broker.database.session import session_scope
from lookup_broker.pipeline import (
    AccessGate,
    AuditLog,
    CreditLedger,
    PrincipalDirectory,
    ResultCache,
    Service,
    ServiceSettings,
    normalize_query,
)
from lookup_broker.pipeline.audit import MAX_HISTORY_LIMIT

logger = get_logger(__name__)

router = APIRouter(prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)])


@contextmanager
def principal_scope(principal_id: str) -> Iterator[Session]:
    """session_scope for routes addressing one principal. An unknown id answers 404, not 401."""
    try:
        with session_scope() as session:
            yield session
    except PrincipalNotFound as e:
        logger.info("admin_principal_not_found", principal_id=principal_id)
        raise HTTPException(status_code=404, detail=e.message) from e


class SetCreditsBody(BaseModel):
    credits: int = Field(..., ge=0)


class BlockBody(BaseModel):
    blocked: bool | None = None
    block_ip: bool | None = Field(None, alias="blockIp")

    model_config = {"populate_by_name": True}


class CreditExpiryBody(BaseModel):
    expires_at: int | None = Field(None, description="Unix seconds; null removes the expiry")


class ProtectBody(BaseModel):
    number: str = Field(..., min_length=1, max_length=128)
    reason: str | None = Field(None, max_length=512)


class GenerateCodeBody(BaseModel):
    credits: int = Field(..., gt=0)
    code: str | None = Field(None, min_length=4, max_length=64)


class GiftAllBody(BaseModel):
    credits: int = Field(..., gt=0)


class SettingsBody(BaseModel):
    service_costs: dict[str, int] | None = None
    free_credits_on_signup: int | None = Field(None, ge=0)


# -----------------------------------------------------------------------------
# Principals
# -----------------------------------------------------------------------------


@router.get("/users")
def list_users() -> list[dict[str, Any]]:
    with session_scope() as session:
        return [p.to_dict() for p in PrincipalDirectory().list_all(session)]


@router.post("/users/{principal_id}/credits")
def set_credits(principal_id: str, body: SetCreditsBody) -> dict[str, Any]:
    with principal_scope(principal_id) as session:
        CreditLedger().set_balance(session, principal_id, body.credits)
        principal = PrincipalDirectory().get(session, principal_id)
        session.refresh(principal)
        return principal.to_dict()


@router.get("/users/{principal_id}/history")
def user_history(
    principal_id: str,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
) -> dict[str, Any]:
    limit = min(limit, MAX_HISTORY_LIMIT)
    with session_scope() as session:
        rows = AuditLog().history(session, principal_id, limit=limit, offset=(page - 1) * limit)
        data = [r.to_dict() for r in rows]
    return {"data": data, "page": page, "limit": limit, "hasMore": len(data) == limit}


@router.post("/users/{principal_id}/block")
def block_user(principal_id: str, body: BlockBody) -> dict[str, Any]:
    with principal_scope(principal_id) as session:
        principal = PrincipalDirectory().set_blocked(
            session, principal_id, blocked=body.blocked, block_ip=body.block_ip
        )
        return principal.to_dict()


@router.post("/users/{principal_id}/credit-expiry")
def set_credit_expiry(principal_id: str, body: CreditExpiryBody) -> dict[str, Any]:
    with principal_scope(principal_id) as session:
        return PrincipalDirectory().set_credit_expiry(session, principal_id, body.expires_at).to_dict()


# -----------------------------------------------------------------------------
# Protection records
# -----------------------------------------------------------------------------


@router.get("/protected-numbers")
def list_protected() -> list[dict[str, Any]]:
    with session_scope() as session:
        return [r.to_dict() for r in AccessGate().list_protected(session)]


@router.post("/protected-numbers")
def add_protected(body: ProtectBody) -> dict[str, Any]:
    try:
        with session_scope() as session:
            added = AccessGate().protect(session, body.number, body.reason)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    return {"success": True, "added": added}


@router.delete("/protected-numbers/{number}")
def remove_protected(number: str) -> dict[str, Any]:
    with session_scope() as session:
        removed = AccessGate().unprotect(session, number)
    return {"success": True, "removed": removed}


# -----------------------------------------------------------------------------
# Credits and redeem codes
# -----------------------------------------------------------------------------


@router.post("/generate-code")
def generate_code(body: GenerateCodeBody) -> dict[str, Any]:
    try:
        with session_scope() as session:
            return CreditLedger().create_code(session, body.credits, body.code).to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.post("/gift-all")
def gift_all(body: GiftAllBody) -> dict[str, Any]:
    with session_scope() as session:
        credited = CreditLedger().grant_all(session, body.credits)
    return {"success": True, "principals": credited}


# -----------------------------------------------------------------------------
# Settings and cache
# -----------------------------------------------------------------------------


@router.get("/settings")
def get_app_settings() -> dict[str, Any]:
    with session_scope() as session:
        return ServiceSettings().get(session).to_dict()


@router.post("/settings")
def update_app_settings(body: SettingsBody) -> dict[str, Any]:
    try:
        with session_scope() as session:
            row = ServiceSettings().update(
                session,
                service_costs=body.service_costs,
                free_credits_on_signup=body.free_credits_on_signup,
            )
            return row.to_dict()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e


@router.delete("/cache/{service}/{query}")
def invalidate_cache(service: Service, query: str) -> dict[str, Any]:
    try:
        key = normalize_query(service, query)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    with session_scope() as session:
        removed = ResultCache().invalidate(session, service, key)
    return {"success": True, "removed": removed}
