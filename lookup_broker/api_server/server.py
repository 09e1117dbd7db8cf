"""
FastAPI server: user and lookup endpoints over the gated lookup pipeline.

POST /api/services/{mobile,aadhar,vehicle,ip} runs one paid lookup through
LookupOrchestrator. Failures surface as BrokerError subclasses and are
rendered as {"success": false, "message": ...} with their status code
(402 credits, 403 denied, 404 not found, 400 provider error, 500 exhausted).
"""

from __future__ import annotations

import ipaddress
import re
from contextlib import asynccontextmanager
from typing import Any, Callable, Mapping

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, field_validator

from lookup_broker import __version__
from lookup_broker.api_server.admin import router as admin_router
from lookup_broker.api_server.context import get_request_context
from lookup_broker.broker_logging import get_logger
from lookup_broker.config import get_settings
from lookup_broker.core.exceptions import BrokerError
from lookup_broker.database.session import init_db, session_scope
from lookup_broker.pipeline import (
    AuditLog,
    CreditLedger,
    LookupOrchestrator,
    LookupRequest,
    PrincipalDirectory,
    RequestContext,
    ResultCache,
    RetryPolicy,
    Service,
    UpstreamCaller,
)
from lookup_broker.pipeline.audit import MAX_HISTORY_LIMIT
from lookup_broker.providers import HttpProviders

logger = get_logger(__name__)

_MOBILE_RE = re.compile(r"^[0-9]{10}$")
_NATIONAL_ID_RE = re.compile(r"^[0-9]{16}$")
_VEHICLE_RE = re.compile(r"^[A-Za-z]{2}[0-9]{2}[A-Za-z0-9]+$")


# -----------------------------------------------------------------------------
# Dependencies
# -----------------------------------------------------------------------------

_providers: HttpProviders | None = None


def get_providers() -> Mapping[Service, Callable[[str], Any]]:
    """Dependency: provider callbacks (one shared requests.Session per process)."""
    global _providers
    if _providers is None:
        _providers = HttpProviders(get_settings())
    return _providers.registry()


def get_orchestrator(
    providers: Mapping[Service, Callable[[str], Any]] = Depends(get_providers),
) -> LookupOrchestrator:
    """Dependency: orchestrator built from current settings (retry policy, cache TTL)."""
    settings = get_settings()
    return LookupOrchestrator(
        providers,
        caller=UpstreamCaller(RetryPolicy.from_settings(settings)),
        cache=ResultCache(ttl_sec=settings.cache_ttl_sec),
    )


# -----------------------------------------------------------------------------
# Request / response models
# -----------------------------------------------------------------------------


class MobileLookupBody(BaseModel):
    number: str = Field(..., description="10-digit mobile number")

    @field_validator("number")
    @classmethod
    def _check(cls, v: str) -> str:
        v = v.strip()
        if not _MOBILE_RE.match(v):
            raise ValueError("Invalid mobile number")
        return v


class NationalIdLookupBody(BaseModel):
    number: str = Field(..., description="16-digit national ID number")

    @field_validator("number")
    @classmethod
    def _check(cls, v: str) -> str:
        v = v.strip()
        if not _NATIONAL_ID_RE.match(v):
            raise ValueError("Invalid Aadhar number")
        return v


class VehicleLookupBody(BaseModel):
    number: str = Field(..., description="Registration: 2 letters, 2 digits, then alphanumeric")

    @field_validator("number")
    @classmethod
    def _check(cls, v: str) -> str:
        v = v.strip()
        if not _VEHICLE_RE.match(v):
            raise ValueError("Invalid vehicle number")
        return v


class IpLookupBody(BaseModel):
    ip: str = Field(..., description="IPv4 address")

    @field_validator("ip")
    @classmethod
    def _check(cls, v: str) -> str:
        v = v.strip()
        try:
            ipaddress.IPv4Address(v)
        except ValueError:
            raise ValueError("Invalid IP address") from None
        return v


class RedeemBody(BaseModel):
    code: str = Field("", max_length=64)


class UserResponse(BaseModel):
    id: str
    username: str
    credits: int


# -----------------------------------------------------------------------------
# App
# -----------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create tables on startup."""
    init_db()
    logger.info("api_started", version=__version__)
    yield
    logger.info("api_stopped")


app = FastAPI(
    title="Lookup Broker API",
    description="Paid identifier lookups: access gate, result cache, credit ledger and audit log.",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(admin_router)


@app.exception_handler(BrokerError)
def broker_error_handler(request: Request, exc: BrokerError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(HTTPException)
def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Consistent JSON error response for HTTPException."""
    return JSONResponse(status_code=exc.status_code, content={"success": False, "message": exc.detail})


@app.exception_handler(RequestValidationError)
def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        message = str(errors[0].get("msg", message)).removeprefix("Value error, ")
    return JSONResponse(status_code=400, content={"success": False, "message": message})


@app.exception_handler(Exception)
def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("api_unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=500, content={"success": False, "message": "Internal server error"})


@app.get("/health")
def health() -> dict[str, str]:
    """Liveness probe: API is up."""
    return {"status": "ok"}


# -----------------------------------------------------------------------------
# User
# -----------------------------------------------------------------------------


@app.get("/api/user", response_model=UserResponse)
def get_user(context: RequestContext = Depends(get_request_context)) -> UserResponse:
    with session_scope() as session:
        principal = PrincipalDirectory().get(session, context.principal_id)
        return UserResponse(
            id=principal.id,
            username=principal.username or principal.email or "Unknown",
            credits=principal.credits,
        )


@app.get("/api/user/history")
def get_history(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1),
    context: RequestContext = Depends(get_request_context),
) -> dict[str, Any]:
    """Own lookup history, newest first. hasMore is true when the page came back full."""
    limit = min(limit, MAX_HISTORY_LIMIT)
    with session_scope() as session:
        rows = AuditLog().history(session, context.principal_id, limit=limit, offset=(page - 1) * limit)
        data = [r.to_dict() for r in rows]
    return {"data": data, "page": page, "limit": limit, "hasMore": len(data) == limit}


@app.post("/api/user/redeem")
def redeem_code(body: RedeemBody, context: RequestContext = Depends(get_request_context)) -> dict[str, Any]:
    with session_scope() as session:
        granted, balance = CreditLedger().redeem(session, body.code, context.principal_id)
    return {
        "success": True,
        "message": f"Successfully redeemed {granted} credits!",
        "credits": balance,
    }


# -----------------------------------------------------------------------------
# Lookups
# -----------------------------------------------------------------------------


def _lookup(
    service: Service,
    query: str,
    context: RequestContext,
    orchestrator: LookupOrchestrator,
) -> dict[str, Any]:
    result = orchestrator.lookup(LookupRequest(context.principal_id, service, query))
    return result.to_payload()


@app.post("/api/services/mobile")
def lookup_mobile(
    body: MobileLookupBody,
    context: RequestContext = Depends(get_request_context),
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return _lookup(Service.MOBILE, body.number, context, orchestrator)


@app.post("/api/services/aadhar")
def lookup_national_id(
    body: NationalIdLookupBody,
    context: RequestContext = Depends(get_request_context),
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return _lookup(Service.NATIONAL_ID, body.number, context, orchestrator)


@app.post("/api/services/vehicle")
def lookup_vehicle(
    body: VehicleLookupBody,
    context: RequestContext = Depends(get_request_context),
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return _lookup(Service.VEHICLE, body.number, context, orchestrator)


@app.post("/api/services/ip")
def lookup_ip(
    body: IpLookupBody,
    context: RequestContext = Depends(get_request_context),
    orchestrator: LookupOrchestrator = Depends(get_orchestrator),
) -> dict[str, Any]:
    return _lookup(Service.IP, body.ip, context, orchestrator)
