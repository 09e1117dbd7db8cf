"""
Lookup orchestrator: the single entry point for a paid lookup.

Stages, in fixed order:
GATE -> CACHE_CHECK -> CREDIT_CHECK -> UPSTREAM_CALL -> CHARGE_AND_LOG -> DONE

- gate denies: audit DENIED, raise AccessDenied (403)
- cache hit: return the cached payload and the spendable balance; no audit,
  no charge, no upstream call
- balance < cost: audit FAILED_NO_CREDITS, raise InsufficientCredits (402)
- provider absence / other / exhausted: audit NOT_FOUND / PROVIDER_ERROR /
  PROVIDER_EXHAUSTED and re-raise (404 / 400 / 500); never charged
- success: debit and the SUCCESS audit row commit in one transaction, then
  the payload is cached and returned with the updated balance

The service cost is read from app settings on every request.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, ContextManager, Mapping

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from lookup_broker.broker_logging import bind_principal, mask_query
from lookup_broker.core.exceptions import (
    BrokerError,
    InsufficientCredits,
    InvalidQuery,
    PrincipalNotFound,
    ProviderAbsence,
    ProviderExhausted,
    ProviderOther,
    StorageFailure,
)
from lookup_broker.database.models import Principal
from lookup_broker.database.session import session_scope
from lookup_broker.pipeline.access_gate import AccessGate
from lookup_broker.pipeline.audit import AuditLog, AuditStatus
from lookup_broker.pipeline.ledger import CreditLedger
from lookup_broker.pipeline.normalize import Service, normalize_query
from lookup_broker.pipeline.payloads import payload_to_dict
from lookup_broker.pipeline.result_cache import ResultCache
from lookup_broker.pipeline.service_settings import ServiceSettings
from lookup_broker.pipeline.upstream import UpstreamCaller

# One upstream HTTP call for a normalized query
Provider = Callable[[str], Any]

CREDITS_EXPIRED_MESSAGE = "Credits expired"


@dataclass(frozen=True)
class LookupRequest:
    principal_id: str
    service: Service
    query: str
    """Raw query as submitted (already schema-validated)."""


@dataclass(frozen=True)
class LookupResult:
    data: dict[str, Any]
    credits_remaining: int
    cached: bool = False

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": True,
            "data": self.data,
            "creditsRemaining": self.credits_remaining,
        }
        if self.cached:
            payload["cached"] = True
        return payload


class LookupOrchestrator:
    def __init__(
        self,
        providers: Mapping[Service, Provider],
        *,
        caller: UpstreamCaller | None = None,
        gate: AccessGate | None = None,
        cache: ResultCache | None = None,
        ledger: CreditLedger | None = None,
        audit: AuditLog | None = None,
        service_settings: ServiceSettings | None = None,
        sessions: Callable[[], ContextManager[Session]] = session_scope,
    ) -> None:
        self._providers = dict(providers)
        self._caller = caller or UpstreamCaller()
        self._gate = gate or AccessGate()
        self._cache = cache or ResultCache()
        self._ledger = ledger or CreditLedger()
        self._audit = audit or AuditLog(sessions)
        self._service_settings = service_settings or ServiceSettings()
        self._sessions = sessions

    def lookup(self, request: LookupRequest) -> LookupResult:
        service = Service(request.service)
        provider = self._providers.get(service)
        if provider is None:
            raise BrokerError(f"Service {service.value} is not available")
        try:
            query = normalize_query(service, request.query)
        except ValueError as e:
            raise InvalidQuery() from e
        principal_id = request.principal_id
        log = bind_principal(principal_id).bind(service=service.value, query=mask_query(query))

        # GATE, CACHE_CHECK and the inputs of CREDIT_CHECK in one pass
        with self._sessions() as session:
            principal = session.get(Principal, principal_id)
            if principal is None:
                raise PrincipalNotFound()
            decision = self._gate.check_access(session, principal, query)
            cached = self._cache.get(session, service, query) if decision.allowed else None
            cost = self._service_settings.service_cost(session, service)
            balance = int(principal.credits)
            expired = self._ledger.credits_expired(principal)
            available = self._ledger.available_balance(principal)

        if not decision.allowed:
            self._audit.record(
                principal_id, service, request.query, AuditStatus.DENIED, {"denied": decision.kind}
            )
            log.info("lookup_denied", kind=decision.kind)
            decision.raise_if_denied()

        if cached is not None:
            log.info("lookup_cache_hit")
            return LookupResult(data=cached, credits_remaining=available, cached=True)

        if available < cost:
            self._audit.record(principal_id, service, request.query, AuditStatus.FAILED_NO_CREDITS)
            log.info("lookup_insufficient_credits", balance=balance, cost=cost)
            if expired:
                raise InsufficientCredits(0, CREDITS_EXPIRED_MESSAGE)
            raise InsufficientCredits(balance)

        try:
            payload = self._caller.call(lambda: provider(query), service=service, query=query)
        except ProviderAbsence as e:
            self._audit.record(principal_id, service, request.query, AuditStatus.NOT_FOUND, {"error": e.message})
            raise
        except ProviderOther as e:
            self._audit.record(principal_id, service, request.query, AuditStatus.PROVIDER_ERROR, {"error": e.message})
            raise
        except ProviderExhausted as e:
            self._audit.record(
                principal_id,
                service,
                request.query,
                AuditStatus.PROVIDER_EXHAUSTED,
                {"error": e.message, "attempts": e.attempts},
            )
            raise

        data = payload_to_dict(payload)
        remaining = self._charge(principal_id, service, request.query, cost, data, log)

        try:
            with self._sessions() as session:
                self._cache.put(session, service, query, data)
        except SQLAlchemyError as e:
            # cache population is best-effort once the charge has committed
            log.warning("lookup_cache_write_failed", error=str(e))

        log.info("lookup_success", cost=cost, credits_remaining=remaining)
        return LookupResult(data=data, credits_remaining=remaining)

    def _charge(
        self,
        principal_id: str,
        service: Service,
        raw_query: str,
        cost: int,
        data: dict[str, Any],
        log: Any,
    ) -> int:
        """Debit and write the SUCCESS row atomically: both commit or neither does."""
        try:
            with self._sessions() as session:
                remaining = self._ledger.debit(session, principal_id, cost)
                self._audit.append(session, principal_id, service, raw_query, AuditStatus.SUCCESS, data)
        except InsufficientCredits:
            # a concurrent lookup spent the credits after our sufficiency check
            self._audit.record(principal_id, service, raw_query, AuditStatus.FAILED_NO_CREDITS)
            log.info("lookup_charge_lost_race", cost=cost)
            raise
        except SQLAlchemyError as e:
            log.exception("lookup_charge_failed", error=str(e))
            raise StorageFailure() from e
        return remaining
