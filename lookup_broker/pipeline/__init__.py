"""
Gated lookup pipeline.

access gate -> result cache -> credit check -> retrying upstream caller ->
ledger debit + audit log. LookupOrchestrator composes the stages and is the
only entry point the HTTP layer calls for a lookup.
"""

from lookup_broker.pipeline.access_gate import AccessDecision, AccessGate
from lookup_broker.pipeline.audit import AuditLog, AuditStatus
from lookup_broker.pipeline.ledger import CreditLedger
from lookup_broker.pipeline.normalize import Service, normalize_query
from lookup_broker.pipeline.orchestrator import LookupOrchestrator, LookupRequest, LookupResult
from lookup_broker.pipeline.principals import Consent, PrincipalDirectory, RequestContext
from lookup_broker.pipeline.result_cache import ResultCache
from lookup_broker.pipeline.service_settings import ServiceSettings
from lookup_broker.pipeline.upstream import RetryPolicy, UpstreamCaller

__all__ = [
    "AccessDecision",
    "AccessGate",
    "AuditLog",
    "AuditStatus",
    "Consent",
    "CreditLedger",
    "LookupOrchestrator",
    "LookupRequest",
    "LookupResult",
    "PrincipalDirectory",
    "RequestContext",
    "ResultCache",
    "RetryPolicy",
    "Service",
    "ServiceSettings",
    "UpstreamCaller",
    "normalize_query",
]
