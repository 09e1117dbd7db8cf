"""
Principal directory and the per-request context built at the auth boundary.

A principal is created on its first successful authentication with the
signup grant from app settings; later authentications refresh last_ip and
record consent that was newly given. Consent arrives as verified claims in
the RequestContext, never as loose request headers.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger
from lookup_broker.core.exceptions import AccessDenied, PrincipalNotFound
from lookup_broker.database.models import Principal
from lookup_broker.pipeline.access_gate import ORIGIN_RESTRICTED_MESSAGE
from lookup_broker.pipeline.service_settings import ServiceSettings

logger = get_logger(__name__)


@dataclass(frozen=True)
class Consent:
    terms_accepted: bool = False
    privacy_accepted: bool = False


@dataclass(frozen=True)
class RequestContext:
    """Authenticated caller of one HTTP request."""

    principal_id: str
    email: str | None = None
    origin_address: str | None = None
    consent: Consent = field(default_factory=Consent)


class PrincipalDirectory:
    def __init__(self, service_settings: ServiceSettings | None = None) -> None:
        self._service_settings = service_settings or ServiceSettings()

    def get(self, session: Session, principal_id: str) -> Principal:
        principal = session.get(Principal, principal_id)
        if principal is None:
            raise PrincipalNotFound()
        return principal

    def sync(self, session: Session, context: RequestContext) -> Principal:
        """Create or refresh the principal behind an authenticated request."""
        principal = session.get(Principal, context.principal_id)
        if principal is None:
            credits = self._service_settings.signup_credits(session)
            principal = Principal(
                id=context.principal_id,
                email=context.email,
                username=(context.email or "").split("@")[0] or "user",
                credits=credits,
                last_ip=context.origin_address,
                terms_accepted=context.consent.terms_accepted,
                privacy_accepted=context.consent.privacy_accepted,
            )
            session.add(principal)
            session.flush()
            logger.info("principal_created", principal_id=principal.id, credits=credits)
            return principal
        if principal.is_ip_blocked:
            raise AccessDenied(ORIGIN_RESTRICTED_MESSAGE)
        if context.origin_address:
            principal.last_ip = context.origin_address
        if context.consent.terms_accepted:
            principal.terms_accepted = True
        if context.consent.privacy_accepted:
            principal.privacy_accepted = True
        session.flush()
        return principal

    def list_all(self, session: Session) -> list[Principal]:
        return session.query(Principal).order_by(Principal.created_at, Principal.id).all()

    def set_blocked(
        self,
        session: Session,
        principal_id: str,
        *,
        blocked: bool | None = None,
        block_ip: bool | None = None,
    ) -> Principal:
        """Soft-block an account and/or its origin address. None leaves a flag unchanged."""
        principal = self.get(session, principal_id)
        if blocked is not None:
            principal.is_blocked = blocked
        if block_ip is not None:
            principal.is_ip_blocked = block_ip
        session.flush()
        logger.info(
            "principal_block_updated",
            principal_id=principal_id,
            is_blocked=principal.is_blocked,
            is_ip_blocked=principal.is_ip_blocked,
        )
        return principal

    def set_credit_expiry(self, session: Session, principal_id: str, expires_at: int | None) -> Principal:
        principal = self.get(session, principal_id)
        principal.credits_expire_at = expires_at
        session.flush()
        return principal
