"""
Access gate: decides whether a principal may look up a query at all.

Checked in this order, before any cache read or credit logic:
account block, origin (IP) block, protection record for the query.
A protected query is refused even when a cached answer exists.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy.orm import Session

from lookup_broker.broker_logging import get_logger
from lookup_broker.core.exceptions import AccessDenied
from lookup_broker.database.models import Principal, ProtectionRecord
from lookup_broker.pipeline.normalize import normalize_identifier

logger = get_logger(__name__)

ACCOUNT_RESTRICTED_MESSAGE = "Your account is restricted. Contact admin to resolve."
ORIGIN_RESTRICTED_MESSAGE = "Your IP is restricted. Contact admin to resolve."
PROTECTED_MESSAGE = "This number is protected"
DEFAULT_PROTECTION_REASON = "Restricted record"


@dataclass(frozen=True)
class AccessDecision:
    allowed: bool
    kind: str | None = None
    """account | origin | protected when denied."""
    message: str | None = None
    reason: str | None = None

    def raise_if_denied(self) -> None:
        if not self.allowed:
            raise AccessDenied(self.message, reason=self.reason)


ALLOWED = AccessDecision(allowed=True)


class AccessGate:
    """Read-only admission checks plus the protection-record registry operators manage."""

    def check_access(self, session: Session, principal: Principal, normalized_query: str) -> AccessDecision:
        if principal.is_blocked:
            return AccessDecision(False, "account", ACCOUNT_RESTRICTED_MESSAGE)
        if self._origin_blocked(session, principal):
            return AccessDecision(False, "origin", ORIGIN_RESTRICTED_MESSAGE)
        record = self._protection_for(session, normalized_query)
        if record is not None:
            return AccessDecision(
                False,
                "protected",
                PROTECTED_MESSAGE,
                reason=record.reason or DEFAULT_PROTECTION_REASON,
            )
        return ALLOWED

    def _origin_blocked(self, session: Session, principal: Principal) -> bool:
        """Own IP flag, or any principal last seen from the same address with its IP blocked."""
        if principal.is_ip_blocked:
            return True
        if not principal.last_ip:
            return False
        blocked = (
            session.query(Principal.id)
            .filter(Principal.last_ip == principal.last_ip, Principal.is_ip_blocked.is_(True))
            .first()
        )
        return blocked is not None

    def _protection_for(self, session: Session, normalized_query: str) -> ProtectionRecord | None:
        key = normalize_identifier(normalized_query)
        return session.query(ProtectionRecord).filter(ProtectionRecord.number == key).first()

    # --- protection registry ---

    def protect(self, session: Session, number: str, reason: str | None = None) -> bool:
        """Add a protection record. Returns False if the number was already protected."""
        key = normalize_identifier(number)
        if not key:
            raise ValueError("number must be non-empty")
        if self._protection_for(session, key) is not None:
            return False
        session.add(ProtectionRecord(number=key, reason=(reason or "").strip() or None))
        session.flush()
        logger.info("protection_added", number_len=len(key))
        return True

    def unprotect(self, session: Session, number: str) -> bool:
        key = normalize_identifier(number)
        removed = session.query(ProtectionRecord).filter(ProtectionRecord.number == key).delete()
        logger.info("protection_removed", removed=removed)
        return removed > 0

    def list_protected(self, session: Session) -> list[ProtectionRecord]:
        return session.query(ProtectionRecord).order_by(ProtectionRecord.id).all()
