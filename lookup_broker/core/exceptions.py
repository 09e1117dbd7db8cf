"""
Application-level exceptions.

Every failure a lookup can end in is a BrokerError subclass carrying its HTTP
status code and a client-visible message. Provider-facing failures are raised
only by the upstream caller; the orchestrator never sees transport exceptions.
"""

from __future__ import annotations

from typing import Any


class BrokerError(Exception):
    """Base class: status_code + message, rendered by to_payload()."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_payload(self) -> dict[str, Any]:
        return {"success": False, "message": self.message}


class PrincipalNotFound(BrokerError):
    status_code = 401
    default_message = "User not found"


class AccessDenied(BrokerError):
    """Account block, origin block or protected query. Never retried, never charged."""

    status_code = 403
    default_message = "Access denied"

    def __init__(self, message: str | None = None, *, reason: str | None = None) -> None:
        super().__init__(message)
        self.reason = reason

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        if self.reason is not None:
            payload["reason"] = self.reason
        return payload


class InsufficientCredits(BrokerError):
    """Balance below service cost. Carries the current balance so the client can prompt a recharge."""

    status_code = 402
    default_message = "Insufficient credits"

    def __init__(self, credits: int, message: str | None = None) -> None:
        super().__init__(message)
        self.credits = credits

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["credits"] = self.credits
        return payload


class ProviderError(BrokerError):
    """Base for classified provider outcomes."""


class ProviderAbsence(ProviderError):
    """Provider affirmatively has no record. Terminal, not retried, not charged."""

    status_code = 404
    default_message = "Data not found"


class ProviderTransient(ProviderError):
    """Retryable provider failure (transport error, non-2xx, embedded internal error)."""

    status_code = 503
    default_message = "Provider temporarily unavailable"


class ProviderOther(ProviderError):
    """Any other embedded provider error. Terminal, shown to the client, not charged."""

    status_code = 400
    default_message = "Provider rejected the request"


class ProviderExhausted(ProviderError):
    """Retries (or the request deadline) ran out without a usable answer."""

    status_code = 500
    default_message = "Failed after maximum retries"

    def __init__(self, message: str | None = None, *, attempts: int) -> None:
        super().__init__(message)
        self.attempts = attempts

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["attempts"] = self.attempts
        return payload


class StorageFailure(BrokerError):
    """Ledger or audit write failed; charging and delivering must not diverge."""

    status_code = 500
    default_message = "Internal server error"


class InvalidRedeemCode(BrokerError):
    status_code = 400
    default_message = "Invalid or already used code"


class InvalidQuery(BrokerError):
    status_code = 400
    default_message = "Invalid query"


class AuthenticationFailed(BrokerError):
    status_code = 401
    default_message = "Unauthorized"


class AdminAccessRequired(BrokerError):
    status_code = 401
    default_message = "Admin access required"
