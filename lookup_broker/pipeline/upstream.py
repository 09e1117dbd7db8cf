"""
Retrying upstream caller: invokes one provider callback with bounded retries
and classifies the outcome.

Classification of a single attempt:
- callback raises (network failure, non-2xx, bad JSON): transient, retried;
- payload carries an "error" mentioning "not found" / "no data": absence,
  stop at once (404);
- "internal error" / "server error": transient, retried;
- any other embedded error: terminal, shown to the client (400).
Transient failures wait a fixed backoff between attempts. Running out of
attempts, or of the per-request deadline, raises ProviderExhausted with the
last error and the attempt count. Nothing else escapes: the orchestrator only
ever sees the classified exceptions from core.exceptions.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel

from lookup_broker.broker_logging import get_logger, mask_query
from lookup_broker.config.settings import (
    DEFAULT_BACKOFF_SEC,
    DEFAULT_DEADLINE_SEC,
    DEFAULT_MAX_ATTEMPTS,
    Settings,
)
from lookup_broker.core.exceptions import (
    ProviderAbsence,
    ProviderError,
    ProviderExhausted,
    ProviderOther,
    ProviderTransient,
)
from lookup_broker.pipeline.normalize import Service
from lookup_broker.pipeline.payloads import parse_payload

logger = get_logger(__name__)

ProviderFn = Callable[[], Any]

ABSENCE_MARKERS = ("not found", "no data")
TRANSIENT_MARKERS = ("internal error", "server error")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_sec: float = DEFAULT_BACKOFF_SEC
    deadline_sec: float = DEFAULT_DEADLINE_SEC
    """Overall budget for one call(); 0 disables it."""

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.upstream_max_attempts,
            backoff_sec=settings.upstream_backoff_sec,
            deadline_sec=settings.upstream_deadline_sec,
        )


def classify_error(error_text: str) -> type[ProviderError]:
    """Map an embedded provider error message to its failure class."""
    text = (error_text or "").lower()
    if any(marker in text for marker in ABSENCE_MARKERS):
        return ProviderAbsence
    if any(marker in text for marker in TRANSIENT_MARKERS):
        return ProviderTransient
    return ProviderOther


def embedded_error(data: Any) -> str | None:
    """Return the provider's embedded error text, if the payload carries one."""
    if isinstance(data, dict):
        error = data.get("error")
        if error:
            return str(error)
    return None


class UpstreamCaller:
    def __init__(
        self,
        policy: RetryPolicy | None = None,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._clock = clock

    def call(self, provider_fn: ProviderFn, *, service: Service | str, query: str = "") -> BaseModel:
        """Run provider_fn until it succeeds or fails terminally; return the parsed payload."""
        service = Service(service)
        log = logger.bind(service=service.value, query=mask_query(query))
        policy = self.policy
        started = self._clock()
        attempts = 0
        last_error: str | None = None

        while attempts < policy.max_attempts:
            attempts += 1
            try:
                data = provider_fn()
            except (ProviderAbsence, ProviderOther):
                # callback already classified the answer as terminal
                raise
            except Exception as e:
                last_error = str(e) or e.__class__.__name__
                log.warning("upstream_attempt_exception", attempt=attempts, error=last_error)
            else:
                error = embedded_error(data)
                if error is None and data:
                    try:
                        payload = parse_payload(service, data)
                    except ValueError as e:
                        log.warning("upstream_payload_invalid", attempt=attempts, error=str(e))
                        raise ProviderOther("Malformed provider response") from e
                    log.info("upstream_success", attempts=attempts)
                    return payload
                if error is None:
                    last_error = "Empty provider response"
                    log.warning("upstream_attempt_empty", attempt=attempts)
                else:
                    kind = classify_error(error)
                    if kind is ProviderAbsence:
                        log.info("upstream_not_found", attempts=attempts)
                        raise ProviderAbsence(error)
                    if kind is ProviderOther:
                        log.info("upstream_rejected", attempts=attempts, error=error)
                        raise ProviderOther(error)
                    last_error = error
                    log.warning("upstream_attempt_transient", attempt=attempts, error=error)

            if attempts >= policy.max_attempts:
                break
            if policy.deadline_sec and self._clock() - started + policy.backoff_sec > policy.deadline_sec:
                log.warning("upstream_deadline_exceeded", attempts=attempts, deadline_sec=policy.deadline_sec)
                break
            self._sleep(policy.backoff_sec)

        log.error("upstream_exhausted", attempts=attempts, error=last_error)
        raise ProviderExhausted(last_error, attempts=attempts)
