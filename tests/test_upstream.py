"""
Tests for the retrying upstream caller: outcome classification, attempt counts,
backoff waits and the per-request deadline. No DB, no network.
"""

from __future__ import annotations

import pytest

from lookup_broker.core.exceptions import ProviderAbsence, ProviderExhausted, ProviderOther
from lookup_broker.pipeline.payloads import MobileResult
from lookup_broker.pipeline.upstream import RetryPolicy, UpstreamCaller, classify_error


class FakeClock:
    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: list[float] = []

    def time(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def _caller(clock: FakeClock, **policy) -> UpstreamCaller:
    policy.setdefault("max_attempts", 10)
    policy.setdefault("backoff_sec", 1.0)
    policy.setdefault("deadline_sec", 0)
    return UpstreamCaller(RetryPolicy(**policy), sleep=clock.sleep, clock=clock.time)


class Sequence:
    def __init__(self, *outcomes) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self):
        outcome = self.outcomes[min(self.calls, len(self.outcomes) - 1)]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_internal_errors_then_success():
    """Three embedded internal errors, then success: 4 attempts, 3 backoff waits."""
    clock = FakeClock()
    provider = Sequence(
        {"error": "Internal error"},
        {"error": "internal error, try later"},
        {"error": "INTERNAL ERROR"},
        {"name": "Test User", "carrier": "Jio"},
    )
    result = _caller(clock).call(provider, service="mobile", query="9876543210")
    assert isinstance(result, MobileResult)
    assert result.name == "Test User"
    assert provider.calls == 4
    assert clock.sleeps == [1.0, 1.0, 1.0]


def test_not_found_stops_after_one_attempt():
    clock = FakeClock()
    provider = Sequence({"error": "Record not found"})
    with pytest.raises(ProviderAbsence) as exc_info:
        _caller(clock).call(provider, service="vehicle", query="MH12AB1234")
    assert exc_info.value.status_code == 404
    assert provider.calls == 1
    assert clock.sleeps == []


def test_no_data_is_absence():
    provider = Sequence({"error": "No data available for this number"})
    with pytest.raises(ProviderAbsence):
        _caller(FakeClock()).call(provider, service="mobile")
    assert provider.calls == 1


def test_always_raising_exhausts_all_attempts():
    """Transport exceptions are transient; after 10 attempts the last error surfaces with the count."""
    clock = FakeClock()
    provider = Sequence(ConnectionError("connection reset"))
    with pytest.raises(ProviderExhausted) as exc_info:
        _caller(clock).call(provider, service="ip", query="8.8.8.8")
    assert provider.calls == 10
    assert exc_info.value.attempts == 10
    assert exc_info.value.message == "connection reset"
    assert exc_info.value.status_code == 500
    assert exc_info.value.to_payload()["attempts"] == 10
    assert len(clock.sleeps) == 9


def test_other_embedded_error_is_terminal():
    clock = FakeClock()
    provider = Sequence({"error": "Invalid API key"})
    with pytest.raises(ProviderOther) as exc_info:
        _caller(clock).call(provider, service="mobile")
    assert exc_info.value.message == "Invalid API key"
    assert exc_info.value.status_code == 400
    assert provider.calls == 1


def test_server_error_is_retried():
    provider = Sequence({"error": "Server error"}, {"name": "Ok"})
    result = _caller(FakeClock()).call(provider, service="mobile")
    assert result.name == "Ok"
    assert provider.calls == 2


def test_empty_payload_is_retried():
    provider = Sequence({}, None, {"name": "Ok"})
    result = _caller(FakeClock()).call(provider, service="mobile")
    assert result.name == "Ok"
    assert provider.calls == 3


def test_callback_terminal_errors_pass_through():
    provider = Sequence(ProviderAbsence())
    with pytest.raises(ProviderAbsence):
        _caller(FakeClock()).call(provider, service="mobile")
    assert provider.calls == 1


def test_malformed_payload_is_terminal():
    provider = Sequence("plain text body")
    with pytest.raises(ProviderOther, match="Malformed provider response"):
        _caller(FakeClock()).call(provider, service="mobile")
    assert provider.calls == 1


def test_list_payload_kept_under_records():
    provider = Sequence([{"name": "A"}, {"name": "B"}])
    result = _caller(FakeClock()).call(provider, service="mobile")
    assert [r.name for r in result.records] == ["A", "B"]


def test_numeric_fields_do_not_fail_a_lookup():
    provider = Sequence({"name": "Test User", "carrier": 12345, "mobile": 9876543210})
    result = _caller(FakeClock()).call(provider, service="mobile")
    assert result.mobile == "9876543210"
    assert provider.calls == 1


def test_deadline_stops_retries_early():
    """With a 3.5s budget and 1s backoff, the loop gives up before the fifth wait."""
    clock = FakeClock()
    provider = Sequence(TimeoutError("read timeout"))
    with pytest.raises(ProviderExhausted) as exc_info:
        _caller(clock, deadline_sec=3.5).call(provider, service="mobile")
    assert exc_info.value.attempts == 4
    assert provider.calls == 4
    assert clock.sleeps == [1.0, 1.0, 1.0]


def test_zero_backoff_still_counts_waits():
    clock = FakeClock()
    provider = Sequence({"error": "internal error"}, {"name": "Ok"})
    _caller(clock, backoff_sec=0.0).call(provider, service="mobile")
    assert clock.sleeps == [0.0]


def test_classify_error():
    assert classify_error("Data Not Found") is ProviderAbsence
    assert classify_error("internal error") is not ProviderOther
    assert classify_error("quota exceeded") is ProviderOther
    assert classify_error("") is ProviderOther
