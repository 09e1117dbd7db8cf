"""
Tests for query normalization and provider payload parsing.
"""

from __future__ import annotations

import pytest

from lookup_broker.pipeline.normalize import Service, normalize_identifier, normalize_query
from lookup_broker.pipeline.payloads import (
    PAYLOAD_MODELS,
    IpResult,
    MobileResult,
    VehicleResult,
    parse_payload,
    payload_to_dict,
)


def test_equivalent_formats_share_a_key():
    assert normalize_query(Service.MOBILE, "98765 43210") == "9876543210"
    assert normalize_query(Service.MOBILE, "98765-43210") == "9876543210"
    assert normalize_query(Service.MOBILE, "+9876543210") == "9876543210"
    assert normalize_query("vehicle", " mh-12 ab_1234 ") == "MH12AB1234"


def test_ip_dots_are_kept():
    assert normalize_query(Service.IP, "1.23.4.5") != normalize_query(Service.IP, "12.3.4.5")


def test_normalized_query_is_fixed_point():
    query = normalize_query(Service.VEHICLE, "ka 01 xy 9999")
    assert normalize_identifier(query) == query


def test_empty_query_rejected():
    with pytest.raises(ValueError):
        normalize_query(Service.MOBILE, " + ")


def test_unknown_service():
    with pytest.raises(ValueError):
        normalize_query("weather", "London")


def test_parse_payload_keeps_provider_data_as_sent():
    """Unknown keys, nulls and a provider's own 'service' key come back unchanged; no tag is added."""
    raw = {"name": "X", "alt": None, "service": "numinfo-v2", "carrier": "Jio"}
    assert payload_to_dict(parse_payload(Service.MOBILE, raw)) == raw


def test_parse_payload_coerces_numbers_to_text():
    payload = parse_payload(Service.MOBILE, {"name": "Test User", "mobile": 9876543210, "carrier": 12345})
    assert isinstance(payload, MobileResult)
    assert payload.mobile == "9876543210"
    assert payload_to_dict(payload)["carrier"] == 12345


def test_mobile_record_arrays():
    raw = {"result": [{"name": "A", "father_name": "B", "circle": "KOLKATA", "id_number": 42}]}
    payload = parse_payload(Service.MOBILE, raw)
    assert payload.result[0].father_name == "B"
    assert payload.result[0].id_number == "42"
    assert payload_to_dict(payload) == {
        "result": [{"name": "A", "father_name": "B", "circle": "KOLKATA", "id_number": "42"}]
    }


def test_top_level_list_kept_under_records():
    payload = parse_payload(Service.MOBILE, [{"name": "A"}, {"name": "B"}])
    assert payload_to_dict(payload) == {"records": [{"name": "A"}, {"name": "B"}]}


def test_vehicle_payload_passthrough():
    payload = parse_payload(Service.VEHICLE, {"rc_number": "MH12AB1234", "owner_name": "X", "fuel": "PETROL"})
    assert isinstance(payload, VehicleResult)
    assert payload_to_dict(payload) == {"rc_number": "MH12AB1234", "owner_name": "X", "fuel": "PETROL"}


def test_ip_payloads_from_both_providers():
    primary = parse_payload("ip", {"query": "8.8.8.8", "status": "success", "country": "US", "lat": 37.4})
    assert isinstance(primary, IpResult)
    assert payload_to_dict(primary)["query"] == "8.8.8.8"
    fallback = parse_payload("ip", {"ip": "8.8.8.8", "country_name": "United States", "latitude": 37.4})
    assert payload_to_dict(fallback) == {"ip": "8.8.8.8", "country_name": "United States", "latitude": 37.4}


def test_every_service_has_a_model():
    assert set(PAYLOAD_MODELS) == set(Service)
    assert parse_payload(Service.NATIONAL_ID, {"state": "MH"}).model_dump() == {"state": "MH"}



def test_parse_payload_rejects_bad_shapes():
    with pytest.raises(ValueError):
        parse_payload(Service.MOBILE, "text")
    with pytest.raises(ValueError):
        parse_payload(Service.IP, {"lat": "not a number"})
