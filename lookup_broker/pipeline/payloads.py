"""
Provider payloads, one pydantic model per service.

Provider responses are loosely shaped. They are parsed once, at the upstream
caller boundary, into the model registered for their service (the service is
the tag of the union; it is never written into the payload). Parsing only
checks shape: unknown keys are kept as they came, nulls stay null, numbers
sent where text is expected become text, and the dumped dict carries exactly
the keys the provider sent.

Observed shapes:
- mobile: records under "result", "data" or "records", or one record at the
  top level (name, mobile, address, father_name, id_number, circle)
- ip: ip-api.com ("query", "status", "country", "lat", ...) or the ipapi.co
  fallback ("ip", "country_name", "latitude", ...)
- vehicle: keyed by rc_number
- national ID: no fixed shape
"""

from __future__ import annotations

from typing import Any, ClassVar, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from lookup_broker.pipeline.normalize import Service


class _ProviderResult(BaseModel):
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    kind: ClassVar[Service]


class MobileRecord(_ProviderResult):
    kind: ClassVar[Service] = Service.MOBILE

    name: str | None = None
    mobile: str | None = None
    address: str | None = None
    father_name: str | None = None
    id_number: str | None = None
    circle: str | None = None


class MobileResult(MobileRecord):
    result: list[MobileRecord] | None = None
    data: list[MobileRecord] | None = None
    records: list[MobileRecord] | None = None


class VehicleResult(_ProviderResult):
    kind: ClassVar[Service] = Service.VEHICLE

    rc_number: str | None = None


class IpResult(_ProviderResult):
    kind: ClassVar[Service] = Service.IP

    query: str | None = None
    ip: str | None = None
    status: str | None = None
    country: str | None = None
    city: str | None = None
    isp: str | None = None
    lat: float | None = None
    lon: float | None = None


class NationalIdResult(_ProviderResult):
    kind: ClassVar[Service] = Service.NATIONAL_ID


ProviderPayload = Union[MobileResult, VehicleResult, IpResult, NationalIdResult]

PAYLOAD_MODELS: dict[Service, type[_ProviderResult]] = {
    model.kind: model for model in (MobileResult, VehicleResult, IpResult, NationalIdResult)
}


def parse_payload(service: Service | str, raw: Any) -> ProviderPayload:
    """
    Parse a successful provider response into its service model.

    A top-level JSON list is kept under "records". Raises ValueError for
    anything that is not a JSON object or list, or that does not fit the model.
    """
    model = PAYLOAD_MODELS[Service(service)]
    if isinstance(raw, list):
        raw = {"records": raw}
    if not isinstance(raw, dict):
        raise ValueError(f"unexpected provider response type: {type(raw).__name__}")
    try:
        return model.model_validate(raw)
    except ValidationError as e:
        raise ValueError(f"malformed provider response: {e.error_count()} invalid field(s)") from e


def payload_to_dict(payload: BaseModel) -> dict[str, Any]:
    """JSON-safe dict used for responses, cache entries and audit rows."""
    return payload.model_dump(mode="json", exclude_unset=True)
