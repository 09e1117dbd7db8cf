"""
Lookup services and query normalization.

The same identifier must produce the same cache key and protection match no
matter how the client formatted it ("98765 43210", "98765-43210", "9876543210").
"""

from __future__ import annotations

import re
from enum import Enum


class Service(str, Enum):
    """Lookup kinds the broker sells. Values double as cost-table keys and URL segments."""

    MOBILE = "mobile"
    VEHICLE = "vehicle"
    IP = "ip"
    NATIONAL_ID = "aadhar"


_SEPARATORS = re.compile(r"[\s\-_]+")


def normalize_identifier(raw: str) -> str:
    """Service-agnostic form: no whitespace, dashes or underscores; upper-case."""
    return _SEPARATORS.sub("", raw or "").upper()


def normalize_query(service: Service | str, raw: str) -> str:
    """
    Normalize a raw query for the given service.

    Always a fixed point of normalize_identifier, so protection records match
    across services. Raises ValueError when nothing is left.
    """
    service = Service(service)
    raw = (raw or "").strip()
    if service is Service.MOBILE:
        raw = raw.lstrip("+")
    query = normalize_identifier(raw)
    if not query:
        raise ValueError("query must be non-empty")
    return query
