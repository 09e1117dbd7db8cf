"""
requests-based provider callbacks for each lookup service.

URL templates come from settings and carry a {query} placeholder (and {key}
for the mobile provider). Non-2xx responses raise ProviderTransient so the
upstream caller retries them.
"""

from __future__ import annotations

from typing import Any, Callable
from urllib.parse import quote

import requests

from lookup_broker.broker_logging import get_logger, mask_query
from lookup_broker.config.settings import Settings
from lookup_broker.core.exceptions import ProviderTransient
from lookup_broker.pipeline.normalize import Service

logger = get_logger(__name__)

NOT_CONFIGURED_ERROR = "National ID provider is not configured"
MAX_ERROR_BODY_CHARS = 200


def _render(template: str, query: str, **extra: str) -> str:
    url = template.replace("{query}", quote(query, safe=""))
    for name, value in extra.items():
        url = url.replace("{" + name + "}", quote(value, safe=""))
    return url


class HttpProviders:
    def __init__(self, settings: Settings, http: requests.Session | None = None) -> None:
        self._settings = settings
        self._http = http or requests.Session()
        self._timeout = settings.upstream_request_timeout_sec

    def _get(self, url: str) -> requests.Response:
        return self._http.get(url, timeout=self._timeout, headers={"Accept": "application/json"})

    def _get_json(self, label: str, url: str) -> Any:
        r = self._get(url)
        if not r.ok:
            body = (r.text or r.reason or "")[:MAX_ERROR_BODY_CHARS]
            raise ProviderTransient(f"{label} failed: HTTP {r.status_code} {body}".strip())
        return r.json()

    def mobile(self, query: str) -> Any:
        url = _render(self._settings.mobile_api_url, query, key=self._settings.mobile_api_key)
        logger.debug("provider_request", service=Service.MOBILE.value, query=mask_query(query))
        return self._get_json("Mobile API", url)

    def vehicle(self, query: str) -> Any:
        url = _render(self._settings.vehicle_api_url, query)
        logger.debug("provider_request", service=Service.VEHICLE.value, query=mask_query(query))
        return self._get_json("Vehicle API", url)

    def ip(self, query: str) -> Any:
        """ip-api first, then the fallback endpoint if the first answers non-2xx."""
        logger.debug("provider_request", service=Service.IP.value, query=mask_query(query))
        r = self._get(_render(self._settings.ip_api_url, query))
        if r.ok:
            data = r.json()
        else:
            logger.info("provider_ip_fallback", status_code=r.status_code)
            data = self._get_json("IP API", _render(self._settings.ip_fallback_api_url, query))
        if isinstance(data, dict) and data.get("status") == "fail":
            # ip-api reports failures in-band: {"status": "fail", "message": "invalid query"}
            return {"error": data.get("message") or "IP lookup failed"}
        return data

    def national_id(self, query: str) -> Any:
        template = self._settings.aadhar_api_url
        if not template:
            return {"error": NOT_CONFIGURED_ERROR}
        logger.debug("provider_request", service=Service.NATIONAL_ID.value, query=mask_query(query))
        return self._get_json("National ID API", _render(template, query))

    def registry(self) -> dict[Service, Callable[[str], Any]]:
        return {
            Service.MOBILE: self.mobile,
            Service.VEHICLE: self.vehicle,
            Service.IP: self.ip,
            Service.NATIONAL_ID: self.national_id,
        }
