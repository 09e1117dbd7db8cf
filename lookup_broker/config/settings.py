"""
Application settings and environment configuration.

Settings are read from the environment on every get_settings() call so tests
and operators can change them without a restart. Pricing and signup credits
are not here: they live in the app_settings table (see pipeline.service_settings).
"""

from __future__ import annotations

from dataclasses import dataclass

from lookup_broker.config.env import env_float, env_int, env_str, load_broker_env

DEFAULT_MAX_ATTEMPTS = 10
DEFAULT_BACKOFF_SEC = 1.0
DEFAULT_DEADLINE_SEC = 30.0
DEFAULT_REQUEST_TIMEOUT_SEC = 10.0

DEFAULT_MOBILE_API_URL = "https://numinfo.asapiservices.workers.dev/mobile-lookup?key={key}&mobile={query}"
DEFAULT_VEHICLE_API_URL = "https://vehicle-infoo.vercel.app/?rc_number={query}"
DEFAULT_IP_API_URL = (
    "http://ip-api.com/json/{query}?fields=status,message,continent,continentCode,country,"
    "countryCode,region,regionName,city,district,zip,lat,lon,timezone,offset,currency,isp,"
    "org,as,asname,reverse,mobile,proxy,hosting,query"
)
DEFAULT_IP_FALLBACK_API_URL = "https://ipapi.co/{query}/json/"


@dataclass(frozen=True)
class Settings:
    """Process-level configuration for the API server and the lookup pipeline."""

    database_url: str
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    upstream_max_attempts: int = DEFAULT_MAX_ATTEMPTS
    upstream_backoff_sec: float = DEFAULT_BACKOFF_SEC
    upstream_deadline_sec: float = DEFAULT_DEADLINE_SEC
    """Overall budget for one lookup's retry loop; 0 disables the deadline."""
    upstream_request_timeout_sec: float = DEFAULT_REQUEST_TIMEOUT_SEC
    """Timeout for a single provider HTTP call."""

    cache_ttl_sec: int = 0
    """Cached provider results older than this are ignored; 0 keeps them forever."""

    auth_token_secret: str = ""
    admin_api_key: str = ""

    mobile_api_url: str = DEFAULT_MOBILE_API_URL
    mobile_api_key: str = ""
    vehicle_api_url: str = DEFAULT_VEHICLE_API_URL
    ip_api_url: str = DEFAULT_IP_API_URL
    ip_fallback_api_url: str = DEFAULT_IP_FALLBACK_API_URL
    aadhar_api_url: str = ""


def _database_url() -> str:
    """Return BROKER_DB_URL or DATABASE_URL if set; else SQLite from DATABASE_PATH or broker.db."""
    url = env_str("BROKER_DB_URL") or env_str("DATABASE_URL")
    if url:
        return url
    path = env_str("DATABASE_PATH") or "broker.db"
    return f"sqlite:///{path}"


def get_settings() -> Settings:
    """Return the current application settings built from the environment."""
    load_broker_env()
    return Settings(
        database_url=_database_url(),
        api_host=env_str("API_HOST", "0.0.0.0"),
        api_port=env_int("API_PORT", 8000),
        upstream_max_attempts=max(1, env_int("UPSTREAM_MAX_ATTEMPTS", DEFAULT_MAX_ATTEMPTS)),
        upstream_backoff_sec=max(0.0, env_float("UPSTREAM_BACKOFF_SEC", DEFAULT_BACKOFF_SEC)),
        upstream_deadline_sec=max(0.0, env_float("UPSTREAM_DEADLINE_SEC", DEFAULT_DEADLINE_SEC)),
        upstream_request_timeout_sec=env_float("UPSTREAM_REQUEST_TIMEOUT_SEC", DEFAULT_REQUEST_TIMEOUT_SEC),
        cache_ttl_sec=max(0, env_int("CACHE_TTL_SEC", 0)),
        auth_token_secret=env_str("AUTH_TOKEN_SECRET"),
        admin_api_key=env_str("ADMIN_API_KEY"),
        mobile_api_url=env_str("MOBILE_API_URL", DEFAULT_MOBILE_API_URL),
        mobile_api_key=env_str("MOBILE_API_KEY"),
        vehicle_api_url=env_str("VEHICLE_API_URL", DEFAULT_VEHICLE_API_URL),
        ip_api_url=env_str("IP_API_URL", DEFAULT_IP_API_URL),
        ip_fallback_api_url=env_str("IP_FALLBACK_API_URL", DEFAULT_IP_FALLBACK_API_URL),
        aadhar_api_url=env_str("AADHAR_API_URL"),
    )
