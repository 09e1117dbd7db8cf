"""
Main entrypoint: lookup broker FastAPI server.

Creates tables, then serves the API with uvicorn in the main thread.

Env: BROKER_DB_URL / DATABASE_URL (or DATABASE_PATH for SQLite), API_HOST, API_PORT,
AUTH_TOKEN_SECRET, ADMIN_API_KEY, provider URLs and keys, etc. (see lookup_broker.config).

Equivalent: uvicorn lookup_broker.api_server.app:app --host 0.0.0.0 --port 8000
"""

import os
import sys

# Configure structured JSON logging before other imports that may log
from lookup_broker.broker_logging import get_logger

logger = get_logger("main")


def main() -> None:
    """Check config, create tables, then run the FastAPI server."""
    from lookup_broker.config import get_settings
    from lookup_broker.database import init_db

    try:
        settings = get_settings()
    except ValueError as e:
        logger.error("main_config_error", message=str(e))
        sys.exit(1)

    if not settings.auth_token_secret:
        logger.warning("main_auth_not_configured", message="AUTH_TOKEN_SECRET is empty; user routes will answer 401")
    if not settings.admin_api_key:
        logger.warning("main_admin_not_configured", message="ADMIN_API_KEY is empty; admin routes are disabled")

    init_db()

    from lookup_broker.api_server.app import app
    import uvicorn

    logger.info("main_server_starting", host=settings.api_host, port=settings.api_port)
    uvicorn.run(app, host=settings.api_host, port=settings.api_port, log_level=os.getenv("LOG_LEVEL", "info").lower())


if __name__ == "__main__":
    main()
