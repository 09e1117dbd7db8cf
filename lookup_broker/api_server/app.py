"""
FastAPI/ASGI application entrypoint.

Run with: uvicorn lookup_broker.api_server.app:app --host 0.0.0.0 --port 8000
"""

from lookup_broker.api_server.server import app

__all__ = ["app"]
