"""
Outbound provider callbacks: one HTTP call per invocation.

Retrying and classification happen in pipeline.upstream; a callback only
fetches, raises on transport failure, and reports provider-side errors as an
embedded "error" field.
"""

from lookup_broker.providers.http_providers import HttpProviders

__all__ = ["HttpProviders"]
