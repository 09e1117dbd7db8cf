"""
Lookup Broker: paid identifier lookups against external data providers.

Authenticated principals submit a phone number, vehicle registration, IP address
or national-ID number; the broker gates the request, serves cached answers,
calls the upstream provider with bounded retries, debits credits and records
an audit trail.
"""

__version__ = "0.1.0"
