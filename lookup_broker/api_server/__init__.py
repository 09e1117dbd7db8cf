"""
API server package: HTTP interface to the lookup pipeline.

Authenticates callers into a RequestContext, validates lookup bodies per
service, delegates to LookupOrchestrator and maps BrokerError subclasses to
HTTP status codes. Admin endpoints live in api_server.admin.
"""
