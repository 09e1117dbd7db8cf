"""
Core cross-cutting pieces shared by the pipeline and the API server.

Holds the exception taxonomy every layer raises and the HTTP layer maps
to status codes.
"""
