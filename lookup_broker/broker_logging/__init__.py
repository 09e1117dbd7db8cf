"""
Structured logging for the lookup broker.

JSON logs with timestamp, event_type, principal_id and service context.
Use get_logger() in every module for aggregation-friendly output.
"""

from lookup_broker.broker_logging.logger import bind_principal, get_logger, mask_query

__all__ = ["bind_principal", "get_logger", "mask_query"]
