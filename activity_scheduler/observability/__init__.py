"""
Observability Module

Structured logging and request/run correlation ids.
"""

from .context import RequestContext, generate_request_id, get_operation, get_request_id
from .logging import (
    CorrelationIdMiddleware,
    HumanFormatter,
    JSONFormatter,
    configure_logging,
)

__all__ = [
    "CorrelationIdMiddleware",
    "HumanFormatter",
    "JSONFormatter",
    "RequestContext",
    "configure_logging",
    "generate_request_id",
    "get_operation",
    "get_request_id",
]
