"""Request plumbing shared by every router."""

from alfred_api.core.correlation import correlator, generate_request_id, get_correlation_id, get_request_id
from alfred_api.core.exceptions import create_error_response, setup_exception_handlers
from alfred_api.core.logging import LogContext, get_logger, setup_logging
from alfred_api.core.middleware import setup_middlewares

__all__ = [
    "correlator",
    "generate_request_id",
    "get_correlation_id",
    "get_request_id",
    "create_error_response",
    "setup_exception_handlers",
    "LogContext",
    "get_logger",
    "setup_logging",
    "setup_middlewares",
]
