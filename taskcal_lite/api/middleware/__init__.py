"""Middleware components for request processing.

Correlation ID tracking, error-to-JSON translation and optional bearer-token
authentication.
"""

from .auth import make_auth_middleware
from .correlation_id import correlation_id_middleware, get_request_id
from .error_handler import error_middleware

__all__ = [
    "correlation_id_middleware",
    "error_middleware",
    "get_request_id",
    "make_auth_middleware",
]
