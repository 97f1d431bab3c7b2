"""Optional bearer-token authentication for /api routes."""

from __future__ import annotations

import secrets
from collections.abc import Callable
from typing import Any

from aiohttp import web

from ...domain.exceptions import AuthenticationError

# Paths reachable without a token (health checks).
PUBLIC_PATHS = frozenset({"/api/health"})


def check_bearer_token(request: Any, required_token: str | None) -> bool:
    """Check if request has valid bearer token.

    Args:
        request: aiohttp request object
        required_token: Expected bearer token, or None to skip auth

    Returns:
        True if auth is valid or not required, False otherwise
    """
    if required_token is None:
        return True

    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return False
    return secrets.compare_digest(auth_header[len("Bearer ") :], required_token)


def make_auth_middleware(required_token: str | None) -> Callable[..., Any]:
    """Build middleware enforcing ``Authorization: Bearer <token>`` on /api routes."""

    @web.middleware
    async def auth_middleware(
        request: web.Request, handler: Callable[[web.Request], Any]
    ) -> web.StreamResponse:
        if (
            required_token is not None
            and request.path.startswith("/api/")
            and request.path not in PUBLIC_PATHS
            and not check_bearer_token(request, required_token)
        ):
            raise AuthenticationError("Missing or invalid bearer token")
        return await handler(request)

    return auth_middleware
