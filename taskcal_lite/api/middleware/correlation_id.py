"""Per-request IDs for taskcal_lite log lines and responses.

A client may supply its own ID in ``X-Request-ID`` or ``X-Correlation-ID``.
Supplied IDs longer than 128 characters or containing anything outside
``[A-Za-z0-9._:-]`` are replaced by a fresh UUID so they cannot forge log lines.
"""

import re
import uuid
from collections.abc import Callable, Mapping
from contextvars import ContextVar
from typing import Any

from aiohttp import web

REQUEST_ID_HEADERS = ("X-Request-ID", "X-Correlation-ID")
RESPONSE_HEADER = "X-Request-ID"
NO_REQUEST_ID = "no-request-id"

_VALID_REQUEST_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def resolve_request_id(headers: Mapping[str, str]) -> str:
    """First acceptable client-supplied ID, else a new UUID4 string."""
    for name in REQUEST_ID_HEADERS:
        candidate = (headers.get(name) or "").strip()
        if candidate and _VALID_REQUEST_ID.match(candidate):
            return candidate
    return str(uuid.uuid4())


@web.middleware
async def correlation_id_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    request_id = resolve_request_id(request.headers)
    request["correlation_id"] = request_id

    token = request_id_var.set(request_id)
    try:
        response = await handler(request)
    except web.HTTPException as exc:
        # aiohttp turns raised HTTP errors into responses after the chain unwinds
        exc.headers[RESPONSE_HEADER] = request_id
        raise
    finally:
        request_id_var.reset(token)

    response.headers[RESPONSE_HEADER] = request_id
    return response


def get_request_id() -> str:
    """ID of the request being handled in this context, or "no-request-id"."""
    return request_id_var.get() or NO_REQUEST_ID
