"""Error-handling middleware mapping taskcal_lite exceptions to JSON responses.

Error bodies have the shape::

    {"error": {"code": "...", "message": "...", "details": [...]}}

``details`` is only present for validation errors.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from aiohttp import web
from pydantic import ValidationError

from ...domain.exceptions import (
    AuthenticationError,
    NotFoundError,
    TagExistsError,
    TaskValidationError,
)

logger = logging.getLogger(__name__)


def error_response(
    status: int, code: str, message: str, details: list[dict[str, Any]] | None = None
) -> web.Response:
    """Build a JSON error response."""
    body: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        body["details"] = details
    return web.json_response({"error": body}, status=status)


def validation_details(exc: ValidationError) -> list[dict[str, Any]]:
    """Flatten pydantic errors into ``[{"path": "a.b", "message": "..."}]``."""
    return [
        {"path": ".".join(str(part) for part in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


@web.middleware
async def error_middleware(
    request: web.Request, handler: Callable[[web.Request], Any]
) -> web.StreamResponse:
    """Translate domain and validation exceptions raised by handlers."""
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as exc:
        return error_response(400, "VALIDATION_ERROR", "Validation failed", validation_details(exc))
    except TaskValidationError as exc:
        return error_response(400, "VALIDATION_ERROR", exc.message, exc.details)
    except TagExistsError as exc:
        return error_response(400, "TAG_EXISTS", str(exc))
    except NotFoundError as exc:
        return error_response(404, "NOT_FOUND", exc.message)
    except AuthenticationError as exc:
        return error_response(401, "UNAUTHORIZED", str(exc) or "Unauthorized")
    except Exception:
        logger.exception("Unhandled error processing %s %s", request.method, request.path)
        return error_response(500, "INTERNAL_ERROR", "Internal server error")
