"""Request parsing helpers shared by the route modules."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any, Optional

from ..core.config_manager import get_config_value
from ..core.timezone_utils import parse_iso_datetime
from ..domain.exceptions import TaskValidationError

logger = logging.getLogger(__name__)

USER_HEADER = "X-User-Id"


def get_user_id(request: Any, config: Any) -> str:
    """Acting user: X-User-Id header, else the configured default user."""
    user_id = request.headers.get(USER_HEADER, "").strip()
    return user_id or str(get_config_value(config, "default_user_id", "default"))


def _parse_query_datetime(request: Any, name: str, *, end_of_day: bool) -> Optional[datetime]:
    raw = request.query.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return parse_iso_datetime(raw, end_of_day=end_of_day)
    except ValueError:
        raise TaskValidationError(
            "Invalid query parameters",
            [{"path": name, "message": "Expected an ISO-8601 date or datetime"}],
        ) from None


def parse_window(
    request: Any, *, required: bool = True
) -> tuple[Optional[datetime], Optional[datetime]]:
    """Read the ``from``/``to`` query window.

    A date-only ``to`` covers the whole day. When ``required`` is set, a
    missing bound is a validation error.
    """
    window_start = _parse_query_datetime(request, "from", end_of_day=False)
    window_end = _parse_query_datetime(request, "to", end_of_day=True)

    if required:
        missing = [
            {"path": name, "message": "Required"}
            for name, value in (("from", window_start), ("to", window_end))
            if value is None
        ]
        if missing:
            raise TaskValidationError("from and to query parameters are required", missing)
    return window_start, window_end


def parse_int_param(request: Any, name: str, *, minimum: int = 1) -> Optional[int]:
    raw = request.query.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        value = int(raw)
    except ValueError:
        value = minimum - 1
    if value < minimum:
        raise TaskValidationError(
            "Invalid query parameters",
            [{"path": name, "message": f"Expected an integer >= {minimum}"}],
        )
    return value


async def read_json_object(request: Any) -> dict[str, Any]:
    """Parse the request body as a JSON object."""
    try:
        data = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise TaskValidationError("Request body must be valid JSON") from None
    if not isinstance(data, dict):
        raise TaskValidationError("Request body must be a JSON object")
    return data
