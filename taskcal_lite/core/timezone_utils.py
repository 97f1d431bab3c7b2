"""Time helpers for taskcal_lite: UTC normalization, ISO parsing and a test clock."""

from __future__ import annotations

import datetime
import logging
import os

from dateutil import parser as date_parser

logger = logging.getLogger(__name__)

TEST_TIME_ENV = "TASKCAL_TEST_TIME"


def now_utc() -> datetime.datetime:
    """Return current UTC time with tzinfo.

    Can be overridden for testing via TASKCAL_TEST_TIME environment variable.
    Format: ISO 8601 datetime string (e.g., "2024-01-15T12:00:00Z")

    Returns:
        Current time in UTC with timezone info
    """
    test_time = os.environ.get(TEST_TIME_ENV)
    if test_time:
        try:
            return ensure_utc(date_parser.isoparse(test_time))
        except (ValueError, OverflowError) as e:
            logger.warning("Failed to parse %s=%r: %s", TEST_TIME_ENV, test_time, e)

    return datetime.datetime.now(datetime.UTC)


def ensure_utc(dt: datetime.datetime) -> datetime.datetime:
    """Normalize a datetime to aware UTC. Naive values are assumed to already be UTC."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=datetime.UTC)
    return dt.astimezone(datetime.UTC)


def _is_date_only(value: str) -> bool:
    return len(value.strip()) == 10 and "T" not in value


def parse_iso_datetime(value: str, *, end_of_day: bool = False) -> datetime.datetime:
    """Parse an ISO-8601 string into an aware UTC datetime.

    Accepts full timestamps (with 'Z' or an offset) and bare dates. A bare date
    resolves to the start of that day, or to its last microsecond when
    ``end_of_day`` is set, so a query like ``to=2024-01-05`` includes the whole day.

    Raises:
        ValueError: if the value cannot be parsed
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("empty datetime string")

    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, OverflowError) as e:
        raise ValueError(f"Invalid ISO-8601 datetime: {value!r}") from e

    parsed = ensure_utc(parsed)
    if end_of_day and _is_date_only(value):
        parsed = parsed.replace(hour=23, minute=59, second=59, microsecond=999999)
    return parsed


def serialize_iso(dt: datetime.datetime | None) -> str | None:
    """Serialize a datetime to an ISO-8601 UTC string with a 'Z' suffix."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")
