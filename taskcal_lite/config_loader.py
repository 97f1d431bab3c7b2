"""taskcal_lite.config_loader

Config file loader for taskcal_lite.

- Reads YAML (PyYAML ``safe_load``) or JSON, chosen by file suffix.
- Exposes a typed dataclass `Config` and a `load_config()` helper that accepts
  an optional path override.
"""

from __future__ import annotations

import json
import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

import yaml

logger = logging.getLogger(__name__)


@dataclass
class Config:
    """Typed configuration for taskcal_lite.

    Fields:
        server_bind: host to bind the HTTP server to
        server_port: port for the HTTP server
        tasks_path: JSON file backing the task store
        log_level: logging level name
        api_bearer_token: optional bearer token required on /api routes
        default_user_id: user assumed when a request has no X-User-Id header
        reminder_minutes_before: reminder look-ahead window (1..1440)
        reminder_scan_interval_seconds: seconds between reminder scans (10..3600)
        max_occurrences_per_task: expansion cap per task per request (1..365)
        max_tasks_per_calendar_request: candidate tasks expanded per calendar call
        debug_logging: enable debug logging for taskcal_lite modules
    """

    server_bind: str = "0.0.0.0"  # nosec: B104 - default for local use; override via config/env
    server_port: int = 8080
    tasks_path: str = "./taskcal_tasks.json"
    log_level: str = "INFO"
    api_bearer_token: str | None = None
    default_user_id: str = "default"
    reminder_minutes_before: int = 15
    reminder_scan_interval_seconds: int = 60
    max_occurrences_per_task: int = 365
    max_tasks_per_calendar_request: int = 500
    debug_logging: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Config:
        """Create Config from a plain mapping, applying defaults and validation.

        Numeric-like values are coerced to int and clamped into their allowed
        range, with a warning logged for every coercion.
        """
        if data is None:
            data = {}

        def _coerce_int(key: str, default: int, low: int, high: int) -> int:
            raw = data.get(key, default)
            try:
                value = int(raw)
            except (TypeError, ValueError):
                logger.warning("Config %s=%r is not an int; using default %d", key, raw, default)
                return default
            if value < low:
                logger.warning("%s %d below minimum; coercing to %d", key, value, low)
                return low
            if value > high:
                logger.warning("%s %d above maximum; coercing to %d", key, value, high)
                return high
            return value

        def _coerce_str(key: str, default: str) -> str:
            raw = data.get(key, default)
            return str(raw) if raw not in (None, "") else default

        token = data.get("api_bearer_token")
        debug = data.get("debug_logging", False)
        if isinstance(debug, str):
            debug = debug.strip().lower() in ("1", "true", "yes", "on")

        return cls(
            server_bind=_coerce_str("server_bind", "0.0.0.0"),  # nosec: B104
            server_port=_coerce_int("server_port", 8080, 1, 65535),
            tasks_path=_coerce_str("tasks_path", "./taskcal_tasks.json"),
            log_level=_coerce_str("log_level", "INFO").upper(),
            api_bearer_token=str(token) if token else None,
            default_user_id=_coerce_str("default_user_id", "default"),
            reminder_minutes_before=_coerce_int("reminder_minutes_before", 15, 1, 1440),
            reminder_scan_interval_seconds=_coerce_int(
                "reminder_scan_interval_seconds", 60, 10, 3600
            ),
            max_occurrences_per_task=_coerce_int("max_occurrences_per_task", 365, 1, 365),
            max_tasks_per_calendar_request=_coerce_int(
                "max_tasks_per_calendar_request", 500, 1, 10000
            ),
            debug_logging=bool(debug),
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def _load_yaml_or_json(path: Path) -> Any:
    """Load a mapping from a YAML or JSON file. Empty YAML files load as {}."""
    text = path.read_text(encoding="utf-8")
    if path.suffix.lower() == ".json":
        return json.loads(text)
    loaded = yaml.safe_load(text)
    return {} if loaded is None else loaded


def load_config(path: str | None = None) -> Config:
    """Load configuration from a YAML/JSON file and return a Config instance.

    Args:
        path: Optional path to the config file. Defaults to ./taskcal.yaml.

    Returns:
        Config dataclass instance with values from file (or defaults).

    Behavior:
    - If file is missing: returns Config() with defaults.
    - If file exists but top-level is not a mapping: raises ValueError.
    """
    p = Path(path) if path else Path.cwd() / "taskcal.yaml"
    logger.debug("Attempting to load config from %s", p)
    if not p.exists():
        logger.info("Config file %s not found; using defaults", p)
        return Config()

    raw = _load_yaml_or_json(p)
    if not isinstance(raw, dict):
        logger.warning("Config file %s parsed but top-level is not a mapping: %r", p, raw)
        raise ValueError("Config file must contain a mapping at top level")  # noqa: TRY004
    cfg = Config.from_dict(raw)
    logger.info("Loaded configuration from %s", p)
    return cfg
