"""Environment-driven configuration for the taskcal_lite server."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


def parse_env_file(path: Path) -> dict[str, str]:
    """Parse a .env file and return key-value pairs.

    Args:
        path: Path to .env file

    Returns:
        Dictionary of key-value pairs from the .env file.
        Empty dict if file doesn't exist or cannot be read.

    Note:
        - Skips empty lines and comments (lines starting with #)
        - Strips quotes (both single and double) from values
        - Accepts an optional leading ``export``
    """
    if not path.exists():
        return {}

    result: dict[str, str] = {}
    try:
        content = path.read_text(encoding="utf-8")
    except OSError:
        logger.debug("Failed to read .env file (continuing): %s", str(path), exc_info=True)
        return result

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        if line.startswith("export "):
            line = line[len("export ") :]

        key, val = line.split("=", 1)
        key = key.strip()
        val = val.strip().strip('"').strip("'")
        if key:
            result[key] = val

    return result


def _env_int(cfg: dict[str, Any], key: str, *names: str) -> None:
    for name in names:
        raw = os.environ.get(name)
        if not raw:
            continue
        try:
            cfg[key] = int(raw)
        except ValueError:
            logger.warning("Invalid %s=%r; ignoring", name, raw)
        return


class ConfigManager:
    """Loads configuration from environment variables and an optional .env file."""

    def __init__(self, env_file_path: Path | None = None):
        """Initialize configuration manager.

        Args:
            env_file_path: Optional path to .env file (defaults to .env in current directory)
        """
        self.env_file_path = env_file_path or Path.cwd() / ".env"

    def load_env_file(self) -> list[str]:
        """Load .env file into the process environment.

        Variables already present in the environment are left alone.

        Returns:
            List of environment variable keys that were loaded from .env file
        """
        if not self.env_file_path.exists():
            logger.debug("No .env file found at %s", self.env_file_path)
            return []

        set_keys = []
        for key, val in parse_env_file(self.env_file_path).items():
            if key not in os.environ:
                os.environ[key] = val
                set_keys.append(key)

        if set_keys:
            logger.debug("Loaded .env defaults for keys: %s", ", ".join(set_keys))
        return set_keys

    def build_config_from_env(self) -> dict[str, Any]:
        """Build configuration dictionary from environment variables.

        Recognizes:
        - TASKCAL_WEB_HOST or TASKCAL_SERVER_BIND -> 'server_bind'
        - TASKCAL_WEB_PORT or TASKCAL_SERVER_PORT -> 'server_port' (int)
        - TASKCAL_TASKS_PATH -> 'tasks_path'
        - TASKCAL_LOG_LEVEL -> 'log_level'
        - TASKCAL_API_BEARER_TOKEN -> 'api_bearer_token'
        - TASKCAL_DEFAULT_USER -> 'default_user_id'
        - TASKCAL_REMINDER_MINUTES -> 'reminder_minutes_before' (int)
        - TASKCAL_REMINDER_SCAN_INTERVAL -> 'reminder_scan_interval_seconds' (int)
        - TASKCAL_MAX_OCCURRENCES -> 'max_occurrences_per_task' (int)
        - TASKCAL_DEBUG -> 'debug_logging' (bool)

        Only variables that are set appear in the result.
        """
        cfg: dict[str, Any] = {}

        host = os.environ.get("TASKCAL_WEB_HOST") or os.environ.get("TASKCAL_SERVER_BIND")
        if host:
            cfg["server_bind"] = host
        _env_int(cfg, "server_port", "TASKCAL_WEB_PORT", "TASKCAL_SERVER_PORT")

        for env_name, key in (
            ("TASKCAL_TASKS_PATH", "tasks_path"),
            ("TASKCAL_LOG_LEVEL", "log_level"),
            ("TASKCAL_API_BEARER_TOKEN", "api_bearer_token"),
            ("TASKCAL_DEFAULT_USER", "default_user_id"),
        ):
            value = os.environ.get(env_name)
            if value:
                cfg[key] = value

        _env_int(cfg, "reminder_minutes_before", "TASKCAL_REMINDER_MINUTES")
        _env_int(cfg, "reminder_scan_interval_seconds", "TASKCAL_REMINDER_SCAN_INTERVAL")
        _env_int(cfg, "max_occurrences_per_task", "TASKCAL_MAX_OCCURRENCES")

        debug = os.environ.get("TASKCAL_DEBUG", "")
        if debug.strip().lower() in ("1", "true", "yes", "on"):
            cfg["debug_logging"] = True

        return cfg

    def load_full_config(self) -> dict[str, Any]:
        """Load .env file and build configuration from environment."""
        self.load_env_file()
        return self.build_config_from_env()


def get_config_value(config: Any, key: str, default: Any = None) -> Any:
    """Get configuration value supporting both dict and dataclass-like objects."""
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)
