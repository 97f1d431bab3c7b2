"""
Central logging configuration for taskcal_lite.

Keeps taskcal_lite module loggers at INFO (DEBUG on request) while quieting
chatty third-party loggers, and stamps every record with the current request's
correlation ID.
"""

import logging
import os
from typing import Optional

DEBUG_ENV = "TASKCAL_DEBUG"
LOG_LEVEL_ENV = "TASKCAL_LOG_LEVEL"


class CorrelationIdFilter(logging.Filter):
    """Add correlation ID to all log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        # Import here to avoid circular dependency
        from ..api.middleware.correlation_id import get_request_id

        record.request_id = get_request_id()
        return True


def _env_truthy(name: str) -> bool:
    return os.getenv(name, "").strip().lower() in ("1", "true", "yes", "on")


def configure_lite_logging(debug_mode: bool = False, force_debug: Optional[bool] = None) -> None:
    """
    Configure logging levels for taskcal_lite.

    Args:
        debug_mode: Whether to enable debug logging for taskcal_lite modules
        force_debug: Override debug mode setting (None to use env var detection)

    Environment Variables:
        TASKCAL_DEBUG: Set to '1', 'true', 'yes' to force debug logging
        TASKCAL_LOG_LEVEL: Override root log level (DEBUG, INFO, WARNING, ERROR)
    """
    if force_debug is not None:
        final_debug = force_debug
    elif _env_truthy(DEBUG_ENV):
        final_debug = True
    else:
        final_debug = debug_mode

    root_level = logging.DEBUG if final_debug else logging.INFO
    env_log_level = os.getenv(LOG_LEVEL_ENV, "").upper()
    if env_log_level in ("DEBUG", "INFO", "WARNING", "ERROR"):
        root_level = getattr(logging, env_log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(root_level)

    correlation_filter = CorrelationIdFilter()

    # Keep an existing (colored) handler from _init_logging if one is installed
    if not root_logger.handlers:
        handler = logging.StreamHandler()
        handler.setLevel(root_level)
        handler.setFormatter(
            logging.Formatter(
                "[%(asctime)s] [%(request_id)s] %(levelname)s - %(name)s - %(message)s"
            )
        )
        handler.addFilter(correlation_filter)
        root_logger.addHandler(handler)
    else:
        for existing_handler in root_logger.handlers:
            if not any(isinstance(f, CorrelationIdFilter) for f in existing_handler.filters):
                existing_handler.addFilter(correlation_filter)

    logger_config: dict[str, int] = {
        "aiohttp.access": logging.WARNING,
        "aiohttp.server": logging.WARNING,
        "aiohttp.web": logging.INFO,
        "aiohttp.web_log": logging.WARNING,
        "asyncio": logging.WARNING,
        "taskcal_lite": logging.DEBUG if final_debug else logging.INFO,
    }
    for logger_name, level in logger_config.items():
        logging.getLogger(logger_name).setLevel(level)

    if final_debug:
        root_logger.info("Debug logging enabled for taskcal_lite modules")
    else:
        root_logger.info("Production logging configuration applied")


def get_logging_status() -> dict[str, str]:
    """
    Get current logging configuration status.

    Returns:
        Dictionary mapping logger names to their current levels
    """
    status = {"root": logging.getLevelName(logging.getLogger().level)}
    for logger_name in ("taskcal_lite", "aiohttp.access", "aiohttp.server", "asyncio"):
        status[logger_name] = logging.getLevelName(logging.getLogger(logger_name).level)
    return status
