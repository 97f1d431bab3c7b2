"""taskcal_lite - task calendar server with recurrence expansion.

Imports here stay light so the package can be inspected without pulling in
aiohttp; the server module is loaded when run_server() is called.
"""

__version__ = "0.1.0"

from typing import Any, Optional


def _init_logging(level_name: Optional[str]) -> None:
    """Initialize root logging to stream colorized output to the console.

    Honors TASKCAL_DEBUG (truthy values: "1", "true", "yes", "on"), which forces
    DEBUG verbosity regardless of the requested level.
    """
    import logging
    import os
    import sys

    from colorlog import ColoredFormatter

    debug_env = os.environ.get("TASKCAL_DEBUG", "")
    if debug_env.strip().lower() in ("1", "true", "yes", "on"):
        level_name = "DEBUG"

    root = logging.getLogger()
    # Only configure a handler if none is present to avoid duplicate output.
    if not root.handlers:
        handler = logging.StreamHandler(stream=sys.stderr)
        # HH:MM:SS  LEVEL   logger.name: message  (only the level is colorized)
        fmt = "%(asctime)s %(log_color)s%(levelname)-7s%(reset)s %(name)s: %(message)s"
        log_colors = {
            "DEBUG": "cyan",
            "INFO": "green",
            "WARNING": "yellow",
            "ERROR": "red",
            "CRITICAL": "bold_red",
        }
        handler.setFormatter(ColoredFormatter(fmt, datefmt="%H:%M:%S", log_colors=log_colors))
        root.addHandler(handler)

    level = logging.INFO
    if isinstance(level_name, str):
        level = getattr(logging, level_name.upper(), logging.INFO)
        if not isinstance(level, int):
            level = logging.INFO
    root.setLevel(level)
    logging.getLogger(__name__).debug(
        "Logging initialized at level %s", logging.getLevelName(level)
    )


def build_config(args: Optional[Any] = None) -> dict[str, Any]:
    """Resolve server configuration.

    Precedence, lowest first: config file (``args.config``), TASKCAL_*
    environment variables (and ./.env), command line ``--port``.
    """
    import logging

    from .api.server import _build_default_config_from_env
    from .config_loader import load_config

    logger = logging.getLogger(__name__)

    cfg: dict[str, Any] = {}
    config_path = getattr(args, "config", None)
    if config_path:
        cfg.update(load_config(config_path).to_dict())

    cfg.update(_build_default_config_from_env())

    port = getattr(args, "port", None)
    if port is not None:
        cfg["server_port"] = int(port)
        logger.debug("Applied command line port override: %d", cfg["server_port"])

    return cfg


def run_server(args: Optional[Any] = None) -> None:
    """Start the taskcal_lite server and block until shutdown.

    Args:
        args: Optional command line arguments namespace (``port``, ``config``)
    """
    import logging
    import os

    _init_logging(os.environ.get("TASKCAL_LOG_LEVEL"))
    logger = logging.getLogger(__name__)

    from .api.server import start_server
    from .config_loader import Config

    cfg = Config.from_dict(build_config(args))
    logging.getLogger().setLevel(getattr(logging, cfg.log_level, logging.INFO))
    logger.debug(
        "Resolved configuration (diagnostic): bind=%s port=%d tasks_path=%s auth=%s",
        cfg.server_bind,
        cfg.server_port,
        cfg.tasks_path,
        "on" if cfg.api_bearer_token else "off",
    )
    logger.info("Starting taskcal_lite server")
    start_server(cfg)
