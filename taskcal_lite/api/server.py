"""taskcal_lite.api.server: asyncio HTTP server for the task calendar.

This module:
- builds the aiohttp application (middlewares plus calendar, task, tag,
  reminder and health routes) around a TaskStore
- runs the reminder scanner as a background task
- serves until SIGINT/SIGTERM (or an external stop event) and shuts down cleanly
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import os
import signal
from typing import Any

from aiohttp import web

from ..config_loader import Config
from ..core.config_manager import ConfigManager
from ..core.health_tracker import HealthTracker
from ..core.lite_logging import configure_lite_logging
from ..domain.reminders import ReminderQueue, reminder_scan_loop
from ..domain.task_store import TaskStore
from .middleware import correlation_id_middleware, error_middleware, make_auth_middleware
from .routes import (
    register_calendar_routes,
    register_health_routes,
    register_reminder_routes,
    register_tag_routes,
    register_task_routes,
)

logger = logging.getLogger(__name__)

MAX_PORT_ATTEMPTS = 10


def _build_default_config_from_env() -> dict[str, Any]:
    """Build a config dict from TASKCAL_* environment variables (and ./.env)."""
    return ConfigManager().load_full_config()


def _coerce_config(config: Any) -> Config:
    if isinstance(config, Config):
        return config
    if isinstance(config, dict):
        return Config.from_dict(config)
    raise TypeError(f"Unsupported config type: {type(config).__name__}")


def build_app(
    config: Any,
    task_store: TaskStore,
    reminder_queue: ReminderQueue,
    health_tracker: HealthTracker,
) -> web.Application:
    """Create the aiohttp application with all routes and middlewares wired.

    Middleware order: correlation ID first so every response (errors included)
    carries X-Request-ID, then error translation, then authentication.
    """
    cfg = _coerce_config(config)
    app = web.Application(
        middlewares=[
            correlation_id_middleware,
            error_middleware,
            make_auth_middleware(cfg.api_bearer_token),
        ]
    )

    register_calendar_routes(app, cfg, task_store)
    register_task_routes(app, cfg, task_store)
    register_tag_routes(app, cfg, task_store)
    register_reminder_routes(app, cfg, reminder_queue)
    register_health_routes(app, task_store, reminder_queue, health_tracker)

    logger.debug("Web application created with %d routes", len(app.router.routes()))
    return app


async def _start_site(runner: web.AppRunner, host: str, configured_port: int) -> int:
    """Bind the first free port starting at configured_port. Returns the bound port."""
    for port_offset in range(MAX_PORT_ATTEMPTS):
        port = configured_port + port_offset
        site = web.TCPSite(runner, host=host, port=port)
        try:
            await site.start()
        except OSError as e:
            if "address already in use" not in str(e).lower():
                logger.exception("Failed to start server on %s:%d", host, port)
                raise
            logger.debug("Port %d in use, trying next port", port)
            continue

        if port != configured_port:
            logger.warning(
                "Configured port %d was in use, using port %d instead", configured_port, port
            )
        return port

    raise RuntimeError(
        f"No available port found in range {configured_port}-"
        f"{configured_port + MAX_PORT_ATTEMPTS - 1}"
    )


async def _serve(config: Any, external_stop_event: asyncio.Event | None = None) -> None:
    """Run the server and reminder scanner until signalled to stop.

    Args:
        config: Config instance or plain mapping.
        external_stop_event: Optional event to signal shutdown. If provided,
            signal handlers are NOT registered (caller owns signal handling).
    """
    cfg = _coerce_config(config)
    stop_event = external_stop_event or asyncio.Event()

    task_store = TaskStore(cfg.tasks_path)
    reminder_queue = ReminderQueue()
    health_tracker = HealthTracker()

    app = build_app(cfg, task_store, reminder_queue, health_tracker)
    runner = web.AppRunner(app)
    await runner.setup()

    try:
        port = await _start_site(runner, cfg.server_bind, cfg.server_port)
    except Exception:
        await runner.cleanup()
        raise
    logger.info(
        "Server started on %s:%d (pid %d, %d tasks loaded)",
        cfg.server_bind,
        port,
        os.getpid(),
        task_store.count_tasks(),
    )

    scanner = asyncio.create_task(
        reminder_scan_loop(
            cfg,
            task_store.open_tasks,
            reminder_queue,
            stop_event,
            on_scan=lambda _now, added: health_tracker.record_reminder_scan(added),
        )
    )

    if external_stop_event is None:
        loop = asyncio.get_running_loop()

        def _on_signal() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, _on_signal)
    else:
        logger.debug("Using external stop event - skipping signal handler registration")

    await stop_event.wait()
    logger.info("Stop event received, shutting down")

    scanner.cancel()
    try:
        await scanner
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.warning("Reminder scanner error during shutdown: %s", e)

    await runner.cleanup()
    logger.info("Server shutdown complete (uptime %ds)", health_tracker.get_uptime_seconds())


def start_server(config: Any) -> None:
    """Start the asyncio event loop and HTTP server.

    Args:
        config: Config instance or mapping with keys:
            - server_bind / server_port: listen address
            - tasks_path: JSON file backing the task store
            - api_bearer_token: optional token required on /api routes
            - default_user_id: user assumed without an X-User-Id header
            - reminder_minutes_before / reminder_scan_interval_seconds
            - max_occurrences_per_task / max_tasks_per_calendar_request
            - debug_logging: enable debug logging for taskcal_lite (bool)

    Blocks the calling thread until SIGINT/SIGTERM is received.
    """
    cfg = _coerce_config(config)
    configure_lite_logging(debug_mode=cfg.debug_logging)
    logger.info("Logging configuration applied: debug_mode=%s", cfg.debug_logging)

    try:
        asyncio.run(_serve(cfg))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
    except Exception:
        logger.exception("Server terminated unexpectedly")
        raise
