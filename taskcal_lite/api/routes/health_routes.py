"""Health check route for monitoring."""

from __future__ import annotations

from typing import Any

from aiohttp import web

from ...core.timezone_utils import now_utc, serialize_iso


def register_health_routes(
    app: web.Application, task_store: Any, reminder_queue: Any, health_tracker: Any
) -> None:
    """Register /api/health.

    Responds 200 while reminder scans are current and 503 when they are
    missing or stale.
    """

    async def health_check(_request: web.Request) -> web.Response:
        health_status = health_tracker.get_health_status(
            serialize_iso(now_utc()),
            task_count=task_store.count_tasks(),
            pending_reminders=len(reminder_queue),
        )
        http_status = 200 if health_status.status == "ok" else 503
        return web.json_response(health_status.to_dict(), status=http_status)

    app.router.add_get("/api/health", health_check)
