"""Reminder routes: list and dismiss queued reminders."""

from __future__ import annotations

from typing import Any

from aiohttp import web

from ..request_helpers import get_user_id


def register_reminder_routes(app: web.Application, config: Any, reminder_queue: Any) -> None:
    async def get_reminders(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        reminders = reminder_queue.for_user(user_id)
        return web.json_response({"reminders": [r.to_api_dict() for r in reminders]})

    async def dismiss_reminder(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        removed = reminder_queue.dismiss(user_id, request.match_info["task_id"])
        return web.json_response({"message": "Reminder dismissed", "dismissed": removed})

    app.router.add_get("/api/reminders", get_reminders)
    app.router.add_delete("/api/reminders/{task_id}", dismiss_reminder)
