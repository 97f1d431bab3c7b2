"""Task CRUD routes, checklist item routes and per-task occurrence expansion."""

from __future__ import annotations

import logging
from typing import Any

from aiohttp import web

from ...core.config_manager import get_config_value
from ...domain.models import ChecklistItemInput, ChecklistItemUpdate, TaskCreate, TaskUpdate
from ...domain.recurrence_expander import DEFAULT_MAX_OCCURRENCES, expand_recurrence
from ..request_helpers import get_user_id, parse_int_param, parse_window, read_json_object

logger = logging.getLogger(__name__)


def register_task_routes(app: web.Application, config: Any, task_store: Any) -> None:
    """Register task routes.

    Args:
        app: aiohttp web application
        config: Application configuration
        task_store: TaskStore instance
    """
    max_occurrences = int(
        get_config_value(config, "max_occurrences_per_task", DEFAULT_MAX_OCCURRENCES)
    )

    async def list_tasks(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        window_start, window_end = parse_window(request, required=False)
        tags_raw = request.query.get("tags", "")
        tasks = task_store.list_tasks(
            user_id,
            status=request.query.get("status") or None,
            q=request.query.get("q") or None,
            tags=[t.strip() for t in tags_raw.split(",") if t.strip()],
            min_priority=parse_int_param(request, "priority"),
            window_start=window_start,
            window_end=window_end,
            limit=parse_int_param(request, "limit"),
        )
        return web.json_response({"tasks": [t.to_api_dict() for t in tasks]})

    async def create_task(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = TaskCreate.model_validate(await read_json_object(request))
        task = task_store.add_task(user_id, payload)
        return web.json_response({"task": task.to_api_dict()}, status=201)

    async def get_task(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        task = task_store.get_task(user_id, request.match_info["task_id"])
        return web.json_response({"task": task.to_api_dict()})

    async def update_task(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = TaskUpdate.model_validate(await read_json_object(request))
        task = task_store.update_task(user_id, request.match_info["task_id"], payload)
        return web.json_response({"task": task.to_api_dict()})

    async def delete_task(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        task_store.delete_task(user_id, request.match_info["task_id"])
        return web.json_response({"message": "Task deleted"})

    async def task_occurrences(request: web.Request) -> web.Response:
        """Expand a single task over [from, to]."""
        user_id = get_user_id(request, config)
        task = task_store.get_task(user_id, request.match_info["task_id"])
        window_start, window_end = parse_window(request)
        occurrences = expand_recurrence(
            task, window_start, window_end, max_occurrences=max_occurrences
        )
        return web.json_response({"events": [o.to_api_dict() for o in occurrences]})

    async def add_checklist_item(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = ChecklistItemInput.model_validate(await read_json_object(request))
        task = task_store.add_checklist_item(user_id, request.match_info["task_id"], payload)
        return web.json_response({"task": task.to_api_dict()})

    async def update_checklist_item(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        payload = ChecklistItemUpdate.model_validate(await read_json_object(request))
        task = task_store.update_checklist_item(
            user_id, request.match_info["task_id"], request.match_info["item_id"], payload
        )
        return web.json_response({"task": task.to_api_dict()})

    async def delete_checklist_item(request: web.Request) -> web.Response:
        user_id = get_user_id(request, config)
        task = task_store.delete_checklist_item(
            user_id, request.match_info["task_id"], request.match_info["item_id"]
        )
        return web.json_response({"task": task.to_api_dict()})

    app.router.add_get("/api/tasks", list_tasks)
    app.router.add_post("/api/tasks", create_task)
    app.router.add_get("/api/tasks/{task_id}", get_task)
    app.router.add_patch("/api/tasks/{task_id}", update_task)
    app.router.add_delete("/api/tasks/{task_id}", delete_task)
    app.router.add_get("/api/tasks/{task_id}/occurrences", task_occurrences)
    app.router.add_post("/api/tasks/{task_id}/checklist", add_checklist_item)
    app.router.add_patch("/api/tasks/{task_id}/checklist/{item_id}", update_checklist_item)
    app.router.add_delete("/api/tasks/{task_id}/checklist/{item_id}", delete_checklist_item)
