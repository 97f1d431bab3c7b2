"""Calendar routes: expand stored tasks into occurrences for a date window."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Callable

from aiohttp import web

from ...core.config_manager import get_config_value
from ...domain.models import Task
from ...domain.recurrence_expander import DEFAULT_MAX_OCCURRENCES, expand_tasks
from ..request_helpers import get_user_id, parse_window

logger = logging.getLogger(__name__)


def candidate_sort_key(
    window_start: datetime, window_end: datetime
) -> Callable[[Task], tuple[Any, ...]]:
    """Ordering used when a calendar request has more candidates than it may expand.

    Tasks anchored inside the window come first, then recurring tasks anchored
    before it (most recent anchor first), then everything else. Within a group
    higher priority wins, and the task id makes the order total.
    """

    def _key(task: Task) -> tuple[Any, ...]:
        anchor = task.start_at or task.due_at
        if anchor is not None and window_start <= anchor <= window_end:
            return (0, -task.priority, anchor.timestamp(), task.id)
        if task.is_recurring and anchor is not None and anchor < window_start:
            return (1, -task.priority, -anchor.timestamp(), task.id)
        return (2, -task.priority, anchor.timestamp() if anchor else 0.0, task.id)

    return _key


def register_calendar_routes(app: web.Application, config: Any, task_store: Any) -> None:
    """Register calendar routes.

    Args:
        app: aiohttp web application
        config: Application configuration
        task_store: TaskStore instance
    """
    max_tasks = int(get_config_value(config, "max_tasks_per_calendar_request", 500))
    max_occurrences = int(
        get_config_value(config, "max_occurrences_per_task", DEFAULT_MAX_OCCURRENCES)
    )

    async def get_calendar(request: web.Request) -> web.Response:
        """Occurrences of the user's tasks inside [from, to], in calendar order."""
        user_id = get_user_id(request, config)
        window_start, window_end = parse_window(request)

        candidates = task_store.find_calendar_candidates(user_id, window_start, window_end)
        if len(candidates) > max_tasks:
            logger.warning(
                "Calendar request for %s matched %d tasks; expanding first %d",
                user_id,
                len(candidates),
                max_tasks,
            )
            candidates = sorted(candidates, key=candidate_sort_key(window_start, window_end))
            candidates = candidates[:max_tasks]

        events = expand_tasks(
            candidates, window_start, window_end, max_occurrences=max_occurrences
        )
        logger.debug(
            "/api/calendar user=%s tasks=%d events=%d", user_id, len(candidates), len(events)
        )
        return web.json_response({"events": [ev.to_api_dict() for ev in events]})

    app.router.add_get("/api/calendar", get_calendar)
