"""Reminder scanning for upcoming task occurrences.

A periodic scan looks at every open task over ``[now, now + minutes_before]``
and queues one reminder per due instant inside that window: the due date of a
one-off task, or the due time of each occurrence of a recurring one. Reminders live
in memory only; they are rebuilt by the next scan after a restart.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Iterable
from datetime import datetime, timedelta
from typing import Any, Callable, Optional

from ..core.timezone_utils import now_utc
from .models import Reminder, Task, TaskStatus
from .recurrence_expander import DEFAULT_MAX_OCCURRENCES, expand_recurrence, normalize_recurrence

logger = logging.getLogger(__name__)

ReminderKey = tuple[str, str, datetime]


class ReminderQueue:
    """In-memory queue of pending reminders keyed by (user_id, task_id, due_at).

    Dismissed keys are remembered until their due time passes so the next scan
    does not queue the same reminder again.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pending: dict[ReminderKey, Reminder] = {}
        self._dismissed: set[ReminderKey] = set()

    def add(self, reminder: Reminder) -> bool:
        """Queue a reminder. Returns False if it is already queued or was dismissed."""
        key = (reminder.user_id, reminder.task_id, reminder.due_at)
        with self._lock:
            if key in self._pending or key in self._dismissed:
                return False
            self._pending[key] = reminder
            return True

    def for_user(self, user_id: str) -> list[Reminder]:
        """Pending reminders for a user, soonest due first."""
        with self._lock:
            items = [r for r in self._pending.values() if r.user_id == user_id]
        return sorted(items, key=lambda r: r.due_at)

    def dismiss(self, user_id: str, task_id: str) -> int:
        """Drop every pending reminder a user has for a task. Returns the count removed."""
        with self._lock:
            keys = [k for k in self._pending if k[0] == user_id and k[1] == task_id]
            for key in keys:
                del self._pending[key]
                self._dismissed.add(key)
        return len(keys)

    def purge_before(self, cutoff: datetime) -> int:
        """Forget reminders (pending and dismissed) due before cutoff."""
        with self._lock:
            stale = [k for k in self._pending if k[2] < cutoff]
            for key in stale:
                del self._pending[key]
            self._dismissed = {k for k in self._dismissed if k[2] >= cutoff}
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending)


def _due_instants(
    task: Task, now: datetime, window_end: datetime, max_occurrences: int
) -> list[datetime]:
    """Due instants of a task that fall inside [now, window_end].

    A non-recurring task is judged by its due date alone, so tasks without a
    start date still get reminders. Recurring tasks are expanded.
    """
    if normalize_recurrence(task.recurrence) is None:
        if task.due_at is not None and now <= task.due_at <= window_end:
            return [task.due_at]
        return []
    occurrences = expand_recurrence(
        task, now, window_end, max_occurrences=max_occurrences, now=now
    )
    return [o.due_at for o in occurrences if now <= o.due_at <= window_end]


def scan_for_reminders(
    tasks: Iterable[Task],
    now: datetime,
    minutes_before: int,
    queue: ReminderQueue,
    *,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
) -> list[Reminder]:
    """Queue reminders for occurrences due within the next ``minutes_before`` minutes.

    Args:
        tasks: Tasks to scan; done tasks are ignored
        now: Scan instant
        minutes_before: Size of the look-ahead window in minutes
        queue: Queue receiving new reminders
        max_occurrences: Per-task expansion cap

    Returns:
        Reminders newly added by this scan
    """
    window_end = now + timedelta(minutes=minutes_before)
    added: list[Reminder] = []

    for task in tasks:
        if str(getattr(task.status, "value", task.status)) == TaskStatus.DONE.value:
            continue
        for due_at in _due_instants(task, now, window_end, max_occurrences):
            reminder = Reminder(
                user_id=task.user_id,
                task_id=task.id,
                task_title=task.title,
                due_at=due_at,
                reminder_at=now,
            )
            if queue.add(reminder):
                added.append(reminder)

    if added:
        logger.info("Queued %d new reminders", len(added))
    return added


def _get_config_value(config: Any, key: str, default: Any = None) -> Any:
    if isinstance(config, dict):
        return config.get(key, default)
    return getattr(config, key, default)


async def reminder_scan_loop(
    config: Any,
    load_tasks: Callable[[], list[Task]],
    queue: ReminderQueue,
    stop_event: asyncio.Event,
    on_scan: Optional[Callable[[datetime, int], None]] = None,
) -> None:
    """Background scanner: immediate scan then periodic scans until stop_event is set.

    Args:
        config: dict or dataclass-like object with reminder settings
        load_tasks: Callable returning the tasks to scan (normally the store's open tasks)
        queue: Reminder queue shared with the HTTP handlers
        stop_event: Set to end the loop
        on_scan: Optional callback receiving (scan time, reminders added)
    """
    interval = int(_get_config_value(config, "reminder_scan_interval_seconds", 60))
    minutes_before = int(_get_config_value(config, "reminder_minutes_before", 15))
    max_occurrences = int(
        _get_config_value(config, "max_occurrences_per_task", DEFAULT_MAX_OCCURRENCES)
    )
    logger.debug(
        "reminder_scan_loop starting (interval=%ds, minutes_before=%d)", interval, minutes_before
    )

    def _scan_once() -> None:
        now = now_utc()
        queue.purge_before(now)
        added = scan_for_reminders(
            load_tasks(), now, minutes_before, queue, max_occurrences=max_occurrences
        )
        if on_scan is not None:
            on_scan(now, len(added))

    try:
        _scan_once()
    except Exception:
        logger.exception("Initial reminder scan failed")

    while not stop_event.is_set():
        try:
            await asyncio.sleep(interval)
            if stop_event.is_set():
                break
            _scan_once()
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Reminder scan loop unexpected error")
