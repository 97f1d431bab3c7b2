"""Recurrence expansion for taskcal_lite.

Turns a task and a query window into the concrete occurrences that fall inside
that window. Expansion is pure and synchronous: no I/O, no shared state, safe to
call from any number of request handlers concurrently.

Occurrence instants are always computed from the task's base instant and the
overall sequence index, never accumulated from the query window, so ``count``
and ``until`` give the same series no matter which window is asked for.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional

from dateutil.relativedelta import relativedelta

from ..core.timezone_utils import ensure_utc, now_utc, parse_iso_datetime
from .models import Occurrence, Recurrence, RecurrenceRule, Task

logger = logging.getLogger(__name__)

# Hard ceiling on occurrences emitted for a single task per call.
DEFAULT_MAX_OCCURRENCES = 365

# Extra loop iterations allowed beyond the occurrence cap (steps that land
# before the window start or repeat an instant are consumed without emitting).
_ITERATION_SLACK = 14

StepIterator = Iterator[tuple[int, datetime]]


@dataclass(frozen=True)
class RuleSpec:
    """A stored recurrence after validation and normalization."""

    rule: RecurrenceRule
    interval: int = 1
    by_weekday: tuple[int, ...] = ()
    count: Optional[int] = None
    until: Optional[datetime] = None


def _positive_int(value: Any) -> Optional[int]:
    """Return value as a positive int, or None if it is not one."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value >= 1 else None
    if isinstance(value, float) and value.is_integer():
        return int(value) if value >= 1 else None
    if isinstance(value, str) and value.strip().isdigit():
        parsed = int(value.strip())
        return parsed if parsed >= 1 else None
    return None


def _coerce_until(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, str):
        return parse_iso_datetime(value)
    raise ValueError(f"unsupported until value: {value!r}")


def _coerce_weekdays(values: Optional[Iterable[Any]]) -> tuple[int, ...]:
    if not values:
        return ()
    days = set()
    for value in values:
        if isinstance(value, bool) or not isinstance(value, int):
            continue
        if 0 <= value <= 6:
            days.add(value)
    return tuple(sorted(days))


def normalize_recurrence(recurrence: Optional[Recurrence]) -> Optional[RuleSpec]:
    """Validate a stored recurrence.

    Returns None when the task should be treated as non-recurring: no rule,
    rule NONE, or a malformed rule (unknown name, interval or count below 1,
    unparseable until).
    """
    if recurrence is None:
        return None

    try:
        rule = RecurrenceRule(recurrence.rule_name)
    except ValueError:
        logger.debug("Unknown recurrence rule %r; treating as NONE", recurrence.rule)
        return None
    if rule is RecurrenceRule.NONE:
        return None

    interval = 1 if recurrence.interval is None else _positive_int(recurrence.interval)
    if interval is None:
        logger.debug("Invalid recurrence interval %r; treating as NONE", recurrence.interval)
        return None

    count = None
    if recurrence.count is not None:
        count = _positive_int(recurrence.count)
        if count is None:
            logger.debug("Invalid recurrence count %r; treating as NONE", recurrence.count)
            return None

    until = None
    if recurrence.until is not None:
        try:
            until = _coerce_until(recurrence.until)
        except ValueError:
            logger.debug("Invalid recurrence until %r; treating as NONE", recurrence.until)
            return None

    by_weekday = _coerce_weekdays(recurrence.by_weekday) if rule is RecurrenceRule.WEEKLY else ()

    return RuleSpec(rule=rule, interval=interval, by_weekday=by_weekday, count=count, until=until)


def sunday_weekday(dt: datetime) -> int:
    """Weekday number with 0=Sunday .. 6=Saturday."""
    return (dt.weekday() + 1) % 7


def _fixed_steps(base: datetime, days: int, window_start: datetime) -> StepIterator:
    try:
        step = timedelta(days=days)
    except OverflowError:
        # a single step already leaves the datetime range
        yield 0, base
        return

    index = 0
    if window_start > base:
        # ceiling division: first index whose instant is not before the window
        index = -((base - window_start) // step)
    while True:
        yield index, base + step * index
        index += 1


def _monthly_steps(base: datetime, interval: int, window_start: datetime) -> StepIterator:
    index = 0
    if window_start > base:
        months = (window_start.year - base.year) * 12 + (window_start.month - base.month)
        index = max(0, months // interval - 1)
        while base + relativedelta(months=index * interval) < window_start:
            index += 1
    while True:
        yield index, base + relativedelta(months=index * interval)
        index += 1


def _weekday_steps(
    base: datetime, interval: int, weekdays: tuple[int, ...], window_start: datetime
) -> StepIterator:
    """Enumerate listed weekdays in every ``interval``-th Sunday-anchored week.

    Week 0 is the week containing ``base``; only weekdays on/after base's own
    weekday count there. Every occurrence keeps base's time of day.
    """
    base_weekday = sunday_weekday(base)
    week_zero = base - timedelta(days=base_weekday)
    first_week = tuple(day for day in weekdays if day >= base_weekday)

    active = 0
    if window_start > base:
        weeks_elapsed = (window_start - week_zero).days // 7
        active = weeks_elapsed // interval

    index = 0 if active == 0 else len(first_week) + (active - 1) * len(weekdays)
    while True:
        days = first_week if active == 0 else weekdays
        week_start = week_zero + timedelta(weeks=active * interval)
        for day in days:
            yield index, week_start + timedelta(days=day)
            index += 1
        active += 1


def _daily(base: datetime, rule_spec: RuleSpec, window_start: datetime) -> StepIterator:
    return _fixed_steps(base, rule_spec.interval, window_start)


def _weekly(base: datetime, rule_spec: RuleSpec, window_start: datetime) -> StepIterator:
    if rule_spec.by_weekday:
        return _weekday_steps(base, rule_spec.interval, rule_spec.by_weekday, window_start)
    return _fixed_steps(base, rule_spec.interval * 7, window_start)


def _monthly(base: datetime, rule_spec: RuleSpec, window_start: datetime) -> StepIterator:
    return _monthly_steps(base, rule_spec.interval, window_start)


_STEPPERS: dict[RecurrenceRule, Callable[[datetime, RuleSpec, datetime], StepIterator]] = {
    RecurrenceRule.DAILY: _daily,
    RecurrenceRule.WEEKLY: _weekly,
    RecurrenceRule.MONTHLY: _monthly,
}


def _make_occurrence(task: Task, start_at: datetime, due_at: datetime) -> Occurrence:
    return Occurrence(
        task_id=task.id,
        start_at=start_at,
        due_at=due_at,
        all_day=task.all_day,
        title=task.title,
        status=str(getattr(task.status, "value", task.status)),
        priority=task.priority,
        tags=list(task.tags),
    )


def _expand_single(task: Task, window_start: datetime, window_end: datetime) -> list[Occurrence]:
    if task.start_at is None or task.due_at is None:
        return []

    start_at, due_at = task.start_at, task.due_at
    overlaps = (
        window_start <= start_at <= window_end
        or window_start <= due_at <= window_end
        or (start_at <= window_start and due_at >= window_end)
    )
    if not overlaps:
        return []
    return [_make_occurrence(task, start_at, due_at)]


def _expand_recurring(
    task: Task,
    rule_spec: RuleSpec,
    window_start: datetime,
    window_end: datetime,
    max_occurrences: int,
    now: Optional[datetime],
) -> list[Occurrence]:
    fallback = ensure_utc(now) if now is not None else now_utc()
    base = task.start_at or task.due_at or fallback
    base_due = task.due_at or task.start_at or fallback
    duration = max(base_due - base, timedelta(0))

    cap = max(1, max_occurrences)
    max_iterations = cap + _ITERATION_SLACK
    occurrences: list[Occurrence] = []
    last_start: Optional[datetime] = None

    try:
        steps = _STEPPERS[rule_spec.rule](base, rule_spec, window_start)
        for iteration, (index, instant) in enumerate(steps):
            if iteration >= max_iterations:
                logger.warning(
                    "Recurrence expansion for task %s hit iteration guard (%d)", task.id, iteration
                )
                break
            if rule_spec.count is not None and index >= rule_spec.count:
                break
            if instant > window_end:
                break
            if rule_spec.until is not None and instant >= rule_spec.until:
                break
            if instant < window_start:
                continue
            if last_start is not None and instant <= last_start:
                continue

            occurrences.append(_make_occurrence(task, instant, instant + duration))
            last_start = instant

            if len(occurrences) >= cap:
                logger.debug("Recurrence expansion for task %s capped at %d", task.id, cap)
                break
    except (OverflowError, ValueError):
        # timedelta overflows; relativedelta reports an out-of-range year as ValueError
        logger.debug("Recurrence expansion for task %s ran past datetime range", task.id)

    return occurrences


def expand_recurrence(
    task: Task,
    window_start: datetime,
    window_end: datetime,
    *,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    now: Optional[datetime] = None,
) -> list[Occurrence]:
    """Expand a task into the occurrences that fall inside a query window.

    Args:
        task: Task record (read only)
        window_start: Inclusive lower bound of the window
        window_end: Inclusive upper bound of the window
        max_occurrences: Safety cap on occurrences returned for this task
        now: Fallback base instant for a recurring task with no dates
            (defaults to the current time)

    Returns:
        Occurrences in ascending ``start_at`` order without duplicate instants.
        Non-recurring tasks yield at most one occurrence. Malformed recurrence
        data is treated as NONE; this function does not raise for a Task.
    """
    window_start = ensure_utc(window_start)
    window_end = ensure_utc(window_end)
    if window_start > window_end:
        return []

    rule_spec = normalize_recurrence(task.recurrence)
    if rule_spec is None:
        return _expand_single(task, window_start, window_end)
    return _expand_recurring(task, rule_spec, window_start, window_end, max_occurrences, now)


def expand_tasks(
    tasks: Iterable[Task],
    window_start: datetime,
    window_end: datetime,
    *,
    max_occurrences: int = DEFAULT_MAX_OCCURRENCES,
    now: Optional[datetime] = None,
) -> list[Occurrence]:
    """Expand many tasks and merge the result in calendar order.

    Ties on ``start_at`` are broken by task priority, highest first.
    """
    events: list[Occurrence] = []
    for task in tasks:
        events.extend(
            expand_recurrence(
                task, window_start, window_end, max_occurrences=max_occurrences, now=now
            )
        )
    events.sort(key=lambda ev: (ev.start_at, -ev.priority))
    return events
