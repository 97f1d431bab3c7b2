"""JSON-backed task store for taskcal_lite with per-user scoping and atomic writes."""

from __future__ import annotations

import contextlib
import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable, Iterator
from datetime import datetime
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..core.timezone_utils import now_utc
from .exceptions import (
    ChecklistItemNotFoundError,
    TagExistsError,
    TagNotFoundError,
    TaskNotFoundError,
    TaskStoreError,
)
from .models import (
    ChecklistItem,
    ChecklistItemInput,
    ChecklistItemUpdate,
    Tag,
    TagCreate,
    TagUpdate,
    Task,
    TaskCreate,
    TaskStatus,
    TaskUpdate,
)

logger = logging.getLogger(__name__)

DEFAULT_TASKS_FILENAME = "taskcal_tasks.json"


def _status_value(status: Any) -> str:
    return str(getattr(status, "value", status))


class TaskStore:
    """Persistent task store.

    The on-disk format is a JSON object ``{"tasks": [...], "tags": [...]}`` where
    each record uses the camelCase API representation. All reads and writes go
    through a single lock; every mutation is persisted before it returns.
    """

    def __init__(self, path: str | Path | None = None) -> None:
        """Create a TaskStore.

        Args:
            path: Optional path to JSON file. Defaults to 'taskcal_tasks.json'
                in the current working directory.
        """
        self._path = Path(path) if path else Path.cwd().joinpath(DEFAULT_TASKS_FILENAME)
        self._lock = threading.Lock()
        self._tasks: dict[str, Task] = {}
        self._tags: dict[str, Tag] = {}

        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            logger.debug("Could not ensure directory for task store: %s", self._path.parent)

        self.load()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> None:
        """Load tasks and tags from disk, skipping records that fail validation.

        A missing or unreadable file leaves the store empty.
        """
        with self._lock:
            self._tasks, self._tags = {}, {}
            if not self._path.exists():
                logger.debug("Task store file not found; starting empty: %s", self._path)
                return

            try:
                with self._path.open("r", encoding="utf-8") as fh:
                    data = json.load(fh)
                records = data.get("tasks") if isinstance(data, dict) else None
                if not isinstance(records, list):
                    raise ValueError("task store JSON must be an object with a 'tasks' list")
                tag_records = data.get("tags") or []
                if not isinstance(tag_records, list):
                    raise ValueError("'tags' must be a list")
            except (OSError, ValueError) as exc:
                logger.warning("Failed to read task store %s: %s", self._path, exc)
                return

            self._tasks = self._validate_records(Task, records)
            self._tags = self._validate_records(Tag, tag_records)
            logger.debug(
                "Loaded task store %s (%d tasks, %d tags)",
                self._path,
                len(self._tasks),
                len(self._tags),
            )

    def _validate_records(self, model: Any, records: list[Any]) -> dict[str, Any]:
        items: dict[str, Any] = {}
        skipped = 0
        for record in records:
            try:
                item = model.model_validate(record)
            except ValidationError as exc:
                skipped += 1
                logger.debug("Skipping malformed %s record: %s", model.__name__, exc)
                continue
            items[item.id] = item
        if skipped:
            logger.warning(
                "Skipped %d malformed %s records in %s", skipped, model.__name__, self._path
            )
        return items

    def _persist(self) -> None:
        """Persist current tasks and tags to disk atomically. Called with lock held."""
        data = {
            "tasks": [task.to_api_dict() for task in self._tasks.values()],
            "tags": [tag.to_api_dict() for tag in self._tags.values()],
        }

        tmp_path = None
        try:
            with tempfile.NamedTemporaryFile(
                "w", dir=self._path.parent, delete=False, encoding="utf-8"
            ) as tf:
                tmp_path = Path(tf.name)
                json.dump(data, tf, ensure_ascii=False)
                tf.flush()
                with contextlib.suppress(OSError):
                    os.fsync(tf.fileno())
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.warning("Failed to persist task store to %s: %s", self._path, exc)
            if tmp_path is not None:
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise TaskStoreError(f"Failed to persist task store: {exc}") from exc

    @contextlib.contextmanager
    def _transaction(self) -> Iterator[None]:
        """Hold the lock for one mutation and persist it.

        If the mutation or the write fails, memory is restored to what is
        still on disk.
        """
        with self._lock:
            tasks, tags = dict(self._tasks), dict(self._tags)
            try:
                yield
                self._persist()
            except Exception:
                self._tasks, self._tags = tasks, tags
                raise

    def _owned_locked(self, user_id: str, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None or task.user_id != user_id:
            raise TaskNotFoundError(task_id)
        return task

    def _owned_tag_locked(self, user_id: str, tag_id: str) -> Tag:
        tag = self._tags.get(tag_id)
        if tag is None or tag.user_id != user_id:
            raise TagNotFoundError(tag_id)
        return tag

    def _replace_locked(self, task: Task, **changes: Any) -> Task:
        changes["updated_at"] = now_utc()
        updated = task.model_copy(update=changes)
        # round-trip through validation so enums and datetimes stay normalized
        updated = Task.model_validate(updated.model_dump())
        self._tasks[updated.id] = updated
        return updated

    # ------------------------------------------------------------------ tasks

    def add_task(self, user_id: str, data: TaskCreate) -> Task:
        """Create a task for user_id from a validated payload and persist it."""
        now = now_utc()
        task = Task(
            user_id=user_id,
            title=data.title,
            description=data.description,
            status=data.status,
            priority=data.priority,
            tags=list(data.tags),
            start_at=data.start_at,
            due_at=data.due_at,
            all_day=data.all_day,
            estimate_minutes=data.estimate_minutes,
            actual_minutes=data.actual_minutes,
            recurrence=data.recurrence.to_stored() if data.recurrence else None,
            checklist=[ChecklistItem(label=item.label, done=item.done) for item in data.checklist],
            created_at=now,
            updated_at=now,
        )
        with self._transaction():
            self._tasks[task.id] = task
        logger.info("Created task %s for user %s", task.id, user_id)
        return task

    def get_task(self, user_id: str, task_id: str) -> Task:
        """Return a task owned by user_id.

        Raises:
            TaskNotFoundError: if the task does not exist or belongs to another user
        """
        with self._lock:
            return self._owned_locked(user_id, task_id)

    def update_task(self, user_id: str, task_id: str, data: TaskUpdate) -> Task:
        """Apply the fields explicitly set on ``data`` and persist."""
        changes = data.model_dump(exclude_unset=True)
        if "recurrence" in changes:
            changes["recurrence"] = data.recurrence.to_stored() if data.recurrence else None
        if "checklist" in changes:
            changes["checklist"] = [
                ChecklistItem(label=item.label, done=item.done) for item in data.checklist or []
            ]
        for key in ("title", "status", "priority", "tags", "all_day", "actual_minutes"):
            if key in changes and changes[key] is None:
                changes.pop(key)

        with self._transaction():
            updated = self._replace_locked(self._owned_locked(user_id, task_id), **changes)
        logger.info("Updated task %s (%s)", task_id, ", ".join(sorted(changes)) or "no fields")
        return updated

    def delete_task(self, user_id: str, task_id: str) -> None:
        with self._transaction():
            self._owned_locked(user_id, task_id)
            del self._tasks[task_id]
        logger.info("Deleted task %s for user %s", task_id, user_id)

    # -------------------------------------------------------------- checklist

    def add_checklist_item(self, user_id: str, task_id: str, data: ChecklistItemInput) -> Task:
        """Append a checklist item to a task and return the updated task."""
        item = ChecklistItem(label=data.label, done=data.done)
        with self._transaction():
            task = self._owned_locked(user_id, task_id)
            updated = self._replace_locked(task, checklist=[*task.checklist, item])
        logger.debug("Added checklist item %s to task %s", item.id, task_id)
        return updated

    def update_checklist_item(
        self, user_id: str, task_id: str, item_id: str, data: ChecklistItemUpdate
    ) -> Task:
        """Change label and/or done on one checklist item.

        Raises:
            TaskNotFoundError: if the task is missing or not owned by user_id
            ChecklistItemNotFoundError: if the task has no item with item_id
        """
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        with self._transaction():
            task = self._owned_locked(user_id, task_id)
            if not any(item.id == item_id for item in task.checklist):
                raise ChecklistItemNotFoundError(item_id)
            checklist = [
                item.model_copy(update=changes) if item.id == item_id else item
                for item in task.checklist
            ]
            updated = self._replace_locked(task, checklist=checklist)
        return updated

    def delete_checklist_item(self, user_id: str, task_id: str, item_id: str) -> Task:
        with self._transaction():
            task = self._owned_locked(user_id, task_id)
            checklist = [item for item in task.checklist if item.id != item_id]
            if len(checklist) == len(task.checklist):
                raise ChecklistItemNotFoundError(item_id)
            updated = self._replace_locked(task, checklist=checklist)
        return updated

    # ------------------------------------------------------------------- tags

    def list_tags(self, user_id: str) -> list[Tag]:
        """A user's tags ordered by name."""
        with self._lock:
            tags = [t for t in self._tags.values() if t.user_id == user_id]
        return sorted(tags, key=lambda t: (t.name, t.id))

    def _name_taken_locked(
        self, user_id: str, name: str, exclude_id: Optional[str] = None
    ) -> bool:
        return any(
            t.user_id == user_id and t.name == name and t.id != exclude_id
            for t in self._tags.values()
        )

    def add_tag(self, user_id: str, data: TagCreate) -> Tag:
        """Create a tag.

        Raises:
            TagExistsError: if the user already has a tag with the same name
        """
        tag = Tag(user_id=user_id, name=data.name, color=data.color)
        with self._transaction():
            if self._name_taken_locked(user_id, tag.name):
                raise TagExistsError(tag.name)
            self._tags[tag.id] = tag
        logger.info("Created tag %s (%s) for user %s", tag.id, tag.name, user_id)
        return tag

    def update_tag(self, user_id: str, tag_id: str, data: TagUpdate) -> Tag:
        """Rename and/or recolor a tag. Renaming onto another tag's name fails."""
        changes = {k: v for k, v in data.model_dump(exclude_unset=True).items() if v is not None}
        with self._transaction():
            tag = self._owned_tag_locked(user_id, tag_id)
            new_name = changes.get("name")
            if new_name and self._name_taken_locked(user_id, new_name, exclude_id=tag_id):
                raise TagExistsError(new_name)
            updated = tag.model_copy(update=changes)
            self._tags[tag_id] = updated
        return updated

    def delete_tag(self, user_id: str, tag_id: str) -> int:
        """Delete a tag and strip it from the user's tasks.

        Returns:
            Number of tasks that referenced the tag
        """
        with self._transaction():
            self._owned_tag_locked(user_id, tag_id)
            del self._tags[tag_id]
            tagged = [
                t for t in self._tasks.values() if t.user_id == user_id and tag_id in t.tags
            ]
            for task in tagged:
                self._replace_locked(task, tags=[t for t in task.tags if t != tag_id])
        logger.info("Deleted tag %s for user %s (%d tasks untagged)", tag_id, user_id, len(tagged))
        return len(tagged)

    def list_tasks(
        self,
        user_id: str,
        *,
        status: Optional[str] = None,
        q: Optional[str] = None,
        tags: Optional[Iterable[str]] = None,
        min_priority: Optional[int] = None,
        window_start: Optional[datetime] = None,
        window_end: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> list[Task]:
        """List a user's tasks, newest first.

        Args:
            user_id: Owner of the tasks
            status: Only tasks with this status
            q: Case-insensitive substring matched against title and description
            tags: Only tasks carrying at least one of these tags
            min_priority: Only tasks with priority >= this value
            window_start: Only tasks whose start or due date is on/after this
            window_end: Only tasks whose start or due date is on/before this
            limit: Maximum number of tasks to return
        """
        wanted_tags = {t for t in tags or () if t}
        needle = q.strip().lower() if q else ""

        with self._lock:
            candidates = [t for t in self._tasks.values() if t.user_id == user_id]

        results = []
        for task in candidates:
            if status and _status_value(task.status) != status:
                continue
            if min_priority is not None and task.priority < min_priority:
                continue
            if wanted_tags and not wanted_tags.intersection(task.tags):
                continue
            if needle:
                haystack = f"{task.title}\n{task.description or ''}".lower()
                if needle not in haystack:
                    continue
            if window_start is not None or window_end is not None:
                dates = [d for d in (task.start_at, task.due_at) if d is not None]
                if not any(
                    (window_start is None or d >= window_start)
                    and (window_end is None or d <= window_end)
                    for d in dates
                ):
                    continue
            results.append(task)

        results.sort(key=lambda t: t.created_at, reverse=True)
        if limit is not None:
            results = results[: max(0, limit)]
        return results

    def find_calendar_candidates(
        self, user_id: str, window_start: datetime, window_end: datetime
    ) -> list[Task]:
        """Coarse pre-filter of tasks that might produce occurrences in a window.

        Matches start-bounded tasks that start before the window ends and are not
        due before it starts, due-only tasks due inside the window, and every task
        with a recurrence rule. The expander makes the exact decision.
        """
        with self._lock:
            owned = [t for t in self._tasks.values() if t.user_id == user_id]

        candidates = []
        for task in owned:
            if task.is_recurring:
                candidates.append(task)
            elif task.start_at is not None:
                if task.start_at <= window_end and (
                    task.due_at is None or task.due_at >= window_start
                ):
                    candidates.append(task)
            elif task.due_at is not None and window_start <= task.due_at <= window_end:
                candidates.append(task)
        return candidates

    def all_tasks(self) -> list[Task]:
        """Snapshot of every task across all users."""
        with self._lock:
            return list(self._tasks.values())

    def open_tasks(self) -> list[Task]:
        """Snapshot of every task that is not done."""
        with self._lock:
            return [
                t for t in self._tasks.values() if _status_value(t.status) != TaskStatus.DONE.value
            ]

    def count_tasks(self) -> int:
        with self._lock:
            return len(self._tasks)
