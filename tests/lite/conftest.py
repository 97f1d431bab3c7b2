from collections.abc import Callable, Generator
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from typing import Any

import pytest

from taskcal_lite.domain.models import Recurrence, Task
from taskcal_lite.domain.task_store import TaskStore


@pytest.fixture
def simple_settings(tmp_path: Path) -> SimpleNamespace:
    """Lightweight settings object used across lite tests.

    Mirrors the attribute names of taskcal_lite.config_loader.Config so code
    reading config through get_config_value() works unchanged.
    """
    return SimpleNamespace(
        server_bind="127.0.0.1",
        server_port=8080,
        tasks_path=str(tmp_path / "tasks.json"),
        log_level="INFO",
        api_bearer_token=None,
        default_user_id="default",
        reminder_minutes_before=15,
        reminder_scan_interval_seconds=60,
        max_occurrences_per_task=365,
        max_tasks_per_calendar_request=500,
        debug_logging=False,
    )


@pytest.fixture(autouse=True)
def clean_test_environment(monkeypatch: Any) -> Generator[None, Any, None]:
    """Clear TASKCAL_* variables that tests set to freeze time or change config."""
    for name in ("TASKCAL_TEST_TIME", "TASKCAL_DEBUG", "TASKCAL_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    yield
    monkeypatch.delenv("TASKCAL_TEST_TIME", raising=False)


@pytest.fixture
def utc() -> Callable[..., datetime]:
    """Shorthand for building aware UTC datetimes: utc(2024, 1, 1, 9)."""

    def _utc(*args: int) -> datetime:
        return datetime(*args, tzinfo=timezone.utc)

    return _utc


@pytest.fixture
def make_task() -> Callable[..., Task]:
    """Factory for Task records with sensible defaults.

    ``recurrence`` may be a dict (stored form, validated leniently) or None.
    """

    def _make(
        *,
        start_at: datetime | None = None,
        due_at: datetime | None = None,
        recurrence: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> Task:
        fields: dict[str, Any] = {
            "user_id": "user-1",
            "title": "Water plants",
            "priority": 3,
            "tags": ["home"],
            "start_at": start_at,
            "due_at": due_at,
            "recurrence": Recurrence.model_validate(recurrence) if recurrence else None,
        }
        fields.update(overrides)
        return Task(**fields)

    return _make


@pytest.fixture
def task_store(tmp_path: Path) -> TaskStore:
    return TaskStore(tmp_path / "tasks.json")
