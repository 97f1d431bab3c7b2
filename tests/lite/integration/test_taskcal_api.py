"""End-to-end tests of the taskcal_lite HTTP API against a real aiohttp app."""

import tempfile
from datetime import datetime, timezone
from pathlib import Path

import pytest
from aiohttp.test_utils import AioHTTPTestCase

from taskcal_lite.api.server import build_app
from taskcal_lite.config_loader import Config
from taskcal_lite.core.health_tracker import HealthTracker
from taskcal_lite.domain.models import TaskCreate
from taskcal_lite.domain.reminders import ReminderQueue, scan_for_reminders
from taskcal_lite.domain.task_store import TaskStore

pytestmark = pytest.mark.integration


class TaskcalApiTestCase(AioHTTPTestCase):
    """Builds the full application around a throwaway task file."""

    bearer_token = None
    config_overrides: dict = {}

    async def get_application(self):
        tmpdir = tempfile.TemporaryDirectory()
        self.addCleanup(tmpdir.cleanup)

        self.config = Config.from_dict(
            {
                "tasks_path": str(Path(tmpdir.name) / "tasks.json"),
                "default_user_id": "default",
                "api_bearer_token": self.bearer_token,
                **self.config_overrides,
            }
        )
        self.task_store = TaskStore(self.config.tasks_path)
        self.reminder_queue = ReminderQueue()
        self.health_tracker = HealthTracker()
        return build_app(self.config, self.task_store, self.reminder_queue, self.health_tracker)

    async def create_task(self, payload, user="alice"):
        resp = await self.client.post("/api/tasks", json=payload, headers={"X-User-Id": user})
        assert resp.status == 201, await resp.text()
        return (await resp.json())["task"]


class TestCalendarEndpoint(TaskcalApiTestCase):
    async def test_calendar_when_daily_task_then_expands_per_day(self):
        await self.create_task(
            {
                "title": "Stand-up",
                "startAt": "2024-01-01T09:00:00Z",
                "dueAt": "2024-01-01T09:15:00Z",
                "recurrence": {"rule": "DAILY", "count": 5},
            }
        )

        resp = await self.client.get(
            "/api/calendar",
            params={"from": "2024-01-01", "to": "2024-01-03"},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 200
        events = (await resp.json())["events"]
        assert [e["startAt"] for e in events] == [
            "2024-01-01T09:00:00Z",
            "2024-01-02T09:00:00Z",
            "2024-01-03T09:00:00Z",
        ]
        assert events[0]["dueAt"] == "2024-01-01T09:15:00Z"
        assert events[0]["title"] == "Stand-up"
        assert events[0]["status"] == "todo"

    async def test_calendar_when_count_reached_then_series_ends(self):
        await self.create_task(
            {
                "title": "Physio",
                "startAt": "2024-01-01T18:00:00Z",
                "recurrence": {"rule": "WEEKLY", "count": 2},
            }
        )

        resp = await self.client.get(
            "/api/calendar",
            params={"from": "2024-01-01T00:00:00Z", "to": "2024-02-01T00:00:00Z"},
            headers={"X-User-Id": "alice"},
        )

        events = (await resp.json())["events"]
        assert [e["startAt"] for e in events] == [
            "2024-01-01T18:00:00Z",
            "2024-01-08T18:00:00Z",
        ]

    async def test_calendar_when_same_start_then_higher_priority_first(self):
        for title, priority in (("Low", 1), ("High", 5)):
            await self.create_task(
                {
                    "title": title,
                    "priority": priority,
                    "startAt": "2024-03-01T08:00:00Z",
                    "dueAt": "2024-03-01T09:00:00Z",
                }
            )

        resp = await self.client.get(
            "/api/calendar",
            params={"from": "2024-03-01", "to": "2024-03-01"},
            headers={"X-User-Id": "alice"},
        )

        events = (await resp.json())["events"]
        assert [e["title"] for e in events] == ["High", "Low"]

    async def test_calendar_when_other_user_then_no_events(self):
        await self.create_task(
            {"title": "Private", "startAt": "2024-01-01T09:00:00Z", "dueAt": "2024-01-01T10:00:00Z"}
        )

        resp = await self.client.get(
            "/api/calendar",
            params={"from": "2024-01-01", "to": "2024-01-31"},
            headers={"X-User-Id": "bob"},
        )

        assert (await resp.json())["events"] == []

    async def test_calendar_when_window_missing_then_validation_error(self):
        resp = await self.client.get("/api/calendar", params={"from": "2024-01-01"})

        assert resp.status == 400
        error = (await resp.json())["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"] == [{"path": "to", "message": "Required"}]

    async def test_calendar_when_window_unparseable_then_validation_error(self):
        resp = await self.client.get(
            "/api/calendar", params={"from": "yesterday", "to": "2024-01-01"}
        )

        assert resp.status == 400
        error = (await resp.json())["error"]
        assert error["details"][0]["path"] == "from"

    async def test_calendar_when_window_inverted_then_empty(self):
        await self.create_task(
            {"title": "Any", "startAt": "2024-01-01T09:00:00Z", "recurrence": {"rule": "DAILY"}},
            user="default",
        )

        resp = await self.client.get(
            "/api/calendar", params={"from": "2024-02-01", "to": "2024-01-01"}
        )

        assert resp.status == 200
        assert (await resp.json())["events"] == []


class TestTaskEndpoints(TaskcalApiTestCase):
    async def test_create_when_valid_then_stored_with_recurrence(self):
        task = await self.create_task(
            {
                "title": "  Gym  ",
                "priority": 4,
                "tags": ["health"],
                "startAt": "2024-01-01T07:00:00Z",
                "recurrence": {"rule": "weekly", "byWeekday": [3, 1, 1]},
            }
        )

        assert task["title"] == "Gym"
        assert task["userId"] == "alice"
        assert task["recurrence"]["rule"] == "WEEKLY"
        assert task["recurrence"]["byWeekday"] == [1, 3]
        assert self.task_store.get_task("alice", task["id"]).priority == 4

    async def test_create_when_priority_out_of_range_then_400(self):
        resp = await self.client.post("/api/tasks", json={"title": "Bad", "priority": 9})

        assert resp.status == 400
        error = (await resp.json())["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"][0]["path"] == "priority"

    async def test_create_when_interval_zero_then_400(self):
        resp = await self.client.post(
            "/api/tasks",
            json={"title": "Bad", "recurrence": {"rule": "DAILY", "interval": 0}},
        )

        assert resp.status == 400
        assert (await resp.json())["error"]["details"][0]["path"] == "recurrence.interval"

    async def test_create_when_body_not_json_then_400(self):
        resp = await self.client.post(
            "/api/tasks", data="not json", headers={"Content-Type": "application/json"}
        )

        assert resp.status == 400
        assert (await resp.json())["error"]["code"] == "VALIDATION_ERROR"

    async def test_get_when_other_user_then_404(self):
        task = await self.create_task({"title": "Mine"})

        resp = await self.client.get(f"/api/tasks/{task['id']}", headers={"X-User-Id": "bob"})

        assert resp.status == 404
        assert (await resp.json())["error"]["code"] == "NOT_FOUND"

    async def test_patch_when_fields_set_then_only_those_change(self):
        task = await self.create_task({"title": "Draft report", "priority": 2, "tags": ["work"]})

        resp = await self.client.patch(
            f"/api/tasks/{task['id']}",
            json={"status": "done", "title": "Final report"},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 200
        updated = (await resp.json())["task"]
        assert updated["status"] == "done"
        assert updated["title"] == "Final report"
        assert updated["priority"] == 2
        assert updated["tags"] == ["work"]

    async def test_patch_when_recurrence_null_then_removed(self):
        task = await self.create_task(
            {"title": "Habit", "startAt": "2024-01-01T07:00:00Z", "recurrence": {"rule": "DAILY"}}
        )

        resp = await self.client.patch(
            f"/api/tasks/{task['id']}", json={"recurrence": None}, headers={"X-User-Id": "alice"}
        )

        assert (await resp.json())["task"]["recurrence"] is None

    async def test_delete_when_owned_then_gone(self):
        task = await self.create_task({"title": "Temporary"})

        resp = await self.client.delete(f"/api/tasks/{task['id']}", headers={"X-User-Id": "alice"})
        assert resp.status == 200
        assert (await resp.json())["message"] == "Task deleted"

        resp = await self.client.get(f"/api/tasks/{task['id']}", headers={"X-User-Id": "alice"})
        assert resp.status == 404

    async def test_list_when_filtered_then_matching_tasks_only(self):
        await self.create_task({"title": "Buy milk", "tags": ["errand"], "priority": 2})
        await self.create_task({"title": "Pay rent", "tags": ["bills"], "priority": 5})
        await self.create_task({"title": "Buy stamps", "tags": ["errand"], "status": "done"})

        resp = await self.client.get(
            "/api/tasks", params={"q": "buy", "status": "todo"}, headers={"X-User-Id": "alice"}
        )
        assert [t["title"] for t in (await resp.json())["tasks"]] == ["Buy milk"]

        resp = await self.client.get(
            "/api/tasks", params={"priority": "4"}, headers={"X-User-Id": "alice"}
        )
        assert [t["title"] for t in (await resp.json())["tasks"]] == ["Pay rent"]

    async def test_list_when_limit_invalid_then_400(self):
        resp = await self.client.get("/api/tasks", params={"limit": "0"})

        assert resp.status == 400
        assert (await resp.json())["error"]["details"][0]["path"] == "limit"

    async def test_occurrences_when_weekday_rule_then_listed_days(self):
        # 2024-01-01 is a Monday
        task = await self.create_task(
            {
                "title": "Swim",
                "startAt": "2024-01-01T10:00:00Z",
                "dueAt": "2024-01-01T11:00:00Z",
                "recurrence": {"rule": "WEEKLY", "byWeekday": [1, 3]},
            }
        )

        resp = await self.client.get(
            f"/api/tasks/{task['id']}/occurrences",
            params={"from": "2024-01-01", "to": "2024-01-14"},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 200
        events = (await resp.json())["events"]
        assert [e["startAt"] for e in events] == [
            "2024-01-01T10:00:00Z",
            "2024-01-03T10:00:00Z",
            "2024-01-08T10:00:00Z",
            "2024-01-10T10:00:00Z",
        ]
        assert all(e["taskId"] == task["id"] for e in events)
        assert events[1]["dueAt"] == "2024-01-03T11:00:00Z"


class TestRemindersAndHealth(TaskcalApiTestCase):
    def _queue_reminder(self, user_id, now):
        task = self.task_store.add_task(
            user_id,
            TaskCreate.model_validate(
                {
                    "title": "Take pills",
                    "startAt": "2024-05-01T08:10:00Z",
                    "recurrence": {"rule": "DAILY"},
                }
            ),
        )
        scan_for_reminders(self.task_store.open_tasks(), now, 15, self.reminder_queue)
        return task

    async def test_reminders_when_scanned_then_listed_and_dismissable(self):
        now = datetime(2024, 5, 3, 8, 0, tzinfo=timezone.utc)
        task = self._queue_reminder("alice", now)

        resp = await self.client.get("/api/reminders", headers={"X-User-Id": "alice"})
        reminders = (await resp.json())["reminders"]
        assert reminders == [
            {
                "userId": "alice",
                "taskId": task.id,
                "taskTitle": "Take pills",
                "dueAt": "2024-05-03T08:10:00Z",
                "reminderAt": "2024-05-03T08:00:00Z",
            }
        ]

        resp = await self.client.delete(f"/api/reminders/{task.id}", headers={"X-User-Id": "alice"})
        assert (await resp.json())["dismissed"] == 1

        resp = await self.client.get("/api/reminders", headers={"X-User-Id": "alice"})
        assert (await resp.json())["reminders"] == []

    async def test_reminders_when_other_user_then_hidden(self):
        self._queue_reminder("alice", datetime(2024, 5, 3, 8, 0, tzinfo=timezone.utc))

        resp = await self.client.get("/api/reminders", headers={"X-User-Id": "bob"})

        assert (await resp.json())["reminders"] == []

    async def test_health_when_no_scan_then_503(self):
        resp = await self.client.get("/api/health")

        assert resp.status == 503
        body = await resp.json()
        assert body["status"] == "degraded"
        assert body["last_reminder_scan_age_seconds"] is None

    async def test_health_when_scanned_then_200(self):
        self.health_tracker.record_reminder_scan(0)

        resp = await self.client.get("/api/health")

        assert resp.status == 200
        assert (await resp.json())["status"] == "ok"

    async def test_error_response_when_request_id_sent_then_echoed(self):
        resp = await self.client.get("/api/tasks/missing", headers={"X-Request-ID": "trace-1"})

        assert resp.status == 404
        assert resp.headers["X-Request-ID"] == "trace-1"


class TestBearerTokenAuth(TaskcalApiTestCase):
    bearer_token = "s3cret"

    async def test_api_when_token_missing_then_401(self):
        resp = await self.client.get("/api/tasks")

        assert resp.status == 401
        assert (await resp.json())["error"]["code"] == "UNAUTHORIZED"

    async def test_api_when_token_wrong_then_401(self):
        resp = await self.client.get("/api/tasks", headers={"Authorization": "Bearer nope"})

        assert resp.status == 401

    async def test_api_when_token_valid_then_200(self):
        resp = await self.client.get("/api/tasks", headers={"Authorization": "Bearer s3cret"})

        assert resp.status == 200
        assert (await resp.json())["tasks"] == []

    async def test_health_when_no_token_then_still_reachable(self):
        resp = await self.client.get("/api/health")

        assert resp.status == 503


class TestCalendarCandidateLimit(TaskcalApiTestCase):
    config_overrides = {"max_tasks_per_calendar_request": 1}

    async def test_calendar_when_over_limit_then_keeps_task_inside_window(self):
        await self.create_task(
            {
                "title": "Quarterly project",
                "startAt": "2024-01-01T00:00:00Z",
                "dueAt": "2024-12-31T00:00:00Z",
            }
        )
        await self.create_task(
            {"title": "Dentist", "startAt": "2024-06-12T14:00:00Z", "dueAt": "2024-06-12T15:00:00Z"}
        )

        resp = await self.client.get(
            "/api/calendar",
            params={"from": "2024-06-01", "to": "2024-06-30"},
            headers={"X-User-Id": "alice"},
        )

        assert [e["title"] for e in (await resp.json())["events"]] == ["Dentist"]


class TestTagEndpoints(TaskcalApiTestCase):
    async def create_tag(self, payload, user="alice"):
        resp = await self.client.post("/api/tags", json=payload, headers={"X-User-Id": user})
        assert resp.status == 201, await resp.text()
        return (await resp.json())["tag"]

    async def test_create_when_valid_then_listed_by_name(self):
        await self.create_tag({"name": "work"})
        home = await self.create_tag({"name": "  home ", "color": "#10B981"})
        await self.create_tag({"name": "errands"}, user="bob")

        resp = await self.client.get("/api/tags", headers={"X-User-Id": "alice"})

        assert resp.status == 200
        tags = (await resp.json())["tags"]
        assert [(t["name"], t["color"]) for t in tags] == [
            ("home", "#10B981"),
            ("work", "#3B82F6"),
        ]
        assert tags[0]["id"] == home["id"]
        assert tags[0]["userId"] == "alice"

    async def test_create_when_name_taken_then_tag_exists(self):
        await self.create_tag({"name": "work"})

        resp = await self.client.post(
            "/api/tags", json={"name": "work"}, headers={"X-User-Id": "alice"}
        )

        assert resp.status == 400
        error = (await resp.json())["error"]
        assert error["code"] == "TAG_EXISTS"
        assert error["message"] == "Tag with this name already exists"

    async def test_create_when_color_invalid_then_400(self):
        resp = await self.client.post(
            "/api/tags", json={"name": "work", "color": "blue"}, headers={"X-User-Id": "alice"}
        )

        assert resp.status == 400
        error = (await resp.json())["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert error["details"][0]["path"] == "color"

    async def test_patch_when_renamed_then_color_kept(self):
        tag = await self.create_tag({"name": "work", "color": "#EF4444"})

        resp = await self.client.patch(
            f"/api/tags/{tag['id']}", json={"name": "job"}, headers={"X-User-Id": "alice"}
        )

        assert resp.status == 200
        updated = (await resp.json())["tag"]
        assert updated["name"] == "job"
        assert updated["color"] == "#EF4444"

    async def test_patch_when_renamed_onto_other_tag_then_tag_exists(self):
        await self.create_tag({"name": "home"})
        work = await self.create_tag({"name": "work"})

        resp = await self.client.patch(
            f"/api/tags/{work['id']}", json={"name": "home"}, headers={"X-User-Id": "alice"}
        )

        assert resp.status == 400
        assert (await resp.json())["error"]["code"] == "TAG_EXISTS"

    async def test_delete_when_tag_on_task_then_removed_from_task(self):
        work = await self.create_tag({"name": "work"})
        home = await self.create_tag({"name": "home"})
        task = await self.create_task({"title": "Taxes", "tags": [work["id"], home["id"]]})

        resp = await self.client.delete(f"/api/tags/{work['id']}", headers={"X-User-Id": "alice"})

        assert resp.status == 200
        assert await resp.json() == {"message": "Tag deleted", "tasksUpdated": 1}
        resp = await self.client.get(f"/api/tasks/{task['id']}", headers={"X-User-Id": "alice"})
        assert (await resp.json())["task"]["tags"] == [home["id"]]

    async def test_delete_when_other_user_then_404(self):
        tag = await self.create_tag({"name": "work"})

        resp = await self.client.delete(f"/api/tags/{tag['id']}", headers={"X-User-Id": "bob"})

        assert resp.status == 404
        error = (await resp.json())["error"]
        assert error["code"] == "NOT_FOUND"
        assert error["message"] == "Tag not found"


class TestChecklistEndpoints(TaskcalApiTestCase):
    async def test_add_when_valid_then_item_appended(self):
        task = await self.create_task({"title": "Move house", "checklist": [{"label": "Boxes"}]})

        resp = await self.client.post(
            f"/api/tasks/{task['id']}/checklist",
            json={"label": "Book van"},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 200
        checklist = (await resp.json())["task"]["checklist"]
        assert [(i["label"], i["done"]) for i in checklist] == [
            ("Boxes", False),
            ("Book van", False),
        ]
        assert checklist[1]["id"] not in (None, "", checklist[0]["id"])

    async def test_add_when_label_empty_then_400(self):
        task = await self.create_task({"title": "Move house"})

        resp = await self.client.post(
            f"/api/tasks/{task['id']}/checklist", json={"label": ""}, headers={"X-User-Id": "alice"}
        )

        assert resp.status == 400
        assert (await resp.json())["error"]["details"][0]["path"] == "label"

    async def test_patch_when_done_set_then_only_that_item_changes(self):
        task = await self.create_task(
            {"title": "Move house", "checklist": [{"label": "Boxes"}, {"label": "Tape"}]}
        )
        item_id = task["checklist"][1]["id"]

        resp = await self.client.patch(
            f"/api/tasks/{task['id']}/checklist/{item_id}",
            json={"done": True},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 200
        checklist = (await resp.json())["task"]["checklist"]
        assert [(i["label"], i["done"]) for i in checklist] == [("Boxes", False), ("Tape", True)]

    async def test_delete_when_item_exists_then_removed(self):
        task = await self.create_task(
            {"title": "Move house", "checklist": [{"label": "Boxes"}, {"label": "Tape"}]}
        )
        item_id = task["checklist"][0]["id"]

        resp = await self.client.delete(
            f"/api/tasks/{task['id']}/checklist/{item_id}", headers={"X-User-Id": "alice"}
        )

        assert resp.status == 200
        assert [i["label"] for i in (await resp.json())["task"]["checklist"]] == ["Tape"]

    async def test_patch_when_item_unknown_then_404(self):
        task = await self.create_task({"title": "Move house"})

        resp = await self.client.patch(
            f"/api/tasks/{task['id']}/checklist/missing",
            json={"done": True},
            headers={"X-User-Id": "alice"},
        )

        assert resp.status == 404
        assert (await resp.json())["error"]["message"] == "Checklist item not found"

    async def test_add_when_other_users_task_then_404(self):
        task = await self.create_task({"title": "Move house"})

        resp = await self.client.post(
            f"/api/tasks/{task['id']}/checklist",
            json={"label": "Sneak"},
            headers={"X-User-Id": "bob"},
        )

        assert resp.status == 404
        assert (await resp.json())["error"]["message"] == "Task not found"
