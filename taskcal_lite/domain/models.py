"""Data models for tasks, recurrence rules and calendar occurrences."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Annotated, Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator

from ..core.timezone_utils import ensure_utc, now_utc, serialize_iso


class TaskStatus(str, Enum):
    """Task lifecycle status."""

    TODO = "todo"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class RecurrenceRule(str, Enum):
    """Closed set of recurrence rules understood by the expander."""

    NONE = "NONE"
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"


def _new_id() -> str:
    return uuid.uuid4().hex


def _blank_to_none(value: Any) -> Any:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return value


class ChecklistItem(BaseModel):
    """Single checklist entry on a task."""

    id: str = Field(default_factory=_new_id, description="Checklist item ID")
    label: str = Field(..., description="Checklist item text")
    done: bool = Field(default=False, description="Completion flag")


DEFAULT_TAG_COLOR = "#3B82F6"


class Tag(BaseModel):
    """User-defined label. Tasks reference tags by id in their ``tags`` list."""

    id: str = Field(default_factory=_new_id, description="Tag ID")
    user_id: str = Field(..., alias="userId", description="Owning user")
    name: str = Field(..., description="Tag name, unique per user")
    color: str = Field(default=DEFAULT_TAG_COLOR, description="Hex color #RRGGBB")
    created_at: datetime = Field(default_factory=now_utc, alias="createdAt")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("created_at")
    @classmethod
    def _normalize_utc(cls, value: datetime) -> datetime:
        return ensure_utc(value)

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return serialize_iso(dt)

    def to_api_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Recurrence(BaseModel):
    """Recurrence rule as stored on a task.

    Fields are deliberately loosely typed: stored and legacy records may carry
    unknown rule names or non-integer intervals. The expander decides whether a
    stored rule is usable; anything it cannot interpret is treated as NONE.
    """

    rule: Any = Field(default=RecurrenceRule.NONE.value, description="NONE/DAILY/WEEKLY/MONTHLY")
    interval: Any = Field(default=1, description="Step size in rule units")
    by_weekday: Optional[list[Any]] = Field(
        default=None, alias="byWeekday", description="Weekdays for WEEKLY, 0=Sunday"
    )
    count: Any = Field(default=None, description="Cap on total occurrences ever generated")
    until: Any = Field(default=None, description="Exclusive upper bound instant")

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @property
    def rule_name(self) -> str:
        """Upper-cased rule name, or NONE for missing values."""
        if self.rule is None:
            return RecurrenceRule.NONE.value
        raw = self.rule.value if isinstance(self.rule, Enum) else self.rule
        return str(raw).strip().upper() or RecurrenceRule.NONE.value

    @field_serializer("until")
    def serialize_until(self, value: Any) -> Any:
        """Serialize datetime bounds to ISO format, leave anything else untouched."""
        if isinstance(value, datetime):
            return serialize_iso(value)
        return value


class Task(BaseModel):
    """Task record as held by the task store."""

    id: str = Field(default_factory=_new_id, description="Task ID")
    user_id: str = Field(..., alias="userId", description="Owning user")
    title: str = Field(..., description="Task title")
    description: Optional[str] = Field(default=None, description="Free-form description")
    status: TaskStatus = Field(default=TaskStatus.TODO, description="Lifecycle status")
    priority: int = Field(default=3, description="Priority 1 (low) .. 5 (high)")
    tags: list[str] = Field(default_factory=list, description="Tag identifiers")

    start_at: Optional[datetime] = Field(default=None, alias="startAt")
    due_at: Optional[datetime] = Field(default=None, alias="dueAt")
    all_day: bool = Field(default=False, alias="allDay")

    estimate_minutes: Optional[int] = Field(default=None, alias="estimateMinutes")
    actual_minutes: int = Field(default=0, alias="actualMinutes")

    recurrence: Optional[Recurrence] = Field(default=None)
    checklist: list[ChecklistItem] = Field(default_factory=list)

    created_at: datetime = Field(default_factory=now_utc, alias="createdAt")
    updated_at: datetime = Field(default_factory=now_utc, alias="updatedAt")

    model_config = ConfigDict(populate_by_name=True, use_enum_values=True, extra="ignore")

    @field_validator("start_at", "due_at", "created_at", "updated_at")
    @classmethod
    def _normalize_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    @property
    def is_recurring(self) -> bool:
        """True if a recurrence rule other than NONE is attached (validity not checked)."""
        if self.recurrence is None:
            return False
        return self.recurrence.rule_name != RecurrenceRule.NONE.value

    @field_serializer("start_at", "due_at", "created_at", "updated_at")
    def serialize_datetime(self, dt: Optional[datetime]) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return serialize_iso(dt)

    def to_api_dict(self) -> dict[str, Any]:
        """JSON-ready representation with camelCase keys."""
        return self.model_dump(mode="json", by_alias=True)


class Occurrence(BaseModel):
    """One concrete, dated instance of a task inside a query window."""

    task_id: str = Field(..., alias="taskId")
    start_at: datetime = Field(..., alias="startAt")
    due_at: datetime = Field(..., alias="dueAt")
    all_day: bool = Field(default=False, alias="allDay")
    title: str
    status: str
    priority: int
    tags: list[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_serializer("start_at", "due_at")
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        """Serialize datetime fields to ISO format."""
        return serialize_iso(dt)

    def to_api_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Reminder(BaseModel):
    """Pending reminder for an upcoming occurrence."""

    user_id: str = Field(..., alias="userId")
    task_id: str = Field(..., alias="taskId")
    task_title: str = Field(..., alias="taskTitle")
    due_at: datetime = Field(..., alias="dueAt")
    reminder_at: datetime = Field(..., alias="reminderAt")

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    @field_serializer("due_at", "reminder_at")
    def serialize_datetime(self, dt: datetime) -> Optional[str]:
        return serialize_iso(dt)

    def to_api_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# Input models used by the API layer. Unlike the stored models above these are
# strict: bad input is reported as a validation error at creation time.

Weekday = Annotated[int, Field(ge=0, le=6)]


class RecurrenceInput(BaseModel):
    """Validated recurrence payload for create/update requests."""

    rule: RecurrenceRule
    interval: int = Field(default=1, ge=1)
    by_weekday: Optional[list[Weekday]] = Field(default=None, alias="byWeekday")
    count: Optional[int] = Field(default=None, ge=1)
    until: Optional[datetime] = None

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("rule", mode="before")
    @classmethod
    def _upper_rule(cls, value: Any) -> Any:
        return value.strip().upper() if isinstance(value, str) else value

    @field_validator("until")
    @classmethod
    def _until_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None

    def to_stored(self) -> Recurrence:
        return Recurrence(
            rule=self.rule.value,
            interval=self.interval,
            by_weekday=sorted(set(self.by_weekday)) if self.by_weekday else None,
            count=self.count,
            until=self.until,
        )


class ChecklistItemInput(BaseModel):
    label: str = Field(..., min_length=1)
    done: bool = False


class TaskCreate(BaseModel):
    """Validated payload for creating a task."""

    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    status: TaskStatus = TaskStatus.TODO
    priority: int = Field(default=3, ge=1, le=5)
    tags: list[str] = Field(default_factory=list)
    due_at: Optional[datetime] = Field(default=None, alias="dueAt")
    start_at: Optional[datetime] = Field(default=None, alias="startAt")
    all_day: bool = Field(default=False, alias="allDay")
    estimate_minutes: Optional[int] = Field(default=None, gt=0, alias="estimateMinutes")
    actual_minutes: int = Field(default=0, ge=0, alias="actualMinutes")
    recurrence: Optional[RecurrenceInput] = None
    checklist: list[ChecklistItemInput] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    @field_validator("title", mode="before")
    @classmethod
    def _strip_title(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("description", "due_at", "start_at", "estimate_minutes", mode="before")
    @classmethod
    def _blank_is_null(cls, value: Any) -> Any:
        return _blank_to_none(value)

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return 3 if value is None else value

    @field_validator("all_day", mode="before")
    @classmethod
    def _default_all_day(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value: Any) -> Any:
        return value if isinstance(value, list) else []

    @field_validator("due_at", "start_at")
    @classmethod
    def _dates_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None


class TaskUpdate(TaskCreate):
    """Partial update payload: every field optional, only set fields are applied."""

    title: Optional[str] = Field(default=None, min_length=1)  # type: ignore[assignment]
    status: Optional[TaskStatus] = None  # type: ignore[assignment]
    priority: Optional[int] = Field(default=None, ge=1, le=5)  # type: ignore[assignment]
    tags: Optional[list[str]] = None  # type: ignore[assignment]
    all_day: Optional[bool] = Field(default=None, alias="allDay")  # type: ignore[assignment]
    actual_minutes: Optional[int] = Field(  # type: ignore[assignment]
        default=None, ge=0, alias="actualMinutes"
    )
    checklist: Optional[list[ChecklistItemInput]] = None  # type: ignore[assignment]

    @field_validator("priority", mode="before")
    @classmethod
    def _default_priority(cls, value: Any) -> Any:
        return value

    @field_validator("all_day", mode="before")
    @classmethod
    def _default_all_day(cls, value: Any) -> Any:
        return value

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value: Any) -> Any:
        return value


class ChecklistItemUpdate(BaseModel):
    label: Optional[str] = Field(default=None, min_length=1)
    done: Optional[bool] = None


HexColor = Annotated[str, Field(pattern=r"^#[0-9A-Fa-f]{6}$")]


class TagCreate(BaseModel):
    """Validated payload for creating a tag."""

    name: str = Field(..., min_length=1)
    color: HexColor = DEFAULT_TAG_COLOR

    model_config = ConfigDict(extra="ignore")

    @field_validator("name", mode="before")
    @classmethod
    def _strip_name(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value


class TagUpdate(TagCreate):
    """Partial tag update: only the fields present are applied."""

    name: Optional[str] = Field(default=None, min_length=1)  # type: ignore[assignment]
    color: Optional[HexColor] = None  # type: ignore[assignment]
