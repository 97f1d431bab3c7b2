"""Exception hierarchy for taskcal_lite.

The recurrence expander never raises; these exceptions belong to the store and
API layers, where the error-handling middleware maps them to HTTP responses.
"""

from __future__ import annotations

from typing import Any


class TaskCalError(Exception):
    """Base exception for all taskcal_lite errors."""


class TaskValidationError(TaskCalError):
    """Request payload or query parameters failed validation.

    Should result in HTTP 400 Bad Request response.
    """

    def __init__(self, message: str, details: list[dict[str, Any]] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or []


class NotFoundError(TaskCalError):
    """A resource does not exist or is not owned by the requesting user.

    Should result in HTTP 404 Not Found response.
    """

    resource = "Resource"

    def __init__(self, identifier: str) -> None:
        self.message = f"{self.resource} not found"
        super().__init__(f"{self.message}: {identifier}")
        self.identifier = identifier


class TaskNotFoundError(NotFoundError):
    resource = "Task"

    def __init__(self, task_id: str) -> None:
        super().__init__(task_id)
        self.task_id = task_id


class TagNotFoundError(NotFoundError):
    resource = "Tag"


class ChecklistItemNotFoundError(NotFoundError):
    resource = "Checklist item"


class TagExistsError(TaskCalError):
    """The user already has a tag with this name.

    Should result in HTTP 400 with code TAG_EXISTS.
    """

    def __init__(self, name: str) -> None:
        super().__init__("Tag with this name already exists")
        self.name = name


class TaskStoreError(TaskCalError):
    """Persisting the task store failed."""


class AuthenticationError(TaskCalError):
    """Bearer token is missing or invalid.

    Should result in HTTP 401 Unauthorized response.
    """
