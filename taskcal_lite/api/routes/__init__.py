"""Route registration for the taskcal_lite HTTP API."""

from .calendar_routes import register_calendar_routes
from .health_routes import register_health_routes
from .reminder_routes import register_reminder_routes
from .tag_routes import register_tag_routes
from .task_routes import register_task_routes

__all__ = [
    "register_calendar_routes",
    "register_health_routes",
    "register_reminder_routes",
    "register_tag_routes",
    "register_task_routes",
]
