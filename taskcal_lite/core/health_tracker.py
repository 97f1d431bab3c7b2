"""Health tracking for the taskcal_lite server."""

from __future__ import annotations

import os
import threading
import time
from dataclasses import asdict, dataclass
from typing import Any, Optional

# A reminder scan older than this marks the server as degraded.
STALE_SCAN_SECONDS = 900


@dataclass
class HealthStatus:
    """Health status information for the server."""

    status: str  # "ok" or "degraded"
    server_time_iso: str
    uptime_seconds: int
    pid: int
    task_count: int
    pending_reminders: int
    last_reminder_scan_age_seconds: Optional[int]
    reminders_queued_last_scan: int

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


class HealthTracker:
    """Thread-safe health tracking for server monitoring."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._start_time: float = time.time()
        self._last_scan: Optional[float] = None
        self._last_scan_added: int = 0

    def record_reminder_scan(self, reminders_added: int) -> None:
        """Record a completed reminder scan.

        Args:
            reminders_added: Number of reminders the scan queued
        """
        with self._lock:
            self._last_scan = time.time()
            self._last_scan_added = reminders_added

    def get_uptime_seconds(self) -> int:
        return int(time.time() - self._start_time)

    def get_last_scan_age_seconds(self) -> Optional[int]:
        """Seconds since the last reminder scan, or None if none has run."""
        with self._lock:
            last = self._last_scan
        if last is None:
            return None
        return int(time.time() - last)

    def determine_overall_status(self) -> str:
        age = self.get_last_scan_age_seconds()
        if age is None or age > STALE_SCAN_SECONDS:
            return "degraded"
        return "ok"

    def get_health_status(
        self, current_time_iso: str, *, task_count: int, pending_reminders: int
    ) -> HealthStatus:
        """Get comprehensive health status.

        Args:
            current_time_iso: Current time in ISO format
            task_count: Number of tasks in the store
            pending_reminders: Number of reminders waiting in the queue
        """
        with self._lock:
            added = self._last_scan_added
        return HealthStatus(
            status=self.determine_overall_status(),
            server_time_iso=current_time_iso,
            uptime_seconds=self.get_uptime_seconds(),
            pid=os.getpid(),
            task_count=task_count,
            pending_reminders=pending_reminders,
            last_reminder_scan_age_seconds=self.get_last_scan_age_seconds(),
            reminders_queued_last_scan=added,
        )
