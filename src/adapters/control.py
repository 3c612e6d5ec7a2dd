"""Control surface for an external dispatch layer.

The dispatch layer (a chat command handler, a tool server, the CLI) is handed
an explicitly constructed MonitorControl at startup. Responses are plain
dicts with ``success``/``message`` fields so any transport can serialize them.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from core.monitor import TopicMonitor

LOGGER = logging.getLogger(__name__)

DISABLED_MESSAGE = "Monitoring is not enabled or initialized"


def _response(success: bool, message: str, **extra: Any) -> dict[str, Any]:
    return {"success": success, "message": message, **extra}


class MonitorControl:
    """start / stop / run-now / status operations over one TopicMonitor."""

    def __init__(self, monitor: Optional[TopicMonitor]) -> None:
        self._monitor = monitor

    @property
    def enabled(self) -> bool:
        return self._monitor is not None

    async def start(self) -> dict[str, Any]:
        if self._monitor is None:
            return _response(False, DISABLED_MESSAGE)
        if await self._monitor.start():
            return _response(True, f"Monitoring scheduled: {self._monitor.scheduler.schedule}")
        return _response(False, "Monitoring could not be started, see logs")

    def stop(self) -> dict[str, Any]:
        if self._monitor is None:
            return _response(False, DISABLED_MESSAGE)
        if self._monitor.stop():
            return _response(True, "Monitoring stopped")
        return _response(False, "Monitoring is not scheduled")

    async def run_monitoring(self) -> dict[str, Any]:
        if self._monitor is None:
            return _response(False, DISABLED_MESSAGE)
        ran = await self._monitor.run_now()
        if not ran:
            LOGGER.info("Run-now request ignored, a cycle is already in flight")
            return _response(False, "A monitoring cycle is already in progress")

        report = self._monitor.last_report
        if report is None:
            return _response(True, "Monitoring process completed successfully")
        if report.skip_reason is not None:
            return _response(False, report.skip_reason)
        return _response(
            True,
            "Monitoring process completed successfully",
            channels=len(report.outcomes),
            matches=len(report.results),
            notifications=report.notifications_sent,
            failures=[outcome.channel_name for outcome in report.failures],
        )

    def get_status(self) -> dict[str, Any]:
        if self._monitor is None:
            return {"enabled": False, "running": False, "scheduled": False, "schedule": None}
        return {
            "enabled": True,
            "running": self._monitor.is_running(),
            "scheduled": self._monitor.is_scheduled(),
            "schedule": self._monitor.scheduler.schedule,
        }
