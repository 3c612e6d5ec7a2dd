"""Cron scheduling with a single in-flight run.

APScheduler fires the ticks; this module owns the guard that keeps at most one
monitoring cycle running. A tick that arrives while a cycle is still running
is dropped (never queued), and the manual trigger goes through the same guard.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

LOGGER = logging.getLogger(__name__)

JOB_ID = "topic-monitor-cycle"

Callback = Callable[[], Awaitable[object]]


def build_trigger(expression: str) -> CronTrigger:
    """Build a CronTrigger from a 5-field crontab or 6-field (seconds first) expression."""

    fields = expression.split()
    if len(fields) == 6:
        second, minute, hour, day, month, day_of_week = fields
        return CronTrigger(
            second=second,
            minute=minute,
            hour=hour,
            day=day,
            month=month,
            day_of_week=day_of_week,
        )
    return CronTrigger.from_crontab(expression)


class MonitorScheduler:
    """Periodic trigger with a single-flight guard and a manual trigger."""

    def __init__(self, schedule: str, callback: Callback) -> None:
        self._schedule = schedule
        self._callback = callback
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._in_flight = False
        self.skipped_runs = 0
        self.completed_runs = 0

    @staticmethod
    def validate(expression: str) -> bool:
        """Return True when the expression is an accepted cron expression."""

        if not expression or not expression.strip():
            return False
        try:
            build_trigger(expression.strip())
        except (ValueError, TypeError):
            return False
        return True

    @property
    def schedule(self) -> str:
        return self._schedule

    @property
    def is_running(self) -> bool:
        """True while the periodic trigger is armed."""

        return self._scheduler is not None

    @property
    def in_flight(self) -> bool:
        """True while the callback is executing."""

        return self._in_flight

    def start(self) -> bool:
        if self._scheduler is not None:
            LOGGER.warning("Scheduler is already running")
            return False
        if not self.validate(self._schedule):
            LOGGER.error("Invalid cron schedule: %s", self._schedule)
            return False

        scheduler = AsyncIOScheduler()
        # Overlapping ticks must reach the in-flight guard to be counted.
        scheduler.add_job(
            self._on_tick,
            trigger=build_trigger(self._schedule.strip()),
            id=JOB_ID,
            max_instances=2,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        LOGGER.info("Monitoring scheduler started with schedule: %s", self._schedule)
        return True

    def stop(self) -> bool:
        if self._scheduler is None:
            LOGGER.warning("Scheduler is not running")
            return False
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        LOGGER.info("Monitoring scheduler stopped")
        return True

    def update_schedule(self, expression: str) -> bool:
        """Swap the cron expression, restarting the trigger if it is armed."""

        if not self.validate(expression):
            LOGGER.error("Invalid cron schedule: %s", expression)
            return False

        was_running = self._scheduler is not None
        if was_running:
            self.stop()
        self._schedule = expression
        if was_running:
            return self.start()
        return True

    async def run_now(self) -> bool:
        """Run the callback immediately; False when a run is already in flight."""

        return await self._guarded_run("manual")

    async def _on_tick(self) -> None:
        await self._guarded_run("scheduled")

    async def _guarded_run(self, trigger: str) -> bool:
        if self._in_flight:
            self.skipped_runs += 1
            LOGGER.warning("Previous monitoring run is still in flight, skipping %s run", trigger)
            return False

        self._in_flight = True
        LOGGER.info(
            "Running %s monitoring task at %s",
            trigger,
            datetime.now(timezone.utc).isoformat(),
        )
        try:
            await self._callback()
            self.completed_runs += 1
            LOGGER.info("%s monitoring task completed", trigger.capitalize())
        except Exception:
            LOGGER.exception("Error in %s monitoring task", trigger)
        finally:
            self._in_flight = False
        return True
