from __future__ import annotations

import asyncio

import pytest

from core.scheduler import MonitorScheduler


async def _noop() -> None:
    return None


@pytest.mark.parametrize(
    "expression",
    ["*/5 * * * *", "0 9 * * 1-5", "30 */2 * * *", "*/10 * * * * *"],
)
def test_validate_accepts_cron_expressions(expression: str) -> None:
    assert MonitorScheduler.validate(expression)


@pytest.mark.parametrize("expression", ["", "   ", "not a cron", "61 * * * *", "* * *"])
def test_validate_rejects_malformed_expressions(expression: str) -> None:
    assert not MonitorScheduler.validate(expression)


def test_start_with_invalid_schedule_stays_stopped() -> None:
    scheduler = MonitorScheduler("every five minutes", _noop)

    assert scheduler.start() is False
    assert not scheduler.is_running
    assert scheduler.stop() is False


def test_start_and_stop_transitions() -> None:
    async def scenario() -> list[bool]:
        scheduler = MonitorScheduler("*/5 * * * *", _noop)
        observed = [scheduler.start(), scheduler.is_running, scheduler.start()]
        observed.extend([scheduler.stop(), scheduler.is_running])
        return observed

    assert asyncio.run(scenario()) == [True, True, False, True, False]


def test_overlapping_runs_are_skipped_not_queued() -> None:
    async def scenario():
        started = asyncio.Event()
        release = asyncio.Event()
        calls: list[int] = []

        async def callback() -> None:
            calls.append(1)
            started.set()
            await release.wait()

        scheduler = MonitorScheduler("*/5 * * * *", callback)
        first = asyncio.create_task(scheduler.run_now())
        await started.wait()
        in_flight = scheduler.in_flight
        manual = await scheduler.run_now()
        await scheduler._on_tick()
        release.set()
        first_result = await first
        return scheduler, calls, in_flight, manual, first_result

    scheduler, calls, in_flight, manual, first_result = asyncio.run(scenario())

    assert in_flight
    assert manual is False
    assert first_result is True
    assert calls == [1]
    assert scheduler.skipped_runs == 2
    assert scheduler.completed_runs == 1
    assert not scheduler.in_flight


def test_failing_callback_clears_in_flight_flag() -> None:
    async def boom() -> None:
        raise RuntimeError("cycle exploded")

    async def scenario():
        scheduler = MonitorScheduler("*/5 * * * *", boom)
        ran = await scheduler.run_now()
        return scheduler, ran

    scheduler, ran = asyncio.run(scenario())

    assert ran is True
    assert not scheduler.in_flight
    assert scheduler.completed_runs == 0


def test_update_schedule_rejects_invalid_and_keeps_previous() -> None:
    scheduler = MonitorScheduler("*/5 * * * *", _noop)

    assert scheduler.update_schedule("bogus") is False
    assert scheduler.schedule == "*/5 * * * *"

    assert scheduler.update_schedule("0 * * * *") is True
    assert scheduler.schedule == "0 * * * *"
    assert not scheduler.is_running


def test_update_schedule_restarts_running_scheduler() -> None:
    async def scenario():
        scheduler = MonitorScheduler("*/5 * * * *", _noop)
        scheduler.start()
        swapped = scheduler.update_schedule("0 8 * * *")
        running = scheduler.is_running
        rejected = scheduler.update_schedule("0 25 * * *")
        still_running = scheduler.is_running
        scheduler.stop()
        return scheduler, swapped, running, rejected, still_running

    scheduler, swapped, running, rejected, still_running = asyncio.run(scenario())

    assert swapped and running
    assert rejected is False and still_running
    assert scheduler.schedule == "0 8 * * *"
