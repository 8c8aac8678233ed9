import asyncio
from datetime import date, datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from relever.errors import ConfigError
from relever.scheduler import (
    DailyScheduler,
    SchedulerState,
    next_execution,
    parse_schedule,
    should_trigger,
)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


def _utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "cron, expected",
    [("5 0 * * *", (0, 5)), ("30 14 * * *", (14, 30)), ("0 23 * * *", (23, 0))],
)
def test_parse_schedule(cron, expected):
    assert parse_schedule(cron) == expected


@pytest.mark.parametrize(
    "cron",
    ["5 0 * *", "5 0 * * 1", "*/5 0 * * *", "60 0 * * *", "5 24 * * *", "", "a b * * *"],
)
def test_parse_schedule_rejects_unsupported(cron):
    with pytest.raises(ConfigError):
        parse_schedule(cron)


def test_should_trigger_window():
    state = SchedulerState()
    assert not should_trigger(state, _utc(2024, 3, 1, 0, 4), 0, 5)
    assert should_trigger(state, _utc(2024, 3, 1, 0, 5), 0, 5)
    assert should_trigger(state, _utc(2024, 3, 1, 7, 0), 0, 5)

    state.last_triggered = date(2024, 3, 1)
    assert not should_trigger(state, _utc(2024, 3, 1, 0, 6), 0, 5)
    assert should_trigger(state, _utc(2024, 3, 2, 0, 5), 0, 5)


def test_next_execution_rolls_to_tomorrow():
    assert next_execution(_utc(2024, 3, 1, 0, 4), 0, 5) == _utc(2024, 3, 1, 0, 5)
    assert next_execution(_utc(2024, 3, 1, 0, 5, 30), 0, 5) == _utc(2024, 3, 2, 0, 5)


@pytest.mark.asyncio
async def test_late_start_waits_for_next_day():
    clock = FakeClock(_utc(2024, 3, 1, 0, 10))
    job = AsyncMock()
    scheduler = DailyScheduler(job, 0, 5, clock=clock)

    assert scheduler.prime() is True
    assert scheduler.state.last_triggered == date(2024, 3, 1)
    assert scheduler.next_execution() == _utc(2024, 3, 2, 0, 5)

    assert await scheduler.tick() is False
    clock.advance(hours=12)
    assert await scheduler.tick() is False
    job.assert_not_awaited()

    clock.now = _utc(2024, 3, 2, 0, 5)
    assert await scheduler.tick() is True
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_start_at_target_minute_runs_immediately():
    clock = FakeClock(_utc(2024, 3, 1, 0, 5, 40))
    job = AsyncMock()
    scheduler = DailyScheduler(job, 0, 5, clock=clock)

    assert scheduler.prime() is False
    assert await scheduler.tick() is True
    job.assert_awaited_once()


@pytest.mark.asyncio
async def test_runs_once_per_day_across_many_ticks():
    clock = FakeClock(_utc(2024, 3, 1, 0, 0))
    job = AsyncMock()
    scheduler = DailyScheduler(job, 0, 5, clock=clock)
    scheduler.prime()

    for _ in range(3 * 24 * 60):
        await scheduler.tick()
        clock.advance(minutes=1)

    assert job.await_count == 3


@pytest.mark.asyncio
async def test_failing_job_still_marks_day():
    clock = FakeClock(_utc(2024, 3, 1, 0, 5))
    job = AsyncMock(side_effect=RuntimeError("boom"))
    scheduler = DailyScheduler(job, 0, 5, clock=clock)

    assert await scheduler.tick() is True
    assert scheduler.state.last_triggered == date(2024, 3, 1)
    clock.advance(minutes=1)
    assert await scheduler.tick() is False
    assert job.await_count == 1


def test_schedulers_do_not_share_state():
    clock = FakeClock(_utc(2024, 3, 1, 0, 10))
    first = DailyScheduler(AsyncMock(), 0, 5, clock=clock)
    second = DailyScheduler(AsyncMock(), 0, 5, clock=clock)

    first.prime()

    assert first.state.last_triggered == date(2024, 3, 1)
    assert second.state.last_triggered is None


def test_from_cron_and_bad_interval():
    scheduler = DailyScheduler.from_cron(AsyncMock(), "30 14 * * *")
    assert (scheduler.hour, scheduler.minute) == (14, 30)
    with pytest.raises(ConfigError):
        DailyScheduler(AsyncMock(), 0, 5, interval=0)


@pytest.mark.asyncio
async def test_run_stops_on_event():
    clock = FakeClock(_utc(2024, 3, 1, 0, 5))
    stop_event = asyncio.Event()

    async def job():
        stop_event.set()

    scheduler = DailyScheduler(job, 0, 5, clock=clock, interval=0.01)
    await asyncio.wait_for(scheduler.run(stop_event), timeout=5)

    assert scheduler.state.last_triggered == date(2024, 3, 1)
