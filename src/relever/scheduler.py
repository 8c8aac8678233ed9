"""
Once-per-day trigger for the rebalance job.

A cooperative loop ticks every ``interval`` seconds and fires the job the
first time it sees the current UTC time at or after the configured
hour:minute on a calendar day it has not fired on yet.

The last-triggered date lives only in memory. On startup, a process that
comes up after today's target time marks today as already triggered so a
restart does not cause an unplanned extra rebalance; the next run is
tomorrow at the target time.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Tuple

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL_SECONDS = 60.0


def parse_schedule(cron_schedule: str) -> Tuple[int, int]:
    """
    Parse a ``"minute hour * * *"`` cron expression into ``(hour, minute)``.

    Only plain integer minute/hour fields are supported; day-of-month, month
    and day-of-week must all be ``*``.
    """
    parts = cron_schedule.split()
    if len(parts) != 5:
        raise ConfigError(f'Invalid cron format: "{cron_schedule}". Expected: "minute hour * * *"')

    minute_field, hour_field, *rest = parts
    if any(field != "*" for field in rest):
        raise ConfigError(
            f'Unsupported cron schedule "{cron_schedule}": only daily "minute hour * * *" is supported'
        )
    if not (minute_field.isdigit() and hour_field.isdigit()):
        raise ConfigError(f'Invalid time in cron schedule: "{cron_schedule}"')

    minute = int(minute_field)
    hour = int(hour_field)
    if not (0 <= minute <= 59 and 0 <= hour <= 23):
        raise ConfigError(f'Invalid time in cron schedule: "{cron_schedule}"')
    return hour, minute


@dataclass
class SchedulerState:
    last_triggered: Optional[date] = None


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def should_trigger(state: SchedulerState, now: datetime, hour: int, minute: int) -> bool:
    """True when ``now`` is at/after hour:minute UTC on a day that has not fired yet."""
    now = _as_utc(now)
    if state.last_triggered == now.date():
        return False
    return (now.hour, now.minute) >= (hour, minute)


def next_execution(now: datetime, hour: int, minute: int) -> datetime:
    now = _as_utc(now)
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


class DailyScheduler:
    """Drives ``job`` at most once per UTC calendar day."""

    def __init__(
        self,
        job: Callable[[], Awaitable[object]],
        hour: int,
        minute: int,
        *,
        clock: Callable[[], datetime] = _utc_now,
        interval: float = DEFAULT_CHECK_INTERVAL_SECONDS,
        state: Optional[SchedulerState] = None,
    ) -> None:
        if not (0 <= hour <= 23 and 0 <= minute <= 59):
            raise ConfigError(f"Invalid schedule time {hour:02d}:{minute:02d}")
        if interval <= 0:
            raise ConfigError(f"Scheduler interval must be positive, got {interval}")
        self.job = job
        self.hour = hour
        self.minute = minute
        self.interval = interval
        self.state = state or SchedulerState()
        self._clock = clock

    @classmethod
    def from_cron(
        cls,
        job: Callable[[], Awaitable[object]],
        cron_schedule: str,
        **kwargs: object,
    ) -> "DailyScheduler":
        hour, minute = parse_schedule(cron_schedule)
        return cls(job, hour, minute, **kwargs)  # type: ignore[arg-type]

    def prime(self) -> bool:
        """
        Apply the startup catch-up rule.

        Returns True when today was marked as already triggered because the
        process started after today's target minute.
        """
        now = _as_utc(self._clock())
        if (now.hour, now.minute) > (self.hour, self.minute):
            self.state.last_triggered = now.date()
            logger.info(
                "Started after today's %02d:%02d UTC window; next run at %s",
                self.hour,
                self.minute,
                self.next_execution().isoformat(),
            )
            return True
        return False

    def next_execution(self) -> datetime:
        now = _as_utc(self._clock())
        if self.state.last_triggered == now.date():
            tomorrow = now + timedelta(days=1)
            return tomorrow.replace(hour=self.hour, minute=self.minute, second=0, microsecond=0)
        return next_execution(now, self.hour, self.minute)

    async def tick(self) -> bool:
        """Run the job if due. Returns True when the job was triggered."""
        now = _as_utc(self._clock())
        if not should_trigger(self.state, now, self.hour, self.minute):
            return False

        logger.info("Scheduled rebalance started at %s", now.isoformat())
        try:
            await self.job()
        except Exception as exc:
            logger.error("Scheduled rebalance raised: %s", exc, exc_info=exc)
        finally:
            self.state.last_triggered = now.date()
        logger.info("Next execution scheduled for %s", self.next_execution().isoformat())
        return True

    async def run(self, stop_event: asyncio.Event) -> None:
        """Tick until ``stop_event`` is set."""
        self.prime()
        logger.info(
            "Scheduler started: daily at %02d:%02d UTC, checking every %.0fs",
            self.hour,
            self.minute,
            self.interval,
        )
        while not stop_event.is_set():
            try:
                await self.tick()
            except Exception as exc:  # pragma: no cover - tick already guards the job
                logger.error("Error in scheduler loop: %s", exc, exc_info=exc)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval)
        logger.info("Scheduler stopped")


__all__ = [
    "DEFAULT_CHECK_INTERVAL_SECONDS",
    "DailyScheduler",
    "SchedulerState",
    "next_execution",
    "parse_schedule",
    "should_trigger",
]
