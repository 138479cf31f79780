# src/newsbeacon/infrastructure/sched/periodic.py
"""
Fixed-period timers for the worker's jobs.

A PeriodicTimer fires at every `epoch + offset + k * interval` (UTC). The
Unix epoch was a Thursday, so a weekly timer lands on Sunday with an offset of
three days plus the time of day.
"""

import asyncio
import functools
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Optional, Set

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

log = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class PeriodicTimer:
    interval: timedelta
    offset: timedelta = timedelta(0)

    def __post_init__(self) -> None:
        if self.interval <= timedelta(0):
            raise ValueError("interval must be positive")
        if not timedelta(0) <= self.offset < self.interval:
            raise ValueError("offset must be within [0, interval)")

    @property
    def anchor(self) -> datetime:
        return EPOCH + self.offset

    def next_fire_after(self, now: datetime) -> datetime:
        """First fire time strictly after `now` (aware UTC result)."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        elapsed = now - self.anchor
        periods = elapsed // self.interval + 1
        return self.anchor + periods * self.interval

    def trigger(self) -> IntervalTrigger:
        return IntervalTrigger(
            seconds=int(self.interval.total_seconds()),
            start_date=self.anchor,
            timezone=timezone.utc,
        )


SCAN_TIMER = PeriodicTimer(interval=timedelta(minutes=1))
SCHEDULE_TIMER = PeriodicTimer(interval=timedelta(minutes=1))
INGESTION_TIMER = PeriodicTimer(interval=timedelta(days=1), offset=timedelta(hours=2))
RETENTION_TIMER = PeriodicTimer(interval=timedelta(weeks=1), offset=timedelta(days=3, hours=3))


class InFlightJobs:
    """
    Tracks job runs that are still executing. AsyncIOScheduler.shutdown()
    cancels running coroutine jobs, so the worker pauses the scheduler and
    drains these first.
    """

    def __init__(self):
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def track(self, func: Callable[[], Awaitable[Any]]) -> Callable[[], Awaitable[Any]]:
        @functools.wraps(func)
        async def runner():
            task = asyncio.current_task()
            self._tasks.add(task)
            try:
                return await func()
            finally:
                self._tasks.discard(task)
        return runner

    async def drain(self, timeout: float) -> bool:
        """Waits for running jobs; returns False if some were still running at the timeout."""
        if not self._tasks:
            return True
        _, pending = await asyncio.wait(set(self._tasks), timeout=timeout)
        if pending:
            log.warning("%d job run(s) still active after %.0fs.", len(pending), timeout)
        return not pending


def add_periodic_job(
    scheduler: AsyncIOScheduler,
    func: Callable[[], Awaitable[Any]],
    timer: PeriodicTimer,
    job_id: str,
    max_instances: int = 1,
    jobs: Optional[InFlightJobs] = None,
) -> None:
    """Registers `func` on `scheduler`; overlapping runs are allowed up to `max_instances`."""
    scheduler.add_job(
        jobs.track(func) if jobs is not None else func,
        timer.trigger(),
        id=job_id,
        replace_existing=True,
        max_instances=max_instances,
        coalesce=True,
        misfire_grace_time=30,
    )
    log.info("Registered job %s every %s (offset %s)", job_id, timer.interval, timer.offset)
