# File: src/newsbeacon/application/services/schedule_service.py
"""
ScheduleDispatcher: fires recurring news digests.

Runs once a minute. A schedule is due when the local wall-clock time in its
timezone equals its configured hour:minute and the frequency admits the local
weekday. The digest covers the local day (or local Monday-to-Sunday week),
converted to naive UTC for the event store query.
"""

import asyncio
import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import sessionmaker

from newsbeacon.domain.entities import Frequency, NewsEvent, NewsScope, ScheduleSubscription
from newsbeacon.infrastructure.db.repository import NewsEventRepository, ScheduleSubscriptionRepository
from newsbeacon.infrastructure.db.uow import session_scope
from newsbeacon.infrastructure.messaging.broker import MessageBroker
from newsbeacon.infrastructure.messaging.messages import NewsPayload, ScheduleTask
from newsbeacon.infrastructure.monitoring.metrics import SCHEDULE_TASKS_PUBLISHED
from .dedup import SentAlertRegistry

log = logging.getLogger(__name__)

MONDAY, FRIDAY = 0, 4


def frequency_admits(frequency: Frequency, weekday: int) -> bool:
    if frequency is Frequency.DAILY:
        return True
    if frequency is Frequency.WEEKDAYS:
        return MONDAY <= weekday <= FRIDAY
    return weekday == MONDAY


def local_now(schedule: ScheduleSubscription, now: datetime) -> datetime:
    """`now` (aware, or naive UTC) in the schedule's timezone. Raises ZoneInfoNotFoundError."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(ZoneInfo(schedule.timezone))


def is_due(schedule: ScheduleSubscription, now: datetime) -> bool:
    local = local_now(schedule, now)
    return (
        local.hour == schedule.hour
        and local.minute == schedule.minute
        and frequency_admits(schedule.frequency, local.weekday())
    )


def _local_midnight_utc(day: date, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time.min, tzinfo=zone).astimezone(timezone.utc).replace(tzinfo=None)


def scope_window(schedule: ScheduleSubscription, local: datetime) -> Tuple[datetime, datetime]:
    """[start, end) of the digest window as naive UTC."""
    zone = ZoneInfo(schedule.timezone)
    day = local.date()
    if schedule.news_scope is NewsScope.WEEKLY:
        start_day = day - timedelta(days=day.weekday())
        end_day = start_day + timedelta(days=7)
    else:
        start_day = day
        end_day = day + timedelta(days=1)
    return _local_midnight_utc(start_day, zone), _local_midnight_utc(end_day, zone)


class ScheduleDispatcher:
    def __init__(
        self,
        session_factory: sessionmaker,
        broker: MessageBroker,
        registry: Optional[SentAlertRegistry] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.broker = broker
        self.registry = registry or SentAlertRegistry()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def _load_schedules(self) -> List[ScheduleSubscription]:
        with session_scope(self.session_factory) as session:
            return ScheduleSubscriptionRepository(session).list_all()

    def _load_events(self, start: datetime, end: datetime) -> List[NewsEvent]:
        with session_scope(self.session_factory) as session:
            return NewsEventRepository(session).find_events_between(start, end)

    def build_task(self, schedule: ScheduleSubscription, events: List[NewsEvent]) -> ScheduleTask:
        return ScheduleTask(
            schedule_id=schedule.id,
            server_id=schedule.server_id,
            channel_id=schedule.channel_id,
            role_id=schedule.role_id,
            market=schedule.market,
            timezone=schedule.timezone,
            time_display=schedule.time_display,
            news=[NewsPayload.from_event(e) for e in events if schedule.accepts(e)],
        )

    async def _dispatch(self, schedule: ScheduleSubscription, now: datetime) -> bool:
        try:
            if not is_due(schedule, now):
                return False
            local = local_now(schedule, now)
        except (ZoneInfoNotFoundError, ValueError) as e:
            log.warning("Schedule %s has an invalid timezone %r: %s", schedule.id, schedule.timezone, e)
            return False

        # one digest per schedule, local day and configured time
        if not self.registry.mark_if_absent([(schedule.id, local.date(), schedule.hour, schedule.minute)]):
            return False

        start, end = scope_window(schedule, local)
        events = await asyncio.to_thread(self._load_events, start, end)
        task = self.build_task(schedule, events)
        await self.broker.publish_schedule_task(task)
        SCHEDULE_TASKS_PUBLISHED.inc()
        log.info("Published schedule %s digest (%d event(s)) for %s", schedule.id, len(task.news), local.date())
        return True

    async def run_once(self) -> int:
        now = self.clock()
        try:
            schedules = await asyncio.to_thread(self._load_schedules)
        except Exception:
            log.exception("Could not load schedules; skipping this tick.")
            return 0

        published = 0
        for schedule in schedules:
            try:
                if await self._dispatch(schedule, now):
                    published += 1
            except Exception:
                log.exception("Schedule %s dispatch failed.", schedule.id)
        return published
