# File: src/newsbeacon/application/services/subscription_service.py
"""
SubscriptionService: administrative operations on alert and schedule
subscriptions. A channel holds at most one alert configuration; creating a
second one for the same channel updates the first. Likewise a channel holds at
most one schedule per hour:minute; a colliding create or edit is merged into
the schedule already at that time.
"""

import logging
from typing import Any, Dict, Iterable, List, NamedTuple, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from sqlalchemy.orm import sessionmaker

from newsbeacon.domain.entities import (
    AlertSubscription,
    AlertTiming,
    Currency,
    Frequency,
    Impact,
    Market,
    NewsScope,
    ScheduleSubscription,
    TimeDisplay,
    parse_enum_set,
)
from newsbeacon.domain.value_objects import Destination
from newsbeacon.errors import InvalidSubscription, SubscriptionNotFound
from newsbeacon.infrastructure.db.repository import (
    AlertSubscriptionRepository,
    ScheduleSubscriptionRepository,
)
from newsbeacon.infrastructure.db.uow import session_scope

log = logging.getLogger(__name__)

ALL_TIMINGS = frozenset(AlertTiming)


class ScheduleChange(NamedTuple):
    schedule: ScheduleSubscription
    merged: bool = False


def _merge_fields(schedule: ScheduleSubscription) -> Dict[str, Any]:
    """Settings a merged schedule takes over from the one merged into it."""
    return {
        "timezone": schedule.timezone,
        "frequency": schedule.frequency,
        "news_scope": schedule.news_scope,
        "market": schedule.market,
        "impacts": schedule.impacts,
        "currencies": schedule.currencies,
        "time_display": schedule.time_display,
        "role_id": schedule.role_id,
    }


def _enum_set(enum_cls, values: Optional[Iterable[Any]], label: str):
    try:
        return parse_enum_set(enum_cls, values)
    except ValueError as e:
        raise InvalidSubscription(f"Invalid {label}: {e}") from e


def _enum_value(enum_cls, value: Any, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().upper())
    except ValueError as e:
        raise InvalidSubscription(f"Invalid {label}: {value!r}") from e


def _validate_timezone(name: str) -> str:
    try:
        ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as e:
        raise InvalidSubscription(f"Unknown timezone: {name!r}") from e
    return name


def _validate_destination(server_id: Any, channel_id: Any) -> Destination:
    try:
        return Destination(str(server_id), str(channel_id))
    except ValueError as e:
        raise InvalidSubscription(str(e)) from e


class SubscriptionService:
    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    # ------------------------------------------------------------------
    # Alerts
    # ------------------------------------------------------------------
    def create_alert(
        self,
        server_id: str,
        channel_id: str,
        impacts: Optional[Iterable[Any]] = None,
        currencies: Optional[Iterable[Any]] = None,
        timings: Optional[Iterable[Any]] = None,
        role_id: Optional[str] = None,
    ) -> AlertSubscription:
        """Creates the channel's alert, or updates it when one already exists."""
        destination = _validate_destination(server_id, channel_id)
        impact_set = _enum_set(Impact, impacts, "impact")
        currency_set = _enum_set(Currency, currencies, "currency")
        timing_set = _enum_set(AlertTiming, timings, "alert type") or ALL_TIMINGS
        role = str(role_id) if role_id else None

        with session_scope(self.session_factory) as session:
            repo = AlertSubscriptionRepository(session)
            existing = repo.find_by_server_and_channel(destination.server_id, destination.channel_id)
            if existing is not None:
                log.info("Alert already exists for %s; updating alert %s.", destination, existing.id)
                return repo.update(
                    existing.id,
                    impacts=impact_set,
                    currencies=currency_set,
                    timings=timing_set,
                    role_id=role,
                )
            created = repo.add(AlertSubscription(
                server_id=destination.server_id,
                channel_id=destination.channel_id,
                role_id=role,
                impacts=impact_set,
                currencies=currency_set,
                timings=timing_set,
            ))
            log.info("Created alert %s for %s.", created.id, destination)
            return created

    def update_alert(self, alert_id: int, **fields) -> AlertSubscription:
        changes = {}
        if "impacts" in fields:
            changes["impacts"] = _enum_set(Impact, fields.pop("impacts"), "impact")
        if "currencies" in fields:
            changes["currencies"] = _enum_set(Currency, fields.pop("currencies"), "currency")
        if "timings" in fields:
            changes["timings"] = _enum_set(AlertTiming, fields.pop("timings"), "alert type") or ALL_TIMINGS
        if "role_id" in fields:
            role = fields.pop("role_id")
            changes["role_id"] = str(role) if role else None
        if fields:
            raise InvalidSubscription(f"Unknown alert fields: {', '.join(sorted(fields))}")

        with session_scope(self.session_factory) as session:
            updated = AlertSubscriptionRepository(session).update(alert_id, **changes)
            if updated is None:
                raise SubscriptionNotFound("News alert", alert_id)
            log.info("Updated alert %s.", alert_id)
            return updated

    def delete_alert(self, alert_id: int) -> None:
        with session_scope(self.session_factory) as session:
            if not AlertSubscriptionRepository(session).delete(alert_id):
                raise SubscriptionNotFound("News alert", alert_id)
        log.info("Deleted alert %s.", alert_id)

    def delete_alerts_for_server(self, server_id: str) -> int:
        with session_scope(self.session_factory) as session:
            count = AlertSubscriptionRepository(session).delete_for_server(str(server_id))
        log.info("Deleted %d alert(s) for server %s.", count, server_id)
        return count

    def list_alerts_for_server(self, server_id: str) -> List[AlertSubscription]:
        with session_scope(self.session_factory) as session:
            return AlertSubscriptionRepository(session).find_by_server(str(server_id))

    def get_alert_for_channel(self, server_id: str, channel_id: str) -> Optional[AlertSubscription]:
        with session_scope(self.session_factory) as session:
            return AlertSubscriptionRepository(session).find_by_server_and_channel(str(server_id), str(channel_id))

    # ------------------------------------------------------------------
    # Schedules
    # ------------------------------------------------------------------
    def create_schedule(
        self,
        server_id: str,
        channel_id: str,
        hour: int,
        minute: int,
        timezone: str = "UTC",
        frequency: Any = Frequency.DAILY,
        news_scope: Any = NewsScope.DAILY,
        market: Any = Market.FOREX,
        impacts: Optional[Iterable[Any]] = None,
        currencies: Optional[Iterable[Any]] = None,
        time_display: Any = TimeDisplay.FIXED,
        role_id: Optional[str] = None,
    ) -> ScheduleChange:
        destination = _validate_destination(server_id, channel_id)
        try:
            schedule = ScheduleSubscription(
                server_id=destination.server_id,
                channel_id=destination.channel_id,
                hour=int(hour),
                minute=int(minute),
                timezone=_validate_timezone(timezone or "UTC"),
                frequency=_enum_value(Frequency, frequency, "frequency"),
                news_scope=_enum_value(NewsScope, news_scope, "news scope"),
                market=_enum_value(Market, market, "market"),
                impacts=_enum_set(Impact, impacts, "impact"),
                currencies=_enum_set(Currency, currencies, "currency"),
                time_display=_enum_value(TimeDisplay, time_display, "time display"),
                role_id=str(role_id) if role_id else None,
            )
        except (TypeError, ValueError) as e:
            raise InvalidSubscription(str(e)) from e

        with session_scope(self.session_factory) as session:
            repo = ScheduleSubscriptionRepository(session)
            existing = repo.find_at_time(schedule.server_id, schedule.channel_id, schedule.hour, schedule.minute)
            if existing is not None:
                merged = repo.update(existing.id, **_merge_fields(schedule))
                log.info("Schedule at %02d:%02d already exists for %s; merged into schedule %s.",
                         schedule.hour, schedule.minute, destination, existing.id)
                return ScheduleChange(merged, merged=True)
            created = repo.add(schedule)
        log.info("Created schedule %s for %s at %02d:%02d %s.",
                 created.id, destination, created.hour, created.minute, created.timezone)
        return ScheduleChange(created)

    def update_schedule(self, schedule_id: int, **fields) -> ScheduleChange:
        changes = {}
        for key, enum_cls in (("frequency", Frequency), ("news_scope", NewsScope),
                              ("market", Market), ("time_display", TimeDisplay)):
            if key in fields:
                changes[key] = _enum_value(enum_cls, fields.pop(key), key.replace("_", " "))
        if "impacts" in fields:
            changes["impacts"] = _enum_set(Impact, fields.pop("impacts"), "impact")
        if "currencies" in fields:
            changes["currencies"] = _enum_set(Currency, fields.pop("currencies"), "currency")
        if "timezone" in fields:
            changes["timezone"] = _validate_timezone(fields.pop("timezone") or "UTC")
        if "hour" in fields:
            hour = int(fields.pop("hour"))
            if not 0 <= hour <= 23:
                raise InvalidSubscription(f"hour must be within 0..23, got {hour}")
            changes["hour"] = hour
        if "minute" in fields:
            minute = int(fields.pop("minute"))
            if not 0 <= minute <= 59:
                raise InvalidSubscription(f"minute must be within 0..59, got {minute}")
            changes["minute"] = minute
        if "role_id" in fields:
            role = fields.pop("role_id")
            changes["role_id"] = str(role) if role else None
        if fields:
            raise InvalidSubscription(f"Unknown schedule fields: {', '.join(sorted(fields))}")

        with session_scope(self.session_factory) as session:
            repo = ScheduleSubscriptionRepository(session)
            updated = repo.update(schedule_id, **changes)
            if updated is None:
                raise SubscriptionNotFound("Schedule", schedule_id)
            other = repo.find_at_time(updated.server_id, updated.channel_id, updated.hour, updated.minute,
                                      exclude_id=schedule_id)
            if other is not None:
                merged = repo.update(other.id, **_merge_fields(updated))
                repo.delete(schedule_id)
                log.info("Schedule %s now shares the time of schedule %s; merged.",
                         schedule_id, other.id)
                return ScheduleChange(merged, merged=True)
        log.info("Updated schedule %s.", schedule_id)
        return ScheduleChange(updated)

    def delete_schedule(self, schedule_id: int) -> None:
        with session_scope(self.session_factory) as session:
            if not ScheduleSubscriptionRepository(session).delete(schedule_id):
                raise SubscriptionNotFound("Schedule", schedule_id)
        log.info("Deleted schedule %s.", schedule_id)

    def list_schedules_for_server(self, server_id: str) -> List[ScheduleSubscription]:
        with session_scope(self.session_factory) as session:
            return ScheduleSubscriptionRepository(session).find_by_server(str(server_id))
