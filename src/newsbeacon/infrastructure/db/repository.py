# File: src/newsbeacon/infrastructure/db/repository.py
# Typed accessors over persisted news events and channel subscriptions.
# All reads return domain entities; ORM rows never leave this module.

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from newsbeacon.domain.entities import (
    AlertSubscription as AlertSubscriptionEntity,
    AlertTiming,
    Currency,
    Frequency,
    Impact,
    Market,
    NewsEvent as NewsEventEntity,
    NewsScope,
    ScheduleSubscription as ScheduleSubscriptionEntity,
    TimeDisplay,
    parse_enum_set,
)
from newsbeacon.domain.value_objects import NaturalKey
from newsbeacon.errors import InvalidSubscription

from .models import NewsEvent, NewsAlert, Schedule

logger = logging.getLogger(__name__)


def _enum_values(values) -> List[str]:
    """Serializes a set of enums as a sorted list for JSON columns."""
    return sorted(v.value if hasattr(v, "value") else str(v).upper() for v in (values or ()))


# ==========================================================
# NEWS EVENT REPOSITORY
# ==========================================================
class NewsEventRepository:
    """Repository for NewsEvent rows (the Event Store)."""

    # Fields a re-sync may refresh. `actual` is deliberately absent.
    _UPDATABLE_FIELDS = ("forecast", "previous", "source")

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_entity(row: NewsEvent) -> NewsEventEntity:
        return NewsEventEntity(
            id=row.id,
            title=row.title,
            scheduled_at=row.scheduled_at,
            impact=row.impact,
            currency=row.currency,
            forecast=row.forecast,
            previous=row.previous,
            actual=row.actual,
            source=row.source,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _find_row(self, key: NaturalKey) -> Optional[NewsEvent]:
        return self.session.query(NewsEvent).filter(
            NewsEvent.title == key.title,
            NewsEvent.scheduled_at == key.scheduled_at,
            NewsEvent.impact == key.impact,
            NewsEvent.currency == key.currency,
        ).one_or_none()

    def _apply_update(self, row: NewsEvent, fields: Dict[str, Any]) -> None:
        for name in self._UPDATABLE_FIELDS:
            if name in fields:
                setattr(row, name, fields[name])
        # actual is only ever filled in, never overwritten
        if not row.actual and fields.get("actual"):
            row.actual = fields["actual"]

    def find_by_natural_key(self, key: NaturalKey) -> Optional[NewsEventEntity]:
        row = self._find_row(key)
        return self._to_entity(row) if row else None

    def upsert_event(self, key: NaturalKey, fields: Dict[str, Any]) -> NewsEventEntity:
        """Update-or-insert by natural key. Never overwrites an existing `actual`."""
        row = self._find_row(key)
        if row is not None:
            self._apply_update(row, fields)
            self.session.flush()
            return self._to_entity(row)

        new_row = NewsEvent(
            title=key.title,
            scheduled_at=key.scheduled_at,
            impact=key.impact,
            currency=key.currency,
            forecast=fields.get("forecast"),
            previous=fields.get("previous"),
            actual=fields.get("actual"),
            source=fields.get("source") or "ForexFactory",
        )
        try:
            with self.session.begin_nested():
                self.session.add(new_row)
                self.session.flush()
        except IntegrityError:
            # A concurrent sync inserted the same key first; fall back to update.
            logger.debug("Upsert race on %s; updating existing row.", key)
            row = self._find_row(key)
            if row is None:
                raise
            self._apply_update(row, fields)
            self.session.flush()
            return self._to_entity(row)
        return self._to_entity(new_row)

    def find_events_at(self, timestamp: datetime) -> List[NewsEventEntity]:
        rows = self.session.query(NewsEvent).filter(
            NewsEvent.scheduled_at == timestamp
        ).order_by(NewsEvent.id).all()
        return [self._to_entity(r) for r in rows]

    def find_events_between(self, start: datetime, end: datetime) -> List[NewsEventEntity]:
        """Events with start <= scheduled_at < end, in chronological order."""
        rows = self.session.query(NewsEvent).filter(
            NewsEvent.scheduled_at >= start,
            NewsEvent.scheduled_at < end,
        ).order_by(NewsEvent.scheduled_at, NewsEvent.id).all()
        return [self._to_entity(r) for r in rows]

    def delete_events_older_than(self, cutoff: datetime) -> int:
        count = self.session.query(NewsEvent).filter(
            NewsEvent.scheduled_at < cutoff
        ).delete(synchronize_session=False)
        self.session.flush()
        return count


# ==========================================================
# ALERT SUBSCRIPTION REPOSITORY
# ==========================================================
class AlertSubscriptionRepository:
    """Repository for real-time alert configurations."""

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_entity(row: NewsAlert) -> AlertSubscriptionEntity:
        try:
            return AlertSubscriptionEntity(
                id=row.id,
                server_id=row.server_id,
                channel_id=row.channel_id,
                role_id=row.role_id or None,
                impacts=parse_enum_set(Impact, row.impact),
                currencies=parse_enum_set(Currency, row.currency),
                timings=parse_enum_set(AlertTiming, row.alert_type),
                created_at=row.created_at,
            )
        except (TypeError, ValueError) as e:
            raise InvalidSubscription(f"News alert {row.id} is malformed: {e}") from e

    def _get_row(self, alert_id: int) -> Optional[NewsAlert]:
        return self.session.query(NewsAlert).filter(NewsAlert.id == alert_id).first()

    def get(self, alert_id: int) -> Optional[AlertSubscriptionEntity]:
        row = self._get_row(alert_id)
        return self._to_entity(row) if row else None

    def _to_entities_skipping_invalid(self, rows) -> List[AlertSubscriptionEntity]:
        result = []
        for row in rows:
            try:
                result.append(self._to_entity(row))
            except InvalidSubscription as e:
                logger.warning("Skipping alert subscription: %s", e)
        return result

    def find_by_timing(self, timing: AlertTiming) -> List[AlertSubscriptionEntity]:
        """
        All alert subscriptions that include `timing`. Rows that cannot be
        parsed are logged and skipped; they never abort the batch.
        """
        rows = self.session.query(NewsAlert).order_by(NewsAlert.id).all()
        return [e for e in self._to_entities_skipping_invalid(rows) if timing in e.timings]

    def find_by_server(self, server_id: str) -> List[AlertSubscriptionEntity]:
        rows = self.session.query(NewsAlert).filter(
            NewsAlert.server_id == str(server_id)
        ).order_by(NewsAlert.id).all()
        return self._to_entities_skipping_invalid(rows)

    def find_by_server_and_channel(self, server_id: str, channel_id: str) -> Optional[AlertSubscriptionEntity]:
        row = self.session.query(NewsAlert).filter(
            NewsAlert.server_id == str(server_id),
            NewsAlert.channel_id == str(channel_id),
        ).first()
        return self._to_entity(row) if row else None

    def add(self, subscription: AlertSubscriptionEntity) -> AlertSubscriptionEntity:
        row = NewsAlert(
            server_id=subscription.server_id,
            channel_id=subscription.channel_id,
            role_id=subscription.role_id,
            impact=_enum_values(subscription.impacts),
            currency=_enum_values(subscription.currencies),
            alert_type=_enum_values(subscription.timings),
        )
        self.session.add(row)
        self.session.flush()
        return self._to_entity(row)

    def update(self, alert_id: int, **fields) -> Optional[AlertSubscriptionEntity]:
        row = self._get_row(alert_id)
        if row is None:
            return None
        column_map = {"impacts": "impact", "currencies": "currency", "timings": "alert_type"}
        for key, value in fields.items():
            if key in column_map:
                setattr(row, column_map[key], _enum_values(value))
            elif key in ("server_id", "channel_id", "role_id"):
                setattr(row, key, str(value) if value is not None else None)
            else:
                raise ValueError(f"Unknown alert subscription field: {key}")
        self.session.flush()
        return self._to_entity(row)

    def delete(self, alert_id: int) -> bool:
        row = self._get_row(alert_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def delete_for_server(self, server_id: str) -> int:
        count = self.session.query(NewsAlert).filter(
            NewsAlert.server_id == str(server_id)
        ).delete(synchronize_session=False)
        self.session.flush()
        return count


# ==========================================================
# SCHEDULE SUBSCRIPTION REPOSITORY
# ==========================================================
class ScheduleSubscriptionRepository:
    """Repository for recurring schedule configurations."""

    _ENUM_COLUMNS = {
        "frequency": ("frequency", Frequency),
        "news_scope": ("news_scope", NewsScope),
        "market": ("market", Market),
        "time_display": ("time_display", TimeDisplay),
    }

    def __init__(self, session: Session):
        self.session = session

    @staticmethod
    def _to_entity(row: Schedule) -> ScheduleSubscriptionEntity:
        try:
            return ScheduleSubscriptionEntity(
                id=row.id,
                server_id=row.server_id,
                channel_id=row.channel_id,
                role_id=row.role_id or None,
                hour=int(row.hour),
                minute=int(row.minute),
                timezone=row.time_zone or "UTC",
                frequency=Frequency(str(row.frequency).upper()),
                news_scope=NewsScope(str(row.news_scope).upper()),
                market=Market(str(row.market).upper()),
                time_display=TimeDisplay(str(row.time_display).upper()),
                impacts=parse_enum_set(Impact, row.impact),
                currencies=parse_enum_set(Currency, row.currency),
                created_at=row.created_at,
            )
        except (TypeError, ValueError) as e:
            raise InvalidSubscription(f"Schedule {row.id} is malformed: {e}") from e

    def _get_row(self, schedule_id: int) -> Optional[Schedule]:
        return self.session.query(Schedule).filter(Schedule.id == schedule_id).first()

    def get(self, schedule_id: int) -> Optional[ScheduleSubscriptionEntity]:
        row = self._get_row(schedule_id)
        return self._to_entity(row) if row else None

    def _to_entities_skipping_invalid(self, rows) -> List[ScheduleSubscriptionEntity]:
        result = []
        for row in rows:
            try:
                result.append(self._to_entity(row))
            except InvalidSubscription as e:
                logger.warning("Skipping schedule: %s", e)
        return result

    def find_by_server(self, server_id: str) -> List[ScheduleSubscriptionEntity]:
        rows = self.session.query(Schedule).filter(
            Schedule.server_id == str(server_id)
        ).order_by(Schedule.id).all()
        return self._to_entities_skipping_invalid(rows)

    def find_at_time(
        self, server_id: str, channel_id: str, hour: int, minute: int, exclude_id: Optional[int] = None
    ) -> Optional[ScheduleSubscriptionEntity]:
        """Another schedule posting to the same channel at the same hour:minute, if any."""
        query = self.session.query(Schedule).filter(
            Schedule.server_id == str(server_id),
            Schedule.channel_id == str(channel_id),
            Schedule.hour == int(hour),
            Schedule.minute == int(minute),
        )
        if exclude_id is not None:
            query = query.filter(Schedule.id != exclude_id)
        found = self._to_entities_skipping_invalid(query.order_by(Schedule.id).all())
        return found[0] if found else None

    def list_all(self) -> List[ScheduleSubscriptionEntity]:
        rows = self.session.query(Schedule).order_by(Schedule.id).all()
        return self._to_entities_skipping_invalid(rows)

    def add(self, schedule: ScheduleSubscriptionEntity) -> ScheduleSubscriptionEntity:
        row = Schedule(
            server_id=schedule.server_id,
            channel_id=schedule.channel_id,
            role_id=schedule.role_id,
            hour=schedule.hour,
            minute=schedule.minute,
            time_zone=schedule.timezone,
            frequency=schedule.frequency.value,
            news_scope=schedule.news_scope.value,
            market=schedule.market.value,
            time_display=schedule.time_display.value,
            impact=_enum_values(schedule.impacts),
            currency=_enum_values(schedule.currencies),
        )
        self.session.add(row)
        self.session.flush()
        return self._to_entity(row)

    def update(self, schedule_id: int, **fields) -> Optional[ScheduleSubscriptionEntity]:
        row = self._get_row(schedule_id)
        if row is None:
            return None
        for key, value in fields.items():
            if key in self._ENUM_COLUMNS:
                column, enum_cls = self._ENUM_COLUMNS[key]
                setattr(row, column, enum_cls(value.value if hasattr(value, "value") else str(value).upper()).value)
            elif key == "impacts":
                row.impact = _enum_values(value)
            elif key == "currencies":
                row.currency = _enum_values(value)
            elif key == "timezone":
                row.time_zone = value
            elif key in ("hour", "minute"):
                setattr(row, key, int(value))
            elif key in ("server_id", "channel_id", "role_id"):
                setattr(row, key, str(value) if value is not None else None)
            else:
                raise ValueError(f"Unknown schedule field: {key}")
        self.session.flush()
        return self._to_entity(row)

    def delete(self, schedule_id: int) -> bool:
        row = self._get_row(schedule_id)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True
