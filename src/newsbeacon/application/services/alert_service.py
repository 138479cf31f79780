# File: src/newsbeacon/application/services/alert_service.py
"""
Real-time alerting: the matcher that pairs due events with channel
subscriptions, and the per-minute scanner that feeds it and publishes the
results to the news-alert queue.

Dedup marking happens at match time, before delivery is confirmed. An event
marked here and then lost in transit is not retried by a later scan.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from sqlalchemy.orm import sessionmaker

from newsbeacon.domain.entities import AlertSubscription, AlertTiming, NewsEvent
from newsbeacon.domain.value_objects import Destination
from newsbeacon.infrastructure.db.repository import AlertSubscriptionRepository, NewsEventRepository
from newsbeacon.infrastructure.db.uow import session_scope
from newsbeacon.infrastructure.messaging.broker import MessageBroker
from newsbeacon.infrastructure.messaging.messages import AlertMessage, NewsPayload
from newsbeacon.infrastructure.monitoring.metrics import ALERTS_PUBLISHED, SCAN_FAILURES
from .dedup import SentAlertRegistry

log = logging.getLogger(__name__)

ALERT_LEAD_TIME = timedelta(minutes=5)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def floor_to_minute(moment: datetime) -> datetime:
    """Truncates to the minute and drops tzinfo (naive UTC)."""
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc).replace(tzinfo=None)
    return moment.replace(second=0, microsecond=0)


@dataclass
class AlertMatch:
    subscription: AlertSubscription
    destination: Destination
    events: List[NewsEvent] = field(default_factory=list)


class AlertMatcher:
    """Matches due events against alert subscriptions, with dedup."""

    def __init__(self, session_factory: sessionmaker, registry: SentAlertRegistry):
        self.session_factory = session_factory
        self.registry = registry

    def _load_subscriptions(self, timing: AlertTiming) -> List[AlertSubscription]:
        # Re-read on every call so admin edits apply on the next tick.
        with session_scope(self.session_factory) as session:
            return AlertSubscriptionRepository(session).find_by_timing(timing)

    def match(self, events: Sequence[NewsEvent], timing: AlertTiming) -> List[AlertMatch]:
        candidates = [e for e in events if e.id is not None and (e.id, timing) not in self.registry]
        if not candidates:
            return []

        subscriptions = self._load_subscriptions(timing)
        grouped: Dict[Destination, AlertMatch] = {}
        wanted = []
        for sub in subscriptions:
            matched = [e for e in candidates if sub.matches(e, timing)]
            if not matched:
                continue
            entry = grouped.setdefault(sub.destination, AlertMatch(sub, sub.destination))
            for event in matched:
                if event not in entry.events:
                    entry.events.append(event)
                wanted.append((event.id, timing))

        # Keys another tick claimed in the meantime are dropped here.
        fresh = set(self.registry.mark_if_absent(wanted))
        results = []
        for entry in grouped.values():
            entry.events = [e for e in entry.events if (e.id, timing) in fresh]
            if entry.events:
                results.append(entry)
        return results


class AlertScanner:
    """
    One tick per minute: events at T1 = floor(now) fire ON_NEWS_DROP, events at
    T2 = floor(now + 5 min) fire FIVE_MINUTES_BEFORE.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        matcher: AlertMatcher,
        broker: MessageBroker,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.session_factory = session_factory
        self.matcher = matcher
        self.broker = broker
        self.clock = clock or utc_now

    def due_times(self) -> Dict[AlertTiming, datetime]:
        now = self.clock()
        return {
            AlertTiming.ON_NEWS_DROP: floor_to_minute(now),
            AlertTiming.FIVE_MINUTES_BEFORE: floor_to_minute(now + ALERT_LEAD_TIME),
        }

    def _events_at(self, moment: datetime) -> List[NewsEvent]:
        with session_scope(self.session_factory) as session:
            return NewsEventRepository(session).find_events_at(moment)

    async def run_once(self) -> int:
        """Runs one scan tick; returns the number of alert messages published."""
        published = 0
        try:
            for timing, moment in self.due_times().items():
                events = await asyncio.to_thread(self._events_at, moment)
                if not events:
                    continue
                matches = await asyncio.to_thread(self.matcher.match, events, timing)
                for match in matches:
                    if await self._publish(match, timing):
                        published += 1
        except Exception:
            SCAN_FAILURES.inc()
            log.exception("Alert scan tick failed; skipping this tick.")
        if published:
            log.info("Alert scan published %d message(s).", published)
        return published

    async def _publish(self, match: AlertMatch, timing: AlertTiming) -> bool:
        message = AlertMessage(
            server_id=match.destination.server_id,
            channel_id=match.destination.channel_id,
            role_id=match.subscription.role_id,
            alert_type=timing,
            events=[NewsPayload.from_event(e) for e in match.events],
            is_grouped=len(match.events) > 1,
        )
        try:
            await self.broker.publish_news_alert(message)
        except Exception as e:
            log.error("Failed to publish %s alert for %s: %s", timing.value, match.destination, e)
            return False
        ALERTS_PUBLISHED.labels(timing=timing.value).inc()
        return True
