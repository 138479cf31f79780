# File: src/newsbeacon/application/services/ingestion_service.py
"""
IngestionService: pulls the weekly ForexFactory calendar and upserts it into
the event store.

Items with an unknown currency or impact, or an unparseable date, are skipped
and counted. A fetch failure propagates so the scheduler logs it; the next
daily run retries.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from newsbeacon.domain.entities import Currency, Impact, Market
from newsbeacon.domain.value_objects import NaturalKey
from newsbeacon.infrastructure.db.repository import NewsEventRepository
from newsbeacon.infrastructure.db.uow import session_scope
from newsbeacon.infrastructure.monitoring.metrics import EVENTS_INGESTED
from newsbeacon.infrastructure.news.forexfactory import ForexFactoryClient

log = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    market: Market
    fetched: int = 0
    upserted: int = 0
    skipped: int = 0


def _clean(value: Any):
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_calendar_item(item: Dict[str, Any], source: str = "ForexFactory") -> Tuple[NaturalKey, Dict[str, Any]]:
    """
    Maps one feed item to (natural key, updatable fields).
    Raises ValueError when the item cannot be stored.
    """
    title = _clean(item.get("title"))
    if not title:
        raise ValueError("item has no title")
    currency = Currency(str(item.get("country", "")).strip().upper())
    impact = Impact(str(item.get("impact", "")).strip().upper())

    raw_date = str(item.get("date", "")).strip()
    when = datetime.fromisoformat(raw_date.replace("Z", "+00:00"))
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    scheduled_at = when.astimezone(timezone.utc).replace(tzinfo=None)

    key = NaturalKey(title=title, scheduled_at=scheduled_at, impact=impact, currency=currency)
    fields = {
        "forecast": _clean(item.get("forecast")),
        "previous": _clean(item.get("previous")),
        "source": source,
    }
    return key, fields


class IngestionService:
    def __init__(
        self,
        session_factory: sessionmaker,
        client: ForexFactoryClient,
        source_name: str = "ForexFactory",
        markets: Tuple[Market, ...] = (Market.FOREX,),
    ):
        self.session_factory = session_factory
        self.client = client
        self.source_name = source_name
        self.markets = markets

    def _store(self, market: Market, items: List[Dict[str, Any]]) -> IngestionReport:
        report = IngestionReport(market=market, fetched=len(items))
        with session_scope(self.session_factory) as session:
            repo = NewsEventRepository(session)
            for item in items:
                try:
                    key, fields = parse_calendar_item(item, self.source_name)
                except (TypeError, ValueError) as e:
                    log.warning("Skipping calendar item %r: %s", item.get("title"), e)
                    report.skipped += 1
                    continue
                try:
                    with session.begin_nested():
                        repo.upsert_event(key, fields)
                except SQLAlchemyError as e:
                    log.error("Failed to store %s: %s", key, e)
                    report.skipped += 1
                    continue
                report.upserted += 1
        EVENTS_INGESTED.labels(outcome="upserted").inc(report.upserted)
        EVENTS_INGESTED.labels(outcome="skipped").inc(report.skipped)
        return report

    async def run(self) -> List[IngestionReport]:
        log.info("Starting calendar sync...")
        reports = []
        for market in self.markets:
            # The feed only carries forex events; other markets share it.
            items = await self.client.fetch_week()
            report = await asyncio.to_thread(self._store, market, items)
            log.info(
                "Market %s: processed %d items (%d upserted, %d skipped)",
                market.value, report.fetched, report.upserted, report.skipped,
            )
            reports.append(report)
        return reports
