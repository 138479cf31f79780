# File: src/newsbeacon/application/services/retention_service.py
# Weekly purge of news events that fell out of the retention window.

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.orm import sessionmaker

from newsbeacon.infrastructure.db.repository import NewsEventRepository
from newsbeacon.infrastructure.db.uow import session_scope

log = logging.getLogger(__name__)


class RetentionService:
    def __init__(
        self,
        session_factory: sessionmaker,
        retention_days: int = 30,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if retention_days < 1:
            raise ValueError("retention_days must be positive")
        self.session_factory = session_factory
        self.retention_days = retention_days
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def cutoff(self) -> datetime:
        now = self.clock()
        if now.tzinfo is not None:
            now = now.astimezone(timezone.utc).replace(tzinfo=None)
        return now - timedelta(days=self.retention_days)

    def _purge(self, cutoff: datetime) -> int:
        with session_scope(self.session_factory) as session:
            return NewsEventRepository(session).delete_events_older_than(cutoff)

    async def run(self) -> int:
        cutoff = self.cutoff()
        deleted = await asyncio.to_thread(self._purge, cutoff)
        log.info("Deleted %d news event(s) scheduled before %s", deleted, cutoff.isoformat())
        return deleted
