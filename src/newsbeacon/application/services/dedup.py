# File: src/newsbeacon/application/services/dedup.py
"""
In-memory record of alerts already handed to the queue.

Keys are `(event_id, timing)` pairs for real-time alerts and
`(schedule_id, local_date)` pairs for schedule digests. The record is bounded
by a wholesale clear once it grows past `max_entries`; after a clear (or a
process restart) an event may be alerted a second time.
"""

import logging
import threading
from typing import Hashable, Iterable, List, Set

log = logging.getLogger(__name__)


class SentAlertRegistry:
    def __init__(self, max_entries: int = 1000):
        if max_entries < 1:
            raise ValueError("max_entries must be positive")
        self.max_entries = max_entries
        self._keys: Set[Hashable] = set()
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)

    def __contains__(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._keys

    def contains(self, key: Hashable) -> bool:
        return key in self

    def mark_if_absent(self, keys: Iterable[Hashable]) -> List[Hashable]:
        """
        Atomically marks every key not yet recorded and returns those keys in
        input order. Keys already present (or repeated in `keys`) are omitted.
        """
        fresh: List[Hashable] = []
        with self._lock:
            for key in keys:
                if key in self._keys:
                    continue
                self._keys.add(key)
                fresh.append(key)
            if len(self._keys) > self.max_entries:
                log.info("Sent-alert record exceeded %d entries; clearing.", self.max_entries)
                self._keys.clear()
        return fresh

    def clear(self) -> None:
        with self._lock:
            self._keys.clear()
