# src/newsbeacon/infrastructure/news/forexfactory.py
"""
HTTP client for the ForexFactory weekly calendar feed (JSON).

The feed is rate limited; a 429 is retried after its Retry-After delay (or an
exponential backoff when the header is missing) up to `max_attempts` times.
"""
from __future__ import annotations

import asyncio
import logging
import random
from typing import Any, Dict, List, Optional

import httpx

from newsbeacon.errors import CalendarFetchError

log = logging.getLogger(__name__)

DEFAULT_CALENDAR_URL = "https://nfs.faireconomy.media/ff_calendar_thisweek.json"


class ForexFactoryClient:
    def __init__(
        self,
        url: str = DEFAULT_CALENDAR_URL,
        client: Optional[httpx.AsyncClient] = None,
        max_attempts: int = 4,
        max_backoff: float = 30.0,
        timeout: float = 20.0,
    ):
        self.url = url
        self.max_attempts = max(1, max_attempts)
        self.max_backoff = max_backoff
        self._client = client
        self._owns_client = client is None
        self._timeout = timeout

    def _http(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                limits=httpx.Limits(max_connections=5, max_keepalive_connections=2),
                headers={"User-Agent": "newsbeacon/1.0"},
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    @staticmethod
    def _retry_delay(response: httpx.Response, backoff: float) -> float:
        retry_after = response.headers.get("Retry-After", "")
        if retry_after.strip().isdigit():
            return float(retry_after)
        return backoff + random.uniform(0.2, 0.8)

    async def fetch_week(self) -> List[Dict[str, Any]]:
        """Returns the raw list of calendar items. Raises CalendarFetchError."""
        backoff = 1.0
        last_error = "no attempt made"
        for attempt in range(1, self.max_attempts + 1):
            try:
                response = await self._http().get(self.url)
            except httpx.HTTPError as e:
                last_error = f"{type(e).__name__}: {e}"
                log.warning("Calendar request failed (attempt %d/%d): %s", attempt, self.max_attempts, last_error)
            else:
                if response.status_code == 200:
                    try:
                        data = response.json()
                    except ValueError as e:
                        raise CalendarFetchError(f"Calendar feed returned invalid JSON: {e}") from e
                    if not isinstance(data, list):
                        raise CalendarFetchError("Calendar feed did not return a list.")
                    log.info("Fetched %d calendar items from %s", len(data), self.url)
                    return data
                last_error = f"HTTP {response.status_code}"
                if response.status_code == 429:
                    delay = min(self._retry_delay(response, backoff), self.max_backoff)
                    log.info("Calendar feed rate limited; retrying in %.1fs (attempt %d/%d)",
                             delay, attempt, self.max_attempts)
                    if attempt < self.max_attempts:
                        await asyncio.sleep(delay)
                    backoff = min(backoff * 2, self.max_backoff)
                    continue
                if 400 <= response.status_code < 500:
                    raise CalendarFetchError(f"Calendar feed returned {last_error}")
                log.warning("Calendar feed returned %s (attempt %d/%d)", last_error, attempt, self.max_attempts)

            if attempt < self.max_attempts:
                await asyncio.sleep(min(backoff, self.max_backoff))
                backoff = min(backoff * 2, self.max_backoff)

        raise CalendarFetchError(f"Calendar fetch failed after {self.max_attempts} attempts ({last_error})")
