# File: src/newsbeacon/infrastructure/messaging/broker.py
"""
MessageBroker: durable named queues on Redis Streams.

Each queue is a stream with one consumer group. Publishing is an XADD of
`{"body": <json>, "attempt": <n>}`; consuming is XREADGROUP. Entries stay in
the stream until the handler's outcome has been applied:

- ACK      -> XACK + XDEL
- REQUEUE  -> XADD a copy with attempt+1, then XACK + XDEL the original

Entries delivered to this consumer but never acknowledged (the process died
mid-handler) are re-read first when `consume` starts.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, Set

import redis.asyncio as aioredis
from redis.exceptions import RedisError, ResponseError

from newsbeacon.errors import BrokerNotConnected, MessageDecodeError
from newsbeacon.infrastructure.monitoring.metrics import MESSAGES_ACKED, MESSAGES_REQUEUED
from .messages import AlertMessage, DeliveryResult, ScheduleTask, encode_message

log = logging.getLogger(__name__)

Handler = Callable[[str], Awaitable[DeliveryResult]]


class MessageBroker:
    def __init__(
        self,
        redis_url: str,
        schedule_queue: str = "schedule_tasks",
        alert_queue: str = "news_alerts",
        group: str = "newsbeacon",
        consumer: str = "consumer-1",
        prefetch: int = 10,
        block_ms: int = 5000,
        requeue_delay: float = 1.0,
        client: Optional[aioredis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.schedule_queue = schedule_queue
        self.alert_queue = alert_queue
        self.group = group
        self.consumer = consumer
        self.prefetch = max(1, int(prefetch))
        self.block_ms = block_ms
        self.requeue_delay = requeue_delay

        self._redis: Optional[aioredis.Redis] = client
        self._connected = False
        self._stopping = asyncio.Event()
        self._inflight: Set[asyncio.Task] = set()
        self._readers: Set[asyncio.Task] = set()
        self._slots: Dict[str, asyncio.Semaphore] = {}

    @classmethod
    def from_settings(cls, settings, client: Optional[aioredis.Redis] = None) -> "MessageBroker":
        return cls(
            redis_url=settings.REDIS_URL,
            schedule_queue=settings.SCHEDULE_TASK_QUEUE,
            alert_queue=settings.NEWS_ALERT_QUEUE,
            group=settings.QUEUE_CONSUMER_GROUP,
            consumer=settings.QUEUE_CONSUMER_NAME,
            prefetch=settings.QUEUE_PREFETCH,
            block_ms=settings.QUEUE_BLOCK_MS,
            requeue_delay=settings.REQUEUE_DELAY_SECONDS,
            client=client,
        )

    @property
    def is_connected(self) -> bool:
        return self._connected

    # ------------------------------------------------------------------
    # Connection
    # ------------------------------------------------------------------
    async def connect(self) -> None:
        """Opens the connection and declares both queues. Raises RedisError when unreachable."""
        if self._redis is None:
            self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        await self._redis.ping()
        for queue in (self.schedule_queue, self.alert_queue):
            await self._ensure_group(queue)
        self._connected = True
        self._stopping.clear()
        log.info("Connected to message broker at %s", self.redis_url)

    async def _ensure_group(self, queue: str) -> None:
        try:
            await self._redis.xgroup_create(queue, self.group, id="0", mkstream=True)
            log.debug("Created consumer group %s on %s", self.group, queue)
        except ResponseError as e:
            if "BUSYGROUP" not in str(e):
                raise

    def _require_connection(self) -> aioredis.Redis:
        if not self._connected or self._redis is None:
            raise BrokerNotConnected("MessageBroker.connect() has not completed.")
        return self._redis

    async def close(self) -> None:
        """Stops reading, waits for in-flight handlers to settle, then disconnects."""
        self._stopping.set()
        for reader in list(self._readers):
            reader.cancel()
        if self._inflight:
            log.info("Waiting for %d in-flight message(s) before closing.", len(self._inflight))
            await asyncio.gather(*list(self._inflight), return_exceptions=True)
        if self._redis is not None:
            await self._redis.aclose()
        self._connected = False
        log.info("Message broker connection closed.")

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------
    async def publish(self, queue: str, body: str, attempt: int = 0) -> str:
        client = self._require_connection()
        message_id = await client.xadd(queue, {"body": body, "attempt": str(attempt)})
        log.debug("Published %s to %s", message_id, queue)
        return message_id

    async def publish_news_alert(self, message: AlertMessage) -> str:
        return await self.publish(self.alert_queue, encode_message(message))

    async def publish_schedule_task(self, task: ScheduleTask) -> str:
        return await self.publish(self.schedule_queue, encode_message(task))

    # ------------------------------------------------------------------
    # Consuming
    # ------------------------------------------------------------------
    async def consume(self, queue: str, handler: Handler) -> None:
        """
        Reads `queue` until `close()` is called, dispatching each entry to
        `handler` on its own task. At most `prefetch` handlers run at once.
        """
        client = self._require_connection()
        slots = self._slots.setdefault(queue, asyncio.Semaphore(self.prefetch))
        cursor = "0"  # own pending entries first, then ">" for new ones
        log.info("Consuming %s as %s/%s", queue, self.group, self.consumer)

        reader = asyncio.current_task()
        self._readers.add(reader)
        try:
            while not self._stopping.is_set():
                try:
                    entries = await self._read(client, queue, cursor)
                except RedisError as e:
                    log.error("Read from %s failed: %s", queue, e)
                    await asyncio.sleep(self.requeue_delay or 1.0)
                    continue

                if cursor != ">":
                    if not entries:
                        cursor = ">"
                        continue
                    cursor = entries[-1][0]

                for message_id, fields in entries:
                    await slots.acquire()
                    task = asyncio.create_task(self._dispatch(queue, message_id, fields or {}, handler, slots))
                    self._inflight.add(task)
                    task.add_done_callback(self._inflight.discard)
        except asyncio.CancelledError:
            if not self._stopping.is_set():
                raise
            # entries read but not dispatched stay pending for the next start
        finally:
            self._readers.discard(reader)
        log.info("Stopped consuming %s", queue)

    async def _read(self, client, queue: str, cursor: str) -> List:
        response = await client.xreadgroup(
            self.group,
            self.consumer,
            {queue: cursor},
            count=self.prefetch,
            block=self.block_ms if cursor == ">" else None,
        )
        if not response:
            return []
        if isinstance(response, dict):
            return list(response.get(queue, [[]])[0])
        _, entries = response[0]
        return list(entries)

    async def _dispatch(self, queue, message_id, fields, handler: Handler, slots: asyncio.Semaphore) -> None:
        try:
            body = fields.get("body")
            attempt = int(fields.get("attempt") or 0)
            if body is None:
                log.warning("Dropping %s on %s: entry has no body.", message_id, queue)
                result = DeliveryResult.ACK
            else:
                try:
                    result = await handler(body)
                except MessageDecodeError as e:
                    log.error("Dropping undecodable message %s on %s: %s", message_id, queue, e)
                    result = DeliveryResult.ACK
                except Exception:
                    log.exception("Handler failed for %s on %s; requeueing.", message_id, queue)
                    result = DeliveryResult.REQUEUE

            if result is DeliveryResult.REQUEUE:
                await self._requeue(queue, message_id, body, attempt)
            else:
                await self._ack(queue, message_id)
        except RedisError as e:
            # entry stays pending and is re-read on the next start
            log.error("Could not settle %s on %s: %s", message_id, queue, e)
        finally:
            slots.release()

    async def _ack(self, queue: str, message_id: str) -> None:
        await self._redis.xack(queue, self.group, message_id)
        await self._redis.xdel(queue, message_id)
        MESSAGES_ACKED.labels(queue=queue).inc()

    async def _requeue(self, queue: str, message_id: str, body: str, attempt: int) -> None:
        if self.requeue_delay:
            await asyncio.sleep(self.requeue_delay)
        await self._redis.xadd(queue, {"body": body, "attempt": str(attempt + 1)})
        await self._redis.xack(queue, self.group, message_id)
        await self._redis.xdel(queue, message_id)
        MESSAGES_REQUEUED.labels(queue=queue).inc()
        log.info("Requeued %s on %s (attempt %d).", message_id, queue, attempt + 1)
