# File: src/newsbeacon/interfaces/discord/bot.py
"""
Bot process: a discord.py client that consumes both queues once the gateway
session is ready and posts the rendered messages.
"""

import asyncio
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

import discord
from redis.exceptions import RedisError

from newsbeacon.boot import build_services
from newsbeacon.config import Settings, get_settings
from newsbeacon.logging_conf import setup_logging

log = logging.getLogger(__name__)


class NewsBeaconBot(discord.Client):
    def __init__(self, **kwargs):
        intents = kwargs.pop("intents", None) or discord.Intents.default()
        super().__init__(intents=intents, **kwargs)
        self.services: Dict[str, Any] = {}
        self._consumers: List[asyncio.Task] = []

    def attach(self, services: Dict[str, Any]) -> None:
        self.services = services

    def start_consumers(self) -> None:
        if self._consumers:
            return
        broker = self.services["broker"]
        delivery = self.services["delivery_service"]
        self._consumers = [
            asyncio.create_task(broker.consume(broker.schedule_queue, delivery.handle_schedule_task)),
            asyncio.create_task(broker.consume(broker.alert_queue, delivery.handle_alert)),
        ]
        log.info("Queue consumers started.")

    async def on_ready(self):
        log.info("Logged in as %s (%s) in %d guild(s).", self.user, getattr(self.user, "id", "?"), len(self.guilds))
        # on_ready fires again after reconnects; consumers start only once
        self.start_consumers()

    async def close(self):
        broker = self.services.get("broker")
        if broker is not None and broker.is_connected:
            await broker.close()
        if self._consumers:
            await asyncio.gather(*self._consumers, return_exceptions=True)
        await super().close()


async def run_bot(settings: Optional[Settings] = None) -> int:
    settings = settings or get_settings()
    if not settings.DISCORD_BOT_TOKEN:
        log.error("DISCORD_BOT_TOKEN not set. Bot cannot start.")
        return 1

    client = NewsBeaconBot()
    services = build_services(settings, discord_client=client)
    client.attach(services)

    broker = services["broker"]
    try:
        await broker.connect()
    except (RedisError, OSError) as e:
        log.critical("Cannot reach the queue broker at %s: %s", settings.REDIS_URL, e)
        return 1

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, lambda: asyncio.ensure_future(client.close()))
        except NotImplementedError:
            pass

    try:
        async with client:
            await client.start(settings.DISCORD_BOT_TOKEN)
    except discord.LoginFailure as e:
        log.critical("Discord login failed: %s", e)
        return 1
    finally:
        if broker.is_connected:
            await broker.close()
        services["engine"].dispose()
    return 0


def main() -> None:
    settings = get_settings()
    setup_logging(settings.ENV)
    sys.exit(asyncio.run(run_bot(settings)))


if __name__ == "__main__":
    main()
