# File: src/newsbeacon/application/services/delivery_service.py
"""
DeliveryService: queue handlers that turn alert and schedule messages into
Discord posts.

Every handler returns a DeliveryResult and never raises for expected
outcomes:

- destination gone, or bot lacks SendMessages  -> ACK, nothing sent
- failure before the first page went out       -> REQUEUE
- failure after at least one page went out     -> ACK, remaining pages dropped
- Forbidden / NotFound from the send itself     -> ACK
"""

import logging
from typing import Optional, Sequence
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import discord

from newsbeacon.domain.value_objects import Destination
from newsbeacon.errors import MessageDecodeError
from newsbeacon.infrastructure.messaging.messages import (
    DeliveryResult,
    decode_alert_message,
    decode_schedule_task,
)
from newsbeacon.infrastructure.monitoring.metrics import DESTINATIONS_SKIPPED
from newsbeacon.infrastructure.notify.discord_client import DiscordCapabilityOracle, DiscordSender
from newsbeacon.interfaces.discord.formatters import (
    build_alert_embeds,
    build_digest_embeds,
    role_mention,
)

log = logging.getLogger(__name__)


class DeliveryService:
    def __init__(self, oracle: DiscordCapabilityOracle, sender: Optional[DiscordSender] = None):
        self.oracle = oracle
        self.sender = sender or DiscordSender()

    async def deliver(
        self,
        destination: Destination,
        embeds: Sequence[discord.Embed],
        role_id: Optional[str] = None,
    ) -> DeliveryResult:
        try:
            channel = await self.oracle.resolve(destination)
        except discord.HTTPException as e:
            log.warning("Could not resolve %s (%s); will retry.", destination, e)
            return DeliveryResult.REQUEUE
        if channel is None:
            DESTINATIONS_SKIPPED.inc()
            return DeliveryResult.ACK

        content = role_mention(role_id)
        total = len(embeds)
        for index, embed in enumerate(embeds):
            try:
                await self.sender.send(channel, embed, content if index == 0 else None)
            except (discord.Forbidden, discord.NotFound) as e:
                log.warning("Send to %s rejected on page %d/%d: %s", destination, index + 1, total, e)
                DESTINATIONS_SKIPPED.inc()
                return DeliveryResult.ACK
            except discord.HTTPException as e:
                if index == 0:
                    log.warning("Send to %s failed before any page went out: %s", destination, e)
                    return DeliveryResult.REQUEUE
                log.error(
                    "Send to %s failed on page %d/%d; dropping remaining pages: %s",
                    destination, index + 1, total, e,
                )
                return DeliveryResult.ACK
            except Exception as e:
                # connection resets and timeouts surface as non-HTTP errors
                if index == 0:
                    log.warning("Send to %s failed before any page went out: %r", destination, e)
                    return DeliveryResult.REQUEUE
                log.error(
                    "Send to %s failed on page %d/%d; dropping remaining pages: %r",
                    destination, index + 1, total, e,
                )
                return DeliveryResult.ACK
        log.info("Delivered %d page(s) to %s", total, destination)
        return DeliveryResult.ACK

    @staticmethod
    def _destination_of(message) -> Destination:
        try:
            return message.destination
        except ValueError as e:
            raise MessageDecodeError(str(e)) from e

    async def handle_alert(self, body: str) -> DeliveryResult:
        """Handler for the news-alert queue."""
        message = decode_alert_message(body)
        destination = self._destination_of(message)
        embeds = build_alert_embeds(message.events, message.alert_type)
        return await self.deliver(destination, embeds, message.role_id)

    async def handle_schedule_task(self, body: str) -> DeliveryResult:
        """Handler for the schedule-task queue."""
        task = decode_schedule_task(body)
        destination = self._destination_of(task)
        tz_name = task.timezone
        try:
            ZoneInfo(tz_name)
        except (ZoneInfoNotFoundError, ValueError):
            log.warning("Schedule %s has unknown timezone %r; rendering in UTC.", task.schedule_id, tz_name)
            tz_name = "UTC"
        embeds = build_digest_embeds(task.news, task.market.value, task.time_display, tz_name)
        return await self.deliver(destination, embeds, task.role_id)
