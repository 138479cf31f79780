import asyncio
import json
import pytest
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import discord

from newsbeacon.application.services.delivery_service import DeliveryService
from newsbeacon.domain.entities import AlertTiming, TimeDisplay
from newsbeacon.domain.value_objects import Destination
from newsbeacon.infrastructure.messaging.messages import DeliveryResult, NewsPayload
from newsbeacon.infrastructure.notify.discord_client import DiscordCapabilityOracle
from newsbeacon.interfaces.discord.formatters import (
    EMPTY_DESCRIPTION,
    FOOTER_TEXT,
    build_alert_embeds,
    build_digest_embeds,
)

DEST = Destination("100", "200")


def _news(count: int):
    start = datetime(2026, 1, 9, 13, 30, tzinfo=timezone.utc)
    return [
        NewsPayload(title=f"Event {i}", country="USD", impact="HIGH", date=start + timedelta(minutes=i))
        for i in range(count)
    ]


def _http_error(cls=discord.HTTPException, status=500):
    return cls(MagicMock(status=status, reason="error"), "failed")


@pytest.fixture
def channel() -> MagicMock:
    return MagicMock(name="channel")


@pytest.fixture
def oracle(channel) -> MagicMock:
    o = MagicMock()
    o.resolve = AsyncMock(return_value=channel)
    return o


@pytest.fixture
def sender() -> MagicMock:
    s = MagicMock()
    s.send = AsyncMock()
    return s


@pytest.fixture
def delivery(oracle, sender) -> DeliveryService:
    return DeliveryService(oracle, sender)


# --- Rendering ---

def test_thirty_events_render_as_two_pages():
    embeds = build_alert_embeds(_news(30), AlertTiming.FIVE_MINUTES_BEFORE)
    assert [len(e.fields) for e in embeds] == [25, 5]
    assert embeds[0].title == "🔔 NEWS IN 5 MINUTES (Page 1/2)"
    assert embeds[1].title == "🔔 NEWS IN 5 MINUTES (Page 2/2)"
    assert embeds[0].color.value == 0xFF6600
    assert all(e.footer.text == FOOTER_TEXT for e in embeds)


def test_single_page_has_no_page_suffix():
    embeds = build_alert_embeds(_news(3), AlertTiming.ON_NEWS_DROP)
    assert len(embeds) == 1
    assert embeds[0].title == "🚨 NEWS DROPPING RIGHT NOW"
    assert embeds[0].fields[0].name == "🇺🇸 USD - Event 0"


def test_empty_digest_renders_placeholder():
    embeds = build_digest_embeds([], "FOREX")
    assert len(embeds) == 1
    assert embeds[0].title == "FOREX News Update"
    assert embeds[0].description == EMPTY_DESCRIPTION


def test_fixed_time_display_uses_schedule_timezone():
    embeds = build_digest_embeds(_news(1), "FOREX", TimeDisplay.FIXED, "America/New_York")
    value = embeds[0].fields[0].value
    assert "Jan 9" in value
    assert "8:30 AM" in value
    assert "Forecast: N/A" in value


def test_alerts_use_discord_timestamps():
    value = build_alert_embeds(_news(1), AlertTiming.ON_NEWS_DROP)[0].fields[0].value
    epoch = int(datetime(2026, 1, 9, 13, 30, tzinfo=timezone.utc).timestamp())
    assert f"<t:{epoch}:t>" in value


# --- Delivery policy ---

@pytest.mark.asyncio
async def test_unresolvable_destination_acks_without_sending(delivery, oracle, sender):
    oracle.resolve.return_value = None
    result = await delivery.deliver(DEST, build_alert_embeds(_news(2), AlertTiming.ON_NEWS_DROP))
    assert result is DeliveryResult.ACK
    sender.send.assert_not_awaited()


@pytest.mark.asyncio
async def test_role_is_mentioned_on_first_page_only(delivery, sender, channel):
    embeds = build_alert_embeds(_news(30), AlertTiming.ON_NEWS_DROP)
    assert await delivery.deliver(DEST, embeds, role_id="999") is DeliveryResult.ACK
    contents = [c.args[2] for c in sender.send.await_args_list]
    assert contents == ["<@&999>", None]


@pytest.mark.asyncio
async def test_failure_on_first_page_requeues(delivery, sender):
    sender.send.side_effect = _http_error()
    result = await delivery.deliver(DEST, build_alert_embeds(_news(30), AlertTiming.ON_NEWS_DROP))
    assert result is DeliveryResult.REQUEUE
    assert sender.send.await_count == 1


@pytest.mark.asyncio
async def test_failure_after_first_page_acks_and_stops(delivery, sender):
    sender.send.side_effect = [None, _http_error(), None]
    embeds = build_alert_embeds(_news(60), AlertTiming.ON_NEWS_DROP)
    assert len(embeds) == 3
    result = await delivery.deliver(DEST, embeds)
    assert result is DeliveryResult.ACK
    assert sender.send.await_count == 2


@pytest.mark.asyncio
async def test_connection_error_after_first_page_acks_and_stops(delivery, sender):
    sender.send.side_effect = [None, OSError("connection reset"), None]
    result = await delivery.deliver(DEST, build_alert_embeds(_news(60), AlertTiming.ON_NEWS_DROP))
    assert result is DeliveryResult.ACK
    assert sender.send.await_count == 2


@pytest.mark.asyncio
async def test_timeout_on_first_page_requeues(delivery, sender):
    sender.send.side_effect = asyncio.TimeoutError()
    result = await delivery.deliver(DEST, build_alert_embeds(_news(30), AlertTiming.ON_NEWS_DROP))
    assert result is DeliveryResult.REQUEUE
    assert sender.send.await_count == 1


@pytest.mark.asyncio
async def test_forbidden_send_is_terminal(delivery, sender):
    sender.send.side_effect = _http_error(discord.Forbidden, 403)
    result = await delivery.deliver(DEST, build_alert_embeds(_news(1), AlertTiming.ON_NEWS_DROP))
    assert result is DeliveryResult.ACK


@pytest.mark.asyncio
async def test_handle_alert_decodes_and_delivers(delivery, sender):
    body = json.dumps({
        "isGrouped": True, "alertType": "FIVE_MINUTES_BEFORE", "serverId": "100", "channelId": "200",
        "roleId": "7",
        "events": [{"title": "GDP q/q", "country": "EUR", "impact": "MEDIUM", "date": "2026-01-09T10:00:00Z"}],
    })
    assert await delivery.handle_alert(body) is DeliveryResult.ACK
    embed = sender.send.await_args.args[1]
    assert embed.fields[0].name == "🇪🇺 EUR - GDP q/q"


@pytest.mark.asyncio
async def test_handle_schedule_task_renders_digest(delivery, sender):
    body = json.dumps({"scheduleId": 3, "serverId": "100", "channelId": "200", "market": "FOREX",
                       "timezone": "Europe/London", "timeDisplay": "FIXED", "news": []})
    assert await delivery.handle_schedule_task(body) is DeliveryResult.ACK
    embed = sender.send.await_args.args[1]
    assert embed.title == "FOREX News Update"


# --- Capability oracle ---

@pytest.mark.asyncio
async def test_oracle_returns_none_for_deleted_guild():
    client = MagicMock()
    client.get_guild.return_value = None
    client.fetch_guild = AsyncMock(side_effect=_http_error(discord.NotFound, 404))
    assert await DiscordCapabilityOracle(client).resolve(DEST) is None


@pytest.mark.asyncio
async def test_oracle_checks_send_permission():
    channel = MagicMock()
    channel.permissions_for.return_value = MagicMock(send_messages=False)
    guild = MagicMock()
    guild.get_channel.return_value = channel
    client = MagicMock()
    client.get_guild.return_value = guild

    oracle = DiscordCapabilityOracle(client)
    assert await oracle.resolve(DEST) is None

    channel.permissions_for.return_value = MagicMock(send_messages=True)
    assert await oracle.resolve(DEST) is channel
