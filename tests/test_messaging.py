import asyncio
import json
import pytest
import pytest_asyncio
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from newsbeacon.domain.entities import AlertTiming, Market, TimeDisplay
from newsbeacon.errors import BrokerNotConnected, MessageDecodeError
from newsbeacon.infrastructure.messaging.broker import MessageBroker
from newsbeacon.infrastructure.messaging.messages import (
    AlertMessage,
    DeliveryResult,
    NewsPayload,
    ScheduleTask,
    decode_alert_message,
    decode_schedule_task,
    encode_message,
)

NEWS = {
    "title": "CPI y/y",
    "country": "GBP",
    "impact": "HIGH",
    "date": "2026-01-14T07:00:00Z",
    "forecast": "3.1%",
    "previous": "3.0%",
}


@pytest.fixture
def redis_client() -> MagicMock:
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.xgroup_create = AsyncMock(return_value=True)
    client.xadd = AsyncMock(return_value="9-0")
    client.xack = AsyncMock(return_value=1)
    client.xdel = AsyncMock(return_value=1)
    client.xreadgroup = AsyncMock(return_value=[])
    client.aclose = AsyncMock()
    return client


@pytest_asyncio.fixture
async def broker(redis_client) -> MessageBroker:
    b = MessageBroker("redis://test", client=redis_client, requeue_delay=0)
    await b.connect()
    return b


def test_single_form_alert_decodes_to_one_event():
    body = json.dumps({**NEWS, "isGrouped": False, "alertType": "ON_NEWS_DROP",
                       "serverId": "1", "channelId": "2", "roleId": None})
    message = decode_alert_message(body)
    assert message.is_grouped is False
    assert message.alert_type is AlertTiming.ON_NEWS_DROP
    assert message.events[0].country == "GBP"
    assert message.events[0].date == datetime(2026, 1, 14, 7, 0, tzinfo=timezone.utc)


def test_grouped_alert_wire_shape():
    message = AlertMessage(
        server_id="1", channel_id="2", role_id="3", alert_type=AlertTiming.FIVE_MINUTES_BEFORE,
        events=[NewsPayload(**NEWS), NewsPayload(**{**NEWS, "title": "Core CPI y/y"})],
    )
    wire = json.loads(encode_message(message))
    assert wire["isGrouped"] is True
    assert wire["alertType"] == "FIVE_MINUTES_BEFORE"
    assert [e["title"] for e in wire["events"]] == ["CPI y/y", "Core CPI y/y"]
    assert wire["serverId"] == "1" and wire["roleId"] == "3"


def test_numeric_snowflakes_are_read_as_strings():
    body = json.dumps({"scheduleId": 4, "serverId": 123456789012345678, "channelId": 2, "news": [NEWS],
                       "market": "FOREX", "timeDisplay": "RELATIVE"})
    task = decode_schedule_task(body)
    assert task.server_id == "123456789012345678"
    assert task.market is Market.FOREX
    assert task.time_display is TimeDisplay.RELATIVE


@pytest.mark.parametrize("body", ["not json", "[1, 2]", json.dumps({"serverId": "1"})])
def test_invalid_bodies_raise_decode_error(body):
    with pytest.raises(MessageDecodeError):
        decode_alert_message(body)


@pytest.mark.asyncio
async def test_publish_requires_connection(redis_client):
    b = MessageBroker("redis://test", client=redis_client)
    task = ScheduleTask(schedule_id=1, server_id="1", channel_id="2")
    with pytest.raises(BrokerNotConnected):
        await b.publish_schedule_task(task)


@pytest.mark.asyncio
async def test_connect_declares_both_queues(broker, redis_client):
    queues = [c.args[0] for c in redis_client.xgroup_create.await_args_list]
    assert queues == ["schedule_tasks", "news_alerts"]


@pytest.mark.asyncio
async def test_ack_removes_the_entry(broker, redis_client):
    handler = AsyncMock(return_value=DeliveryResult.ACK)
    await broker._dispatch("news_alerts", "1-0", {"body": "{}", "attempt": "0"}, handler, _slots())

    handler.assert_awaited_once_with("{}")
    redis_client.xack.assert_awaited_once_with("news_alerts", "newsbeacon", "1-0")
    redis_client.xdel.assert_awaited_once_with("news_alerts", "1-0")
    redis_client.xadd.assert_not_awaited()


@pytest.mark.asyncio
async def test_requeue_republishes_with_next_attempt(broker, redis_client):
    handler = AsyncMock(return_value=DeliveryResult.REQUEUE)
    await broker._dispatch("news_alerts", "1-0", {"body": "{}", "attempt": "2"}, handler, _slots())

    redis_client.xadd.assert_awaited_once_with("news_alerts", {"body": "{}", "attempt": "3"})
    redis_client.xack.assert_awaited_once_with("news_alerts", "newsbeacon", "1-0")


@pytest.mark.asyncio
async def test_handler_exception_requeues(broker, redis_client):
    handler = AsyncMock(side_effect=RuntimeError("discord is down"))
    await broker._dispatch("schedule_tasks", "5-0", {"body": "{}"}, handler, _slots())

    redis_client.xadd.assert_awaited_once_with("schedule_tasks", {"body": "{}", "attempt": "1"})


@pytest.mark.asyncio
async def test_poison_message_is_acknowledged(broker, redis_client):
    handler = AsyncMock(side_effect=MessageDecodeError("bad"))
    await broker._dispatch("news_alerts", "6-0", {"body": "garbage"}, handler, _slots())

    redis_client.xadd.assert_not_awaited()
    redis_client.xack.assert_awaited_once()


@pytest.mark.asyncio
async def test_consume_reads_pending_entries_before_new_ones(broker, redis_client):
    calls = []

    async def fake_read(group, consumer, streams, count=None, block=None):
        cursor = streams["news_alerts"]
        calls.append(cursor)
        if cursor == "0":
            return [["news_alerts", [("1-0", {"body": "pending"})]]]
        if cursor == "1-0":
            return [["news_alerts", []]]
        broker._stopping.set()
        return [["news_alerts", [("2-0", {"body": "fresh"})]]]

    redis_client.xreadgroup.side_effect = fake_read
    handler = AsyncMock(return_value=DeliveryResult.ACK)

    await broker.consume("news_alerts", handler)
    await broker.close()

    assert calls == ["0", "1-0", ">"]
    assert [c.args[0] for c in handler.await_args_list] == ["pending", "fresh"]
    redis_client.aclose.assert_awaited_once()


def _slots() -> asyncio.Semaphore:
    return asyncio.Semaphore(1)
