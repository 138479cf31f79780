import pytest
from datetime import datetime, timezone

from newsbeacon.application.services.schedule_service import (
    ScheduleDispatcher,
    frequency_admits,
    is_due,
    local_now,
    scope_window,
)
from newsbeacon.domain.entities import Currency, Frequency, Impact, NewsScope, ScheduleSubscription
from newsbeacon.infrastructure.db.repository import ScheduleSubscriptionRepository
from newsbeacon.infrastructure.db.uow import session_scope

# 2026-01-12 is a Monday
MONDAY_1330_UTC = datetime(2026, 1, 12, 13, 30, tzinfo=timezone.utc)


def _schedule(**overrides) -> ScheduleSubscription:
    fields = dict(server_id="1", channel_id="2", hour=8, minute=30, timezone="America/New_York", id=1)
    fields.update(overrides)
    return ScheduleSubscription(**fields)


def test_due_in_local_timezone():
    assert is_due(_schedule(), MONDAY_1330_UTC)
    assert not is_due(_schedule(timezone="UTC"), MONDAY_1330_UTC)


@pytest.mark.parametrize("frequency,weekday,expected", [
    (Frequency.DAILY, 6, True),
    (Frequency.WEEKDAYS, 4, True),
    (Frequency.WEEKDAYS, 5, False),
    (Frequency.WEEKLY, 0, True),
    (Frequency.WEEKLY, 2, False),
])
def test_frequency_admits(frequency, weekday, expected):
    assert frequency_admits(frequency, weekday) is expected


def test_daily_window_is_local_day_in_utc():
    schedule = _schedule()
    start, end = scope_window(schedule, local_now(schedule, MONDAY_1330_UTC))
    assert start == datetime(2026, 1, 12, 5, 0)
    assert end == datetime(2026, 1, 13, 5, 0)


def test_weekly_window_starts_on_local_monday():
    schedule = _schedule(news_scope=NewsScope.WEEKLY, timezone="UTC")
    wednesday = datetime(2026, 1, 14, 9, 0, tzinfo=timezone.utc)
    start, end = scope_window(schedule, local_now(schedule, wednesday))
    assert start == datetime(2026, 1, 12)
    assert end == datetime(2026, 1, 19)


@pytest.mark.asyncio
async def test_dispatcher_publishes_filtered_digest_once(session_factory, mock_broker, add_event):
    with session_scope(session_factory) as session:
        ScheduleSubscriptionRepository(session).add(_schedule(
            id=None, impacts=frozenset({Impact.HIGH}), currencies=frozenset({Currency.USD}), role_id="55",
        ))
    add_event(title="Retail Sales", at=datetime(2026, 1, 12, 13, 30), impact=Impact.HIGH, currency=Currency.USD)
    add_event(title="Flash PMI", at=datetime(2026, 1, 12, 9, 0), impact=Impact.HIGH, currency=Currency.EUR)
    add_event(title="Next day", at=datetime(2026, 1, 13, 13, 30), impact=Impact.HIGH, currency=Currency.USD)

    dispatcher = ScheduleDispatcher(session_factory, mock_broker, clock=lambda: MONDAY_1330_UTC)

    assert await dispatcher.run_once() == 1
    task = mock_broker.publish_schedule_task.await_args.args[0]
    assert [n.title for n in task.news] == ["Retail Sales"]
    assert task.role_id == "55"
    assert task.timezone == "America/New_York"

    # a second tick in the same minute does not resend
    assert await dispatcher.run_once() == 0
    assert mock_broker.publish_schedule_task.await_count == 1


@pytest.mark.asyncio
async def test_invalid_timezone_skips_only_that_schedule(session_factory, mock_broker):
    with session_scope(session_factory) as session:
        repo = ScheduleSubscriptionRepository(session)
        repo.add(_schedule(id=None, timezone="Mars/Olympus"))
        repo.add(_schedule(id=None, channel_id="3"))

    dispatcher = ScheduleDispatcher(session_factory, mock_broker, clock=lambda: MONDAY_1330_UTC)

    assert await dispatcher.run_once() == 1
    assert mock_broker.publish_schedule_task.await_args.args[0].channel_id == "3"


@pytest.mark.asyncio
async def test_schedule_moved_later_fires_again_same_day(session_factory, mock_broker):
    with session_scope(session_factory) as session:
        schedule = ScheduleSubscriptionRepository(session).add(_schedule(id=None, timezone="UTC"))

    clock = {"now": datetime(2026, 1, 12, 8, 30, tzinfo=timezone.utc)}
    dispatcher = ScheduleDispatcher(session_factory, mock_broker, clock=lambda: clock["now"])
    assert await dispatcher.run_once() == 1

    with session_scope(session_factory) as session:
        ScheduleSubscriptionRepository(session).update(schedule.id, hour=9, minute=0)

    clock["now"] = datetime(2026, 1, 12, 9, 0, tzinfo=timezone.utc)
    assert await dispatcher.run_once() == 1
    assert mock_broker.publish_schedule_task.await_count == 2
