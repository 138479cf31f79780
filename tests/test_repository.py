from datetime import datetime, timedelta

from newsbeacon.domain.entities import AlertSubscription, AlertTiming, Currency, Impact
from newsbeacon.infrastructure.db.models import NewsAlert
from newsbeacon.infrastructure.db.repository import AlertSubscriptionRepository, NewsEventRepository
from newsbeacon.infrastructure.db.uow import session_scope

AT = datetime(2026, 1, 9, 13, 30)


def test_upsert_updates_forecast_but_preserves_actual(session_factory, add_event):
    first = add_event(at=AT, forecast="180K", previous="150K", actual="210K")
    second = add_event(at=AT, forecast="190K", previous="155K", actual="999K")

    assert second.id == first.id
    assert second.forecast == "190K"
    assert second.previous == "155K"
    assert second.actual == "210K"


def test_upsert_fills_missing_actual(add_event):
    add_event(at=AT, forecast="0.3%")
    updated = add_event(at=AT, forecast="0.3%", actual="0.4%")
    assert updated.actual == "0.4%"


def test_natural_key_distinguishes_currency(add_event):
    usd = add_event(title="Bank Holiday", at=AT, impact=Impact.HOLIDAY, currency=Currency.USD)
    gbp = add_event(title="Bank Holiday", at=AT, impact=Impact.HOLIDAY, currency=Currency.GBP)
    assert usd.id != gbp.id


def test_find_events_at_and_between(session_factory, add_event):
    add_event(title="A", at=AT)
    add_event(title="B", at=AT + timedelta(minutes=5))
    add_event(title="C", at=AT + timedelta(days=1))

    with session_scope(session_factory) as session:
        repo = NewsEventRepository(session)
        assert [e.title for e in repo.find_events_at(AT)] == ["A"]
        between = repo.find_events_between(AT, AT + timedelta(hours=1))
        assert [e.title for e in between] == ["A", "B"]


def test_delete_events_older_than(session_factory, add_event):
    now = datetime(2026, 3, 1, 12, 0)
    add_event(title="Old", at=now - timedelta(days=31))
    add_event(title="Recent", at=now - timedelta(days=29))

    with session_scope(session_factory) as session:
        deleted = NewsEventRepository(session).delete_events_older_than(now - timedelta(days=30))
    assert deleted == 1

    with session_scope(session_factory) as session:
        remaining = NewsEventRepository(session).find_events_between(now - timedelta(days=60), now)
    assert [e.title for e in remaining] == ["Recent"]


def test_find_by_timing_skips_malformed_rows(session_factory):
    with session_scope(session_factory) as session:
        repo = AlertSubscriptionRepository(session)
        repo.add(AlertSubscription(server_id="1", channel_id="10", timings=frozenset({AlertTiming.ON_NEWS_DROP})))
        session.add(NewsAlert(server_id="1", channel_id="11", impact=["BOGUS"], currency=[],
                              alert_type=["ON_NEWS_DROP"]))
        repo.add(AlertSubscription(server_id="2", channel_id="20", timings=frozenset(AlertTiming)))

    with session_scope(session_factory) as session:
        found = AlertSubscriptionRepository(session).find_by_timing(AlertTiming.ON_NEWS_DROP)
    assert [(s.server_id, s.channel_id) for s in found] == [("1", "10"), ("2", "20")]

    with session_scope(session_factory) as session:
        listed = AlertSubscriptionRepository(session).find_by_server("1")
    assert [s.channel_id for s in listed] == ["10"]


def test_alert_round_trip_keeps_filters(session_factory):
    with session_scope(session_factory) as session:
        created = AlertSubscriptionRepository(session).add(AlertSubscription(
            server_id="5", channel_id="6", role_id="77",
            impacts=frozenset({Impact.HIGH}), currencies=frozenset({Currency.JPY, Currency.EUR}),
            timings=frozenset({AlertTiming.FIVE_MINUTES_BEFORE}),
        ))

    with session_scope(session_factory) as session:
        loaded = AlertSubscriptionRepository(session).get(created.id)
    assert loaded.impacts == {Impact.HIGH}
    assert loaded.currencies == {Currency.JPY, Currency.EUR}
    assert loaded.timings == {AlertTiming.FIVE_MINUTES_BEFORE}
    assert loaded.role_id == "77"
