# tests/conftest.py
"""
Fixtures and test setup for the Pytest suite.
"""

import os
from datetime import datetime
from unittest.mock import MagicMock, AsyncMock

import pytest

# Set test environment variables BEFORE any application code is imported.
os.environ["ENV"] = "test"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"

from newsbeacon.domain.entities import Currency, Impact
from newsbeacon.domain.value_objects import NaturalKey
from newsbeacon.infrastructure.db.base import create_db_engine
from newsbeacon.infrastructure.db.repository import NewsEventRepository
from newsbeacon.infrastructure.db.uow import create_session_factory, create_tables, session_scope


@pytest.fixture
def db_engine(tmp_path):
    """A fresh SQLite database per test."""
    engine = create_db_engine(f"sqlite:///{tmp_path / 'test.db'}")
    create_tables(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest.fixture
def add_event(session_factory):
    """Inserts a news event and returns the stored entity."""

    def _add(title="Non-Farm Payrolls", at=datetime(2026, 1, 9, 13, 30), impact=Impact.HIGH,
             currency=Currency.USD, **fields):
        key = NaturalKey(title=title, scheduled_at=at, impact=impact, currency=currency)
        with session_scope(session_factory) as session:
            return NewsEventRepository(session).upsert_event(key, fields)

    return _add


@pytest.fixture
def mock_broker() -> MagicMock:
    broker = MagicMock()
    broker.publish_news_alert = AsyncMock(return_value="1-0")
    broker.publish_schedule_task = AsyncMock(return_value="1-0")
    broker.is_connected = True
    return broker
