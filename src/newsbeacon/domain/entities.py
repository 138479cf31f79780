# src/newsbeacon/domain/entities.py
"""
Core business entities: calendar news events and the two kinds of channel
subscriptions (real-time alerts and recurring schedules).
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional, FrozenSet, Iterable, Type, TypeVar
from enum import Enum

from .value_objects import Destination

# --- ENUMERATIONS ---

class Impact(Enum):
    """Severity classification of a news event."""
    HIGH = "HIGH"
    MEDIUM = "MEDIUM"
    LOW = "LOW"
    HOLIDAY = "HOLIDAY"

class Currency(Enum):
    """Currencies published by the calendar source."""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    JPY = "JPY"
    CHF = "CHF"
    AUD = "AUD"
    CAD = "CAD"
    CNY = "CNY"
    NZD = "NZD"

class AlertTiming(Enum):
    """When a real-time alert fires relative to the event's scheduled time."""
    FIVE_MINUTES_BEFORE = "FIVE_MINUTES_BEFORE"
    ON_NEWS_DROP = "ON_NEWS_DROP"

class Market(Enum):
    FOREX = "FOREX"
    CRYPTO = "CRYPTO"
    ENERGY = "ENERGY"
    METAL = "METAL"

class Frequency(Enum):
    """Which local weekdays a schedule fires on."""
    DAILY = "DAILY"
    WEEKDAYS = "WEEKDAYS"
    WEEKLY = "WEEKLY"  # Mondays

class NewsScope(Enum):
    """Which window of events a schedule delivers."""
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"

class TimeDisplay(Enum):
    """How event times are rendered in delivered messages."""
    FIXED = "FIXED"
    RELATIVE = "RELATIVE"


E = TypeVar("E", bound=Enum)


def parse_enum_set(enum_cls: Type[E], values: Optional[Iterable]) -> FrozenSet[E]:
    """
    Converts raw values (strings or enum members, any case) into a frozenset of
    enum members. Raises ValueError on the first unknown value.
    """
    result = set()
    for raw in values or ():
        if isinstance(raw, enum_cls):
            result.add(raw)
            continue
        result.add(enum_cls(str(raw).strip().upper()))
    return frozenset(result)


# --- ENTITIES ---

@dataclass
class NewsEvent:
    """A scheduled economic announcement."""
    title: str
    scheduled_at: datetime  # naive UTC
    impact: Impact
    currency: Currency

    id: Optional[int] = None
    forecast: Optional[str] = None
    previous: Optional[str] = None
    actual: Optional[str] = None
    source: str = "ForexFactory"

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass
class AlertSubscription:
    """
    Real-time alert configuration for one channel. Empty impact/currency
    filters match everything.
    """
    server_id: str
    channel_id: str
    timings: FrozenSet[AlertTiming]
    impacts: FrozenSet[Impact] = field(default_factory=frozenset)
    currencies: FrozenSet[Currency] = field(default_factory=frozenset)
    role_id: Optional[str] = None

    id: Optional[int] = None
    created_at: Optional[datetime] = None

    @property
    def destination(self) -> Destination:
        return Destination(self.server_id, self.channel_id)

    def accepts(self, event: NewsEvent) -> bool:
        """Impact/currency filter check, independent of timing."""
        if self.impacts and event.impact not in self.impacts:
            return False
        if self.currencies and event.currency not in self.currencies:
            return False
        return True

    def matches(self, event: NewsEvent, timing: AlertTiming) -> bool:
        return timing in self.timings and self.accepts(event)


@dataclass
class ScheduleSubscription:
    """Recurring digest delivered at a fixed local time of day."""
    server_id: str
    channel_id: str
    hour: int
    minute: int
    timezone: str = "UTC"
    frequency: Frequency = Frequency.DAILY
    news_scope: NewsScope = NewsScope.DAILY
    market: Market = Market.FOREX
    impacts: FrozenSet[Impact] = field(default_factory=frozenset)
    currencies: FrozenSet[Currency] = field(default_factory=frozenset)
    time_display: TimeDisplay = TimeDisplay.FIXED
    role_id: Optional[str] = None

    id: Optional[int] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not 0 <= int(self.hour) <= 23:
            raise ValueError(f"hour must be within 0..23, got {self.hour}")
        if not 0 <= int(self.minute) <= 59:
            raise ValueError(f"minute must be within 0..59, got {self.minute}")

    @property
    def destination(self) -> Destination:
        return Destination(self.server_id, self.channel_id)

    def accepts(self, event: NewsEvent) -> bool:
        if self.impacts and event.impact not in self.impacts:
            return False
        if self.currencies and event.currency not in self.currencies:
            return False
        return True
