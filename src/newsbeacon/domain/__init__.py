from .entities import (
    Impact,
    Currency,
    AlertTiming,
    Market,
    Frequency,
    NewsScope,
    TimeDisplay,
    NewsEvent,
    AlertSubscription,
    ScheduleSubscription,
    parse_enum_set,
)
from .value_objects import Destination, NaturalKey

__all__ = [
    "Impact",
    "Currency",
    "AlertTiming",
    "Market",
    "Frequency",
    "NewsScope",
    "TimeDisplay",
    "NewsEvent",
    "AlertSubscription",
    "ScheduleSubscription",
    "parse_enum_set",
    "Destination",
    "NaturalKey",
]
