# src/newsbeacon/domain/value_objects.py
"""
Value objects for the domain: immutable descriptions with no identity of their own.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .entities import Currency, Impact


@dataclass(frozen=True)
class Destination:
    """A (server, channel) pair identifying where an outbound message is sent.

    Discord snowflakes are kept as strings end to end; they exceed the
    53-bit range that JSON consumers in other languages can represent.
    """
    server_id: str
    channel_id: str

    def __post_init__(self) -> None:
        if not str(self.server_id).strip() or not str(self.channel_id).strip():
            raise ValueError("Destination requires both a server id and a channel id.")
        object.__setattr__(self, "server_id", str(self.server_id).strip())
        object.__setattr__(self, "channel_id", str(self.channel_id).strip())

    def __str__(self) -> str:
        return f"{self.server_id}/{self.channel_id}"


@dataclass(frozen=True)
class NaturalKey:
    """Identity of a news event as published by the calendar source."""
    title: str
    scheduled_at: datetime  # naive UTC
    impact: Impact
    currency: Currency

    def __post_init__(self) -> None:
        if self.scheduled_at.tzinfo is not None:
            raise ValueError("NaturalKey.scheduled_at must be a naive UTC datetime.")
