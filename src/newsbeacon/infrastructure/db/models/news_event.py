"""
NewsEvent model: one row per calendar announcement.
Timestamps in `scheduled_at` are stored without a timezone and are UTC by convention.
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, Enum, UniqueConstraint, func
)
from .base import Base

from newsbeacon.domain.entities import Impact as ImpactEnum, Currency as CurrencyEnum


class NewsEvent(Base):
    __tablename__ = "news_events"
    __table_args__ = (
        # natural key; ingestion upserts against it
        UniqueConstraint("title", "scheduled_at", "impact", "currency", name="uq_news_events_natural_key"),
    )

    id = Column(Integer, primary_key=True)

    title = Column(String(255), nullable=False)
    scheduled_at = Column(DateTime(timezone=False), nullable=False, index=True)
    impact = Column(Enum(ImpactEnum, name="impactenum"), nullable=False)
    currency = Column(Enum(CurrencyEnum, name="currencyenum"), nullable=False)

    forecast = Column(String(64), nullable=True)
    previous = Column(String(64), nullable=True)
    actual = Column(String(64), nullable=True)
    source = Column(String(64), nullable=False, default="ForexFactory")

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<NewsEvent(id={self.id}, title={self.title!r}, at={self.scheduled_at}, "
            f"impact={self.impact}, currency={self.currency})>"
        )
