"""
Subscription models: real-time alert configurations and recurring schedules.

Filter sets are stored as JSON lists of enum values so the same schema works on
PostgreSQL and SQLite. An empty list means "match all".
"""

from sqlalchemy import (
    Column, Integer, String, DateTime, JSON, UniqueConstraint, CheckConstraint, func
)
from .base import Base


class NewsAlert(Base):
    __tablename__ = "news_alerts"
    __table_args__ = (
        # one alert configuration per channel
        UniqueConstraint("server_id", "channel_id", name="uq_news_alerts_destination"),
    )

    id = Column(Integer, primary_key=True)

    server_id = Column(String(32), nullable=False, index=True)
    channel_id = Column(String(32), nullable=False)
    role_id = Column(String(32), nullable=True)

    impact = Column(JSON, nullable=False, default=list)
    currency = Column(JSON, nullable=False, default=list)
    alert_type = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<NewsAlert(id={self.id}, server={self.server_id}, channel={self.channel_id}, "
            f"alert_type={self.alert_type})>"
        )


class Schedule(Base):
    __tablename__ = "schedules"
    __table_args__ = (
        CheckConstraint("hour BETWEEN 0 AND 23", name="ck_schedules_hour"),
        CheckConstraint("minute BETWEEN 0 AND 59", name="ck_schedules_minute"),
    )

    id = Column(Integer, primary_key=True)

    server_id = Column(String(32), nullable=False, index=True)
    channel_id = Column(String(32), nullable=False)
    role_id = Column(String(32), nullable=True)

    hour = Column(Integer, nullable=False)
    minute = Column(Integer, nullable=False)
    time_zone = Column(String(64), nullable=False, default="UTC")

    frequency = Column(String(16), nullable=False, default="DAILY")
    news_scope = Column(String(16), nullable=False, default="DAILY")
    market = Column(String(16), nullable=False, default="FOREX")
    time_display = Column(String(16), nullable=False, default="FIXED")

    impact = Column(JSON, nullable=False, default=list)
    currency = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        return (
            f"<Schedule(id={self.id}, server={self.server_id}, channel={self.channel_id}, "
            f"at={self.hour:02d}:{self.minute:02d} {self.time_zone})>"
        )
