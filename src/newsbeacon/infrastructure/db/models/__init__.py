# --- src/newsbeacon/infrastructure/db/models/__init__.py ---
"""
This file makes the 'models' directory a package and ensures all SQLAlchemy ORM
models are discoverable by Alembic and the application.
"""

from .base import Base
from .news_event import NewsEvent
from .subscription import NewsAlert, Schedule

__all__ = [
    "Base",
    "NewsEvent",
    "NewsAlert",
    "Schedule",
]
