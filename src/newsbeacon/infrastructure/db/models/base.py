# --- START OF FILE: src/newsbeacon/infrastructure/db/models/base.py ---
from sqlalchemy.orm import DeclarativeBase

class Base(DeclarativeBase):
    """The base class for all SQLAlchemy ORM models."""
    pass
# --- END OF FILE ---
