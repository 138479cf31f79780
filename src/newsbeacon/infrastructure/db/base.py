# src/newsbeacon/infrastructure/db/base.py
"""
Database engine construction.

The engine is built from an explicit URL by `boot.build_services` instead of at
import time, so tests and each process can own their own engine.
"""

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine


def normalize_database_url(url: str) -> str:
    """Heroku-style `postgres://` URLs are rewritten for the psycopg driver."""
    url = (url or "").strip()
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+psycopg://", 1)
    return url


def _enable_sqlite_savepoints(engine: Engine) -> None:
    """pysqlite defers BEGIN on its own; hand transaction control to SQLAlchemy so SAVEPOINT works."""

    @event.listens_for(engine, "connect")
    def _on_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _on_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_db_engine(database_url: str, echo: bool = False) -> Engine:
    url = normalize_database_url(database_url)
    if url.startswith("sqlite"):
        # Sessions are opened from worker threads (asyncio.to_thread).
        engine = create_engine(url, echo=echo, connect_args={"check_same_thread": False})
        _enable_sqlite_savepoints(engine)
        return engine
    return create_engine(
        url,
        echo=echo,
        pool_pre_ping=True,
        pool_recycle=3600,
    )
