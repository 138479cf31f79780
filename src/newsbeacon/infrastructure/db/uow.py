# File: src/newsbeacon/infrastructure/db/uow.py
# Unit of Work: session factory + transactional scope.

import logging
from contextlib import contextmanager
from typing import Generator

from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from .models import Base

log = logging.getLogger(__name__)


def create_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


def create_tables(engine: Engine) -> None:
    """Creates all tables defined in models (development / tests; production uses Alembic)."""
    log.info("Creating database tables if they do not exist...")
    try:
        Base.metadata.create_all(engine)
        log.info("Database tables checked/created successfully.")
    except Exception as e:
        log.critical(f"Failed to create database tables: {e}", exc_info=True)
        raise


@contextmanager
def session_scope(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """
    Provide a transactional scope around a series of operations.
    This handles session creation, commit, rollback, and closing.
    """
    session = session_factory()
    log.debug(f"Session {id(session)} opened.")
    try:
        yield session
        session.commit()
        log.debug(f"Session {id(session)} committed.")
    except Exception as e:
        log.error(f"Session {id(session)} rollback due to exception: {e}", exc_info=True)
        session.rollback()
        raise
    finally:
        session.close()
        log.debug(f"Session {id(session)} closed.")
