# pyright: reportMissingTypeStubs=false
"""
Database configuration and session management.

This module sets up the SQLAlchemy engine and session factory, and provides
the unit-of-work scope used by the scheduling services so that every
multi-step mutation either fully commits or fully rolls back.
"""

import logging
from contextlib import contextmanager
from typing import Callable, Generator, List

from fastapi import HTTPException
from sqlalchemy import create_engine, event
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker

from core.config import DATABASE_URL
from core.constants import DB_POOL_RECYCLE_SECONDS

logger = logging.getLogger(__name__)

# Create SQLAlchemy engine with optimized settings
engine = create_engine(
    DATABASE_URL,
    pool_pre_ping=True,  # Verify connections before use
    pool_recycle=DB_POOL_RECYCLE_SECONDS,
    echo=False,
    future=True,
)

# Create configured SessionLocal class
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
    expire_on_commit=False,  # Don't expire objects after commit
)


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


def _set_if_mapped(mapper, target, column: str, value, overwrite: bool) -> None:  # type: ignore
    if not hasattr(mapper, "columns") or column not in mapper.columns:  # type: ignore
        return
    if overwrite or getattr(target, column, None) is None:
        setattr(target, column, value)


@event.listens_for(Base, "before_insert", propagate=True)  # type: ignore
def receive_before_insert(mapper, connection, target):  # type: ignore
    """Set created_at and updated_at on insert."""
    # Import here to avoid circular import
    from utils.datetime_utils import utc_now
    now = utc_now()
    _set_if_mapped(mapper, target, "created_at", now, overwrite=False)
    _set_if_mapped(mapper, target, "updated_at", now, overwrite=False)


@event.listens_for(Base, "before_update", propagate=True)  # type: ignore
def receive_before_update(mapper, connection, target):  # type: ignore
    """Set updated_at on update."""
    from utils.datetime_utils import utc_now
    _set_if_mapped(mapper, target, "updated_at", utc_now(), overwrite=True)


class UnitOfWork:
    """
    Transaction scope handed to service code.

    Holds the session for the duration of one logical operation and a list of
    callbacks that must only run once the transaction has committed
    (outbound email, for example).
    """

    def __init__(self, session: Session) -> None:
        self.session = session
        self._after_commit: List[Callable[[], None]] = []

    def after_commit(self, callback: Callable[[], None]) -> None:
        """Register a callback that runs only if the transaction commits."""
        self._after_commit.append(callback)

    def run_after_commit(self) -> None:
        callbacks, self._after_commit = self._after_commit, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                # Post-commit side effects can never undo the committed work
                logger.warning(f"After-commit callback failed: {e}", exc_info=True)


@contextmanager
def unit_of_work(
    session_factory: Callable[[], Session] = SessionLocal,
) -> Generator[UnitOfWork, None, None]:
    """
    Open a session, yield a UnitOfWork, commit on success and roll back on any error.

    After-commit callbacks run once the commit succeeded; they are discarded
    when the block raises.

    Example:
        ```python
        with unit_of_work(session_factory) as uow:
            uow.session.add(slot)
            uow.after_commit(lambda: send_email(...))
        ```
    """
    session = session_factory()
    uow = UnitOfWork(session)
    try:
        yield uow
        session.commit()
    except HTTPException:
        # Expected business errors; roll back without logging a stack trace
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.exception(f"Unit of work rolled back: {e}")
        raise
    finally:
        session.close()
    uow.run_after_commit()
