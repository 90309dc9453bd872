# Overview: Unit-of-work scope and row locking shared by every ledger mutation.

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """
    The unit of work could not be committed (database unavailable, lock
    timeout, optimistic-lock conflict).

    Everything the failed call wrote has been rolled back, so the caller may
    retry the whole operation from scratch.
    """


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the write lock taken by
    begin_write() already serializes writers.
    """
    return query.with_for_update()


def begin_write(session: Session) -> None:
    """
    Open the write transaction eagerly.

    SQLite only serializes writers once a transaction holds the RESERVED
    lock, so take it up front with BEGIN IMMEDIATE. Server databases rely on
    row locks and atomic UPDATE statements instead.
    """
    if session.get_bind().dialect.name == "sqlite":
        session.execute(text("BEGIN IMMEDIATE"))


@contextmanager
def unit_of_work(session: Session) -> Iterator[Session]:
    """
    All-or-nothing scope for a group of store mutations.

    Store primitives only flush; this scope commits once at the end. Any
    exception rolls back every write issued inside the block. Domain errors
    (ValidationError, NotFoundError, ...) propagate unchanged, database
    failures are re-raised as StorageError.
    """
    try:
        begin_write(session)
        yield session
        session.commit()
    except SQLAlchemyError as exc:
        session.rollback()
        logger.warning("Unit of work rolled back after storage failure: %s", exc)
        raise StorageError("Could not commit changes; nothing was applied") from exc
    except Exception:
        session.rollback()
        raise
