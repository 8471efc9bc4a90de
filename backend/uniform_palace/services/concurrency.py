# Overview: Transaction helpers shared by services that write contended rows.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import ConflictError

RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=RETRYABLE_ERRORS):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts) by default. The session is rolled back
    before every retry, so `func` must redo all of its work.
    """
    for attempt in range(attempts):
        try:
            return func()
        except retry_on:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))


def conditional_decrement(model, *, row_id: int, column: str, amount: int) -> bool:
    """
    Atomically subtract `amount` from `column` only if the result stays >= 0.

    The check and the write are a single UPDATE ... WHERE column >= amount,
    so two concurrent callers cannot both pass a stale availability check.
    Returns False when the row is missing or the guard failed.
    """
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id, col >= amount)
        .values({column: col - amount})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return bool(result.rowcount)


def increment(model, *, row_id: int, column: str, amount: int) -> bool:
    """Atomically add `amount` to `column` (used to release reserved stock)."""
    col = getattr(model, column)
    stmt = (
        update(model)
        .where(model.id == row_id)
        .values({column: col + amount})
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return bool(result.rowcount)


def commit_or_conflict(conflicts: dict[str, str]) -> None:
    """
    Commit, turning a unique-constraint violation into a ConflictError.

    `conflicts` maps a column name to the message raised when the database
    reports a duplicate on that column. Service pre-checks catch the common
    case; this covers a concurrent writer that inserted the same value
    between the check and the commit. Other integrity errors propagate.
    """
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        detail = str(exc.orig)
        for column, message in conflicts.items():
            if column in detail:
                raise ConflictError(message) from exc
        raise
