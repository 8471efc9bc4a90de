# Overview: Allocation of human-facing inquiry and order numbers.

from __future__ import annotations

from datetime import datetime

from sqlalchemy import update, func
from sqlalchemy.exc import IntegrityError

from ..extensions import db
from ..models import DocumentSequence, Inquiry, Order
from ..validation import ValidationError
from .concurrency import run_with_retry
from uniform_palace.time_utils import month_bounds, utcnow


class DocumentSequenceError(ValidationError):
    """Raised for an unknown document type."""
    pass


# document_type -> (prefix, model, date column the month is counted on)
DOCUMENT_TYPES = {
    "inquiry": ("INQ", Inquiry, Inquiry.inquiry_date),
    "order": ("UP", Order, Order.order_date),
}


def format_document_number(prefix: str, at: datetime, sequence: int, pad: int = 4) -> str:
    """PREFIX + YYYY + MM + zero-padded sequence, e.g. INQ2024010007."""
    return f"{prefix}{at.year:04d}{at.month:02d}{sequence:0{pad}d}"


def count_in_month(document_type: str, at: datetime) -> int:
    """Existing records of this type dated within [first_of_month, first_of_next_month)."""
    if document_type not in DOCUMENT_TYPES:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")
    _, model, date_col = DOCUMENT_TYPES[document_type]
    start, end = month_bounds(at)
    return (
        db.session.query(func.count(model.id))
        .filter(date_col >= start, date_col < end)
        .scalar()
    ) or 0


def _allocate(document_type: str, period: str, at: datetime) -> int:
    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
        .execution_options(synchronize_session=False)
    )

    result = db.session.execute(stmt)
    if not result.rowcount:
        # First allocation this month: seed from what already exists so the
        # sequence lines up with records created before the counter row.
        seeded = count_in_month(document_type, at) + 1
        try:
            with db.session.begin_nested():
                db.session.add(DocumentSequence(
                    document_type=document_type,
                    period=period,
                    next_number=seeded + 1,
                ))
            return seeded
        except IntegrityError:
            # Another writer created the row first; fall through to increment it.
            result = db.session.execute(stmt)
            if not result.rowcount:
                raise

    current = (
        db.session.query(DocumentSequence.next_number)
        .filter_by(document_type=document_type, period=period)
        .scalar()
    )
    return current - 1


def next_document_number(*, document_type: str, at: datetime | None = None, pad: int = 4) -> str:
    """
    Atomically allocate the next number for a document type in the month of `at`.

    The allocation joins the caller's transaction: if the caller rolls back,
    the number is released with it.

    Lock and stale-row errors are retried, and every retry rolls back the
    whole session. Call this before staging or flushing anything else in
    the transaction. When the session already holds pending changes the
    allocation runs once and any error propagates to the caller.
    """
    if document_type not in DOCUMENT_TYPES:
        raise DocumentSequenceError(f"Unknown document type: {document_type}")
    prefix = DOCUMENT_TYPES[document_type][0]
    at = at or utcnow()
    period = f"{at.year:04d}{at.month:02d}"

    def _op() -> str:
        sequence = _allocate(document_type, period, at)
        return format_document_number(prefix, at, sequence, pad)

    session = db.session
    if session.new or session.dirty or session.deleted:
        # A rollback here would discard the caller's staged work
        return _op()
    return run_with_retry(_op)
