from __future__ import annotations

from ..extensions import db


class DocumentSequence(db.Model):
    """
    Per-type, per-month counter behind inquiry and order numbers.

    WHY: Numbers are PREFIX + YYYY + MM + 4-digit sequence. Allocating from
    a single row with an atomic increment serializes concurrent creations
    in the same month; the unique constraints on inquiry_number and
    order_number stay as the backstop.
    """
    __tablename__ = "document_sequences"
    __table_args__ = (
        db.UniqueConstraint("document_type", "period", name="uq_document_sequences_type_period"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    document_type = db.Column(db.String(16), nullable=False)
    # "YYYYMM"
    period = db.Column(db.String(6), nullable=False)
    next_number = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
