from __future__ import annotations

from ..extensions import db
from uniform_palace.time_utils import to_utc_z

NOTE_ENTITY_TYPES = ("customer", "order", "inquiry")
COMMUNICATION_ENTITY_TYPES = ("customer", "inquiry")
COMMUNICATION_TYPES = ("email", "phone", "meeting", "whatsapp", "other")
COMMUNICATION_DIRECTIONS = ("inbound", "outbound")


class Note(db.Model):
    """
    Append-only note attached to a customer, order or inquiry.

    WHY: One table keyed by (entity_type, entity_id) instead of three copies
    of the same shape. Rows are never updated or deleted by the API.
    """
    __tablename__ = "notes"
    __table_args__ = (
        db.Index("ix_notes_entity", "entity_type", "entity_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    content = db.Column(db.Text, nullable=False)
    is_internal = db.Column(db.Boolean, nullable=False, default=False)
    author_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    author = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "content": self.content,
            "is_internal": self.is_internal,
            "author_user_id": self.author_user_id,
            "author": self.author.to_summary() if self.author else None,
            "created_at": to_utc_z(self.created_at),
        }


class Communication(db.Model):
    """Append-only contact log entry (call, email, meeting...) for a customer or inquiry."""
    __tablename__ = "communications"
    __table_args__ = (
        db.Index("ix_communications_entity", "entity_type", "entity_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    entity_type = db.Column(db.String(16), nullable=False)
    entity_id = db.Column(db.Integer, nullable=False)

    type = db.Column(db.String(16), nullable=False)
    direction = db.Column(db.String(16), nullable=False)
    subject = db.Column(db.String(255), nullable=True)
    content = db.Column(db.Text, nullable=False)
    outcome = db.Column(db.String(255), nullable=True)
    next_action = db.Column(db.String(255), nullable=True)
    author_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    author = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "type": self.type,
            "direction": self.direction,
            "subject": self.subject,
            "content": self.content,
            "outcome": self.outcome,
            "next_action": self.next_action,
            "author_user_id": self.author_user_id,
            "author": self.author.to_summary() if self.author else None,
            "created_at": to_utc_z(self.created_at),
        }
