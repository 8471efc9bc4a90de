# Overview: Append-only notes and communication log shared by customers, orders and inquiries.

from __future__ import annotations

from ..extensions import db
from ..models import Note, Communication
from ..models.activity import (
    NOTE_ENTITY_TYPES,
    COMMUNICATION_ENTITY_TYPES,
    COMMUNICATION_TYPES,
    COMMUNICATION_DIRECTIONS,
)
from ..validation import ValidationError
from uniform_palace.time_utils import utcnow

COMMUNICATION_FIELDS = {"type", "subject", "content", "direction", "outcome", "next_action"}


def add_note(
    *,
    entity_type: str,
    entity_id: int,
    content: str,
    author_id: int | None,
    is_internal: bool = False,
) -> Note:
    """Stage a note in the current transaction; the caller commits."""
    if entity_type not in NOTE_ENTITY_TYPES:
        raise ValueError(f"Notes are not supported for {entity_type}")
    content = (content or "").strip() if isinstance(content, str) else ""
    if not content:
        raise ValidationError("Note content is required")

    note = Note(
        entity_type=entity_type,
        entity_id=entity_id,
        content=content,
        author_user_id=author_id,
        is_internal=bool(is_internal),
        created_at=utcnow(),
    )
    db.session.add(note)
    return note


def clean_communication(data: dict) -> dict:
    """Validate a communication payload against the allow-listed fields."""
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    unknown = set(data) - COMMUNICATION_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    comm_type = data.get("type")
    if comm_type not in COMMUNICATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(COMMUNICATION_TYPES)}")
    direction = data.get("direction")
    if direction not in COMMUNICATION_DIRECTIONS:
        raise ValidationError(f"direction must be one of: {', '.join(COMMUNICATION_DIRECTIONS)}")
    content = data.get("content")
    if not isinstance(content, str) or not content.strip():
        raise ValidationError("content is required")

    cleaned = {"type": comm_type, "direction": direction, "content": content.strip()}
    for key in ("subject", "outcome", "next_action"):
        value = data.get(key)
        if value is not None:
            if not isinstance(value, str):
                raise ValidationError(f"{key} must be a string")
            if len(value) > 255:
                raise ValidationError(f"{key} exceeds max length 255")
            cleaned[key] = value.strip() or None
    return cleaned


def add_communication(*, entity_type: str, entity_id: int, data: dict, author_id: int | None) -> Communication:
    """Stage a communication record in the current transaction; the caller commits."""
    if entity_type not in COMMUNICATION_ENTITY_TYPES:
        raise ValueError(f"Communications are not supported for {entity_type}")
    cleaned = clean_communication(data)
    comm = Communication(
        entity_type=entity_type,
        entity_id=entity_id,
        author_user_id=author_id,
        created_at=utcnow(),
        **cleaned,
    )
    db.session.add(comm)
    return comm


def list_notes(entity_type: str, entity_id: int, *, include_internal: bool = True) -> list[Note]:
    query = db.session.query(Note).filter_by(entity_type=entity_type, entity_id=entity_id)
    if not include_internal:
        query = query.filter(Note.is_internal.is_(False))
    return query.order_by(Note.created_at.asc(), Note.id.asc()).all()


def list_communications(entity_type: str, entity_id: int) -> list[Communication]:
    return (
        db.session.query(Communication)
        .filter_by(entity_type=entity_type, entity_id=entity_id)
        .order_by(Communication.created_at.asc(), Communication.id.asc())
        .all()
    )


def delete_entity_activity(entity_type: str, entity_id: int) -> None:
    """Stage removal of a deleted record's notes and communications; the caller commits."""
    db.session.query(Note).filter_by(entity_type=entity_type, entity_id=entity_id).delete(
        synchronize_session=False
    )
    db.session.query(Communication).filter_by(entity_type=entity_type, entity_id=entity_id).delete(
        synchronize_session=False
    )
