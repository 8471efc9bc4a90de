# Overview: Service-layer operations for sales inquiries; encapsulates business logic and database work.

"""
Inquiry Service

LIFECYCLE:
new -> contacted -> quoted -> converted, and any active status may move to
lost or closed. The order is not enforced beyond one rule: a converted
inquiry stays converted (and can no longer be deleted).

Submission is public. Notifications are sent after the commit through
notification_service.notify, which never raises, so a mail failure cannot
undo a submitted inquiry.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Inquiry, User
from ..models.inquiries import (
    ACTIVE_INQUIRY_STATUSES,
    INQUIRY_STATUSES,
    INQUIRY_SOURCES,
    INQUIRY_BUSINESS_TYPES,
)
from ..validation import ConflictError, NotFoundError, ValidationError
from . import activity_service, notification_service
from .document_service import next_document_number
from .pagination import paginate, apply_sort
from uniform_palace.time_utils import utcnow, to_utc_z

# Fields a public submission may set
INQUIRY_SUBMIT_FIELDS = {
    "customer_name", "email", "phone", "company",
    "street", "city", "state", "pincode", "country",
    "business_type", "industry", "employee_count",
    "uniform_type", "quantity", "preferred_delivery_date", "urgency",
    "requirements_description", "specific_needs", "customization",
    "budget_min_cents", "budget_max_cents", "budget_currency",
    "source", "campaign", "referrer",
}

# Fields staff may change through update_inquiry
INQUIRY_UPDATE_FIELDS = (
    "status", "priority", "assigned_to_user_id", "next_follow_up_at",
    "follow_up_notes", "tags", "category",
)

INQUIRY_SORT_FIELDS = {"inquiry_date", "created_at", "priority", "status", "customer_name", "next_follow_up_at"}
CLOSED_INQUIRY_STATUSES = ("converted", "lost", "closed")


def get_inquiry(inquiry_id: int) -> Inquiry:
    inquiry = db.session.get(Inquiry, inquiry_id)
    if not inquiry:
        raise NotFoundError("Inquiry not found")
    return inquiry


def _ensure_user(user_id: int | None) -> None:
    if user_id is not None and not db.session.get(User, user_id):
        raise ValidationError("Assigned user not found")


def submit_inquiry(*, patch: dict) -> Inquiry:
    """
    Record a public inquiry with the next INQ number for the month.

    Sends the staff alert and the customer confirmation after commit; either
    may fail without affecting the returned inquiry.
    """
    now = utcnow()
    inquiry = Inquiry(inquiry_date=now, status="new")
    for k, v in patch.items():
        if k in INQUIRY_SUBMIT_FIELDS:
            setattr(inquiry, k, v)

    try:
        inquiry.inquiry_number = next_document_number(document_type="inquiry", at=now)
        db.session.add(inquiry)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    notification_service.notify("new_inquiry", inquiry=inquiry)
    notification_service.notify("inquiry_confirmation", inquiry=inquiry)
    return inquiry


def list_inquiries(
    *,
    status: str | None = None,
    priority: str | None = None,
    business_type: str | None = None,
    uniform_type: str | None = None,
    source: str | None = None,
    assigned_to: int | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Inquiry)
    if status:
        query = query.filter(Inquiry.status == status)
    if priority:
        query = query.filter(Inquiry.priority == priority)
    if business_type:
        query = query.filter(Inquiry.business_type == business_type)
    if uniform_type:
        query = query.filter(Inquiry.uniform_type == uniform_type)
    if source:
        query = query.filter(Inquiry.source == source)
    if assigned_to is not None:
        query = query.filter(Inquiry.assigned_to_user_id == assigned_to)
    if date_from:
        query = query.filter(Inquiry.inquiry_date >= date_from)
    if date_to:
        query = query.filter(Inquiry.inquiry_date <= date_to)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Inquiry.inquiry_number.ilike(like),
            Inquiry.customer_name.ilike(like),
            Inquiry.email.ilike(like),
            Inquiry.company.ilike(like),
            Inquiry.phone.ilike(like),
        ))

    query = apply_sort(query, Inquiry, sort_by=sort_by, sort_order=sort_order,
                       allowed=INQUIRY_SORT_FIELDS, default="inquiry_date")
    return paginate(query, page=page, per_page=per_page, serialize=lambda i: i.to_dict())


def get_inquiry_detail(inquiry: Inquiry) -> dict:
    data = inquiry.to_dict()
    data["notes"] = [n.to_dict() for n in activity_service.list_notes("inquiry", inquiry.id)]
    data["communications"] = [c.to_dict() for c in activity_service.list_communications("inquiry", inquiry.id)]
    return data


def _check_status_change(inquiry: Inquiry, new_status: str) -> None:
    if new_status not in INQUIRY_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(INQUIRY_STATUSES)}")
    if inquiry.status == "converted" and new_status != "converted":
        raise ConflictError("Converted inquiries cannot change status")


def _stamp_conversion(inquiry: Inquiry, at: datetime) -> None:
    if inquiry.conversion_date is None:
        inquiry.conversion_date = at
        inquiry.resolved_at = at


def _describe(value) -> str:
    if isinstance(value, datetime):
        return to_utc_z(value)
    if isinstance(value, list):
        return ", ".join(str(v) for v in value)
    return str(value)


def update_inquiry(inquiry: Inquiry, *, patch: dict, actor_id: int | None) -> Inquiry:
    """
    Apply the staff allow-list and record an internal note listing what
    changed ("Inquiry updated: status: contacted, priority: high").
    """
    changes = {k: patch[k] for k in INQUIRY_UPDATE_FIELDS if k in patch}
    if not changes:
        return inquiry

    now = utcnow()
    if "status" in changes:
        _check_status_change(inquiry, changes["status"])
        if changes["status"] == "converted":
            _stamp_conversion(inquiry, now)
    if "assigned_to_user_id" in changes:
        _ensure_user(changes["assigned_to_user_id"])
        if changes["assigned_to_user_id"] != inquiry.assigned_to_user_id:
            inquiry.assigned_at = now

    for k, v in changes.items():
        setattr(inquiry, k, v)

    summary = ", ".join(f"{k}: {_describe(v)}" for k, v in changes.items())
    activity_service.add_note(
        entity_type="inquiry", entity_id=inquiry.id,
        content=f"Inquiry updated: {summary}", author_id=actor_id, is_internal=True,
    )
    db.session.commit()
    return inquiry


def delete_inquiry(inquiry: Inquiry) -> None:
    if inquiry.status == "converted" or inquiry.is_converted:
        raise ConflictError("Cannot delete converted inquiries. Please archive instead.")

    activity_service.delete_entity_activity("inquiry", inquiry.id)
    db.session.delete(inquiry)
    db.session.commit()


def add_note(inquiry: Inquiry, *, content: str, author_id: int | None, is_internal: bool = False) -> Inquiry:
    activity_service.add_note(
        entity_type="inquiry", entity_id=inquiry.id,
        content=content, author_id=author_id, is_internal=is_internal,
    )
    db.session.commit()
    return inquiry


def add_communication(inquiry: Inquiry, *, data: dict, author_id: int | None) -> Inquiry:
    """The first outbound communication stamps first_response_at."""
    comm = activity_service.add_communication(
        entity_type="inquiry", entity_id=inquiry.id, data=data, author_id=author_id,
    )
    inquiry.last_contact_at = comm.created_at
    if comm.direction == "outbound" and inquiry.first_response_at is None:
        inquiry.first_response_at = comm.created_at
    db.session.commit()
    return inquiry


def update_status(inquiry: Inquiry, *, new_status: str, actor_id: int | None, notes: str | None = None) -> Inquiry:
    _check_status_change(inquiry, new_status)

    inquiry.status = new_status
    if new_status == "converted":
        _stamp_conversion(inquiry, utcnow())
    if notes:
        activity_service.add_note(
            entity_type="inquiry", entity_id=inquiry.id,
            content=f"Status changed to {new_status}: {notes}", author_id=actor_id, is_internal=True,
        )
    db.session.commit()
    return inquiry


def assign_to(inquiry: Inquiry, *, user_id: int, actor_id: int | None, notes: str | None = None) -> Inquiry:
    _ensure_user(user_id)
    inquiry.assigned_to_user_id = user_id
    inquiry.assigned_at = utcnow()
    if notes:
        activity_service.add_note(
            entity_type="inquiry", entity_id=inquiry.id,
            content=f"Assigned to user: {notes}", author_id=actor_id, is_internal=True,
        )
    db.session.commit()
    return inquiry


def schedule_follow_up(inquiry: Inquiry, *, follow_up_at: datetime, notes: str | None = None) -> Inquiry:
    inquiry.next_follow_up_at = follow_up_at
    inquiry.follow_up_notes = notes
    db.session.commit()

    notification_service.notify("follow_up_reminder", inquiry=inquiry, follow_up_at=follow_up_at)
    return inquiry


def _needing_follow_up_filter(now: datetime):
    return (
        or_(Inquiry.next_follow_up_at <= now, Inquiry.last_contact_at.is_(None)),
        Inquiry.status.in_(ACTIVE_INQUIRY_STATUSES),
    )


def _high_priority_filter():
    return (
        Inquiry.priority.in_(("high", "urgent")),
        Inquiry.status.notin_(CLOSED_INQUIRY_STATUSES),
    )


def find_new(*, limit: int = 100) -> list[Inquiry]:
    return (
        db.session.query(Inquiry)
        .filter(Inquiry.status == "new")
        .order_by(Inquiry.inquiry_date.desc(), Inquiry.id.desc())
        .limit(limit)
        .all()
    )


def find_needing_follow_up(*, now: datetime | None = None, limit: int = 100) -> list[Inquiry]:
    """Active inquiries whose follow-up is due, or that nobody has contacted yet."""
    now = now or utcnow()
    return (
        db.session.query(Inquiry)
        .filter(*_needing_follow_up_filter(now))
        .order_by(Inquiry.next_follow_up_at.asc(), Inquiry.id.asc())
        .limit(limit)
        .all()
    )


def find_high_priority(*, limit: int = 100) -> list[Inquiry]:
    return (
        db.session.query(Inquiry)
        .filter(*_high_priority_filter())
        .order_by(Inquiry.inquiry_date.desc(), Inquiry.id.desc())
        .limit(limit)
        .all()
    )


def inquiry_stats(*, now: datetime | None = None) -> dict:
    now = now or utcnow()
    by_status = dict(
        db.session.query(Inquiry.status, func.count(Inquiry.id)).group_by(Inquiry.status).all()
    )
    by_source = dict(
        db.session.query(Inquiry.source, func.count(Inquiry.id)).group_by(Inquiry.source).all()
    )
    by_business_type = dict(
        db.session.query(Inquiry.business_type, func.count(Inquiry.id)).group_by(Inquiry.business_type).all()
    )
    total = sum(by_status.values())
    converted = by_status.get("converted", 0)
    needing_follow_up = (
        db.session.query(func.count(Inquiry.id)).filter(*_needing_follow_up_filter(now)).scalar()
    ) or 0
    urgent = db.session.query(func.count(Inquiry.id)).filter(Inquiry.priority == "urgent").scalar() or 0

    return {
        "total_inquiries": int(total),
        "new_inquiries": int(by_status.get("new", 0)),
        "urgent_inquiries": int(urgent),
        "needing_follow_up": int(needing_follow_up),
        "conversion_rate": round(converted * 100.0 / total, 2) if total else 0.0,
        "by_status": {s: int(by_status.get(s, 0)) for s in INQUIRY_STATUSES},
        "by_source": {s: int(by_source.get(s, 0)) for s in INQUIRY_SOURCES},
        "by_business_type": {b: int(by_business_type.get(b, 0)) for b in INQUIRY_BUSINESS_TYPES},
    }


def dashboard_summary(*, limit: int = 5) -> dict:
    now = utcnow()
    recent = (
        db.session.query(Inquiry)
        .order_by(Inquiry.inquiry_date.desc(), Inquiry.id.desc())
        .limit(limit)
        .all()
    )
    return {
        "recent_inquiries": [i.to_summary() for i in recent],
        "follow_up_inquiries": [i.to_summary() for i in find_needing_follow_up(now=now, limit=limit)],
        "high_priority_inquiries": [i.to_summary() for i in find_high_priority(limit=limit)],
    }
