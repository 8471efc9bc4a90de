# Overview: Service-layer operations for customers; encapsulates business logic and database work.

"""
Customer Service

Lifecycle operations (add_note, add_communication, assign_to,
schedule_follow_up, record_completed_order) take the loaded Customer,
stage their changes and commit before returning the updated record.
Routes load the record first so the access policy can inspect it.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Order, User
from ..models.customers import CUSTOMER_STATUSES, BUSINESS_TYPES
from ..validation import ConflictError, NotFoundError, ValidationError
from . import activity_service
from .concurrency import commit_or_conflict
from .pagination import paginate, apply_sort
from uniform_palace.time_utils import utcnow

CUSTOMER_MUTABLE_FIELDS = {
    "name", "email", "phone", "company",
    "street", "city", "state", "pincode", "country",
    "business_type", "industry", "employee_count",
    "preferred_contact", "preferred_time",
    "status", "source", "credit_limit_cents", "payment_terms",
    "tags", "assigned_to_user_id", "next_follow_up_at", "follow_up_notes",
}

CUSTOMER_SORT_FIELDS = {"created_at", "updated_at", "name", "total_revenue_cents", "total_orders", "last_contact_at"}

# Minimum lifetime revenue (paise) to count as a high-value customer
HIGH_VALUE_THRESHOLD_CENTS = 10_000 * 100


def apply_customer_patch(c: Customer, patch: dict) -> None:
    for k, v in patch.items():
        if k not in CUSTOMER_MUTABLE_FIELDS:
            continue
        setattr(c, k, v)


def _ensure_user(user_id: int | None) -> None:
    if user_id is not None and not db.session.get(User, user_id):
        raise ValidationError("Assigned user not found")


EMAIL_CONFLICT = {"email": "Customer with this email already exists"}


def _ensure_email_free(email: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Customer.id).filter(Customer.email == email)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    if query.first():
        raise ConflictError(EMAIL_CONFLICT["email"])


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    return customer


def find_by_email(email: str | None) -> Customer | None:
    if not email:
        return None
    return db.session.query(Customer).filter(Customer.email == email.strip().lower()).first()


def list_customers(
    *,
    status: str | None = None,
    business_type: str | None = None,
    assigned_to: int | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Customer)
    if status:
        query = query.filter(Customer.status == status)
    if business_type:
        query = query.filter(Customer.business_type == business_type)
    if assigned_to is not None:
        query = query.filter(Customer.assigned_to_user_id == assigned_to)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(like),
            Customer.email.ilike(like),
            Customer.company.ilike(like),
            Customer.phone.ilike(like),
        ))

    query = apply_sort(query, Customer, sort_by=sort_by, sort_order=sort_order,
                       allowed=CUSTOMER_SORT_FIELDS, default="created_at")
    return paginate(query, page=page, per_page=per_page, serialize=lambda c: c.to_dict())


def get_customer_detail(customer: Customer, *, recent_orders: int = 10) -> dict:
    orders = (
        db.session.query(Order)
        .filter(Order.customer_id == customer.id)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(recent_orders)
        .all()
    )
    data = customer.to_dict()
    data["recent_orders"] = [o.to_dict(include_items=False) for o in orders]
    data["notes"] = [n.to_dict() for n in activity_service.list_notes("customer", customer.id)]
    data["communications"] = [c.to_dict() for c in activity_service.list_communications("customer", customer.id)]
    return data


def create_customer(*, patch: dict, actor_id: int | None) -> Customer:
    """
    Create a customer from a validated patch.

    Raises ConflictError if the email is already used by another customer.
    """
    _ensure_email_free(patch["email"])
    _ensure_user(patch.get("assigned_to_user_id"))

    customer = Customer(created_by_user_id=actor_id)
    apply_customer_patch(customer, patch)
    if customer.assigned_to_user_id is None:
        customer.assigned_to_user_id = actor_id

    db.session.add(customer)
    commit_or_conflict(EMAIL_CONFLICT)
    return customer


def update_customer(customer: Customer, *, patch: dict) -> Customer:
    if "email" in patch:
        _ensure_email_free(patch["email"], exclude_id=customer.id)
    if "assigned_to_user_id" in patch:
        _ensure_user(patch["assigned_to_user_id"])

    apply_customer_patch(customer, patch)
    commit_or_conflict(EMAIL_CONFLICT)
    return customer


def delete_customer(customer: Customer) -> None:
    """Customers referenced by orders cannot be deleted (set status inactive instead)."""
    order_count = db.session.query(func.count(Order.id)).filter(Order.customer_id == customer.id).scalar() or 0
    if order_count:
        raise ConflictError(f"Cannot delete customer with {order_count} existing orders")
    activity_service.delete_entity_activity("customer", customer.id)
    db.session.delete(customer)
    db.session.commit()


def add_note(customer: Customer, *, content: str, author_id: int | None, is_internal: bool = False) -> Customer:
    activity_service.add_note(
        entity_type="customer", entity_id=customer.id,
        content=content, author_id=author_id, is_internal=is_internal,
    )
    db.session.commit()
    return customer


def add_communication(customer: Customer, *, data: dict, author_id: int | None) -> Customer:
    comm = activity_service.add_communication(
        entity_type="customer", entity_id=customer.id, data=data, author_id=author_id,
    )
    customer.last_contact_at = comm.created_at
    db.session.commit()
    return customer


def assign_to(customer: Customer, *, user_id: int, actor_id: int | None, notes: str | None = None) -> Customer:
    _ensure_user(user_id)
    customer.assigned_to_user_id = user_id
    if notes:
        activity_service.add_note(
            entity_type="customer", entity_id=customer.id,
            content=notes, author_id=actor_id, is_internal=True,
        )
    db.session.commit()
    return customer


def schedule_follow_up(customer: Customer, *, follow_up_at: datetime, notes: str | None = None) -> Customer:
    customer.next_follow_up_at = follow_up_at
    customer.follow_up_notes = notes
    db.session.commit()
    return customer


def record_completed_order(customer: Customer, *, amount_cents: int, completed_at: datetime | None = None) -> None:
    """
    Advance the lifetime counters for one completed order.

    Only order_service calls this, inside the delivery transition; it stages
    the change and leaves the commit to that transaction. Counters never
    decrease.
    """
    if amount_cents < 0:
        raise ValueError("amount_cents must be >= 0")
    customer.total_orders = (customer.total_orders or 0) + 1
    customer.total_revenue_cents = (customer.total_revenue_cents or 0) + amount_cents
    customer.last_order_date = completed_at or utcnow()


def find_needing_follow_up(*, now: datetime | None = None, limit: int = 100) -> list[Customer]:
    """Prospects and leads whose follow-up is due, or who were never contacted."""
    now = now or utcnow()
    return (
        db.session.query(Customer)
        .filter(
            Customer.status.in_(("prospect", "lead")),
            or_(Customer.next_follow_up_at <= now, Customer.last_contact_at.is_(None)),
        )
        .order_by(Customer.next_follow_up_at.asc(), Customer.id.asc())
        .limit(limit)
        .all()
    )


def find_high_value(*, min_revenue_cents: int = HIGH_VALUE_THRESHOLD_CENTS, limit: int = 100) -> list[Customer]:
    return (
        db.session.query(Customer)
        .filter(Customer.total_revenue_cents >= min_revenue_cents)
        .order_by(Customer.total_revenue_cents.desc(), Customer.id.asc())
        .limit(limit)
        .all()
    )


def customer_stats() -> dict:
    by_status = dict(
        db.session.query(Customer.status, func.count(Customer.id)).group_by(Customer.status).all()
    )
    by_business_type = dict(
        db.session.query(Customer.business_type, func.count(Customer.id))
        .filter(Customer.business_type.isnot(None))
        .group_by(Customer.business_type)
        .all()
    )
    totals = db.session.query(
        func.count(Customer.id),
        func.coalesce(func.sum(Customer.total_revenue_cents), 0),
        func.coalesce(func.sum(Customer.total_orders), 0),
    ).one()

    return {
        "total_customers": int(totals[0] or 0),
        "total_revenue_cents": int(totals[1] or 0),
        "total_orders": int(totals[2] or 0),
        "by_status": {s: int(by_status.get(s, 0)) for s in CUSTOMER_STATUSES},
        "by_business_type": {b: int(by_business_type.get(b, 0)) for b in BUSINESS_TYPES},
    }
