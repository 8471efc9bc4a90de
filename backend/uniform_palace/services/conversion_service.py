# Overview: Inquiry to customer conversion, plus detection/repair of half-finished conversions.

"""
Conversion Workflow

CRITICAL: the customer write (create or merge), the inquiry stamp and the
conversion communication are staged in one session and committed once. If
anything fails the whole conversion rolls back, so a customer never exists
without its inquiry being marked converted.

WHY repair exists anyway: customers imported or edited outside this workflow
can carry a source_inquiry_id whose inquiry was never stamped.
find_incomplete_conversions() reports them and
repair_incomplete_conversions() stamps the inquiries (flask inquiries
repair-conversions).
"""

from __future__ import annotations

from dataclasses import dataclass

from flask import current_app

from ..extensions import db
from ..models import Customer, Inquiry, User
from ..models.customers import CUSTOMER_STATUSES
from ..validation import ConflictError, NotFoundError, ValidationError
from . import activity_service
from .concurrency import commit_or_conflict, lock_for_update
from uniform_palace.time_utils import utcnow

# Inquiry -> customer fields merged into an existing customer only when empty
MERGE_FIELDS = (
    "company", "phone", "business_type", "industry", "employee_count",
    "street", "city", "state", "pincode", "country",
)

# Inquiry -> customer fields seeded into a new customer
SEED_FIELDS = (
    "phone", "company", "business_type", "industry", "employee_count",
    "street", "city", "state", "pincode", "country", "source",
)


@dataclass
class ConversionResult:
    customer: Customer
    inquiry: Inquiry
    is_new_customer: bool

    def to_dict(self) -> dict:
        return {
            "customer": self.customer.to_dict(),
            "inquiry": self.inquiry.to_summary(),
            "is_new_customer": self.is_new_customer,
        }


def _is_empty(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _merge_into(customer: Customer, inquiry: Inquiry) -> list[str]:
    """Copy inquiry values into empty customer fields only; returns what was filled."""
    filled = []
    for field in MERGE_FIELDS:
        incoming = getattr(inquiry, field)
        if _is_empty(incoming):
            continue
        if _is_empty(getattr(customer, field)):
            setattr(customer, field, incoming)
            filled.append(field)
    return filled


def _new_customer_from(inquiry: Inquiry, *, status: str, assignee_id: int | None, actor_id: int | None) -> Customer:
    customer = Customer(
        name=inquiry.customer_name,
        email=inquiry.email,
        status=status,
        created_by_user_id=actor_id,
        assigned_to_user_id=assignee_id or inquiry.assigned_to_user_id or actor_id,
        tags=[f"converted-from-{inquiry.uniform_type}", "inquiry-conversion"],
        source_inquiry_id=inquiry.id,
    )
    for field in SEED_FIELDS:
        value = getattr(inquiry, field)
        if not _is_empty(value):
            setattr(customer, field, value)
    return customer


def _stamp_inquiry(inquiry: Inquiry, customer_id: int, at) -> None:
    inquiry.status = "converted"
    inquiry.converted_customer_id = customer_id
    inquiry.conversion_date = at
    if inquiry.conversion_value_cents is None:
        inquiry.conversion_value_cents = 0
    if inquiry.resolved_at is None:
        inquiry.resolved_at = at


def convert_inquiry_to_customer(
    inquiry_id: int,
    *,
    actor_id: int | None,
    assign_to: int | None = None,
    customer_status: str | None = None,
    additional_notes: str | None = None,
) -> ConversionResult:
    """
    Promote an inquiry to a customer: merge into the customer with the same
    e-mail, or create one.

    Raises NotFoundError for a missing inquiry, ConflictError when it was
    already converted, ValidationError for a bad status or assignee.
    """
    status = customer_status or "prospect"
    if status not in CUSTOMER_STATUSES:
        raise ValidationError(f"customer_status must be one of: {', '.join(CUSTOMER_STATUSES)}")
    if assign_to is not None and not db.session.get(User, assign_to):
        raise ValidationError("Assigned user not found")
    notes = (additional_notes or "").strip() or None

    try:
        inquiry = lock_for_update(db.session.query(Inquiry).filter(Inquiry.id == inquiry_id)).first()
        if not inquiry:
            raise NotFoundError("Inquiry not found")
        if inquiry.converted_customer_id is not None:
            raise ConflictError("Inquiry has already been converted to a customer")

        now = utcnow()
        customer = db.session.query(Customer).filter(Customer.email == inquiry.email).first()
        is_new = customer is None

        if is_new:
            customer = _new_customer_from(inquiry, status=status, assignee_id=assign_to, actor_id=actor_id)
            customer.last_contact_at = now
            db.session.add(customer)
            db.session.flush()
            requirements = inquiry.requirements_description or "No specific requirements noted"
            note = f"Customer created from inquiry {inquiry.inquiry_number}. Original requirements: {requirements}"
            if notes:
                note += f". Additional notes: {notes}"
        else:
            _merge_into(customer, inquiry)
            if assign_to is not None:
                customer.assigned_to_user_id = assign_to
            customer.status = status
            customer.last_contact_at = now
            if customer.source_inquiry_id is None:
                customer.source_inquiry_id = inquiry.id
            note = f"Converted from inquiry {inquiry.inquiry_number}"
            if notes:
                note += f": {notes}"

        activity_service.add_note(
            entity_type="customer", entity_id=customer.id, content=note, author_id=actor_id,
        )

        _stamp_inquiry(inquiry, customer.id, now)
        comm = activity_service.add_communication(
            entity_type="inquiry",
            entity_id=inquiry.id,
            data={
                "type": "other",
                "direction": "outbound",
                "subject": "Converted to Customer",
                "content": (
                    f"Inquiry converted to {'new' if is_new else 'existing'} customer record. "
                    f"Customer ID: {customer.id}"
                ),
                "outcome": "Converted to customer",
                "next_action": "Follow up on customer requirements",
            },
            author_id=actor_id,
        )
        inquiry.last_contact_at = comm.created_at
        if inquiry.first_response_at is None:
            inquiry.first_response_at = comm.created_at

        commit_or_conflict({"email": "A customer with this email was created concurrently; retry the conversion"})
    except Exception:
        db.session.rollback()
        raise

    current_app.logger.info(
        "Inquiry %s converted to %s customer %s",
        inquiry.inquiry_number, "new" if is_new else "existing", customer.id,
    )
    return ConversionResult(customer=customer, inquiry=inquiry, is_new_customer=is_new)


def find_incomplete_conversions() -> list[tuple[Customer, Inquiry]]:
    """Customers pointing at a source inquiry that was never stamped as converted."""
    return (
        db.session.query(Customer, Inquiry)
        .join(Inquiry, Inquiry.id == Customer.source_inquiry_id)
        .filter(Inquiry.converted_customer_id.is_(None))
        .order_by(Customer.id.asc())
        .all()
    )


def repair_incomplete_conversions() -> list[dict]:
    """Stamp every inquiry reported by find_incomplete_conversions(); returns what was repaired."""
    repaired = []
    for customer, inquiry in find_incomplete_conversions():
        _stamp_inquiry(inquiry, customer.id, inquiry.conversion_date or utcnow())
        activity_service.add_note(
            entity_type="inquiry", entity_id=inquiry.id,
            content=f"Conversion to customer {customer.id} completed by repair",
            author_id=None, is_internal=True,
        )
        repaired.append({"inquiry_number": inquiry.inquiry_number, "customer_id": customer.id})
    if repaired:
        db.session.commit()
        current_app.logger.warning("Repaired %d incomplete inquiry conversions", len(repaired))
    return repaired
