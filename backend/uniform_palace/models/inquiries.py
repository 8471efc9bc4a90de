from __future__ import annotations

from ..extensions import db
from uniform_palace.time_utils import to_utc_z, days_since
from .mixins import AddressMixin

INQUIRY_STATUSES = ("new", "contacted", "quoted", "converted", "lost", "closed")
ACTIVE_INQUIRY_STATUSES = ("new", "contacted", "quoted")
INQUIRY_PRIORITIES = ("low", "normal", "high", "urgent")
INQUIRY_BUSINESS_TYPES = ("school", "college", "hotel", "hospital", "corporate", "industrial", "individual", "other")
INQUIRY_UNIFORM_TYPES = (
    "school", "college", "hotel", "hospital", "corporate", "industrial", "security", "fashion", "other",
)
INQUIRY_URGENCIES = ("not-urgent", "within-week", "within-month", "within-quarter")
INQUIRY_SOURCES = ("website", "phone", "email", "walk-in", "referral", "social-media", "advertisement", "other")
INQUIRY_CATEGORIES = ("hot-lead", "warm-lead", "cold-lead")


class Inquiry(AddressMixin, db.Model):
    """
    Sales lead captured from the public enquiry form (or keyed in by staff).

    LIFECYCLE:
    new -> contacted -> quoted -> converted, with lost/closed reachable
    from any active status.

    WHY: converted_customer_id is written once, by conversion_service;
    a converted inquiry cannot be deleted or moved out of "converted".
    """
    __tablename__ = "inquiries"
    __table_args__ = (
        db.UniqueConstraint("inquiry_number", name="uq_inquiries_inquiry_number"),
        db.Index("ix_inquiries_status_date", "status", "inquiry_date"),
        db.Index("ix_inquiries_assigned_status", "assigned_to_user_id", "status"),
        db.Index("ix_inquiries_email", "email"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "INQ2024030007")
    inquiry_number = db.Column(db.String(32), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="new", index=True)
    priority = db.Column(db.String(16), nullable=False, default="normal", index=True)

    customer_name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=False)
    company = db.Column(db.String(128), nullable=True)

    business_type = db.Column(db.String(32), nullable=False)
    industry = db.Column(db.String(128), nullable=True)
    employee_count = db.Column(db.Integer, nullable=True)

    uniform_type = db.Column(db.String(32), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)
    preferred_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    urgency = db.Column(db.String(16), nullable=False, default="within-month")

    # Requirements
    requirements_description = db.Column(db.Text, nullable=False)
    specific_needs = db.Column(db.JSON, nullable=False, default=list)
    customization = db.Column(db.JSON, nullable=False, default=dict)
    budget_min_cents = db.Column(db.Integer, nullable=True)
    budget_max_cents = db.Column(db.Integer, nullable=True)
    budget_currency = db.Column(db.String(3), nullable=False, default="INR")

    # Attribution
    source = db.Column(db.String(32), nullable=False, default="website")
    campaign = db.Column(db.String(128), nullable=True)
    referrer = db.Column(db.String(255), nullable=True)
    category = db.Column(db.String(16), nullable=False, default="warm-lead")
    tags = db.Column(db.JSON, nullable=False, default=list)

    # Assignment and follow-up
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=True)
    last_contact_at = db.Column(db.DateTime(timezone=True), nullable=True)
    next_follow_up_at = db.Column(db.DateTime(timezone=True), nullable=True, index=True)
    follow_up_notes = db.Column(db.Text, nullable=True)

    # Conversion record (populated once)
    converted_customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    converted_order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=True)
    conversion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    conversion_value_cents = db.Column(db.Integer, nullable=True)

    # Metrics
    inquiry_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    first_response_at = db.Column(db.DateTime(timezone=True), nullable=True)
    resolved_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    converted_customer = db.relationship("Customer", foreign_keys=[converted_customer_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def is_converted(self) -> bool:
        return self.converted_customer_id is not None

    @property
    def response_time_days(self) -> int | None:
        if not self.first_response_at:
            return None
        return days_since(self.inquiry_date, now=self.first_response_at)

    def to_summary(self) -> dict:
        return {
            "id": self.id,
            "inquiry_number": self.inquiry_number,
            "status": self.status,
            "customer_name": self.customer_name,
            "email": self.email,
            "converted_to": self.conversion_dict(),
        }

    def conversion_dict(self) -> dict:
        return {
            "customer_id": self.converted_customer_id,
            "order_id": self.converted_order_id,
            "conversion_date": to_utc_z(self.conversion_date),
            "conversion_value_cents": self.conversion_value_cents,
        }

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "inquiry_number": self.inquiry_number,
            "status": self.status,
            "priority": self.priority,
            "customer_name": self.customer_name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address_dict(),
            "full_address": self.full_address,
            "business_type": self.business_type,
            "industry": self.industry,
            "employee_count": self.employee_count,
            "uniform_type": self.uniform_type,
            "quantity": self.quantity,
            "preferred_delivery_date": to_utc_z(self.preferred_delivery_date),
            "urgency": self.urgency,
            "requirements": {
                "description": self.requirements_description,
                "specific_needs": list(self.specific_needs or []),
                "customization": dict(self.customization or {}),
                "budget": {
                    "min_cents": self.budget_min_cents,
                    "max_cents": self.budget_max_cents,
                    "currency": self.budget_currency,
                },
            },
            "source": self.source,
            "campaign": self.campaign,
            "referrer": self.referrer,
            "category": self.category,
            "tags": list(self.tags or []),
            "assigned_to_user_id": self.assigned_to_user_id,
            "assigned_to": self.assigned_to.to_summary() if self.assigned_to else None,
            "assigned_at": to_utc_z(self.assigned_at),
            "last_contact_at": to_utc_z(self.last_contact_at),
            "next_follow_up_at": to_utc_z(self.next_follow_up_at),
            "follow_up_notes": self.follow_up_notes,
            "converted_to": self.conversion_dict(),
            "inquiry_date": to_utc_z(self.inquiry_date),
            "first_response_at": to_utc_z(self.first_response_at),
            "resolved_at": to_utc_z(self.resolved_at),
            "inquiry_age_days": days_since(self.inquiry_date),
            "response_time_days": self.response_time_days,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
