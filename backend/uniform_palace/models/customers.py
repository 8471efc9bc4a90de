from __future__ import annotations

from ..extensions import db
from uniform_palace.time_utils import to_utc_z
from .mixins import AddressMixin

BUSINESS_TYPES = ("school", "college", "hotel", "hospital", "corporate", "industrial", "individual", "other")
CUSTOMER_STATUSES = ("prospect", "active", "inactive", "lead")
# Superset of inquiry sources so a conversion can copy the value verbatim
CUSTOMER_SOURCES = (
    "website", "referral", "cold-call", "social-media", "advertisement",
    "phone", "email", "walk-in", "other",
)
PREFERRED_CONTACTS = ("email", "phone", "whatsapp")
PREFERRED_TIMES = ("morning", "afternoon", "evening")
PAYMENT_TERMS = ("immediate", "7-days", "15-days", "30-days", "45-days", "60-days")


class Customer(AddressMixin, db.Model):
    """
    Customer master data: schools, hotels, hospitals and companies buying uniforms.

    WHY: Counters (total_orders, total_revenue_cents, last_order_date) are
    denormalized for dashboards and only ever grow; they are advanced by the
    order-delivery path in order_service, nowhere else.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_customers_email"),
        db.Index("ix_customers_status_created", "status", "created_at"),
        db.Index("ix_customers_assigned_status", "assigned_to_user_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)
    phone = db.Column(db.String(32), nullable=True)
    company = db.Column(db.String(128), nullable=True)

    business_type = db.Column(db.String(32), nullable=True, index=True)
    industry = db.Column(db.String(128), nullable=True)
    employee_count = db.Column(db.Integer, nullable=True)

    preferred_contact = db.Column(db.String(16), nullable=False, default="email")
    preferred_time = db.Column(db.String(16), nullable=True)

    status = db.Column(db.String(16), nullable=False, default="prospect", index=True)
    source = db.Column(db.String(32), nullable=False, default="website")

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_terms = db.Column(db.String(16), nullable=False, default="immediate")

    tags = db.Column(db.JSON, nullable=False, default=list)

    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    # Last inquiry converted into this customer (conversion repair looks at it)
    source_inquiry_id = db.Column(db.Integer, nullable=True, index=True)

    last_contact_at = db.Column(db.DateTime(timezone=True), nullable=True)
    next_follow_up_at = db.Column(db.DateTime(timezone=True), nullable=True)
    follow_up_notes = db.Column(db.Text, nullable=True)

    # Denormalized aggregates (updated when orders are delivered)
    total_orders = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)
    last_order_date = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    created_by = db.relationship("User", foreign_keys=[created_by_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "company": self.company,
            "address": self.address_dict(),
            "full_address": self.full_address,
            "business_type": self.business_type,
            "industry": self.industry,
            "employee_count": self.employee_count,
            "preferred_contact": self.preferred_contact,
            "preferred_time": self.preferred_time,
            "status": self.status,
            "source": self.source,
            "credit_limit_cents": self.credit_limit_cents,
            "payment_terms": self.payment_terms,
            "tags": list(self.tags or []),
            "assigned_to_user_id": self.assigned_to_user_id,
            "assigned_to": self.assigned_to.to_summary() if self.assigned_to else None,
            "created_by_user_id": self.created_by_user_id,
            "source_inquiry_id": self.source_inquiry_id,
            "last_contact_at": to_utc_z(self.last_contact_at),
            "next_follow_up_at": to_utc_z(self.next_follow_up_at),
            "follow_up_notes": self.follow_up_notes,
            "total_orders": self.total_orders,
            "total_revenue_cents": self.total_revenue_cents,
            "last_order_date": to_utc_z(self.last_order_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
