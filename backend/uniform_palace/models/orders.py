from __future__ import annotations

from ..extensions import db
from uniform_palace.time_utils import to_utc_z, utcnow, days_since
from .mixins import join_address_parts

ORDER_TYPES = ("quote", "order", "sample")
# Forward progression; cancelled sits outside the ladder
ORDER_STATUS_FLOW = ("draft", "pending", "confirmed", "in-production", "ready", "delivered")
ORDER_STATUSES = ORDER_STATUS_FLOW + ("cancelled",)
PAYMENT_STATUSES = ("pending", "partial", "paid", "overdue")
PAYMENT_METHODS = ("cash", "bank-transfer", "cheque", "online", "credit")
ORDER_PRIORITIES = ("low", "normal", "high", "urgent")
ORDER_SOURCES = ("website", "phone", "email", "walk-in", "referral", "other")


class Order(db.Model):
    """
    Quote / order document.

    LIFECYCLE:
    draft -> pending -> confirmed -> in-production -> ready -> delivered,
    or cancelled at any point before delivered.

    WHY: Stock is reserved at creation (conditional decrement), restored on
    draft deletion or cancellation. Totals are recomputed by
    order_service.calculate_totals after any item change.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("order_number", name="uq_orders_order_number"),
        db.Index("ix_orders_status_created", "status", "created_at"),
        db.Index("ix_orders_customer_created", "customer_id", "created_at"),
        db.Index("ix_orders_payment_status", "payment_status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    # Human-readable number (e.g., "UP2024030007")
    order_number = db.Column(db.String(32), nullable=False)
    order_type = db.Column(db.String(16), nullable=False, default="quote")
    status = db.Column(db.String(16), nullable=False, default="draft", index=True)

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    # Snapshot of the customer at order time
    customer_name = db.Column(db.String(128), nullable=False)
    customer_email = db.Column(db.String(255), nullable=False)
    customer_phone = db.Column(db.String(32), nullable=True)
    customer_company = db.Column(db.String(128), nullable=True)

    # Totals (all amounts in paise)
    subtotal_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_cents = db.Column(db.Integer, nullable=False, default=0)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    shipping_cents = db.Column(db.Integer, nullable=False, default=0)
    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    delivery_street = db.Column(db.String(255), nullable=True)
    delivery_city = db.Column(db.String(128), nullable=True)
    delivery_state = db.Column(db.String(128), nullable=True)
    delivery_pincode = db.Column(db.String(16), nullable=True)
    delivery_country = db.Column(db.String(64), nullable=True, default="India")
    delivery_instructions = db.Column(db.Text, nullable=True)

    # Dates / milestones (each milestone is stamped once)
    order_date = db.Column(db.DateTime(timezone=True), nullable=False, index=True)
    preferred_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)
    expected_completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    production_start_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_completion_date = db.Column(db.DateTime(timezone=True), nullable=True)
    actual_delivery_date = db.Column(db.DateTime(timezone=True), nullable=True)

    # Payment tracking
    payment_status = db.Column(db.String(16), nullable=False, default="pending")
    payment_method = db.Column(db.String(16), nullable=True)
    payment_terms = db.Column(db.String(16), nullable=False, default="immediate")
    due_date = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    priority = db.Column(db.String(16), nullable=False, default="normal")
    source = db.Column(db.String(16), nullable=False, default="website")
    tags = db.Column(db.JSON, nullable=False, default=list)

    # Quality check sub-record
    qc_completed = db.Column(db.Boolean, nullable=False, default=False)
    qc_passed = db.Column(db.Boolean, nullable=True)
    qc_checked_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    qc_checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    qc_notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    assigned_to_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())
    version_id = db.Column(db.Integer, nullable=False, default=1)

    customer = db.relationship("Customer", backref=db.backref("orders", lazy=True))
    items = db.relationship("OrderItem", backref="order", lazy=True, order_by="OrderItem.id", cascade="all, delete-orphan")
    status_history = db.relationship(
        "OrderStatusChange",
        backref="order",
        lazy=True,
        order_by="OrderStatusChange.id",
        cascade="all, delete-orphan",
    )
    assigned_to = db.relationship("User", foreign_keys=[assigned_to_user_id])
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def delivery_full_address(self) -> str:
        return join_address_parts(
            self.delivery_street, self.delivery_city, self.delivery_state,
            self.delivery_pincode, self.delivery_country,
        )

    @property
    def delivery_status(self) -> str:
        if self.status == "delivered":
            return "delivered"
        if self.preferred_delivery_date and self.preferred_delivery_date < utcnow():
            return "overdue"
        return "pending"

    @property
    def order_summary(self) -> str:
        return f"{self.order_number} - {self.customer_name} - {self.total_amount_cents / 100:.2f} {self.currency}"

    def to_dict(self, *, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "order_number": self.order_number,
            "order_type": self.order_type,
            "status": self.status,
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "customer_phone": self.customer_phone,
            "customer_company": self.customer_company,
            "subtotal_cents": self.subtotal_cents,
            "tax_cents": self.tax_cents,
            "discount_cents": self.discount_cents,
            "shipping_cents": self.shipping_cents,
            "total_amount_cents": self.total_amount_cents,
            "currency": self.currency,
            "delivery_address": {
                "street": self.delivery_street,
                "city": self.delivery_city,
                "state": self.delivery_state,
                "pincode": self.delivery_pincode,
                "country": self.delivery_country,
            },
            "delivery_full_address": self.delivery_full_address,
            "delivery_instructions": self.delivery_instructions,
            "order_date": to_utc_z(self.order_date),
            "preferred_delivery_date": to_utc_z(self.preferred_delivery_date),
            "expected_completion_date": to_utc_z(self.expected_completion_date),
            "production_start_date": to_utc_z(self.production_start_date),
            "actual_completion_date": to_utc_z(self.actual_completion_date),
            "actual_delivery_date": to_utc_z(self.actual_delivery_date),
            "payment_status": self.payment_status,
            "payment_method": self.payment_method,
            "payment_terms": self.payment_terms,
            "due_date": to_utc_z(self.due_date),
            "paid_amount_cents": self.paid_amount_cents,
            "priority": self.priority,
            "source": self.source,
            "tags": list(self.tags or []),
            "quality_check": {
                "is_completed": self.qc_completed,
                "is_passed": self.qc_passed,
                "checked_by_user_id": self.qc_checked_by_user_id,
                "checked_at": to_utc_z(self.qc_checked_at),
                "notes": self.qc_notes,
            },
            "created_by_user_id": self.created_by_user_id,
            "assigned_to_user_id": self.assigned_to_user_id,
            "delivery_status": self.delivery_status,
            "order_age_days": days_since(self.order_date),
            "order_summary": self.order_summary,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [i.to_dict() for i in self.items]
            data["status_history"] = [h.to_dict() for h in self.status_history]
        return data


class OrderItem(db.Model):
    """Line item on an order; total_price_cents = quantity * unit_price_cents."""
    __tablename__ = "order_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    # Snapshot of the product at order time
    product_name = db.Column(db.String(128), nullable=False)
    product_code = db.Column(db.String(32), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    total_price_cents = db.Column(db.Integer, nullable=False)

    customization = db.Column(db.JSON, nullable=False, default=dict)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product_name,
            "product_code": self.product_code,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "total_price_cents": self.total_price_cents,
            "customization": dict(self.customization or {}),
            "notes": self.notes,
        }


class OrderStatusChange(db.Model):
    """Append-only status history, separate from the general notes log."""
    __tablename__ = "order_status_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False, index=True)

    status = db.Column(db.String(16), nullable=False)
    changed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False)
    notes = db.Column(db.Text, nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "status": self.status,
            "changed_by_user_id": self.changed_by_user_id,
            "changed_at": to_utc_z(self.changed_at),
            "notes": self.notes,
        }
