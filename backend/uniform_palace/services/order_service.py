# Overview: Service-layer operations for orders; encapsulates business logic and database work.

"""
Order Service

LIFECYCLE:
draft -> pending -> confirmed -> in-production -> ready -> delivered
Any status except delivered may move to cancelled.

STOCK:
Creation and add_item reserve stock with a conditional decrement per product
(UPDATE ... WHERE stock_quantity >= qty), after every line has passed
validation. A failed decrement rolls the whole transaction back, so no line
keeps a partial reservation. Draft deletion and cancellation release the
reservation; a cancelled order can neither be deleted nor cancelled again,
so stock is restored exactly once.

COUNTERS:
Customer lifetime counters and product sales counters are advanced in the
same transaction that first moves an order to delivered, and nowhere else.
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, or_

from ..extensions import db
from ..models import Customer, Order, OrderItem, OrderStatusChange, Product, User
from ..models.orders import ORDER_STATUS_FLOW, ORDER_STATUSES, PAYMENT_METHODS, PAYMENT_STATUSES
from ..validation import ConflictError, NotFoundError, ValidationError, MAX_AMOUNT_CENTS
from . import activity_service, customer_service, notification_service, product_service
from .concurrency import conditional_decrement, increment
from .document_service import next_document_number
from .pagination import paginate, apply_sort
from uniform_palace.time_utils import utcnow

ORDER_MUTABLE_FIELDS = {
    "order_type", "priority", "source", "tags",
    "delivery_street", "delivery_city", "delivery_state", "delivery_pincode", "delivery_country",
    "delivery_instructions", "preferred_delivery_date", "expected_completion_date", "due_date",
    "payment_terms", "tax_cents", "discount_cents", "shipping_cents", "assigned_to_user_id",
}

DELIVERY_ADDRESS_FIELDS = {"delivery_street", "delivery_city", "delivery_state", "delivery_pincode", "delivery_country"}

# Changing any of these re-runs calculate_totals
TOTAL_FIELDS = {"tax_cents", "discount_cents", "shipping_cents"}

ORDER_SORT_FIELDS = {"created_at", "order_date", "order_number", "total_amount_cents", "status", "preferred_delivery_date"}

# Orders that still need work from the floor
PENDING_STATUSES = ("pending", "confirmed", "in-production")
CLOSED_STATUSES = ("delivered", "cancelled")
ITEM_EDITABLE_STATUSES = ("draft", "pending")

ITEM_FIELDS = {"product_id", "quantity", "unit_price_cents", "customization", "notes"}

# Milestone column stamped the first time an order reaches the status
MILESTONES = {
    "in-production": "production_start_date",
    "ready": "actual_completion_date",
    "delivered": "actual_delivery_date",
}


def derive_payment_status(paid_amount_cents: int, total_amount_cents: int) -> str:
    """paid when paid >= total, partial when 0 < paid < total, else pending."""
    paid = paid_amount_cents or 0
    total = total_amount_cents or 0
    if paid >= total:
        return "paid"
    if paid > 0:
        return "partial"
    return "pending"


def calculate_totals(order: Order) -> Order:
    """
    subtotal = sum(line totals); total = subtotal + tax + shipping - discount.

    Must run after every line item change. The payment status is re-derived
    because the total it is compared against may have moved.
    """
    order.subtotal_cents = sum(item.total_price_cents or 0 for item in order.items)
    total = (
        order.subtotal_cents
        + (order.tax_cents or 0)
        + (order.shipping_cents or 0)
        - (order.discount_cents or 0)
    )
    if total < 0:
        raise ValidationError("discount_cents cannot exceed subtotal + tax + shipping")
    order.total_amount_cents = total
    order.payment_status = derive_payment_status(order.paid_amount_cents, total)
    return order


def status_rank(status: str) -> int:
    return ORDER_STATUS_FLOW.index(status)


def apply_order_patch(o: Order, patch: dict) -> None:
    for k, v in patch.items():
        if k not in ORDER_MUTABLE_FIELDS:
            continue
        setattr(o, k, v)


def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if not order:
        raise NotFoundError("Order not found")
    return order


def _ensure_user(user_id: int | None) -> None:
    if user_id is not None and not db.session.get(User, user_id):
        raise ValidationError("Assigned user not found")


def list_orders(
    *,
    status: str | None = None,
    payment_status: str | None = None,
    customer_id: int | None = None,
    assigned_to: int | None = None,
    order_type: str | None = None,
    priority: str | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Order)
    if status:
        query = query.filter(Order.status == status)
    if payment_status:
        query = query.filter(Order.payment_status == payment_status)
    if customer_id is not None:
        query = query.filter(Order.customer_id == customer_id)
    if assigned_to is not None:
        query = query.filter(Order.assigned_to_user_id == assigned_to)
    if order_type:
        query = query.filter(Order.order_type == order_type)
    if priority:
        query = query.filter(Order.priority == priority)
    if date_from:
        query = query.filter(Order.order_date >= date_from)
    if date_to:
        query = query.filter(Order.order_date <= date_to)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Order.order_number.ilike(like),
            Order.customer_name.ilike(like),
            Order.customer_email.ilike(like),
            Order.customer_company.ilike(like),
        ))

    query = apply_sort(query, Order, sort_by=sort_by, sort_order=sort_order,
                       allowed=ORDER_SORT_FIELDS, default="order_date")
    return paginate(query, page=page, per_page=per_page,
                    serialize=lambda o: o.to_dict(include_items=False))


def get_order_detail(order: Order) -> dict:
    data = order.to_dict()
    data["notes"] = [n.to_dict() for n in activity_service.list_notes("order", order.id)]
    return data


def _clean_item(raw, idx: int) -> dict:
    if not isinstance(raw, dict):
        raise ValidationError(f"items[{idx}] must be an object")
    unknown = set(raw) - ITEM_FIELDS
    if unknown:
        raise ValidationError(f"items[{idx}]: field not allowed: {', '.join(sorted(unknown))}")

    product_id = raw.get("product_id")
    quantity = raw.get("quantity")
    unit_price = raw.get("unit_price_cents")
    if not isinstance(product_id, int) or isinstance(product_id, bool):
        raise ValidationError(f"items[{idx}].product_id must be an integer")
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError(f"items[{idx}].quantity must be a positive integer")
    if unit_price is not None:
        if not isinstance(unit_price, int) or isinstance(unit_price, bool):
            raise ValidationError(f"items[{idx}].unit_price_cents must be an integer")
        if unit_price < 0 or unit_price > MAX_AMOUNT_CENTS:
            raise ValidationError(f"items[{idx}].unit_price_cents is out of range")

    customization = raw.get("customization") or {}
    if not isinstance(customization, dict):
        raise ValidationError(f"items[{idx}].customization must be an object")
    notes = raw.get("notes")
    if notes is not None and not isinstance(notes, str):
        raise ValidationError(f"items[{idx}].notes must be a string")

    return {
        "product_id": product_id,
        "quantity": quantity,
        "unit_price_cents": unit_price,
        "customization": customization,
        "notes": notes,
    }


def _build_items(raw_items) -> tuple[list[OrderItem], dict[int, int]]:
    """
    Validate every line and build OrderItem rows without touching stock.

    Returns the rows and the total quantity required per product, so a
    product listed on several lines is checked against its combined demand.
    """
    if not isinstance(raw_items, list) or not raw_items:
        raise ValidationError("items must be a non-empty list")

    cleaned = [_clean_item(raw, idx) for idx, raw in enumerate(raw_items)]

    required: dict[int, int] = {}
    for line in cleaned:
        required[line["product_id"]] = required.get(line["product_id"], 0) + line["quantity"]

    products: dict[int, Product] = {}
    for product_id, qty in required.items():
        product = db.session.get(Product, product_id)
        if not product:
            raise NotFoundError(f"Product {product_id} not found")
        if not product.is_active:
            raise ConflictError(f"Product {product.code} is not active")
        if (product.stock_quantity or 0) < qty:
            raise ConflictError(
                f"Insufficient stock for product {product.name}. Available: {product.stock_quantity}"
            )
        products[product_id] = product

    items = []
    for line in cleaned:
        product = products[line["product_id"]]
        unit_price = line["unit_price_cents"]
        if unit_price is None:
            unit_price = product_service.unit_price_cents_for(product, line["quantity"])
        items.append(OrderItem(
            product_id=product.id,
            product_name=product.name,
            product_code=product.code,
            quantity=line["quantity"],
            unit_price_cents=unit_price,
            total_price_cents=line["quantity"] * unit_price,
            customization=line["customization"],
            notes=line["notes"],
        ))
    return items, required


def _reserve_stock(required) -> None:
    """
    Conditionally decrement every product; raises ConflictError if any
    decrement would go negative. The caller rolls back on failure.
    """
    for product_id, qty in required.items():
        if not conditional_decrement(Product, row_id=product_id, column="stock_quantity", amount=qty):
            product = db.session.get(Product, product_id)
            name = product.name if product else product_id
            raise ConflictError(f"Insufficient stock for product {name}")


def _release_stock(order: Order) -> None:
    for item in order.items:
        increment(Product, row_id=item.product_id, column="stock_quantity", amount=item.quantity)


def _record_status(order: Order, status: str, actor_id: int | None, notes: str | None) -> None:
    order.status_history.append(OrderStatusChange(
        status=status,
        changed_by_user_id=actor_id,
        changed_at=utcnow(),
        notes=notes or None,
    ))


def create_order(*, customer_id: int, items, patch: dict | None = None, actor_id: int | None) -> Order:
    """
    Create an order for a customer and reserve stock for every line.

    Raises NotFoundError for a missing customer/product, ConflictError when
    any line exceeds available stock (nothing is reserved in that case).
    """
    patch = patch or {}
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFoundError("Customer not found")
    _ensure_user(patch.get("assigned_to_user_id"))

    try:
        order_items, required = _build_items(items)

        now = utcnow()
        order = Order(
            order_number=next_document_number(document_type="order", at=now),
            order_date=now,
            status="draft",
            customer_id=customer.id,
            customer_name=customer.name,
            customer_email=customer.email,
            customer_phone=customer.phone,
            customer_company=customer.company,
            created_by_user_id=actor_id,
            paid_amount_cents=0,
        )
        apply_order_patch(order, patch)
        if not DELIVERY_ADDRESS_FIELDS & set(patch):
            order.delivery_street = customer.street
            order.delivery_city = customer.city
            order.delivery_state = customer.state
            order.delivery_pincode = customer.pincode
            order.delivery_country = customer.country
        if order.assigned_to_user_id is None:
            order.assigned_to_user_id = actor_id

        order.items.extend(order_items)
        calculate_totals(order)
        _record_status(order, order.status, actor_id, "Order created")

        _reserve_stock(required)
        db.session.add(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    notification_service.notify("new_order", order=order)
    return order


def update_order(order: Order, *, patch: dict) -> Order:
    if order.status == "cancelled":
        raise ConflictError("Cancelled orders cannot be modified")
    # Delivery already posted the total to the customer and product counters
    if order.status == "delivered" and TOTAL_FIELDS & set(patch):
        raise ConflictError(
            f"Delivered orders cannot change {', '.join(sorted(TOTAL_FIELDS & set(patch)))}"
        )
    if "assigned_to_user_id" in patch:
        _ensure_user(patch["assigned_to_user_id"])

    apply_order_patch(order, patch)
    if TOTAL_FIELDS & set(patch):
        calculate_totals(order)
    db.session.commit()
    return order


def delete_order(order: Order) -> None:
    """Only drafts can be deleted; their reserved stock goes back to the products."""
    if order.status != "draft":
        raise ConflictError("Only draft orders can be deleted")

    try:
        _release_stock(order)
        activity_service.delete_entity_activity("order", order.id)
        db.session.delete(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise


def _complete_delivery(order: Order, at: datetime) -> None:
    customer = db.session.get(Customer, order.customer_id)
    if customer is not None:
        customer_service.record_completed_order(customer, amount_cents=order.total_amount_cents, completed_at=at)
    for item in order.items:
        product_service.record_sale(item.product_id, quantity=item.quantity, revenue_cents=item.total_price_cents)


def update_status(order: Order, *, new_status: str, actor_id: int | None, notes: str | None = None) -> Order:
    """
    Move an order along the status ladder.

    Re-entering the current status records history but stamps nothing.
    Moving backwards, leaving cancelled and cancelling a delivered order are
    ConflictErrors.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    current = order.status
    changed = new_status != current

    if current == "cancelled" and changed:
        raise ConflictError("Cancelled orders cannot change status")

    if new_status == "cancelled":
        if current == "delivered":
            raise ConflictError("Delivered orders cannot be cancelled")
    elif status_rank(new_status) < status_rank(current):
        raise ConflictError(f"Cannot move order from {current} back to {new_status}")

    now = utcnow()
    try:
        if new_status == "cancelled" and changed:
            _release_stock(order)

        milestone = MILESTONES.get(new_status)
        if milestone and getattr(order, milestone) is None:
            setattr(order, milestone, now)

        if new_status == "delivered" and changed:
            _complete_delivery(order, now)

        order.status = new_status
        _record_status(order, new_status, actor_id, notes)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    if changed:
        notification_service.notify("order_status_update", order=order, new_status=new_status)
    return order


def add_item(order: Order, *, item_data: dict, actor_id: int | None = None) -> Order:
    """Add a line with the same conditional stock reservation as creation."""
    if order.status not in ITEM_EDITABLE_STATUSES:
        raise ConflictError(f"Items can only be added to draft or pending orders (current: {order.status})")

    try:
        new_items, required = _build_items([item_data])
        _reserve_stock(required)
        order.items.extend(new_items)
        calculate_totals(order)
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise

    return order


def update_payment(order: Order, *, amount_cents: int, payment_method: str | None = None) -> Order:
    """paid_amount only grows; payment status is re-derived from it."""
    if not isinstance(amount_cents, int) or isinstance(amount_cents, bool) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")
    if amount_cents > MAX_AMOUNT_CENTS:
        raise ValidationError("amount_cents is out of range")
    if payment_method is not None and payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    if order.status == "cancelled":
        raise ConflictError("Cannot record payment on a cancelled order")

    order.paid_amount_cents = (order.paid_amount_cents or 0) + amount_cents
    order.payment_status = derive_payment_status(order.paid_amount_cents, order.total_amount_cents)
    if payment_method:
        order.payment_method = payment_method
    db.session.commit()
    return order


def add_note(order: Order, *, content: str, author_id: int | None, is_internal: bool = False) -> Order:
    activity_service.add_note(
        entity_type="order", entity_id=order.id,
        content=content, author_id=author_id, is_internal=is_internal,
    )
    db.session.commit()
    return order


def record_quality_check(order: Order, *, passed: bool, actor_id: int | None, notes: str | None = None) -> Order:
    if not isinstance(passed, bool):
        raise ValidationError("passed must be a boolean")
    order.qc_completed = True
    order.qc_passed = passed
    order.qc_checked_by_user_id = actor_id
    order.qc_checked_at = utcnow()
    order.qc_notes = notes
    db.session.commit()
    return order


def assign_to(order: Order, *, user_id: int, actor_id: int | None, notes: str | None = None) -> Order:
    _ensure_user(user_id)
    order.assigned_to_user_id = user_id
    if notes:
        activity_service.add_note(
            entity_type="order", entity_id=order.id,
            content=f"Assigned to user: {notes}", author_id=actor_id, is_internal=True,
        )
    db.session.commit()
    return order


def find_pending(*, limit: int = 100) -> list[Order]:
    return (
        db.session.query(Order)
        .filter(Order.status.in_(PENDING_STATUSES))
        .order_by(Order.order_date.asc(), Order.id.asc())
        .limit(limit)
        .all()
    )


def find_overdue(*, now: datetime | None = None, limit: int = 100) -> list[Order]:
    now = now or utcnow()
    return (
        db.session.query(Order)
        .filter(
            or_(Order.preferred_delivery_date < now, Order.due_date < now),
            Order.status.notin_(CLOSED_STATUSES),
        )
        .order_by(Order.preferred_delivery_date.asc(), Order.id.asc())
        .limit(limit)
        .all()
    )


def order_stats() -> dict:
    by_status = dict(
        db.session.query(Order.status, func.count(Order.id)).group_by(Order.status).all()
    )
    by_payment = dict(
        db.session.query(Order.payment_status, func.count(Order.id)).group_by(Order.payment_status).all()
    )
    totals = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount_cents), 0),
        func.avg(Order.total_amount_cents),
        func.coalesce(func.sum(Order.paid_amount_cents), 0),
    ).one()

    return {
        "total_orders": int(totals[0] or 0),
        "total_revenue_cents": int(totals[1] or 0),
        "average_order_value_cents": int(round(totals[2] or 0)),
        "total_paid_cents": int(totals[3] or 0),
        "by_status": {s: int(by_status.get(s, 0)) for s in ORDER_STATUSES},
        "by_payment_status": {s: int(by_payment.get(s, 0)) for s in PAYMENT_STATUSES},
    }


def dashboard_summary(*, recent: int = 5) -> dict:
    now = utcnow()
    recent_orders = (
        db.session.query(Order)
        .order_by(Order.order_date.desc(), Order.id.desc())
        .limit(recent)
        .all()
    )
    return {
        "stats": order_stats(),
        "pending_count": db.session.query(func.count(Order.id)).filter(Order.status.in_(PENDING_STATUSES)).scalar() or 0,
        "overdue_count": (
            db.session.query(func.count(Order.id))
            .filter(or_(Order.preferred_delivery_date < now, Order.due_date < now),
                    Order.status.notin_(CLOSED_STATUSES))
            .scalar()
        ) or 0,
        "recent_orders": [o.to_dict(include_items=False) for o in recent_orders],
    }
