# Overview: Flask API routes for orders operations; parses input and returns JSON responses.

"""
Order management routes.

SECURITY: All routes require authentication.
- Collection routes require the orders permission
- Record routes require admin, the creator/assignee, or the orders permission

LIFECYCLE: see services/order_service.py. Stock is reserved on create and
add-item, released on draft delete and cancel.
"""

from flask import Blueprint, request, jsonify, g

from ..models import Order
from ..models.orders import ORDER_TYPES, ORDER_STATUSES, PAYMENT_STATUSES, ORDER_PRIORITIES, ORDER_SOURCES
from ..models.customers import PAYMENT_TERMS
from ..services import order_service, access_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    flatten_address,
    enforce_rules_amounts,
    ValidationError,
)
from ..decorators import require_auth, require_permission
from ..errors import json_error
from ..time_utils import parse_iso_datetime

ORDER_POLICY = ModelValidationPolicy(
    writable_fields=set(order_service.ORDER_MUTABLE_FIELDS),
    choices={
        "order_type": ORDER_TYPES,
        "priority": ORDER_PRIORITIES,
        "source": ORDER_SOURCES,
        "payment_terms": PAYMENT_TERMS,
    },
    minimums={"tax_cents": 0, "discount_cents": 0, "shipping_cents": 0},
)

orders_bp = Blueprint("orders", __name__, url_prefix="/api/orders")


def _load_order(order_id: int) -> Order:
    order = order_service.get_order(order_id)
    access_service.require_access(g.current_user, "orders", order)
    return order


def _clean(payload: dict) -> dict:
    patch = validate_payload(
        model=Order,
        payload=flatten_address(payload, prefix="delivery_"),
        policy=ORDER_POLICY,
        partial=True,
    )
    enforce_rules_amounts(patch, *order_service.TOTAL_FIELDS)
    return patch


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def _optional_choice(name: str, choices) -> str | None:
    value = request.args.get(name)
    if value and value not in choices:
        raise ValidationError(f"{name} must be one of: {', '.join(choices)}")
    return value or None


@orders_bp.get("")
@require_auth
@require_permission("orders")
def list_orders_route():
    """
    List orders.

    Query params: status, payment_status, customer_id, assigned_to, order_type,
    priority, date_from, date_to, search, sort_by, sort_order, page, per_page
    """
    try:
        result = order_service.list_orders(
            status=_optional_choice("status", ORDER_STATUSES),
            payment_status=_optional_choice("payment_status", PAYMENT_STATUSES),
            customer_id=request.args.get("customer_id", type=int),
            assigned_to=request.args.get("assigned_to", type=int),
            order_type=_optional_choice("order_type", ORDER_TYPES),
            priority=_optional_choice("priority", ORDER_PRIORITIES),
            date_from=_date_arg("date_from"),
            date_to=_date_arg("date_to"),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as exc:
        return json_error(exc, action="list orders")


@orders_bp.post("")
@require_auth
@require_permission("orders")
def create_order_route():
    """
    Create an order.

    Body: {"customer_id": int, "items": [{"product_id", "quantity", ...}], ...order fields}
    Answers 409 when any line exceeds available stock; nothing is reserved then.
    """
    payload = request.get_json(silent=True) or {}
    try:
        if not isinstance(payload, dict):
            raise ValidationError("Invalid JSON payload")
        payload = dict(payload)
        customer_id = payload.pop("customer_id", None)
        items = payload.pop("items", None)
        if not isinstance(customer_id, int) or isinstance(customer_id, bool):
            raise ValidationError("customer_id must be an integer")
        patch = _clean(payload)
        order = order_service.create_order(
            customer_id=customer_id, items=items, patch=patch, actor_id=g.current_user.id,
        )
        return jsonify({"message": "Order created successfully", "order": order.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="create order")


@orders_bp.get("/pending")
@require_auth
@require_permission("orders")
def pending_orders_route():
    orders = order_service.find_pending()
    return jsonify({"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)})


@orders_bp.get("/overdue")
@require_auth
@require_permission("orders")
def overdue_orders_route():
    orders = order_service.find_overdue()
    return jsonify({"items": [o.to_dict(include_items=False) for o in orders], "count": len(orders)})


@orders_bp.get("/stats/overview")
@require_auth
@require_permission("orders")
def order_stats_route():
    try:
        return jsonify({"stats": order_service.order_stats()})
    except Exception as exc:
        return json_error(exc, action="get order statistics")


@orders_bp.get("/dashboard/summary")
@require_auth
@require_permission("orders")
def order_dashboard_route():
    try:
        return jsonify({"summary": order_service.dashboard_summary()})
    except Exception as exc:
        return json_error(exc, action="get order dashboard")


@orders_bp.get("/<int:order_id>")
@require_auth
def get_order_route(order_id: int):
    try:
        order = _load_order(order_id)
        return jsonify({"order": order_service.get_order_detail(order)})
    except Exception as exc:
        return json_error(exc, action="get order")


@orders_bp.put("/<int:order_id>")
@require_auth
def update_order_route(order_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        order = order_service.update_order(order, patch=_clean(payload))
        return jsonify({"message": "Order updated successfully", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update order")


@orders_bp.delete("/<int:order_id>")
@require_auth
def delete_order_route(order_id: int):
    try:
        order = _load_order(order_id)
        order_service.delete_order(order)
        return jsonify({"message": "Order deleted successfully"})
    except Exception as exc:
        return json_error(exc, action="delete order")


@orders_bp.put("/<int:order_id>/status")
@require_auth
def update_order_status_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        new_status = data.get("status")
        if not new_status:
            raise ValidationError("status is required")
        order = order_service.update_status(
            order, new_status=new_status, actor_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"message": "Order status updated successfully", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update order status")


@orders_bp.post("/<int:order_id>/items")
@require_auth
def add_order_item_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        order = order_service.add_item(order, item_data=data, actor_id=g.current_user.id)
        return jsonify({"message": "Item added successfully", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="add order item")


@orders_bp.post("/<int:order_id>/payment")
@require_auth
def update_order_payment_route(order_id: int):
    """
    Record a payment.

    Body: {"amount_cents": int > 0, "payment_method": optional}
    """
    data = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        order = order_service.update_payment(
            order, amount_cents=data.get("amount_cents"), payment_method=data.get("payment_method"),
        )
        return jsonify({"message": "Payment updated successfully", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update order payment")


@orders_bp.post("/<int:order_id>/notes")
@require_auth
def add_order_note_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        is_internal = data.get("is_internal", False)
        if not isinstance(is_internal, bool):
            raise ValidationError("is_internal must be a boolean")
        order_service.add_note(order, content=data.get("content"), author_id=g.current_user.id, is_internal=is_internal)
        return jsonify({"message": "Note added successfully", "order": order_service.get_order_detail(order)})
    except Exception as exc:
        return json_error(exc, action="add order note")


@orders_bp.post("/<int:order_id>/quality-check")
@require_auth
def quality_check_route(order_id: int):
    data = request.get_json(silent=True) or {}
    try:
        order = _load_order(order_id)
        order = order_service.record_quality_check(
            order, passed=data.get("passed"), actor_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"message": "Quality check recorded", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="record quality check")


@orders_bp.post("/<int:order_id>/assign")
@require_auth
def assign_order_route(order_id: int):
    data = request.get_json(silent=True) or {}
    user_id = data.get("assigned_to_user_id")
    try:
        order = _load_order(order_id)
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValidationError("assigned_to_user_id must be an integer")
        order = order_service.assign_to(order, user_id=user_id, actor_id=g.current_user.id, notes=data.get("notes"))
        return jsonify({"message": "Order assigned successfully", "order": order.to_dict()})
    except Exception as exc:
        return json_error(exc, action="assign order")
