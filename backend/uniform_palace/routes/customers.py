# Overview: Flask API routes for customer operations; parses input and returns JSON responses.

"""
Customer management routes.

SECURITY: All routes require authentication.
- Collection routes (list, create, stats) require the customers permission
- Record routes require access to the record: admin, the assignee/creator,
  or the customers permission. A missing record answers 404 first.
"""

from flask import Blueprint, request, jsonify, g

from ..models import Customer
from ..models.customers import (
    BUSINESS_TYPES,
    CUSTOMER_STATUSES,
    CUSTOMER_SOURCES,
    PREFERRED_CONTACTS,
    PREFERRED_TIMES,
    PAYMENT_TERMS,
)
from ..services import customer_service, access_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    flatten_address,
    enforce_rules_email,
    enforce_rules_amounts,
    ValidationError,
)
from ..decorators import require_auth, require_permission
from ..errors import json_error
from ..time_utils import parse_iso_datetime

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields=set(customer_service.CUSTOMER_MUTABLE_FIELDS),
    required_on_create={"name", "email"},
    choices={
        "business_type": BUSINESS_TYPES,
        "status": CUSTOMER_STATUSES,
        "source": CUSTOMER_SOURCES,
        "preferred_contact": PREFERRED_CONTACTS,
        "preferred_time": PREFERRED_TIMES,
        "payment_terms": PAYMENT_TERMS,
    },
    minimums={"employee_count": 1, "credit_limit_cents": 0},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/customers")


def _load_customer(customer_id: int) -> Customer:
    customer = customer_service.get_customer(customer_id)
    access_service.require_access(g.current_user, "customers", customer)
    return customer


def _clean(payload: dict, *, partial: bool) -> dict:
    patch = validate_payload(model=Customer, payload=flatten_address(payload), policy=CUSTOMER_POLICY, partial=partial)
    enforce_rules_email(patch)
    enforce_rules_amounts(patch, "credit_limit_cents")
    return patch


@customers_bp.get("")
@require_auth
@require_permission("customers")
def list_customers():
    """
    List customers.

    Query params: status, business_type, assigned_to, search,
    sort_by, sort_order (asc|desc), page, per_page
    """
    try:
        result = customer_service.list_customers(
            status=request.args.get("status"),
            business_type=request.args.get("business_type"),
            assigned_to=request.args.get("assigned_to", type=int),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as exc:
        return json_error(exc, action="list customers")


@customers_bp.post("")
@require_auth
@require_permission("customers")
def create_customer_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch = _clean(payload, partial=False)
        customer = customer_service.create_customer(patch=patch, actor_id=g.current_user.id)
        return jsonify({"message": "Customer created successfully", "customer": customer.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="create customer")


@customers_bp.get("/stats/overview")
@require_auth
@require_permission("customers")
def customer_stats_route():
    try:
        return jsonify({"stats": customer_service.customer_stats()})
    except Exception as exc:
        return json_error(exc, action="get customer statistics")


@customers_bp.get("/dashboard/summary")
@require_auth
@require_permission("customers")
def customer_dashboard_route():
    try:
        recent = customer_service.list_customers(sort_by="created_at", page=1, per_page=5)["items"]
        return jsonify({
            "summary": {
                "recent_customers": recent,
                "follow_up_customers": [c.to_dict() for c in customer_service.find_needing_follow_up(limit=5)],
                "high_value_customers": [c.to_dict() for c in customer_service.find_high_value(limit=5)],
                "stats": customer_service.customer_stats(),
            }
        })
    except Exception as exc:
        return json_error(exc, action="get customer dashboard")


@customers_bp.get("/follow-up")
@require_auth
@require_permission("customers")
def follow_up_customers_route():
    customers = customer_service.find_needing_follow_up()
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.get("/high-value")
@require_auth
@require_permission("customers")
def high_value_customers_route():
    min_revenue = request.args.get("min_revenue_cents", type=int)
    if min_revenue is None:
        min_revenue = customer_service.HIGH_VALUE_THRESHOLD_CENTS
    customers = customer_service.find_high_value(min_revenue_cents=min_revenue)
    return jsonify({"items": [c.to_dict() for c in customers], "count": len(customers)})


@customers_bp.get("/<int:customer_id>")
@require_auth
def get_customer_route(customer_id: int):
    try:
        customer = _load_customer(customer_id)
        return jsonify({"customer": customer_service.get_customer_detail(customer)})
    except Exception as exc:
        return json_error(exc, action="get customer")


@customers_bp.put("/<int:customer_id>")
@require_auth
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        customer = _load_customer(customer_id)
        patch = _clean(payload, partial=True)
        customer = customer_service.update_customer(customer, patch=patch)
        return jsonify({"message": "Customer updated successfully", "customer": customer.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update customer")


@customers_bp.delete("/<int:customer_id>")
@require_auth
def delete_customer_route(customer_id: int):
    try:
        customer = _load_customer(customer_id)
        customer_service.delete_customer(customer)
        return jsonify({"message": "Customer deleted successfully"})
    except Exception as exc:
        return json_error(exc, action="delete customer")


@customers_bp.post("/<int:customer_id>/notes")
@require_auth
def add_customer_note_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        customer = _load_customer(customer_id)
        is_internal = data.get("is_internal", False)
        if not isinstance(is_internal, bool):
            raise ValidationError("is_internal must be a boolean")
        customer_service.add_note(
            customer, content=data.get("content"), author_id=g.current_user.id, is_internal=is_internal,
        )
        return jsonify({"message": "Note added successfully", "customer": customer_service.get_customer_detail(customer)})
    except Exception as exc:
        return json_error(exc, action="add customer note")


@customers_bp.post("/<int:customer_id>/communications")
@require_auth
def add_customer_communication_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        customer = _load_customer(customer_id)
        customer_service.add_communication(customer, data=data, author_id=g.current_user.id)
        return jsonify({
            "message": "Communication added successfully",
            "customer": customer_service.get_customer_detail(customer),
        })
    except Exception as exc:
        return json_error(exc, action="add customer communication")


@customers_bp.post("/<int:customer_id>/assign")
@require_auth
def assign_customer_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    user_id = data.get("assigned_to_user_id")
    try:
        customer = _load_customer(customer_id)
        if not isinstance(user_id, int) or isinstance(user_id, bool):
            raise ValidationError("assigned_to_user_id must be an integer")
        customer = customer_service.assign_to(
            customer, user_id=user_id, actor_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"message": "Customer assigned successfully", "customer": customer.to_dict()})
    except Exception as exc:
        return json_error(exc, action="assign customer")


@customers_bp.post("/<int:customer_id>/follow-up")
@require_auth
def schedule_customer_follow_up_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    try:
        customer = _load_customer(customer_id)
        follow_up_at = _parse_follow_up(data.get("next_follow_up_at"))
        customer = customer_service.schedule_follow_up(customer, follow_up_at=follow_up_at, notes=data.get("notes"))
        return jsonify({"message": "Follow-up scheduled successfully", "customer": customer.to_dict()})
    except Exception as exc:
        return json_error(exc, action="schedule customer follow-up")


def _parse_follow_up(raw):
    if not isinstance(raw, str):
        raise ValidationError("next_follow_up_at must be an ISO-8601 datetime")
    try:
        value = parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError("next_follow_up_at must be an ISO-8601 datetime")
    if value is None:
        raise ValidationError("next_follow_up_at must be an ISO-8601 datetime")
    return value
