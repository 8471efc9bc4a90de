# Overview: Flask API routes for inquiries operations; parses input and returns JSON responses.

"""
Inquiry routes.

SECURITY:
- POST /api/inquiries is public (the website enquiry form)
- Collection routes require the inquiries permission
- Record routes require admin, the assignee, or the inquiries permission
"""

from flask import Blueprint, request, jsonify, g

from ..models import Inquiry
from ..models.inquiries import (
    INQUIRY_STATUSES,
    INQUIRY_PRIORITIES,
    INQUIRY_BUSINESS_TYPES,
    INQUIRY_UNIFORM_TYPES,
    INQUIRY_URGENCIES,
    INQUIRY_SOURCES,
    INQUIRY_CATEGORIES,
)
from ..models.customers import CUSTOMER_STATUSES
from ..services import inquiry_service, conversion_service, access_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    flatten_address,
    enforce_rules_email,
    enforce_rules_budget,
    ValidationError,
)
from ..decorators import require_auth, require_permission
from ..errors import json_error
from ..time_utils import parse_iso_datetime

INQUIRY_SUBMIT_POLICY = ModelValidationPolicy(
    writable_fields=set(inquiry_service.INQUIRY_SUBMIT_FIELDS),
    required_on_create={
        "customer_name", "email", "phone", "business_type",
        "uniform_type", "quantity", "requirements_description",
    },
    choices={
        "business_type": INQUIRY_BUSINESS_TYPES,
        "uniform_type": INQUIRY_UNIFORM_TYPES,
        "urgency": INQUIRY_URGENCIES,
        "source": INQUIRY_SOURCES,
    },
    minimums={"quantity": 1, "employee_count": 1},
)

INQUIRY_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields=set(inquiry_service.INQUIRY_UPDATE_FIELDS),
    choices={
        "status": INQUIRY_STATUSES,
        "priority": INQUIRY_PRIORITIES,
        "category": INQUIRY_CATEGORIES,
    },
)

inquiries_bp = Blueprint("inquiries", __name__, url_prefix="/api/inquiries")


def _load_inquiry(inquiry_id: int) -> Inquiry:
    inquiry = inquiry_service.get_inquiry(inquiry_id)
    access_service.require_access(g.current_user, "inquiries", inquiry)
    return inquiry


def _date_arg(name: str):
    raw = request.args.get(name)
    if not raw:
        return None
    try:
        return parse_iso_datetime(raw)
    except ValueError:
        raise ValidationError(f"{name} must be an ISO-8601 datetime")


def _optional_int(data: dict, name: str) -> int | None:
    value = data.get(name)
    if value is None:
        return None
    if not isinstance(value, int) or isinstance(value, bool):
        raise ValidationError(f"{name} must be an integer")
    return value


@inquiries_bp.post("")
def submit_inquiry_route():
    """
    Public enquiry form submission.

    Returns the inquiry number the customer can quote back. Mail failures
    (staff alert, customer confirmation) are logged and never fail the request.
    """
    payload = request.get_json(silent=True) or {}
    try:
        patch = validate_payload(
            model=Inquiry, payload=flatten_address(payload), policy=INQUIRY_SUBMIT_POLICY, partial=False,
        )
        enforce_rules_email(patch)
        enforce_rules_budget(patch)
        inquiry = inquiry_service.submit_inquiry(patch=patch)
        return jsonify({
            "message": "Inquiry submitted successfully. We will contact you soon.",
            "inquiry_number": inquiry.inquiry_number,
            "status": inquiry.status,
        }), 201
    except Exception as exc:
        return json_error(exc, action="submit inquiry")


@inquiries_bp.get("")
@require_auth
@require_permission("inquiries")
def list_inquiries_route():
    """
    List inquiries.

    Query params: status, priority, business_type, uniform_type, source,
    assigned_to, date_from, date_to, search, sort_by, sort_order, page, per_page
    """
    try:
        result = inquiry_service.list_inquiries(
            status=request.args.get("status"),
            priority=request.args.get("priority"),
            business_type=request.args.get("business_type"),
            uniform_type=request.args.get("uniform_type"),
            source=request.args.get("source"),
            assigned_to=request.args.get("assigned_to", type=int),
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
        return json_error(exc, action="list inquiries")


@inquiries_bp.get("/stats/overview")
@require_auth
@require_permission("inquiries")
def inquiry_stats_route():
    try:
        return jsonify({"stats": inquiry_service.inquiry_stats()})
    except Exception as exc:
        return json_error(exc, action="get inquiry statistics")


@inquiries_bp.get("/dashboard/summary")
@require_auth
@require_permission("inquiries")
def inquiry_dashboard_route():
    try:
        summary = inquiry_service.dashboard_summary()
        summary["stats"] = inquiry_service.inquiry_stats()
        return jsonify({"summary": summary})
    except Exception as exc:
        return json_error(exc, action="get inquiry dashboard")


@inquiries_bp.get("/follow-up")
@require_auth
@require_permission("inquiries")
def follow_up_inquiries_route():
    inquiries = inquiry_service.find_needing_follow_up()
    return jsonify({"items": [i.to_dict() for i in inquiries], "count": len(inquiries)})


@inquiries_bp.get("/high-priority")
@require_auth
@require_permission("inquiries")
def high_priority_inquiries_route():
    inquiries = inquiry_service.find_high_priority()
    return jsonify({"items": [i.to_dict() for i in inquiries], "count": len(inquiries)})


@inquiries_bp.get("/new")
@require_auth
@require_permission("inquiries")
def new_inquiries_route():
    inquiries = inquiry_service.find_new()
    return jsonify({"items": [i.to_dict() for i in inquiries], "count": len(inquiries)})


@inquiries_bp.get("/<int:inquiry_id>")
@require_auth
def get_inquiry_route(inquiry_id: int):
    try:
        inquiry = _load_inquiry(inquiry_id)
        return jsonify({"inquiry": inquiry_service.get_inquiry_detail(inquiry)})
    except Exception as exc:
        return json_error(exc, action="get inquiry")


@inquiries_bp.put("/<int:inquiry_id>")
@require_auth
def update_inquiry_route(inquiry_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        patch = validate_payload(model=Inquiry, payload=payload, policy=INQUIRY_UPDATE_POLICY, partial=True)
        inquiry = inquiry_service.update_inquiry(inquiry, patch=patch, actor_id=g.current_user.id)
        return jsonify({"message": "Inquiry updated successfully", "inquiry": inquiry.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update inquiry")


@inquiries_bp.delete("/<int:inquiry_id>")
@require_auth
def delete_inquiry_route(inquiry_id: int):
    try:
        inquiry = _load_inquiry(inquiry_id)
        inquiry_service.delete_inquiry(inquiry)
        return jsonify({"message": "Inquiry deleted successfully"})
    except Exception as exc:
        return json_error(exc, action="delete inquiry")


@inquiries_bp.put("/<int:inquiry_id>/status")
@require_auth
def update_inquiry_status_route(inquiry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        new_status = data.get("status")
        if not new_status:
            raise ValidationError("status is required")
        inquiry = inquiry_service.update_status(
            inquiry, new_status=new_status, actor_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"message": "Inquiry status updated successfully", "inquiry": inquiry.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update inquiry status")


@inquiries_bp.post("/<int:inquiry_id>/notes")
@require_auth
def add_inquiry_note_route(inquiry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        is_internal = data.get("is_internal", False)
        if not isinstance(is_internal, bool):
            raise ValidationError("is_internal must be a boolean")
        inquiry_service.add_note(
            inquiry, content=data.get("content"), author_id=g.current_user.id, is_internal=is_internal,
        )
        return jsonify({"message": "Note added successfully", "inquiry": inquiry_service.get_inquiry_detail(inquiry)})
    except Exception as exc:
        return json_error(exc, action="add inquiry note")


@inquiries_bp.post("/<int:inquiry_id>/communications")
@require_auth
def add_inquiry_communication_route(inquiry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        inquiry_service.add_communication(inquiry, data=data, author_id=g.current_user.id)
        return jsonify({
            "message": "Communication added successfully",
            "inquiry": inquiry_service.get_inquiry_detail(inquiry),
        })
    except Exception as exc:
        return json_error(exc, action="add inquiry communication")


@inquiries_bp.post("/<int:inquiry_id>/assign")
@require_auth
def assign_inquiry_route(inquiry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        user_id = _optional_int(data, "assigned_to_user_id")
        if user_id is None:
            raise ValidationError("assigned_to_user_id is required")
        inquiry = inquiry_service.assign_to(
            inquiry, user_id=user_id, actor_id=g.current_user.id, notes=data.get("notes"),
        )
        return jsonify({"message": "Inquiry assigned successfully", "inquiry": inquiry.to_dict()})
    except Exception as exc:
        return json_error(exc, action="assign inquiry")


@inquiries_bp.post("/<int:inquiry_id>/follow-up")
@require_auth
def schedule_inquiry_follow_up_route(inquiry_id: int):
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        raw = data.get("next_follow_up_at")
        try:
            follow_up_at = parse_iso_datetime(raw) if isinstance(raw, str) else None
        except ValueError:
            follow_up_at = None
        if follow_up_at is None:
            raise ValidationError("next_follow_up_at must be an ISO-8601 datetime")
        inquiry = inquiry_service.schedule_follow_up(inquiry, follow_up_at=follow_up_at, notes=data.get("notes"))
        return jsonify({"message": "Follow-up scheduled successfully", "inquiry": inquiry.to_dict()})
    except Exception as exc:
        return json_error(exc, action="schedule inquiry follow-up")


@inquiries_bp.post("/<int:inquiry_id>/convert-to-customer")
@require_auth
def convert_inquiry_route(inquiry_id: int):
    """
    Convert an inquiry into a customer (merging with an existing customer
    that has the same e-mail).

    Body (all optional): {"assigned_to_user_id", "customer_status", "additional_notes"}
    Answers 409 when the inquiry was already converted.
    """
    data = request.get_json(silent=True) or {}
    try:
        inquiry = _load_inquiry(inquiry_id)
        customer_status = data.get("customer_status")
        if customer_status is not None and customer_status not in CUSTOMER_STATUSES:
            raise ValidationError(f"customer_status must be one of: {', '.join(CUSTOMER_STATUSES)}")
        result = conversion_service.convert_inquiry_to_customer(
            inquiry.id,
            actor_id=g.current_user.id,
            assign_to=_optional_int(data, "assigned_to_user_id"),
            customer_status=customer_status,
            additional_notes=data.get("additional_notes"),
        )
        body = result.to_dict()
        body["message"] = (
            "Inquiry converted to new customer successfully" if result.is_new_customer
            else "Inquiry merged into existing customer successfully"
        )
        return jsonify(body), 201 if result.is_new_customer else 200
    except Exception as exc:
        return json_error(exc, action="convert inquiry")
