# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

"""
Admin routes for user management and reports.

Provides endpoints for:
- User management (list, create, get, update, deactivate, reset password, delete)
  requires the users permission
- Dashboard, sales/customer/product reports and system health
  require the reports permission

The admin role passes every permission check.
"""

from flask import Blueprint, request, jsonify, g

from ..services import auth_service, reporting_service
from ..decorators import require_auth, require_permission
from ..errors import json_error

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("users")
def list_users():
    """
    List staff accounts.

    Query params:
    - role: admin | manager | staff
    - include_inactive: bool (default true)
    - search: matches username, email, full name
    - page, per_page
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    try:
        result = auth_service.list_users(
            role=request.args.get("role"),
            is_active=None if include_inactive else True,
            search=request.args.get("search"),
            page=request.args.get("page", 1, type=int),
            per_page=request.args.get("per_page", 20, type=int),
        )
        return jsonify(result)
    except Exception as exc:
        return json_error(exc, action="list users")


@admin_bp.post("/users")
@require_auth
@require_permission("users")
def create_user():
    """
    Create a new staff account.

    Request body:
    {
        "username": "string",
        "email": "string",
        "password": "string",
        "full_name": "string",
        "role": "admin | manager | staff",   // optional, default staff
        "permissions": {"customers": true, ...},  // optional
        "phone": "string"                    // optional
    }
    """
    data = request.get_json(silent=True) or {}

    required = ["username", "email", "password", "full_name"]
    missing = [f for f in required if not data.get(f)]
    if missing:
        return jsonify({"error": f"Missing required fields: {', '.join(missing)}"}), 400

    try:
        user = auth_service.create_user(
            username=data["username"],
            email=data["email"],
            password=data["password"],
            full_name=data["full_name"],
            role=data.get("role") or "staff",
            permissions=data.get("permissions"),
            phone=data.get("phone"),
        )
        return jsonify({"message": "User created successfully", "user": user.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="create user")


@admin_bp.get("/users/<int:user_id>")
@require_auth
@require_permission("users")
def get_user(user_id: int):
    try:
        user = auth_service.get_user(user_id)
        return jsonify({"user": user.to_dict()})
    except Exception as exc:
        return json_error(exc, action="get user")


@admin_bp.put("/users/<int:user_id>")
@require_auth
@require_permission("users")
def update_user(user_id: int):
    """Update email, full name, role, permission flags, phone or active flag."""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not data:
        return jsonify({"error": "No fields to update"}), 400

    try:
        user = auth_service.update_user(user_id, data, actor=g.current_user)
        return jsonify({"message": "User updated successfully", "user": user.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update user")


@admin_bp.post("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("users")
def deactivate_user(user_id: int):
    """
    Deactivate a user account.

    WHY: Deactivation instead of deletion keeps the assignment and authorship
    history intact. All sessions of the user are revoked.
    """
    try:
        user = auth_service.deactivate_user(user_id, actor=g.current_user)
        return jsonify({"message": "User deactivated successfully", "user": user.to_dict()})
    except Exception as exc:
        return json_error(exc, action="deactivate user")


@admin_bp.post("/users/<int:user_id>/reset-password")
@require_auth
@require_permission("users")
def reset_password(user_id: int):
    data = request.get_json(silent=True) or {}
    new_password = data.get("new_password")
    if not new_password:
        return jsonify({"error": "new_password required"}), 400

    try:
        auth_service.reset_password(user_id, new_password)
        return jsonify({"message": "Password reset successfully"})
    except Exception as exc:
        return json_error(exc, action="reset password")


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_permission("users")
def delete_user(user_id: int):
    try:
        auth_service.delete_user(user_id, actor=g.current_user)
        return jsonify({"message": "User deleted successfully"})
    except Exception as exc:
        return json_error(exc, action="delete user")


# =============================================================================
# REPORTS
# =============================================================================

@admin_bp.get("/dashboard")
@require_auth
@require_permission("reports")
def dashboard():
    try:
        return jsonify({"dashboard": reporting_service.admin_dashboard()})
    except Exception as exc:
        return json_error(exc, action="build admin dashboard")


@admin_bp.get("/reports/sales")
@require_auth
@require_permission("reports")
def sales_report():
    """
    Delivered-order sales.

    Query params: start, end (ISO-8601), group_by (month | customer)
    """
    try:
        report = reporting_service.sales_report(
            start=request.args.get("start"),
            end=request.args.get("end"),
            group_by=request.args.get("group_by", "month"),
        )
        return jsonify(report)
    except Exception as exc:
        return json_error(exc, action="build sales report")


@admin_bp.get("/reports/customers")
@require_auth
@require_permission("reports")
def customer_report():
    try:
        report = reporting_service.customer_report(
            business_type=request.args.get("business_type"),
            status=request.args.get("status"),
            sort_by=request.args.get("sort_by", "total_revenue_cents"),
            sort_order=request.args.get("sort_order", "desc"),
        )
        return jsonify(report)
    except Exception as exc:
        return json_error(exc, action="build customer report")


@admin_bp.get("/reports/products")
@require_auth
@require_permission("reports")
def product_report():
    try:
        report = reporting_service.product_report(
            category=request.args.get("category"),
            uniform_type=request.args.get("uniform_type"),
            stock_status=request.args.get("stock_status"),
            sort_by=request.args.get("sort_by", "total_sold"),
            sort_order=request.args.get("sort_order", "desc"),
        )
        return jsonify(report)
    except Exception as exc:
        return json_error(exc, action="build product report")


@admin_bp.get("/system/health")
@require_auth
@require_permission("reports")
def system_health():
    try:
        health = reporting_service.system_health()
        status_code = 200 if health["status"] == "ok" else 503
        return jsonify(health), status_code
    except Exception as exc:
        return json_error(exc, action="check system health")
