# Overview: Authentication and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import session_service, access_service
from .services.access_service import AuthorizationError


def bearer_token() -> str | None:
    """Token from an "Authorization: Bearer <token>" header, or None."""
    header = request.headers.get("Authorization") or ""
    scheme, _, token = header.partition(" ")
    if scheme != "Bearer" or not token.strip():
        return None
    return token.strip()


def require_auth(f):
    """
    Require a valid bearer session token.

    On success g.current_user holds the staff User and g.session_context
    the SessionContext.

    SECURITY: answers 401 for a missing header, an unknown, revoked or
    expired token, and for deactivated accounts.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = bearer_token()
        if not token:
            return jsonify({"error": "Authentication required"}), 401

        context = session_service.validate_session(token)
        if not context:
            return jsonify({"error": "Invalid or expired token"}), 401

        g.current_user = context.user
        g.session_context = context
        return f(*args, **kwargs)

    return decorated_function


def require_permission(resource: str):
    """
    Require the permission flag for a resource type (admin role always passes).

    Collection routes use this; record routes check record access through
    access_service.require_access after loading the record, so ownership
    also counts. Must be stacked under @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            user = getattr(g, "current_user", None)
            if user is None:
                return jsonify({"error": "Authentication required"}), 401

            try:
                access_service.require_capability(user, resource)
            except AuthorizationError as e:
                return jsonify({
                    "error": "Permission denied",
                    "required_permission": resource,
                    "message": str(e),
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
