# Overview: Maps service exceptions to JSON error responses for the API routes.

from flask import jsonify, current_app

from .validation import ValidationError, NotFoundError, ConflictError
from .services.access_service import AuthorizationError
from .services.auth_service import PasswordValidationError
from .services.image_service import ImageProcessingError


def json_error(exc: Exception, *, action: str):
    """
    400 validation, 403 authorization, 404 not found, 409 conflict.

    Anything else is logged with its traceback as "Failed to <action>" and
    answered with a generic 500.
    """
    if isinstance(exc, (ValidationError, PasswordValidationError, ImageProcessingError)):
        return jsonify({"error": str(exc)}), 400
    if isinstance(exc, AuthorizationError):
        body = {"error": str(exc)}
        if exc.resource:
            body["required_permission"] = exc.resource
        return jsonify(body), 403
    if isinstance(exc, NotFoundError):
        return jsonify({"error": str(exc)}), 404
    if isinstance(exc, ConflictError):
        return jsonify({"error": str(exc)}), 409

    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error"}), 500
