# Overview: Access policy for staff users; the single place that interprets roles and permission flags.

"""
Access Control Policy

WHY: Every route asks the same two questions, answered here and nowhere else:
- has_capability(user, resource): may this user work with the resource type
  at all? Admin role always may; everyone else needs the resource's flag.
- can_access(user, resource, record): may this user touch this record?
  Admin, ownership (assigned_to_user_id / created_by_user_id) or the flag.

Denials are logged on the application logger with the user and resource.
"""

from __future__ import annotations

from flask import current_app, has_app_context

from ..models import User
from ..models.auth import PERMISSION_RESOURCES


class AuthorizationError(PermissionError):
    """403-level: caller lacks the role, flag or ownership required."""

    def __init__(self, message: str, *, resource: str | None = None):
        super().__init__(message)
        self.resource = resource


def _log_denied(user: User | None, resource: str, reason: str) -> None:
    if has_app_context():
        current_app.logger.warning(
            "Access denied: user=%s resource=%s reason=%s",
            getattr(user, "id", None), resource, reason,
        )


def has_capability(user: User | None, resource: str) -> bool:
    if user is None or not user.is_active:
        return False
    if resource not in PERMISSION_RESOURCES:
        raise ValueError(f"Unknown resource type: {resource}")
    if user.is_admin:
        return True
    return bool(user.permission_flags().get(resource))


def require_capability(user: User | None, resource: str) -> None:
    if not has_capability(user, resource):
        _log_denied(user, resource, "missing permission")
        raise AuthorizationError(f"Access denied. {resource} permission required.", resource=resource)


def owns(user: User | None, record) -> bool:
    if user is None or record is None:
        return False
    for attr in ("assigned_to_user_id", "created_by_user_id"):
        if getattr(record, attr, None) == user.id:
            return True
    return False


def can_access(user: User | None, resource: str, record) -> bool:
    if user is None or not user.is_active:
        return False
    if user.is_admin:
        return True
    if owns(user, record):
        return True
    return has_capability(user, resource)


def require_access(user: User | None, resource: str, record) -> None:
    if not can_access(user, resource, record):
        _log_denied(user, resource, f"no access to record {getattr(record, 'id', None)}")
        raise AuthorizationError("Access denied to this resource", resource=resource)
