# Overview: Service-layer operations for staff accounts; encapsulates business logic and database work.

"""
Authentication and User Management Service

WHY: Every action must be attributable. Uses bcrypt for secure password
hashing and validates password strength.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor BCRYPT_LOG_ROUNDS, default 12)
- Minimum 8 characters required
- Must contain uppercase, lowercase, digit, and special char
- Session tokens managed separately (see session_service.py)
- Password resets and deactivation revoke every open session
"""

import bcrypt
import re
from flask import current_app, has_app_context
from sqlalchemy import or_

from ..extensions import db
from ..models import User, Customer, Order, OrderStatusChange, Inquiry, Product, Note, Communication
from ..models.auth import USER_ROLES, PERMISSION_RESOURCES, default_permissions
from ..validation import ValidationError, ConflictError, NotFoundError, EMAIL_RE
from .concurrency import commit_or_conflict
from .session_service import revoke_all_user_sessions
from uniform_palace.time_utils import utcnow

USERNAME_RE = re.compile(r"^[A-Za-z0-9_.-]{3,30}$")

USER_MUTABLE_FIELDS = {"email", "full_name", "role", "permissions", "is_active", "phone"}


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


def validate_password_strength(password: str) -> None:
    """
    Validate password meets strength requirements.

    Requirements:
    - Minimum 8 characters
    - At least one uppercase letter
    - At least one lowercase letter
    - At least one digit
    - At least one special character (!@#$%^&*(),.'":{}|<>)

    Raises PasswordValidationError if requirements not met.
    """
    if not isinstance(password, str) or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def _log_rounds() -> int:
    if has_app_context():
        return int(current_app.config.get("BCRYPT_LOG_ROUNDS", 12))
    return 12


def hash_password(password: str) -> str:
    """
    Hash password using bcrypt.

    Password is validated for strength before hashing.
    """
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=_log_rounds())
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')  # Store as string in database


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against bcrypt hash.

    WHY timing-safe: bcrypt.checkpw() prevents timing attacks automatically.
    """
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        # Malformed hash in the database
        return False


def _normalize_permissions(raw, *, base: dict | None = None) -> dict:
    flags = dict(base or default_permissions())
    if raw is None:
        return flags
    if not isinstance(raw, dict):
        raise ValidationError("permissions must be an object")
    for key, value in raw.items():
        if key not in PERMISSION_RESOURCES:
            raise ValidationError(f"Unknown permission: {key}")
        if not isinstance(value, bool):
            raise ValidationError(f"permissions.{key} must be a boolean")
        flags[key] = value
    return flags


def _ensure_identity_free(username: str, email: str) -> None:
    existing = db.session.query(User.id).filter(
        or_(User.username == username, User.email == email)
    ).first()
    if existing:
        raise ConflictError("Username or email already exists")


def create_user(
    username: str,
    email: str,
    password: str,
    full_name: str,
    role: str = "staff",
    permissions: dict | None = None,
    phone: str | None = None,
) -> User:
    """
    Create new staff user with bcrypt password hashing.

    Raises:
        ValidationError: malformed username/email/role
        PasswordValidationError: If password doesn't meet requirements
        ConflictError: username or email already taken
    """
    username = (username or "").strip()
    email = (email or "").strip().lower()
    full_name = (full_name or "").strip()

    if not USERNAME_RE.match(username):
        raise ValidationError("username must be 3-30 characters (letters, digits, . _ -)")
    if not EMAIL_RE.match(email):
        raise ValidationError("email must be a valid email address")
    if not full_name:
        raise ValidationError("full_name is required")
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")

    _ensure_identity_free(username, email)

    user = User(
        username=username,
        email=email,
        password_hash=hash_password(password),
        full_name=full_name,
        role=role,
        permissions=_normalize_permissions(permissions),
        phone=phone,
        is_active=True,
    )
    db.session.add(user)
    commit_or_conflict(dict.fromkeys(("username", "email"), "Username or email already exists"))
    return user


def authenticate(identifier: str, password: str) -> User | None:
    """
    Authenticate by username or email.

    Returns None for unknown users, wrong passwords and deactivated accounts;
    the login endpoint answers all three with the same 401.
    """
    if not identifier or not password:
        return None

    ident = identifier.strip()
    user = db.session.query(User).filter(
        or_(User.username == ident, User.email == ident.lower())
    ).first()

    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def get_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")
    return user


def list_users(
    *,
    role: str | None = None,
    is_active: bool | None = None,
    search: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    query = db.session.query(User)
    if role:
        query = query.filter(User.role == role)
    if is_active is not None:
        query = query.filter(User.is_active == is_active)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            User.username.ilike(like),
            User.email.ilike(like),
            User.full_name.ilike(like),
        ))

    per_page = min(max(per_page or 20, 1), 100)
    page = max(page or 1, 1)
    total = query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    users = query.order_by(User.created_at.desc(), User.id.desc()).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [u.to_dict() for u in users],
        "count": len(users),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def update_user(user_id: int, patch: dict, *, actor: User) -> User:
    """
    Admin update of another account. Passwords are not changed here
    (see reset_password). An admin cannot deactivate their own account.
    """
    user = get_user(user_id)

    unknown = set(patch) - USER_MUTABLE_FIELDS
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if "email" in patch:
        email = (patch["email"] or "").strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError("email must be a valid email address")
        clash = db.session.query(User).filter(User.email == email, User.id != user.id).first()
        if clash:
            raise ConflictError("Email already exists")
        user.email = email

    if "full_name" in patch:
        full_name = (patch["full_name"] or "").strip()
        if not full_name:
            raise ValidationError("full_name cannot be blank")
        user.full_name = full_name

    if "role" in patch:
        if patch["role"] not in USER_ROLES:
            raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
        user.role = patch["role"]

    if "permissions" in patch:
        user.permissions = _normalize_permissions(patch["permissions"], base=user.permission_flags())

    if "phone" in patch:
        user.phone = patch["phone"]

    if "is_active" in patch:
        if not isinstance(patch["is_active"], bool):
            raise ValidationError("is_active must be a boolean")
        if user.id == actor.id and patch["is_active"] is False:
            raise ConflictError("Cannot deactivate your own account")
        user.is_active = patch["is_active"]
        if not user.is_active:
            revoke_all_user_sessions(user.id, reason="User account deactivated", commit=False)

    commit_or_conflict({"email": "Email already exists"})
    return user


def deactivate_user(user_id: int, *, actor: User) -> User:
    return update_user(user_id, {"is_active": False}, actor=actor)


def reset_password(user_id: int, new_password: str) -> User:
    """Admin reset of another user's password; every open session is revoked."""
    user = get_user(user_id)
    user.password_hash = hash_password(new_password)
    revoke_all_user_sessions(user.id, reason="Password reset", commit=False)
    db.session.commit()
    return user


def change_password(user: User, current_password: str, new_password: str) -> User:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError("Current password is incorrect")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    return user


def count_owned_records(user_id: int) -> int:
    """Records that attribute work to this user (assignment, authorship, creation)."""
    checks = (
        db.session.query(Customer.id).filter(
            or_(Customer.assigned_to_user_id == user_id, Customer.created_by_user_id == user_id)),
        db.session.query(Order.id).filter(
            or_(Order.assigned_to_user_id == user_id, Order.created_by_user_id == user_id)),
        db.session.query(Inquiry.id).filter(Inquiry.assigned_to_user_id == user_id),
        db.session.query(Product.id).filter(Product.created_by_user_id == user_id),
        db.session.query(Note.id).filter(Note.author_user_id == user_id),
        db.session.query(Communication.id).filter(Communication.author_user_id == user_id),
        db.session.query(OrderStatusChange.id).filter(OrderStatusChange.changed_by_user_id == user_id),
    )
    return sum(q.count() for q in checks)


def delete_user(user_id: int, *, actor: User) -> None:
    """
    Hard delete, only for accounts with no attributed records.
    Accounts with history must be deactivated instead.
    """
    user = get_user(user_id)
    if user.id == actor.id:
        raise ConflictError("Cannot delete your own account")

    owned = count_owned_records(user.id)
    if owned:
        raise ConflictError(
            f"User has {owned} assigned or authored records; deactivate the account instead"
        )

    for session in list(user.sessions):
        db.session.delete(session)
    db.session.delete(user)
    db.session.commit()
