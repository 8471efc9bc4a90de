# Overview: Service-layer operations for staff sessions; issues, validates and revokes bearer tokens.

"""
Staff session tokens.

Only the SHA-256 digest of a token is stored; the plaintext goes to the
client once, at login. A session ends at whichever comes first:

- SESSION_ABSOLUTE_HOURS after login
- SESSION_IDLE_MINUTES without a request
- logout, password reset or account deactivation

SECURITY: a deactivated user's session is revoked the first time it is
presented, so a disabled account cannot keep working on a live token.
"""

import hashlib
import secrets
from dataclasses import dataclass
from datetime import timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..models import SessionToken, User
from ..validation import NotFoundError
from uniform_palace.time_utils import utcnow

TOKEN_BYTES = 32
DEFAULT_ABSOLUTE_HOURS = 24
DEFAULT_IDLE_MINUTES = 120


@dataclass
class SessionContext:
    """Authenticated caller returned by validate_session."""
    user: User
    session: SessionToken


def absolute_timeout() -> timedelta:
    return timedelta(hours=current_app.config.get("SESSION_ABSOLUTE_HOURS", DEFAULT_ABSOLUTE_HOURS))


def idle_timeout() -> timedelta:
    return timedelta(minutes=current_app.config.get("SESSION_IDLE_MINUTES", DEFAULT_IDLE_MINUTES))


def hash_token(token: str) -> str:
    # Tokens carry 256 bits of entropy, a fast digest is enough
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def create_session(
    user_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> tuple[SessionToken, str]:
    """Returns (session_record, plaintext_token)."""
    user = db.session.get(User, user_id)
    if not user:
        raise NotFoundError("User not found")

    token = secrets.token_hex(TOKEN_BYTES)
    now = utcnow()
    record = SessionToken(
        user_id=user.id,
        token_hash=hash_token(token),
        created_at=now,
        last_used_at=now,
        expires_at=now + absolute_timeout(),
        user_agent=(user_agent or "")[:512] or None,
        ip_address=ip_address,
        is_revoked=False,
    )
    db.session.add(record)
    db.session.commit()
    return record, token


def _find_live(token: str) -> SessionToken | None:
    return (
        db.session.query(SessionToken)
        .filter_by(token_hash=hash_token(token), is_revoked=False)
        .first()
    )


def _mark_revoked(record: SessionToken, reason: str, at=None) -> None:
    record.is_revoked = True
    record.revoked_at = at or utcnow()
    record.revoked_reason = reason


def validate_session(token: str) -> SessionContext | None:
    """
    Resolve a bearer token to its user, or None.

    A successful check slides last_used_at forward.
    """
    record = _find_live(token)
    if not record:
        return None

    now = utcnow()
    if record.expires_at < now:
        return None

    if now - record.last_used_at > idle_timeout():
        _mark_revoked(record, "Idle timeout", now)
        db.session.commit()
        return None

    user = record.user
    if not user or not user.is_active:
        _mark_revoked(record, "User account deactivated", now)
        db.session.commit()
        current_app.logger.warning("Rejected session for inactive user_id=%s", record.user_id)
        return None

    record.last_used_at = now
    db.session.commit()
    return SessionContext(user=user, session=record)


def revoke_session(token: str, reason: str = "User logout") -> bool:
    """Returns False when the token is unknown or already revoked."""
    record = _find_live(token)
    if not record:
        return False
    _mark_revoked(record, reason)
    db.session.commit()
    return True


def revoke_all_user_sessions(user_id: int, reason: str = "Revoke all sessions", *, commit: bool = True) -> int:
    """
    Revoke every live session of one user; returns how many were revoked.

    Pass commit=False to stage the change in a larger transaction
    (deactivation, password reset).
    """
    now = utcnow()
    records = db.session.query(SessionToken).filter_by(user_id=user_id, is_revoked=False).all()
    for record in records:
        _mark_revoked(record, reason, now)
    if commit:
        db.session.commit()
    return len(records)


def purge_stale_sessions(*, older_than_days: int = 30) -> int:
    """Delete revoked or expired session rows older than the cutoff."""
    if older_than_days < 0:
        raise ValueError("older_than_days must be >= 0")
    cutoff = utcnow() - timedelta(days=older_than_days)
    deleted = (
        db.session.query(SessionToken)
        .filter(
            SessionToken.created_at < cutoff,
            or_(SessionToken.is_revoked.is_(True), SessionToken.expires_at < utcnow()),
        )
        .delete(synchronize_session=False)
    )
    db.session.commit()
    return deleted
