from __future__ import annotations
from datetime import datetime
import re
from uniform_palace.time_utils import parse_iso_datetime

from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import Boolean, Integer, String, Text, DateTime, JSON
from sqlalchemy.orm import DeclarativeMeta


# Maximum amount: ₹99,99,999.99 (999,999,999 paise)
# This prevents database overflow issues and nonsensical prices
MAX_AMOUNT_CENTS = 999_999_999

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


class ValidationError(ValueError):
    """400-level input problem."""


class NotFoundError(LookupError):
    """404-level missing record."""


class ConflictError(ValueError):
    """409-level business rule conflict (e.g., duplicate email, non-draft order delete)."""


@dataclass(frozen=True)
class ModelValidationPolicy:
    """
    Central policy layer:
    - writable_fields: what clients are allowed to set (security boundary)
    - required_on_create: fields required for POST
    - choices: enum membership per field
    - minimums: inclusive lower bound per numeric field
    """
    writable_fields: set[str]
    required_on_create: set[str] = field(default_factory=set)
    choices: dict[str, tuple[str, ...]] = field(default_factory=dict)
    minimums: dict[str, int] = field(default_factory=dict)


def _columns_by_key(model: DeclarativeMeta) -> dict[str, Any]:
    mapper = model.__mapper__
    return {c.key: c for c in mapper.columns}


def _coerce_value(col, value: Any):
    coltype = col.type

    if value is None:
        return None

    # Integers - strict validation to reject floats and scientific notation
    if isinstance(coltype, Integer):
        # Already an int (but not bool which is a subclass of int)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
        # String input - must be plain digits (with optional leading minus)
        if isinstance(value, str):
            stripped = value.strip()
            if not stripped:
                raise ValidationError(f"{col.key} must be an integer")
            # Reject scientific notation (e.g., "1e15", "1E10")
            if 'e' in stripped.lower():
                raise ValidationError(f"{col.key} must be a plain integer (scientific notation not allowed)")
            # Reject decimal points (e.g., "12.5")
            if '.' in stripped:
                raise ValidationError(f"{col.key} must be an integer (no decimals)")
            try:
                return int(stripped)
            except ValueError:
                raise ValidationError(f"{col.key} must be an integer")
        # Reject floats explicitly
        if isinstance(value, float):
            raise ValidationError(f"{col.key} must be an integer, not a decimal")
        # Other types
        raise ValidationError(f"{col.key} must be an integer")

    # Booleans
    if isinstance(coltype, Boolean):
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0"}:
            return value.strip().lower() in {"true", "1"}
        raise ValidationError(f"{col.key} must be a boolean")

    # Datetimes (accept ISO-8601 strings; normalize to UTC)
    if isinstance(coltype, DateTime):
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                dt = parse_iso_datetime(value)
            except ValueError:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            if dt is None:
                raise ValidationError(f"{col.key} must be an ISO-8601 datetime")
            return dt
        raise ValidationError(f"{col.key} must be a datetime")

    # JSON documents (lists of tags, nested option lists, product specifications)
    if isinstance(coltype, JSON):
        if not isinstance(value, (list, dict)):
            raise ValidationError(f"{col.key} must be a list or object")
        return value

    # Strings / Text
    if isinstance(coltype, (String, Text)):
        return str(value).strip()

    # Default: leave as-is
    return value


def validate_payload(
    *,
    model: DeclarativeMeta,
    payload: dict,
    policy: ModelValidationPolicy,
    partial: bool,
) -> dict:
    """
    Validates + normalizes incoming JSON against:
    - SQLAlchemy column metadata (nullable, type, String length)
    - a policy allowlist (writable_fields)
    - required_on_create (if partial=False)
    - enum membership and numeric lower bounds from the policy
    Returns a cleaned patch dict with only writable fields.

    partial=False: create semantics (enforce required_on_create)
    partial=True: patch semantics (validate only provided keys)
    """
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")

    if not partial:
        missing = sorted(f for f in policy.required_on_create if payload.get(f) in (None, ""))
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    cols = _columns_by_key(model)

    # Reject unknown / non-writable fields
    for k in payload.keys():
        if k not in policy.writable_fields:
            raise ValidationError(f"Field not allowed: {k}")
        if k not in cols:
            raise ValidationError(f"Unknown field: {k}")

    patch: dict = {}

    for k, raw in payload.items():
        col = cols[k]

        # NULL handling
        if raw is None:
            if not col.nullable:
                raise ValidationError(f"{k} cannot be null")
            patch[k] = None
            continue

        val = _coerce_value(col, raw)

        # Blank string check for non-nullable text fields
        if isinstance(col.type, (String, Text)) and not col.nullable:
            if isinstance(val, str) and val == "":
                raise ValidationError(f"{k} cannot be blank")

        # Max length check for String(n)
        if isinstance(col.type, String) and col.type.length and isinstance(val, str):
            if len(val) > col.type.length:
                raise ValidationError(f"{k} exceeds max length {col.type.length}")

        if k in policy.choices and val not in policy.choices[k]:
            raise ValidationError(f"{k} must be one of: {', '.join(policy.choices[k])}")

        if k in policy.minimums and isinstance(val, int) and val < policy.minimums[k]:
            raise ValidationError(f"{k} must be >= {policy.minimums[k]}")

        patch[k] = val

    return patch


def flatten_address(payload: dict, *, prefix: str = "") -> dict:
    """
    Accept the nested `address` object the forms send and spread it into
    the flat address columns (street, city, state, pincode, country).
    """
    if not isinstance(payload, dict):
        return payload
    key = f"{prefix}address"
    if key not in payload:
        return payload
    out = dict(payload)
    address = out.pop(key)
    if address is None:
        return out
    if not isinstance(address, dict):
        raise ValidationError(f"{key} must be an object")
    for part in ("street", "city", "state", "pincode", "country"):
        if part in address:
            out[f"{prefix}{part}"] = address[part]
    return out


def enforce_rules_email(patch: dict, field_name: str = "email") -> None:
    """E-mail shape check plus lower-casing; uniqueness is left to the caller."""
    if field_name in patch and patch[field_name] is not None:
        email = patch[field_name].strip().lower()
        if not EMAIL_RE.match(email):
            raise ValidationError(f"{field_name} must be a valid email address")
        patch[field_name] = email


def enforce_rules_amounts(patch: dict, *fields: str) -> None:
    """Money columns are integer minor units in [0, MAX_AMOUNT_CENTS]."""
    for name in fields:
        if name not in patch or patch[name] is None:
            continue
        amount = patch[name]
        if amount < 0:
            raise ValidationError(f"{name} must be >= 0")
        if amount > MAX_AMOUNT_CENTS:
            raise ValidationError(f"{name} cannot exceed {MAX_AMOUNT_CENTS}")


def enforce_rules_product(patch: dict) -> None:
    """
    Business rules that are not captured by SQLAlchemy metadata alone.
    Keep these small and centralized.
    """
    enforce_rules_amounts(patch, "base_price_cents", "special_price_cents")
    if "code" in patch and patch["code"] is not None:
        code = patch["code"].upper()
        if len(code) < 3:
            raise ValidationError("code must be at least 3 characters")
        patch["code"] = code


def enforce_rules_budget(patch: dict) -> None:
    enforce_rules_amounts(patch, "budget_min_cents", "budget_max_cents")
    low = patch.get("budget_min_cents")
    high = patch.get("budget_max_cents")
    if low is not None and high is not None and low > high:
        raise ValidationError("budget_min_cents cannot exceed budget_max_cents")
