# Overview: Shared list-endpoint helpers (pagination envelope, sort allow-lists).

from __future__ import annotations

from ..validation import ValidationError

DEFAULT_PER_PAGE = 20
MAX_PER_PAGE = 100


def paginate(query, *, page: int | None, per_page: int | None, serialize) -> dict:
    """
    Returns {"items", "count", "pagination"} for a query.

    Pages are 1-indexed; per_page defaults to 20 and is capped at 100.
    """
    per_page = min(max(per_page or DEFAULT_PER_PAGE, 1), MAX_PER_PAGE)
    page = max(page or 1, 1)

    total = query.order_by(None).count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1

    rows = query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [serialize(r) for r in rows],
        "count": len(rows),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


def apply_sort(query, model, *, sort_by: str | None, sort_order: str | None, allowed: set[str], default: str):
    """Order by an allow-listed column; newest/highest first unless sort_order=asc."""
    column_name = sort_by or default
    if column_name not in allowed:
        raise ValidationError(f"sort_by must be one of: {', '.join(sorted(allowed))}")
    column = getattr(model, column_name)
    if (sort_order or "desc").lower() == "asc":
        return query.order_by(column.asc(), model.id.asc())
    return query.order_by(column.desc(), model.id.desc())
