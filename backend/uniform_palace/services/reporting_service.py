# Overview: Service-layer operations for reporting; encapsulates business logic and database work.

from __future__ import annotations

import platform
import sys
from datetime import datetime

from flask import current_app
from sqlalchemy import func, text

from ..extensions import db
from ..models import Customer, Inquiry, Order, Product, User
from ..models.catalog import PRODUCT_CATEGORIES
from ..models.customers import BUSINESS_TYPES, CUSTOMER_STATUSES
from ..validation import ValidationError
from . import order_service, product_service
from uniform_palace.time_utils import parse_iso_datetime, utcnow, to_utc_z

SALES_GROUPINGS = ("month", "customer")
CUSTOMER_REPORT_SORT = {"total_revenue_cents", "total_orders", "name", "created_at", "last_order_date"}
PRODUCT_REPORT_SORT = {"total_sold", "total_revenue_cents", "name", "stock_quantity", "base_price_cents"}


class ReportError(ValidationError):
    """Raised when report parameters are invalid."""
    pass


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError as exc:
        raise ReportError(str(exc)) from exc
    return start_dt, end_dt


def _order_by(model, sort_by: str, sort_order: str | None, allowed: set[str]):
    if sort_by not in allowed:
        raise ReportError(f"sort_by must be one of: {', '.join(sorted(allowed))}")
    col = getattr(model, sort_by)
    return col.asc() if (sort_order or "desc").lower() == "asc" else col.desc()


def admin_dashboard(*, recent: int = 5) -> dict:
    """Counts, pending work, revenue and the latest records across the back office."""
    order_stats = order_service.order_stats()
    customer_revenue = db.session.query(func.coalesce(func.sum(Customer.total_revenue_cents), 0)).scalar() or 0

    recent_customers = db.session.query(Customer).order_by(Customer.created_at.desc(), Customer.id.desc()).limit(recent).all()
    recent_orders = db.session.query(Order).order_by(Order.order_date.desc(), Order.id.desc()).limit(recent).all()
    recent_inquiries = db.session.query(Inquiry).order_by(Inquiry.inquiry_date.desc(), Inquiry.id.desc()).limit(recent).all()

    return {
        "overview": _record_counts(),
        "activity": {
            "recent_customers": [
                {"id": c.id, "name": c.name, "company": c.company, "status": c.status,
                 "created_at": to_utc_z(c.created_at)}
                for c in recent_customers
            ],
            "recent_orders": [
                {"id": o.id, "order_number": o.order_number, "customer_name": o.customer_name,
                 "status": o.status, "total_amount_cents": o.total_amount_cents,
                 "order_date": to_utc_z(o.order_date)}
                for o in recent_orders
            ],
            "recent_inquiries": [
                {"id": i.id, "inquiry_number": i.inquiry_number, "customer_name": i.customer_name,
                 "status": i.status, "priority": i.priority, "inquiry_date": to_utc_z(i.inquiry_date)}
                for i in recent_inquiries
            ],
        },
        "pending": _pending_tasks(include_overdue=False),
        "revenue": {
            "total_revenue_cents": order_stats["total_revenue_cents"],
            "average_order_value_cents": order_stats["average_order_value_cents"],
            "customer_revenue_cents": int(customer_revenue),
        },
    }


def _record_counts() -> dict:
    return {
        "customers": db.session.query(func.count(Customer.id)).scalar() or 0,
        "products": db.session.query(func.count(Product.id)).scalar() or 0,
        "orders": db.session.query(func.count(Order.id)).scalar() or 0,
        "inquiries": db.session.query(func.count(Inquiry.id)).scalar() or 0,
        "users": db.session.query(func.count(User.id)).scalar() or 0,
    }


def _pending_tasks(*, include_overdue: bool) -> dict:
    data = {
        "pending_orders": (
            db.session.query(func.count(Order.id))
            .filter(Order.status.in_(order_service.PENDING_STATUSES))
            .scalar()
        ) or 0,
        "new_inquiries": db.session.query(func.count(Inquiry.id)).filter(Inquiry.status == "new").scalar() or 0,
        "low_stock_products": len(product_service.find_low_stock(limit=10_000)),
    }
    if include_overdue:
        data["overdue_orders"] = len(order_service.find_overdue(limit=10_000))
    return data


def sales_report(*, start: str | None = None, end: str | None = None, group_by: str = "month") -> dict:
    """Delivered orders grouped by calendar month or by customer, plus a summary row."""
    start_dt, end_dt = _parse_range(start, end)
    if group_by not in SALES_GROUPINGS:
        raise ReportError("group_by must be month or customer")

    filters = [Order.status == "delivered"]
    if start_dt:
        filters.append(Order.order_date >= start_dt)
    if end_dt:
        filters.append(Order.order_date <= end_dt)

    if group_by == "month":
        period_expr = func.strftime("%Y-%m", Order.order_date)
        rows = (
            db.session.query(
                period_expr.label("period"),
                func.count(Order.id).label("total_orders"),
                func.coalesce(func.sum(Order.total_amount_cents), 0).label("total_revenue_cents"),
                func.avg(Order.total_amount_cents).label("average_order_value_cents"),
            )
            .filter(*filters)
            .group_by(period_expr)
            .order_by(period_expr.asc())
            .all()
        )
        sales_data = [
            {
                "period": r.period,
                "total_orders": int(r.total_orders),
                "total_revenue_cents": int(r.total_revenue_cents),
                "average_order_value_cents": int(round(r.average_order_value_cents or 0)),
            }
            for r in rows
        ]
    else:
        revenue = func.coalesce(func.sum(Order.total_amount_cents), 0)
        rows = (
            db.session.query(
                Order.customer_id,
                func.max(Order.customer_name).label("customer_name"),
                func.count(Order.id).label("total_orders"),
                revenue.label("total_revenue_cents"),
                func.avg(Order.total_amount_cents).label("average_order_value_cents"),
            )
            .filter(*filters)
            .group_by(Order.customer_id)
            .order_by(revenue.desc())
            .all()
        )
        sales_data = [
            {
                "customer_id": r.customer_id,
                "customer_name": r.customer_name,
                "total_orders": int(r.total_orders),
                "total_revenue_cents": int(r.total_revenue_cents),
                "average_order_value_cents": int(round(r.average_order_value_cents or 0)),
            }
            for r in rows
        ]

    summary = db.session.query(
        func.count(Order.id),
        func.coalesce(func.sum(Order.total_amount_cents), 0),
        func.avg(Order.total_amount_cents),
        func.min(Order.total_amount_cents),
        func.max(Order.total_amount_cents),
    ).filter(*filters).one()

    return {
        "sales_data": sales_data,
        "summary": {
            "total_orders": int(summary[0] or 0),
            "total_revenue_cents": int(summary[1] or 0),
            "average_order_value_cents": int(round(summary[2] or 0)),
            "min_order_value_cents": summary[3],
            "max_order_value_cents": summary[4],
        },
        "filters": {"start": start, "end": end, "group_by": group_by},
    }


def customer_report(
    *,
    business_type: str | None = None,
    status: str | None = None,
    sort_by: str = "total_revenue_cents",
    sort_order: str | None = "desc",
) -> dict:
    filters = []
    if business_type:
        filters.append(Customer.business_type == business_type)
    if status:
        filters.append(Customer.status == status)

    customers = (
        db.session.query(Customer)
        .filter(*filters)
        .order_by(_order_by(Customer, sort_by, sort_order, CUSTOMER_REPORT_SORT), Customer.id.asc())
        .all()
    )
    by_status = dict(
        db.session.query(Customer.status, func.count(Customer.id)).filter(*filters).group_by(Customer.status).all()
    )
    by_business_type = dict(
        db.session.query(Customer.business_type, func.count(Customer.id))
        .filter(*filters, Customer.business_type.isnot(None))
        .group_by(Customer.business_type)
        .all()
    )
    totals = db.session.query(
        func.count(Customer.id),
        func.coalesce(func.sum(Customer.total_revenue_cents), 0),
        func.avg(Customer.total_revenue_cents),
    ).filter(*filters).one()

    return {
        "customers": [
            {
                "id": c.id,
                "name": c.name,
                "company": c.company,
                "business_type": c.business_type,
                "status": c.status,
                "total_orders": c.total_orders,
                "total_revenue_cents": c.total_revenue_cents,
                "last_order_date": to_utc_z(c.last_order_date),
            }
            for c in customers
        ],
        "summary": {
            "total_customers": int(totals[0] or 0),
            "total_revenue_cents": int(totals[1] or 0),
            "average_customer_value_cents": int(round(totals[2] or 0)),
            "active_customers": int(by_status.get("active", 0)),
            "prospect_customers": int(by_status.get("prospect", 0)),
        },
        "by_status": {s: int(by_status.get(s, 0)) for s in CUSTOMER_STATUSES},
        "by_business_type": {b: int(by_business_type.get(b, 0)) for b in BUSINESS_TYPES},
        "filters": {"business_type": business_type, "status": status, "sort_by": sort_by, "sort_order": sort_order},
    }


def product_report(
    *,
    category: str | None = None,
    uniform_type: str | None = None,
    stock_status: str | None = None,
    sort_by: str = "total_sold",
    sort_order: str | None = "desc",
) -> dict:
    query = db.session.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if uniform_type:
        query = query.filter(Product.uniform_type == uniform_type)
    if stock_status:
        query = product_service.filter_stock_status(query, stock_status)

    products = query.order_by(_order_by(Product, sort_by, sort_order, PRODUCT_REPORT_SORT), Product.id.asc()).all()

    by_category: dict[str, int] = {}
    for p in products:
        by_category[p.category] = by_category.get(p.category, 0) + 1
    prices = [p.base_price_cents or 0 for p in products]

    return {
        "products": [
            {
                "id": p.id,
                "code": p.code,
                "name": p.name,
                "category": p.category,
                "uniform_type": p.uniform_type,
                "base_price_cents": p.base_price_cents,
                "stock_quantity": p.stock_quantity,
                "stock_status": p.stock_status,
                "total_sold": p.total_sold,
                "total_revenue_cents": p.total_revenue_cents,
            }
            for p in products
        ],
        "summary": {
            "total_products": len(products),
            "total_revenue_cents": sum(p.total_revenue_cents or 0 for p in products),
            "average_price_cents": int(round(sum(prices) / len(prices))) if prices else 0,
            "active_products": sum(1 for p in products if p.is_active),
            "low_stock_products": sum(1 for p in products if p.stock_status == "low-stock"),
            "out_of_stock_products": sum(1 for p in products if p.stock_status == "out-of-stock"),
        },
        "by_category": {c: by_category.get(c, 0) for c in PRODUCT_CATEGORIES},
        "filters": {
            "category": category, "uniform_type": uniform_type, "stock_status": stock_status,
            "sort_by": sort_by, "sort_order": sort_order,
        },
    }


def system_health() -> dict:
    """Database reachability, record counts and pending work."""
    try:
        db.session.execute(text("SELECT 1"))
        database_ok = True
    except Exception:
        current_app.logger.exception("Database health check failed")
        db.session.rollback()
        database_ok = False

    data = {
        "status": "ok" if database_ok else "degraded",
        "checked_at": to_utc_z(utcnow()),
        "database": {"reachable": database_ok},
        "system": {
            "python_version": sys.version.split()[0],
            "platform": platform.platform(),
            "environment": "testing" if current_app.testing else ("debug" if current_app.debug else "production"),
        },
    }
    if database_ok:
        data["database"]["records"] = _record_counts()
        data["pending_tasks"] = _pending_tasks(include_overdue=True)
    return data
