# Overview: Service-layer operations for the product catalog; encapsulates business logic and database work.

"""
Product Service

Stock only moves through update_stock (floored at zero) and the
conditional reservation in order_service. Image rows keep at most one
primary per product: whichever call marks an image primary clears the flag
on its siblings, and the first image of a product is primary by default.
"""

from __future__ import annotations

from sqlalchemy import case, func, or_, update

from ..extensions import db
from ..models import Product, ProductImage, ProductPriceTier, OrderItem
from ..models.catalog import PRODUCT_CATEGORIES
from ..validation import ConflictError, NotFoundError, ValidationError, MAX_AMOUNT_CENTS
from . import image_service, notification_service
from .concurrency import commit_or_conflict
from .pagination import paginate, apply_sort

PRODUCT_MUTABLE_FIELDS = {
    "code", "name", "description", "category", "subcategory", "uniform_type",
    "material", "fabric", "colors", "sizes",
    "base_price_cents", "special_price_cents", "currency",
    "stock_quantity", "reorder_level", "reorder_quantity",
    "supplier_name", "supplier_contact", "supplier_lead_time_days",
    "is_active", "is_customizable", "customization_options", "specifications",
    "minimum_order_quantity", "lead_time_days", "is_seasonal", "season",
    "tags", "keywords",
}

PRODUCT_SORT_FIELDS = {"created_at", "name", "code", "base_price_cents", "stock_quantity", "total_sold"}
STOCK_OPERATIONS = ("increase", "decrease")


def apply_product_patch(p: Product, patch: dict) -> None:
    for k, v in patch.items():
        if k not in PRODUCT_MUTABLE_FIELDS:
            continue
        setattr(p, k, v)


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if not product:
        raise NotFoundError("Product not found")
    return product


CODE_CONFLICT = {"code": "Product with this code already exists"}


def _ensure_code_free(code: str, *, exclude_id: int | None = None) -> None:
    query = db.session.query(Product.id).filter(Product.code == code)
    if exclude_id is not None:
        query = query.filter(Product.id != exclude_id)
    if query.first():
        raise ConflictError(CODE_CONFLICT["code"])


def filter_stock_status(query, stock_status: str):
    if stock_status == "out-of-stock":
        return query.filter(Product.stock_quantity == 0)
    if stock_status == "low-stock":
        return query.filter(Product.stock_quantity > 0, Product.stock_quantity <= Product.reorder_level)
    if stock_status == "in-stock":
        return query.filter(Product.stock_quantity > Product.reorder_level)
    raise ValidationError("stock_status must be in-stock, low-stock or out-of-stock")


def list_products(
    *,
    category: str | None = None,
    uniform_type: str | None = None,
    is_active: bool | None = None,
    stock_status: str | None = None,
    min_price_cents: int | None = None,
    max_price_cents: int | None = None,
    search: str | None = None,
    sort_by: str | None = None,
    sort_order: str | None = None,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    query = db.session.query(Product)
    if category:
        query = query.filter(Product.category == category)
    if uniform_type:
        query = query.filter(Product.uniform_type == uniform_type)
    if is_active is not None:
        query = query.filter(Product.is_active == is_active)
    if stock_status:
        query = filter_stock_status(query, stock_status)
    if min_price_cents is not None:
        query = query.filter(Product.base_price_cents >= min_price_cents)
    if max_price_cents is not None:
        query = query.filter(Product.base_price_cents <= max_price_cents)
    if search:
        like = f"%{search.strip()}%"
        query = query.filter(or_(
            Product.name.ilike(like),
            Product.code.ilike(like),
            Product.description.ilike(like),
        ))

    query = apply_sort(query, Product, sort_by=sort_by, sort_order=sort_order,
                       allowed=PRODUCT_SORT_FIELDS, default="created_at")
    return paginate(query, page=page, per_page=per_page, serialize=lambda p: p.to_dict())


def clean_price_tiers(tiers) -> list[dict]:
    """Validate bulk price tiers: positive ranges, non-overlapping once sorted."""
    if tiers is None:
        return []
    if not isinstance(tiers, list):
        raise ValidationError("price_tiers must be a list")

    cleaned = []
    for idx, tier in enumerate(tiers):
        if not isinstance(tier, dict):
            raise ValidationError(f"price_tiers[{idx}] must be an object")
        min_q = tier.get("min_quantity")
        max_q = tier.get("max_quantity")
        price = tier.get("price_per_unit_cents")
        discount = tier.get("discount_percent", 0)
        for name, value, required in (("min_quantity", min_q, True), ("max_quantity", max_q, False),
                                      ("price_per_unit_cents", price, True), ("discount_percent", discount, True)):
            if value is None and not required:
                continue
            if not isinstance(value, int) or isinstance(value, bool):
                raise ValidationError(f"price_tiers[{idx}].{name} must be an integer")
        if min_q < 1:
            raise ValidationError(f"price_tiers[{idx}].min_quantity must be >= 1")
        if max_q is not None and max_q < min_q:
            raise ValidationError(f"price_tiers[{idx}].max_quantity must be >= min_quantity")
        if price < 0 or price > MAX_AMOUNT_CENTS:
            raise ValidationError(f"price_tiers[{idx}].price_per_unit_cents is out of range")
        if not 0 <= discount <= 100:
            raise ValidationError(f"price_tiers[{idx}].discount_percent must be between 0 and 100")
        cleaned.append({
            "min_quantity": min_q,
            "max_quantity": max_q,
            "price_per_unit_cents": price,
            "discount_percent": discount,
        })

    cleaned.sort(key=lambda t: t["min_quantity"])
    for prev, cur in zip(cleaned, cleaned[1:]):
        if prev["max_quantity"] is None or prev["max_quantity"] >= cur["min_quantity"]:
            raise ValidationError("price_tiers ranges must not overlap")
    return cleaned


def _replace_price_tiers(product: Product, tiers: list[dict]) -> None:
    product.price_tiers.clear()
    for tier in tiers:
        product.price_tiers.append(ProductPriceTier(**tier))


def unit_price_cents_for(product: Product, quantity: int) -> int:
    """
    Per-unit price at `quantity`: the matching bulk tier's price, or the
    effective price below the minimum order quantity / outside every tier.
    """
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")
    if quantity < (product.minimum_order_quantity or 1):
        return product.effective_price_cents
    for tier in product.price_tiers:
        if tier.contains(quantity):
            return tier.price_per_unit_cents
    return product.effective_price_cents


def bulk_price_cents(product: Product, quantity: int) -> int:
    return unit_price_cents_for(product, quantity) * quantity


def price_quote(product: Product, quantity: int) -> dict:
    total = bulk_price_cents(product, quantity)
    return {
        "product_id": product.id,
        "quantity": quantity,
        "unit_price_cents": unit_price_cents_for(product, quantity),
        "total_price_cents": total,
        "effective_price_cents": product.effective_price_cents,
        "below_minimum_order": quantity < (product.minimum_order_quantity or 1),
    }


def _maybe_alert_low_stock(product: Product) -> None:
    if 0 < (product.stock_quantity or 0) <= (product.reorder_level or 0):
        notification_service.notify("low_stock_alert", product=product)


def create_product(*, patch: dict, price_tiers=None, actor_id: int | None) -> Product:
    _ensure_code_free(patch["code"])
    tiers = clean_price_tiers(price_tiers)

    product = Product(created_by_user_id=actor_id, last_modified_by_user_id=actor_id)
    apply_product_patch(product, patch)
    _replace_price_tiers(product, tiers)

    db.session.add(product)
    commit_or_conflict(CODE_CONFLICT)
    return product


def update_product(product: Product, *, patch: dict, price_tiers=None, actor_id: int | None) -> Product:
    """
    Apply a validated patch. price_tiers=None leaves tiers untouched; a
    list replaces them. A low-stock alert goes out when the result sits in
    (0, reorder_level].
    """
    if "code" in patch:
        _ensure_code_free(patch["code"], exclude_id=product.id)

    apply_product_patch(product, patch)
    if price_tiers is not None:
        _replace_price_tiers(product, clean_price_tiers(price_tiers))
    product.last_modified_by_user_id = actor_id
    commit_or_conflict(CODE_CONFLICT)

    _maybe_alert_low_stock(product)
    return product


def delete_product(product: Product) -> None:
    referenced = db.session.query(func.count(OrderItem.id)).filter(OrderItem.product_id == product.id).scalar() or 0
    if referenced:
        raise ConflictError("Cannot delete product that is referenced by orders")

    paths = [img.storage_path for img in product.images]
    db.session.delete(product)
    db.session.commit()

    for path in paths:
        image_service.remove_stored_image(path)


def update_stock(product: Product, *, quantity: int, operation: str) -> Product:
    """
    `decrease` floors at zero (max(0, stock - quantity)); `increase` adds.

    Runs as one UPDATE so concurrent adjustments cannot lose writes.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
        raise ValidationError("quantity must be a positive integer")
    if operation not in STOCK_OPERATIONS:
        raise ValidationError("operation must be increase or decrease")

    if operation == "decrease":
        new_value = case(
            (Product.stock_quantity > quantity, Product.stock_quantity - quantity),
            else_=0,
        )
    else:
        new_value = Product.stock_quantity + quantity

    db.session.execute(
        update(Product)
        .where(Product.id == product.id)
        .values(stock_quantity=new_value)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    db.session.refresh(product)

    _maybe_alert_low_stock(product)
    return product


def record_sale(product_id: int, *, quantity: int, revenue_cents: int) -> None:
    """Stage sales counter increments for a delivered order line; caller commits."""
    db.session.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(
            total_sold=Product.total_sold + quantity,
            total_revenue_cents=Product.total_revenue_cents + revenue_cents,
        )
        .execution_options(synchronize_session=False)
    )


def add_image(
    product: Product,
    *,
    url: str,
    alt: str | None = None,
    is_primary: bool = False,
    thumbnail_url: str | None = None,
    storage_path: str | None = None,
    commit: bool = True,
) -> ProductImage:
    url = (url or "").strip()
    if not url:
        raise ValidationError("url is required")
    if len(url) > 512:
        raise ValidationError("url exceeds max length 512")

    make_primary = bool(is_primary) or not any(img.is_primary for img in product.images)
    if make_primary:
        for img in product.images:
            img.is_primary = False

    image = ProductImage(
        url=url,
        alt=alt or product.name,
        is_primary=make_primary,
        thumbnail_url=thumbnail_url,
        storage_path=storage_path,
    )
    product.images.append(image)
    if commit:
        db.session.commit()
    return image


def upload_images(product: Product, uploads: list) -> list[ProductImage]:
    """
    Run uploaded files through the image pipeline and attach them.
    The first image of the batch becomes primary. Files already written are
    removed again when the rows cannot be committed.
    """
    stored = image_service.process_and_store(product.id, uploads)
    images = []
    try:
        for idx, item in enumerate(stored):
            images.append(add_image(
                product,
                url=item.url,
                thumbnail_url=item.thumbnail_url,
                storage_path=item.storage_path,
                is_primary=(idx == 0),
                commit=False,
            ))
        db.session.commit()
    except Exception:
        db.session.rollback()
        for item in stored:
            image_service.remove_stored_image(item.storage_path)
        raise
    return images


def _get_image(product: Product, image_id: int) -> ProductImage:
    for img in product.images:
        if img.id == image_id:
            return img
    raise NotFoundError("Image not found")


def set_primary_image(product: Product, image_id: int) -> Product:
    target = _get_image(product, image_id)
    for img in product.images:
        img.is_primary = img.id == target.id
    db.session.commit()
    return product


def remove_image(product: Product, image_id: int) -> Product:
    target = _get_image(product, image_id)
    was_primary = target.is_primary
    storage_path = target.storage_path

    product.images.remove(target)
    if was_primary and product.images:
        product.images[0].is_primary = True
    db.session.commit()

    image_service.remove_stored_image(storage_path)
    return product


def find_low_stock(*, limit: int = 100) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity > 0,
                Product.stock_quantity <= Product.reorder_level)
        .order_by(Product.stock_quantity.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def find_out_of_stock(*, limit: int = 100) -> list[Product]:
    return (
        db.session.query(Product)
        .filter(Product.is_active.is_(True), Product.stock_quantity == 0)
        .order_by(Product.name.asc(), Product.id.asc())
        .limit(limit)
        .all()
    )


def product_stats() -> dict:
    by_category = dict(
        db.session.query(Product.category, func.count(Product.id)).group_by(Product.category).all()
    )
    totals = db.session.query(
        func.count(Product.id),
        func.coalesce(func.sum(case((Product.is_active.is_(True), 1), else_=0)), 0),
        func.coalesce(func.sum(Product.stock_quantity * Product.base_price_cents), 0),
        func.coalesce(func.sum(Product.total_sold), 0),
        func.coalesce(func.sum(Product.total_revenue_cents), 0),
    ).one()
    out_of_stock = db.session.query(func.count(Product.id)).filter(Product.stock_quantity == 0).scalar() or 0
    low_stock = (
        db.session.query(func.count(Product.id))
        .filter(Product.stock_quantity > 0, Product.stock_quantity <= Product.reorder_level)
        .scalar()
    ) or 0

    return {
        "total_products": int(totals[0] or 0),
        "active_products": int(totals[1] or 0),
        "inventory_value_cents": int(totals[2] or 0),
        "total_sold": int(totals[3] or 0),
        "total_revenue_cents": int(totals[4] or 0),
        "out_of_stock": int(out_of_stock),
        "low_stock": int(low_stock),
        "by_category": {c: int(by_category.get(c, 0)) for c in PRODUCT_CATEGORIES},
    }
