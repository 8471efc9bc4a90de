# Overview: Flask API routes for products operations; parses input and returns JSON responses.

"""
Product catalog routes.

SECURITY: All routes require authentication and the products permission.
Product records have no owner, so the permission flag alone grants access.
"""

from flask import Blueprint, request, jsonify, g

from ..models import Product
from ..models.catalog import PRODUCT_CATEGORIES, PRODUCT_UNIFORM_TYPES
from ..services import product_service
from ..services.image_service import UploadedImage
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    ValidationError,
)
from ..decorators import require_auth, require_permission
from ..errors import json_error

PRODUCT_POLICY = ModelValidationPolicy(
    writable_fields=set(product_service.PRODUCT_MUTABLE_FIELDS),
    required_on_create={"code", "name", "category", "uniform_type", "base_price_cents"},
    choices={
        "category": PRODUCT_CATEGORIES,
        "uniform_type": PRODUCT_UNIFORM_TYPES,
    },
    minimums={
        "base_price_cents": 0,
        "special_price_cents": 0,
        "stock_quantity": 0,
        "reorder_level": 0,
        "reorder_quantity": 0,
        "minimum_order_quantity": 1,
        "lead_time_days": 0,
        "supplier_lead_time_days": 0,
    },
)

products_bp = Blueprint("products", __name__, url_prefix="/api/products")


def _flatten_supplier(payload: dict) -> dict:
    if not isinstance(payload, dict) or "supplier" not in payload:
        return payload
    out = dict(payload)
    supplier = out.pop("supplier")
    if supplier is None:
        return out
    if not isinstance(supplier, dict):
        raise ValidationError("supplier must be an object")
    for part in ("name", "contact", "lead_time_days"):
        if part in supplier:
            out[f"supplier_{part}"] = supplier[part]
    return out


def _split_payload(payload: dict, *, partial: bool):
    """Returns (patch, price_tiers); price_tiers is None when not supplied."""
    if not isinstance(payload, dict):
        raise ValidationError("Invalid JSON payload")
    payload = _flatten_supplier(payload)
    price_tiers = None
    if "price_tiers" in payload:
        payload = dict(payload)
        price_tiers = payload.pop("price_tiers")
        if price_tiers is None:
            price_tiers = []
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_POLICY, partial=partial)
    enforce_rules_product(patch)
    return patch, price_tiers


def _bool_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == "":
        return None
    value = raw.strip().lower()
    if value in {"true", "1"}:
        return True
    if value in {"false", "0"}:
        return False
    raise ValidationError(f"{name} must be true or false")


@products_bp.get("")
@require_auth
@require_permission("products")
def list_products_route():
    """
    List products.

    Query params: category, uniform_type, is_active, stock_status,
    min_price_cents, max_price_cents, search, sort_by, sort_order, page, per_page
    """
    try:
        result = product_service.list_products(
            category=request.args.get("category"),
            uniform_type=request.args.get("uniform_type"),
            is_active=_bool_arg("is_active"),
            stock_status=request.args.get("stock_status"),
            min_price_cents=request.args.get("min_price_cents", type=int),
            max_price_cents=request.args.get("max_price_cents", type=int),
            search=request.args.get("search"),
            sort_by=request.args.get("sort_by"),
            sort_order=request.args.get("sort_order"),
            page=request.args.get("page", type=int),
            per_page=request.args.get("per_page", type=int),
        )
        return jsonify(result)
    except Exception as exc:
        return json_error(exc, action="list products")


@products_bp.post("")
@require_auth
@require_permission("products")
def create_product_route():
    payload = request.get_json(silent=True) or {}
    try:
        patch, price_tiers = _split_payload(payload, partial=False)
        product = product_service.create_product(patch=patch, price_tiers=price_tiers, actor_id=g.current_user.id)
        return jsonify({"message": "Product created successfully", "product": product.to_dict()}), 201
    except Exception as exc:
        return json_error(exc, action="create product")


@products_bp.get("/low-stock")
@require_auth
@require_permission("products")
def low_stock_route():
    products = product_service.find_low_stock()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/out-of-stock")
@require_auth
@require_permission("products")
def out_of_stock_route():
    products = product_service.find_out_of_stock()
    return jsonify({"items": [p.to_dict() for p in products], "count": len(products)})


@products_bp.get("/stats/overview")
@require_auth
@require_permission("products")
def product_stats_route():
    try:
        return jsonify({"stats": product_service.product_stats()})
    except Exception as exc:
        return json_error(exc, action="get product statistics")


@products_bp.get("/<int:product_id>")
@require_auth
@require_permission("products")
def get_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
        return jsonify({"product": product.to_dict()})
    except Exception as exc:
        return json_error(exc, action="get product")


@products_bp.put("/<int:product_id>")
@require_auth
@require_permission("products")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    try:
        product = product_service.get_product(product_id)
        patch, price_tiers = _split_payload(payload, partial=True)
        product = product_service.update_product(
            product, patch=patch, price_tiers=price_tiers, actor_id=g.current_user.id,
        )
        return jsonify({"message": "Product updated successfully", "product": product.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update product")


@products_bp.delete("/<int:product_id>")
@require_auth
@require_permission("products")
def delete_product_route(product_id: int):
    try:
        product = product_service.get_product(product_id)
        product_service.delete_product(product)
        return jsonify({"message": "Product deleted successfully"})
    except Exception as exc:
        return json_error(exc, action="delete product")


@products_bp.put("/<int:product_id>/stock")
@require_auth
@require_permission("products")
def update_stock_route(product_id: int):
    """
    Adjust stock.

    Body: {"quantity": int > 0, "operation": "increase" | "decrease"}
    Decreases are floored at zero.
    """
    data = request.get_json(silent=True) or {}
    quantity = data.get("quantity")
    operation = data.get("operation")
    try:
        product = product_service.get_product(product_id)
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        if operation not in product_service.STOCK_OPERATIONS:
            raise ValidationError("operation must be increase or decrease")
        product = product_service.update_stock(product, quantity=quantity, operation=operation)
        return jsonify({"message": "Stock updated successfully", "product": product.to_dict()})
    except Exception as exc:
        return json_error(exc, action="update stock")


@products_bp.get("/<int:product_id>/price")
@require_auth
@require_permission("products")
def price_quote_route(product_id: int):
    quantity = request.args.get("quantity", default=1, type=int)
    try:
        product = product_service.get_product(product_id)
        if quantity is None or quantity <= 0:
            raise ValidationError("quantity must be a positive integer")
        return jsonify({"quote": product_service.price_quote(product, quantity)})
    except Exception as exc:
        return json_error(exc, action="quote product price")


@products_bp.post("/<int:product_id>/images")
@require_auth
@require_permission("products")
def add_image_route(product_id: int):
    """
    Attach an image.

    multipart/form-data with one or more `images` files runs the upload
    pipeline; a JSON body {"url", "alt", "is_primary"} links an external image.
    """
    try:
        product = product_service.get_product(product_id)

        files = request.files.getlist("images")
        if files:
            uploads = [
                UploadedImage(filename=f.filename or "upload", mimetype=f.mimetype, data=f.read())
                for f in files
            ]
            images = product_service.upload_images(product, uploads)
            return jsonify({
                "message": f"{len(images)} image(s) uploaded successfully",
                "images": [i.to_dict() for i in images],
                "product": product.to_dict(),
            }), 201

        data = request.get_json(silent=True) or {}
        is_primary = data.get("is_primary", False)
        if not isinstance(is_primary, bool):
            raise ValidationError("is_primary must be a boolean")
        image = product_service.add_image(product, url=data.get("url"), alt=data.get("alt"), is_primary=is_primary)
        return jsonify({
            "message": "Image added successfully",
            "image": image.to_dict(),
            "product": product.to_dict(),
        }), 201
    except Exception as exc:
        return json_error(exc, action="add product image")


@products_bp.put("/<int:product_id>/images/<int:image_id>/primary")
@require_auth
@require_permission("products")
def set_primary_image_route(product_id: int, image_id: int):
    try:
        product = product_service.get_product(product_id)
        product = product_service.set_primary_image(product, image_id)
        return jsonify({"message": "Primary image updated", "product": product.to_dict()})
    except Exception as exc:
        return json_error(exc, action="set primary image")


@products_bp.delete("/<int:product_id>/images/<int:image_id>")
@require_auth
@require_permission("products")
def remove_image_route(product_id: int, image_id: int):
    try:
        product = product_service.get_product(product_id)
        product = product_service.remove_image(product, image_id)
        return jsonify({"message": "Image removed successfully", "product": product.to_dict()})
    except Exception as exc:
        return json_error(exc, action="remove product image")
