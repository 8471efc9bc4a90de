from __future__ import annotations

from ..extensions import db
from uniform_palace.time_utils import to_utc_z

PRODUCT_CATEGORIES = ("educational", "corporate", "hospitality", "medical", "industrial", "fashion")
PRODUCT_UNIFORM_TYPES = ("school", "college", "hotel", "hospital", "corporate", "industrial", "security", "other")
CUSTOMIZATION_TYPES = ("text", "logo", "color", "size", "other")


class Product(db.Model):
    """
    Catalog item (a uniform line) with pricing, stock and merchandising data.

    WHY: stock_quantity is only moved through product_service.update_stock and
    the conditional reservation in order_service, so it can never go negative.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.UniqueConstraint("code", name="uq_products_code"),
        db.Index("ix_products_category_uniform", "category", "uniform_type"),
        db.Index("ix_products_active_price", "is_active", "base_price_cents"),
        db.CheckConstraint("stock_quantity >= 0", name="ck_products_stock_nonnegative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(32), nullable=False, index=True)
    name = db.Column(db.String(128), nullable=False)
    description = db.Column(db.Text, nullable=True)

    category = db.Column(db.String(32), nullable=False, index=True)
    subcategory = db.Column(db.String(64), nullable=True)
    uniform_type = db.Column(db.String(32), nullable=False, index=True)

    material = db.Column(db.String(128), nullable=True)
    fabric = db.Column(db.String(128), nullable=True)
    colors = db.Column(db.JSON, nullable=False, default=list)
    sizes = db.Column(db.JSON, nullable=False, default=list)

    # Pricing (all amounts in paise)
    base_price_cents = db.Column(db.Integer, nullable=False, default=0)
    special_price_cents = db.Column(db.Integer, nullable=True)
    currency = db.Column(db.String(3), nullable=False, default="INR")

    stock_quantity = db.Column(db.Integer, nullable=False, default=0)
    reorder_level = db.Column(db.Integer, nullable=False, default=10)
    reorder_quantity = db.Column(db.Integer, nullable=False, default=50)

    supplier_name = db.Column(db.String(128), nullable=True)
    supplier_contact = db.Column(db.String(128), nullable=True)
    supplier_lead_time_days = db.Column(db.Integer, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    is_customizable = db.Column(db.Boolean, nullable=False, default=True)
    customization_options = db.Column(db.JSON, nullable=False, default=list)
    specifications = db.Column(db.JSON, nullable=False, default=dict)

    minimum_order_quantity = db.Column(db.Integer, nullable=False, default=1)
    lead_time_days = db.Column(db.Integer, nullable=False, default=7)
    is_seasonal = db.Column(db.Boolean, nullable=False, default=False)
    season = db.Column(db.String(16), nullable=True)

    tags = db.Column(db.JSON, nullable=False, default=list)
    keywords = db.Column(db.JSON, nullable=False, default=list)

    # Sales counters (advanced when orders are delivered)
    total_sold = db.Column(db.Integer, nullable=False, default=0)
    total_revenue_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    last_modified_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    images = db.relationship(
        "ProductImage",
        backref="product",
        lazy=True,
        order_by="ProductImage.id",
        cascade="all, delete-orphan",
    )
    price_tiers = db.relationship(
        "ProductPriceTier",
        backref="product",
        lazy=True,
        order_by="ProductPriceTier.min_quantity",
        cascade="all, delete-orphan",
    )

    @property
    def effective_price_cents(self) -> int:
        if self.special_price_cents is not None:
            return self.special_price_cents
        return self.base_price_cents or 0

    @property
    def stock_status(self) -> str:
        stock = self.stock_quantity or 0
        if stock == 0:
            return "out-of-stock"
        if stock <= (self.reorder_level or 0):
            return "low-stock"
        return "in-stock"

    @property
    def primary_image(self):
        for image in self.images:
            if image.is_primary:
                return image
        return self.images[0] if self.images else None

    def to_dict(self) -> dict:
        primary = self.primary_image
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "description": self.description,
            "category": self.category,
            "subcategory": self.subcategory,
            "uniform_type": self.uniform_type,
            "material": self.material,
            "fabric": self.fabric,
            "colors": list(self.colors or []),
            "sizes": list(self.sizes or []),
            "base_price_cents": self.base_price_cents,
            "special_price_cents": self.special_price_cents,
            "effective_price_cents": self.effective_price_cents,
            "currency": self.currency,
            "price_tiers": [t.to_dict() for t in self.price_tiers],
            "stock_quantity": self.stock_quantity,
            "reorder_level": self.reorder_level,
            "reorder_quantity": self.reorder_quantity,
            "stock_status": self.stock_status,
            "supplier": {
                "name": self.supplier_name,
                "contact": self.supplier_contact,
                "lead_time_days": self.supplier_lead_time_days,
            },
            "is_active": self.is_active,
            "is_customizable": self.is_customizable,
            "customization_options": list(self.customization_options or []),
            "specifications": dict(self.specifications or {}),
            "images": [i.to_dict() for i in self.images],
            "primary_image": primary.to_dict() if primary else None,
            "minimum_order_quantity": self.minimum_order_quantity,
            "lead_time_days": self.lead_time_days,
            "is_seasonal": self.is_seasonal,
            "season": self.season,
            "tags": list(self.tags or []),
            "keywords": list(self.keywords or []),
            "total_sold": self.total_sold,
            "total_revenue_cents": self.total_revenue_cents,
            "created_by_user_id": self.created_by_user_id,
            "last_modified_by_user_id": self.last_modified_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class ProductImage(db.Model):
    """Product image; at most one row per product has is_primary set."""
    __tablename__ = "product_images"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    url = db.Column(db.String(512), nullable=False)
    thumbnail_url = db.Column(db.String(512), nullable=True)
    # Path relative to UPLOAD_FOLDER for files produced by the image pipeline
    storage_path = db.Column(db.String(512), nullable=True)
    alt = db.Column(db.String(255), nullable=True)
    is_primary = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "url": self.url,
            "thumbnail_url": self.thumbnail_url,
            "alt": self.alt,
            "is_primary": self.is_primary,
            "created_at": to_utc_z(self.created_at),
        }


class ProductPriceTier(db.Model):
    """Bulk price for quantities in [min_quantity, max_quantity] (max NULL = open ended)."""
    __tablename__ = "product_price_tiers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    min_quantity = db.Column(db.Integer, nullable=False)
    max_quantity = db.Column(db.Integer, nullable=True)
    price_per_unit_cents = db.Column(db.Integer, nullable=False)
    discount_percent = db.Column(db.Integer, nullable=False, default=0)

    def contains(self, quantity: int) -> bool:
        if quantity < self.min_quantity:
            return False
        return self.max_quantity is None or quantity <= self.max_quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "price_per_unit_cents": self.price_per_unit_cents,
            "discount_percent": self.discount_percent,
        }
