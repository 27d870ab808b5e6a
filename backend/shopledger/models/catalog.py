from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


STOCK_LEVEL_OUT = "out"
STOCK_LEVEL_LOW = "low"
STOCK_LEVEL_HIGH = "high"


class Category(db.Model):
    """Product grouping. Names are unique and resolved case-insensitively on import."""
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False, unique=True)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Category id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data plus its two location stock counters.

    warehouse_stock / shop_stock are signed: legacy data may hold negative
    values until repaired. Every change to them is paired with an
    InventoryTransaction row in the same DB transaction.

    total_quantity is the sum of batch quantities (purchased units), not
    current stock. version_id is the optimistic concurrency counter; any
    UPDATE issued against a stale version raises StaleDataError.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        db.Index("ix_products_category_active", "category_id", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    sku = db.Column(db.String(64), nullable=False, unique=True)
    barcode = db.Column(db.String(64), nullable=False, unique=True)
    name = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)
    image_url = db.Column(db.String(512), nullable=True)

    # Authoritative storage in cents
    selling_price_cents = db.Column(db.Integer, nullable=False)

    category_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True)

    warehouse_stock = db.Column(db.Integer, nullable=False, default=0)
    shop_stock = db.Column(db.Integer, nullable=False, default=0)
    total_quantity = db.Column(db.Integer, nullable=False, default=0)
    total_sold = db.Column(db.Integer, nullable=False, default=0)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    category = db.relationship("Category", backref=db.backref("products", lazy=True))
    batches = db.relationship(
        "Batch",
        back_populates="product",
        order_by="Batch.id",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return f"<Product id={self.id} sku={self.sku!r} name={self.name!r}>"

    @property
    def available_stock(self) -> int:
        return self.warehouse_stock + self.shop_stock

    @property
    def in_stock(self) -> bool:
        return self.available_stock > 0

    def stock_level(self, low_stock_threshold: int = 5) -> str:
        available = self.available_stock
        if available <= 0:
            return STOCK_LEVEL_OUT
        if available <= low_stock_threshold:
            return STOCK_LEVEL_LOW
        return STOCK_LEVEL_HIGH

    def to_dict(self, *, include_batches: bool = False, low_stock_threshold: int = 5) -> dict:
        data = {
            "id": self.id,
            "sku": self.sku,
            "barcode": self.barcode,
            "name": self.name,
            "description": self.description,
            "image_url": self.image_url,
            "selling_price_cents": self.selling_price_cents,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "warehouse_stock": self.warehouse_stock,
            "shop_stock": self.shop_stock,
            "available_stock": self.available_stock,
            "in_stock": self.in_stock,
            "stock_level": self.stock_level(low_stock_threshold),
            "total_quantity": self.total_quantity,
            "total_sold": self.total_sold,
            "is_active": self.is_active,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }
        if include_batches:
            data["batches"] = [b.to_dict() for b in self.batches]
        return data


class Batch(db.Model):
    """A purchase lot: quantity received at a unit cost. Quantity never changes after creation."""
    __tablename__ = "batches"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_batches_quantity_positive"),
        db.CheckConstraint("unit_cost_cents > 0", name="ck_batches_unit_cost_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_cost_cents = db.Column(db.Integer, nullable=False)
    supplier = db.Column(db.String(255), nullable=True)
    batch_number = db.Column(db.String(64), nullable=True)
    purchase_date = db.Column(db.DateTime(timezone=True), nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    product = db.relationship("Product", back_populates="batches")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "supplier": self.supplier,
            "batch_number": self.batch_number,
            "purchase_date": to_utc_z(self.purchase_date),
            "created_at": to_utc_z(self.created_at),
        }
