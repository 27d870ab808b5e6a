# backend/shopledger/services/products_service.py
"""
Products service.

Catalog fields go through validate_payload; stock counters are never
writable here. Initial batches on create enter warehouse stock through
purchase transactions, so the log covers every unit from the start.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import or_

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Category, Product
from ..models.catalog import STOCK_LEVEL_HIGH, STOCK_LEVEL_LOW, STOCK_LEVEL_OUT
from ..models.inventory import LOCATION_WAREHOUSE
from ..validation import ModelValidationPolicy, enforce_rules_product, validate_payload
from . import batch_ledger, identifier_service, purchase_service, stock_service
from .concurrency import run_with_retry
from .pagination import paginate


PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "barcode", "name", "description", "selling_price_cents", "category_id", "image_url"},
    required_on_create={"name", "selling_price_cents", "category_id"},
)

PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={
        "sku", "barcode", "name", "description", "selling_price_cents", "category_id", "image_url",
    },
)


def _ensure_unique(*, sku: str | None = None, barcode: str | None = None, exclude_id: int | None = None) -> None:
    if sku:
        q = db.session.query(Product.id).filter(Product.sku == sku)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f"SKU '{sku}' already exists", details={"field": "sku"})
    if barcode:
        q = db.session.query(Product.id).filter(Product.barcode == barcode)
        if exclude_id is not None:
            q = q.filter(Product.id != exclude_id)
        if q.first() is not None:
            raise ConflictError(f"Barcode '{barcode}' already exists", details={"field": "barcode"})


def _ensure_category(category_id: int) -> None:
    if db.session.get(Category, category_id) is None:
        raise ValidationError(f"Category {category_id} not found", details={"field": "category_id"})


def product_dict(product: Product, *, include_batches: bool = False) -> dict:
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    data = product.to_dict(include_batches=include_batches, low_stock_threshold=threshold)
    data["average_unit_cost_cents"] = batch_ledger.average_unit_cost(product)
    return data


def list_products(
    *,
    search: str | None = None,
    barcode: str | None = None,
    category_id: int | None = None,
    stock_level: str | None = None,
    include_inactive: bool = False,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    query = db.session.query(Product)
    if not include_inactive:
        query = query.filter(Product.is_active.is_(True))
    if barcode:
        query = query.filter(Product.barcode == barcode.strip())
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(Product.name.ilike(pattern), Product.sku.ilike(pattern), Product.barcode.ilike(pattern))
        )
    if category_id is not None:
        query = query.filter(Product.category_id == category_id)
    if stock_level:
        available = Product.warehouse_stock + Product.shop_stock
        threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
        if stock_level == STOCK_LEVEL_OUT:
            query = query.filter(available <= 0)
        elif stock_level == STOCK_LEVEL_LOW:
            query = query.filter(available > 0, available <= threshold)
        elif stock_level == STOCK_LEVEL_HIGH:
            query = query.filter(available > threshold)
        else:
            raise ValidationError("stock_level must be one of: out, low, high")

    query = query.order_by(Product.created_at.desc(), Product.id.desc())
    items, pagination = paginate(query, page=page, per_page=per_page)
    return {"products": [product_dict(p) for p in items], "pagination": pagination}


def get_product(product_id: int) -> Product:
    product = db.session.get(Product, product_id)
    if product is None:
        raise NotFoundError(f"Product {product_id} not found")
    return product


def create_product_in_session(payload: dict, *, batches: list[dict] | None, user_id: int | None) -> Product:
    """Validate and insert a product with its opening batches. Does not commit."""
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)
    _ensure_category(patch["category_id"])

    if not patch.get("sku"):
        patch["sku"] = identifier_service.next_sku()
    if not patch.get("barcode"):
        patch["barcode"] = identifier_service.generate_barcode()
    _ensure_unique(sku=patch["sku"], barcode=patch["barcode"])

    product = Product(warehouse_stock=0, shop_stock=0, total_quantity=0, total_sold=0, **patch)
    db.session.add(product)
    db.session.flush()

    for batch in batches or []:
        if not isinstance(batch, dict):
            raise ValidationError("Each batch must be an object")
        purchase_service.receive_batch(
            product,
            quantity=batch.get("quantity"),
            unit_cost_cents=batch.get("unit_cost_cents"),
            location=LOCATION_WAREHOUSE,
            supplier=batch.get("supplier"),
            batch_number=batch.get("batch_number"),
            purchase_date=batch.get("purchase_date"),
            user_id=user_id,
            notes="Opening stock",
        )
    return product


def create_product(payload: dict, *, user_id: int | None) -> Product:
    payload = dict(payload or {})
    batches = payload.pop("batches", None)
    if batches is not None and not isinstance(batches, list):
        raise ValidationError("batches must be a list")

    def _op():
        product = create_product_in_session(payload, batches=batches, user_id=user_id)
        db.session.commit()
        current_app.logger.info("Product %s created (sku=%s)", product.id, product.sku)
        return product

    return run_with_retry(_op)


def catalog_patch(payload: dict) -> dict:
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)
    return patch


def apply_catalog_patch(product: Product, patch: dict) -> None:
    """Apply a validated catalog patch to a locked product. Does not commit."""
    if "category_id" in patch:
        _ensure_category(patch["category_id"])
    _ensure_unique(sku=patch.get("sku"), barcode=patch.get("barcode"), exclude_id=product.id)
    for k, v in patch.items():
        setattr(product, k, v)


def update_product(product_id: int, payload: dict) -> Product:
    """Patch catalog fields. Stock is changed only through inventory operations."""
    patch = catalog_patch(payload)

    def _op():
        product = stock_service.get_product(product_id, lock=True)
        apply_catalog_patch(product, patch)
        db.session.commit()
        return product

    return run_with_retry(_op)


def update_batch(product_id: int, batch_id: int, patch: dict):
    if not isinstance(patch, dict) or not patch:
        raise ValidationError("No batch fields provided")

    def _op():
        product = stock_service.get_product(product_id, lock=True)
        batch = batch_ledger.update_batch(product, batch_id, patch)
        db.session.commit()
        return batch

    return run_with_retry(_op)


def delete_product(product_id: int) -> Product:
    """
    Retire a product. Sold products cannot be deleted; unsold ones are
    deactivated so their log rows keep a valid reference.
    """
    def _op():
        product = stock_service.get_product(product_id, lock=True)
        if product.total_sold > 0:
            raise ConflictError(
                "Cannot delete product with sales history",
                details={"product_id": product.id, "total_sold": product.total_sold},
            )
        product.is_active = False
        db.session.commit()
        current_app.logger.info("Product %s deactivated", product_id)
        return product

    return run_with_retry(_op)
