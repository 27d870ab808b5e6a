# Overview: Stock repair and drift detection; every correction is a logged adjustment.

"""
Reconciliation service.

Stored counters must equal a replay of the completed transaction log.
``verify_product_stock`` raises StockDriftError when they do not, and
``detect_drift`` lists every drifting product.

The repair operations bring counters to a target value by appending an
adjustment whose quantity is (target - current), so the log keeps
explaining the counters after the repair. Bulk repairs run row by row and
report failures per row.
"""
from __future__ import annotations

from typing import Callable

from flask import current_app

from ..errors import LedgerError, StockDriftError, ValidationError
from ..extensions import db
from ..models import Product
from ..models.inventory import LOCATION_SHOP, LOCATION_WAREHOUSE, LOCATIONS
from ..validation import coerce_int
from . import batch_ledger, stock_service, transaction_log
from .concurrency import run_with_retry


def _drift_for(product: Product) -> dict | None:
    replayed = transaction_log.replay_stock(product.id)
    stored = {LOCATION_WAREHOUSE: product.warehouse_stock, LOCATION_SHOP: product.shop_stock}
    if replayed == stored:
        return None
    return {
        "product_id": product.id,
        "name": product.name,
        "stored": stored,
        "replayed": replayed,
        "difference": {loc: stored[loc] - replayed[loc] for loc in LOCATIONS},
    }


def verify_product_stock(product_id: int) -> dict:
    """Return replayed stock, or raise StockDriftError if stored counters disagree."""
    product = stock_service.get_product(product_id)
    drift = _drift_for(product)
    if drift is not None:
        current_app.logger.warning("Stock drift on product %s: %s", product_id, drift["difference"])
        raise StockDriftError(f"Stock drift detected for product {product_id}", details=drift)
    return {"product_id": product.id, "stock": transaction_log.replay_stock(product.id)}


def detect_drift() -> list[dict]:
    drifts = []
    for product in db.session.query(Product).order_by(Product.id.asc()).all():
        drift = _drift_for(product)
        if drift is not None:
            drifts.append(drift)
    if drifts:
        current_app.logger.warning("Stock drift detected on %d product(s)", len(drifts))
    return drifts


def negative_stock_products() -> list[dict]:
    rows = (
        db.session.query(Product)
        .filter((Product.warehouse_stock < 0) | (Product.shop_stock < 0))
        .order_by(Product.name.asc())
        .all()
    )
    return [stock_service.stock_info(p) | {"name": p.name, "sku": p.sku} for p in rows]


def products_with_warehouse_stock() -> list[dict]:
    rows = (
        db.session.query(Product)
        .filter(Product.warehouse_stock > 0)
        .order_by(Product.name.asc())
        .all()
    )
    return [
        stock_service.stock_info(p) | {
            "name": p.name,
            "sku": p.sku,
            "batch_stock": batch_ledger.total_quantity(p),
        }
        for p in rows
    ]


def _row_product_id(row: dict) -> int:
    # legacy payloads send _id for the product reference
    raw = row.get("product_id", row.get("_id"))
    if raw is None:
        raise ValidationError("product_id is required")
    return coerce_int(raw, "product_id")


def _run_rows(rows, handler: Callable[[dict], dict], *, label: str) -> dict:
    if not isinstance(rows, list) or not rows:
        raise ValidationError("products must be a non-empty list")

    results: list[dict] = []
    errors: list[dict] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            if not isinstance(row, dict):
                raise ValidationError("Row must be an object")
            results.append(handler(row))
        except LedgerError as e:
            db.session.rollback()
            errors.append({"row": row_number, "code": e.code, "message": e.message, "data": row})
    current_app.logger.info("%s: %d fixed, %d failed", label, len(results), len(errors))
    return {"success": len(results), "results": results, "errors": errors}


def _set_location(
    product_id: int,
    *,
    location: str,
    value: int,
    user_id: int | None,
    notes: str,
    precondition: Callable[[Product], None] | None = None,
) -> dict:
    def _op():
        product = stock_service.get_product(product_id, lock=True)
        if precondition is not None:
            precondition(product)
        before = stock_service.get_stock(product, location)
        txn = stock_service.set_stock_in_session(
            product,
            location=location,
            value=value,
            user_id=user_id,
            notes=notes,
            reference="STOCK-REPAIR",
        )
        db.session.commit()
        return {
            "product_id": product.id,
            "name": product.name,
            "location": location,
            "previous": before,
            "current": stock_service.get_stock(product, location),
            "adjustment": txn.quantity if txn else 0,
            "transaction_id": txn.id if txn else None,
        }

    return run_with_retry(_op)


def _target_value(row: dict, field: str) -> int:
    value = coerce_int(row.get(field, 0), field)
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    return value


def fix_negative_stock(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Reset negative counters. Rows: {"product_id", "location" (default
    warehouse), "new_stock" (default 0)}. Rows whose counter is not negative
    are rejected.
    """
    def _handle(row: dict) -> dict:
        product_id = _row_product_id(row)
        location = transaction_log.validate_location(row.get("location") or LOCATION_WAREHOUSE)
        value = _target_value(row, "new_stock")

        def _require_negative(product: Product) -> None:
            if stock_service.get_stock(product, location) >= 0:
                raise ValidationError(f"Product {product.id} {location} stock is not negative")

        return _set_location(
            product_id,
            location=location,
            value=value,
            user_id=user_id,
            notes="Negative stock correction",
            precondition=_require_negative,
        )

    return _run_rows(rows, _handle, label="Negative stock repair")


def fix_double_stock(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Correct inflated warehouse counters. Rows: {"product_id",
    "warehouse_stock"} or {"product_id", "use_batch_stock": true}, which
    takes the batch total as the target.
    """
    def _handle(row: dict) -> dict:
        product_id = _row_product_id(row)
        if row.get("use_batch_stock"):
            product = stock_service.get_product(product_id)
            value = batch_ledger.total_quantity(product)
        else:
            if "warehouse_stock" not in row:
                raise ValidationError("warehouse_stock or use_batch_stock is required")
            value = _target_value(row, "warehouse_stock")
        return _set_location(
            product_id,
            location=LOCATION_WAREHOUSE,
            value=value,
            user_id=user_id,
            notes="Warehouse stock correction",
        )

    return _run_rows(rows, _handle, label="Warehouse stock repair")


def set_initial_warehouse_stock(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Seed warehouse stock for products that have none yet. Rows:
    {"product_id", "warehouse_stock"}. Rejected when the product already
    holds warehouse stock.
    """
    def _handle(row: dict) -> dict:
        product_id = _row_product_id(row)
        value = _target_value(row, "warehouse_stock")

        def _require_empty(product: Product) -> None:
            if product.warehouse_stock > 0:
                raise ValidationError(
                    f"Product {product.id} already has warehouse stock ({product.warehouse_stock})"
                )

        return _set_location(
            product_id,
            location=LOCATION_WAREHOUSE,
            value=value,
            user_id=user_id,
            notes="Initial warehouse stock",
            precondition=_require_empty,
        )

    return _run_rows(rows, _handle, label="Initial warehouse stock")
