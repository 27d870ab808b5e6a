# Overview: Bulk product import; per-row validation and continue-on-error results.

"""
Bulk product import.

Each row is validated and committed on its own. A bad row is reported as
``{"row": n, "code": ..., "message": ..., "data": row}`` (n is 1-based)
and the import moves on; earlier rows stay committed.

Row shape (prices in currency units, as spreadsheets carry them):
    {
        "name": str,
        "selling_price": number,
        "category": str,             # resolved by name, case-insensitive
        "sku": str (optional),       # generated when absent
        "barcode": str (optional),   # generated when absent
        "description": str (optional),
        "image_url": str (optional),
        "batches": [{"quantity", "unit_cost", "supplier"?, "batch_number"?, "purchase_date"?}]
    }
"""
from __future__ import annotations

from typing import Any

from flask import current_app

from ..errors import ConflictError, LedgerError, ValidationError
from ..extensions import db
from ..validation import coerce_int, to_cents
from . import category_service, identifier_service, products_service
from .concurrency import run_with_retry


def _to_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text if text else None


def _row_batches(row: dict) -> list[dict]:
    batches = row.get("batches")
    if not isinstance(batches, list) or not batches:
        raise ValidationError("At least one batch is required")

    cleaned = []
    for idx, batch in enumerate(batches, start=1):
        if not isinstance(batch, dict):
            raise ValidationError(f"Batch {idx} must be an object")
        quantity = coerce_int(batch.get("quantity"), f"Batch {idx} quantity")
        if quantity <= 0:
            raise ValidationError(f"Batch {idx} quantity must be greater than 0")
        unit_cost = to_cents(batch.get("unit_cost"), f"Batch {idx} unit_cost")
        if unit_cost <= 0:
            raise ValidationError(f"Batch {idx} unit_cost must be greater than 0")
        cleaned.append({
            "quantity": quantity,
            "unit_cost_cents": unit_cost,
            "supplier": _to_text(batch.get("supplier")),
            "batch_number": _to_text(batch.get("batch_number")),
            "purchase_date": _to_text(batch.get("purchase_date")),
        })
    return cleaned


def _row_payload(row: dict) -> dict:
    name = _to_text(row.get("name"))
    if not name:
        raise ValidationError("Product name is required")

    price = to_cents(row.get("selling_price"), "selling_price")
    if price < 0:
        raise ValidationError("selling_price must be >= 0")

    category_name = _to_text(row.get("category"))
    if not category_name:
        raise ValidationError("Category is required")
    category = category_service.resolve_category(category_name)
    if category is None:
        raise ValidationError(f"Category '{category_name}' not found")

    sku = _to_text(row.get("sku"))
    if sku and identifier_service.sku_exists(sku):
        raise ConflictError(f"SKU '{sku}' already exists", details={"field": "sku"})

    barcode = _to_text(row.get("barcode"))
    if barcode and identifier_service.barcode_exists(barcode):
        raise ConflictError(f"Barcode '{barcode}' already exists", details={"field": "barcode"})

    payload = {
        "name": name,
        "selling_price_cents": price,
        "category_id": category.id,
        "description": _to_text(row.get("description")),
        "image_url": _to_text(row.get("image_url")),
    }
    if sku:
        payload["sku"] = sku
    if barcode:
        payload["barcode"] = barcode
    return payload


def import_products(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Import product rows with their opening batches.

    Returns {"success": int, "errors": [{"row", "code", "message", "data"}], "created": [product ids]}.
    """
    if not isinstance(rows, list):
        raise ValidationError("products must be a list")

    created: list[int] = []
    errors: list[dict] = []

    for row_number, row in enumerate(rows, start=1):
        if not isinstance(row, dict):
            errors.append(
                {"row": row_number, "code": ValidationError.code, "message": "Row must be an object", "data": row}
            )
            continue

        def _op():
            payload = _row_payload(row)
            batches = _row_batches(row)
            product = products_service.create_product_in_session(payload, batches=batches, user_id=user_id)
            db.session.commit()
            return product

        try:
            product = run_with_retry(_op)
        except LedgerError as e:
            errors.append({"row": row_number, "code": e.code, "message": e.message, "data": row})
            continue
        created.append(product.id)

    current_app.logger.info("Import finished: %d created, %d failed", len(created), len(errors))
    return {"success": len(created), "errors": errors, "created": created}
