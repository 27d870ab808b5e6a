# Overview: Bulk catalog edits; per-row product and batch metadata patches with continue-on-error results.

"""
Bulk catalog update.

Each row patches one product's catalog fields and, optionally, metadata on
some of its batches. A row commits as a unit; a bad row is reported as
``{"row": n, "code": ..., "message": ..., "data": row}`` and the rest carry on.

Row shape:
    {
        "product_id": int,           # "_id" is accepted too
        "name"?, "sku"?, "barcode"?, "description"?, "selling_price_cents"?,
        "category_id"?, "image_url"?,
        "batches"?: [{"batch_id": int, "unit_cost_cents"?, "supplier"?,
                      "batch_number"?, "purchase_date"?}]
    }

Batch entries must name an existing batch. New stock arrives through
purchases, and batch quantities are never edited here.
"""
from __future__ import annotations

from typing import Any

from flask import current_app

from ..errors import LedgerError, ValidationError
from ..extensions import db
from ..validation import coerce_int
from . import batch_ledger, products_service, stock_service
from .concurrency import run_with_retry


def _pop_id(fields: dict, key: str, legacy_key: str = "_id") -> Any:
    value = fields.pop(key, None)
    legacy = fields.pop(legacy_key, None)
    return value if value is not None else legacy


def _batch_edits(raw: Any) -> list[tuple[int, dict]]:
    if raw is None:
        return []
    if not isinstance(raw, list):
        raise ValidationError("batches must be a list")

    edits = []
    for index, entry in enumerate(raw):
        if not isinstance(entry, dict):
            raise ValidationError(f"Batch {index + 1} must be an object")
        fields = dict(entry)
        batch_id = _pop_id(fields, "batch_id")
        if batch_id is None:
            raise ValidationError(
                f"Batch {index + 1} is missing batch_id; record new stock as a purchase",
                details={"field": "batch_id"},
            )
        if not fields:
            raise ValidationError(f"Batch {index + 1} has no fields to update")
        edits.append((coerce_int(batch_id, "batch_id"), fields))
    return edits


def _apply_row(row: Any) -> dict:
    if not isinstance(row, dict):
        raise ValidationError("Row must be an object")

    fields = dict(row)
    product_id = _pop_id(fields, "product_id")
    if product_id is None:
        raise ValidationError("product_id is required")
    product_id = coerce_int(product_id, "product_id")

    edits = _batch_edits(fields.pop("batches", None))
    patch = products_service.catalog_patch(fields) if fields else {}
    if not patch and not edits:
        raise ValidationError("No fields to update")

    def _op():
        product = stock_service.get_product(product_id, lock=True)
        products_service.apply_catalog_patch(product, patch)
        for batch_id, batch_patch in edits:
            batch_ledger.update_batch(product, batch_id, batch_patch)
        db.session.commit()
        return {"product_id": product.id, "fields": sorted(patch), "batches_updated": len(edits)}

    return run_with_retry(_op)


def update_products(rows: list[dict]) -> dict:
    """
    Apply catalog patches row by row.

    Returns {"success": int, "results": [...], "errors": [{"row", "code", "message", "data"}]}.
    """
    if not isinstance(rows, list):
        raise ValidationError("updates must be a list")

    results: list[dict] = []
    errors: list[dict] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            outcome = _apply_row(row)
        except LedgerError as e:
            db.session.rollback()
            error = {"row": row_number, "code": e.code, "message": e.message, "data": row}
            if e.details is not None:
                error["details"] = e.details
            errors.append(error)
            continue
        results.append({"row": row_number, **outcome})

    current_app.logger.info("Catalog update finished: %d updated, %d failed", len(results), len(errors))
    return {"success": len(results), "results": results, "errors": errors}
