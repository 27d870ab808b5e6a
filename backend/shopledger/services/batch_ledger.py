# Overview: Batch ledger for products; purchase lots and cost basis.

"""
Batch ledger.

Every purchase of a product is kept as a Batch (quantity + unit cost).
Product.total_quantity is always the sum of batch quantities.

COSTING POLICY: average costing. The cost of a sold unit is the
quantity-weighted average unit cost across all of the product's batches.
Batches are never depleted by sales; their quantities record what was
bought, not what is left. Current stock lives in the location counters
(see stock_service).

These functions work on the current session and never commit; callers
own the transaction.
"""
from __future__ import annotations

from datetime import datetime

from ..errors import InvalidBatchError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Batch, Product
from ..time_utils import parse_iso_datetime, utcnow


BATCH_EDITABLE_FIELDS = {"unit_cost_cents", "supplier", "batch_number", "purchase_date"}


def _require_positive_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidBatchError(f"{field} must be an integer", details={"field": field, "value": value})
    if value <= 0:
        raise InvalidBatchError(f"{field} must be greater than 0", details={"field": field, "value": value})
    return value


def add_batch(
    product: Product,
    *,
    quantity: int,
    unit_cost_cents: int,
    supplier: str | None = None,
    batch_number: str | None = None,
    purchase_date: datetime | str | None = None,
) -> Batch:
    """
    Append a batch to ``product`` and recompute total_quantity.

    Raises InvalidBatchError for non-positive quantity or unit cost.
    Does not touch location stock.
    """
    _require_positive_int(quantity, "quantity")
    _require_positive_int(unit_cost_cents, "unit_cost_cents")

    if isinstance(purchase_date, str) or purchase_date is None:
        try:
            purchase_date = parse_iso_datetime(purchase_date) or utcnow()
        except ValueError:
            raise InvalidBatchError("purchase_date must be an ISO-8601 date", details={"value": purchase_date})

    batch = Batch(
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        supplier=(supplier or None),
        batch_number=(batch_number or None),
        purchase_date=purchase_date,
    )
    product.batches.append(batch)
    product.total_quantity = total_quantity(product)
    db.session.flush()
    return batch


def total_quantity(product: Product) -> int:
    return sum(b.quantity for b in product.batches)


def average_unit_cost(product: Product) -> int:
    """
    Quantity-weighted average unit cost in cents, rounded half-up.

    0 when the product has no batches.
    """
    units = 0
    total_cost = 0
    for batch in product.batches:
        units += batch.quantity
        total_cost += batch.quantity * batch.unit_cost_cents
    if units <= 0:
        return 0
    return (total_cost + units // 2) // units


def consume_by_cost(product: Product, quantity: int) -> int:
    """
    Unit cost to book for selling ``quantity`` units.

    Average costing: returns average_unit_cost(product) and leaves batch
    quantities untouched.
    """
    if quantity <= 0:
        raise ValidationError("quantity must be greater than 0")
    return average_unit_cost(product)


def inventory_value_cents(product: Product) -> int:
    """Current on-hand units valued at average cost (negative stock counts as zero)."""
    return max(product.available_stock, 0) * average_unit_cost(product)


def update_batch(product: Product, batch_id: int, patch: dict) -> Batch:
    """
    Correct batch metadata. Quantity is immutable: stock only moves through
    inventory transactions.
    """
    batch = next((b for b in product.batches if b.id == batch_id), None)
    if batch is None:
        raise NotFoundError(f"Batch {batch_id} not found for product {product.id}")

    if "quantity" in patch:
        raise ValidationError(
            "Batch quantity cannot be edited; record an adjustment instead",
            details={"field": "quantity"},
        )

    unknown = set(patch) - BATCH_EDITABLE_FIELDS
    if unknown:
        raise ValidationError(f"Unknown batch fields: {', '.join(sorted(unknown))}")

    if "unit_cost_cents" in patch:
        batch.unit_cost_cents = _require_positive_int(patch["unit_cost_cents"], "unit_cost_cents")
    if "supplier" in patch:
        batch.supplier = patch["supplier"] or None
    if "batch_number" in patch:
        batch.batch_number = patch["batch_number"] or None
    if "purchase_date" in patch:
        try:
            parsed = parse_iso_datetime(patch["purchase_date"])
        except ValueError:
            raise ValidationError("purchase_date must be an ISO-8601 date")
        if parsed is None:
            raise ValidationError("purchase_date is required")
        batch.purchase_date = parsed

    db.session.flush()
    return batch
