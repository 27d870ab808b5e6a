# Overview: Bulk stock operations expressed as tagged variants with per-row results.

"""
Bulk stock operations.

Each incoming row names its ``kind``; ``parse_operation`` turns it into one
of the variant dataclasses below, carrying only the fields that kind
needs. ``apply_operations`` dispatches through HANDLERS, commits each row on
its own and reports failures per row without stopping.
"""
from __future__ import annotations

from dataclasses import MISSING, dataclass, fields
from typing import Any, Callable, Union

from flask import current_app

from ..errors import LedgerError, ValidationError
from ..extensions import db
from ..models.inventory import LOCATION_SHOP, LOCATION_WAREHOUSE, TXN_ADJUSTMENT
from ..validation import coerce_bool, coerce_int
from . import checkout_service, purchase_service, stock_service, transfer_service


@dataclass(frozen=True)
class TransferOp:
    product_id: int
    quantity: int
    from_location: str = LOCATION_WAREHOUSE
    to_location: str = LOCATION_SHOP
    complete: bool = True
    notes: str | None = None


@dataclass(frozen=True)
class SaleOp:
    product_id: int
    quantity: int
    location: str = LOCATION_SHOP
    unit_price_cents: int | None = None
    amount_paid_cents: int | None = None
    payment_method: str = "cash"
    customer_name: str | None = None
    customer_mobile: str | None = None


@dataclass(frozen=True)
class PurchaseOp:
    product_id: int
    quantity: int
    unit_cost_cents: int
    location: str = LOCATION_WAREHOUSE
    supplier: str | None = None
    batch_number: str | None = None
    purchase_date: str | None = None


@dataclass(frozen=True)
class AdjustmentOp:
    product_id: int
    location: str
    quantity: int
    notes: str | None = None


@dataclass(frozen=True)
class SetStockOp:
    product_id: int
    location: str
    value: int
    notes: str | None = None


BulkOperation = Union[TransferOp, SaleOp, PurchaseOp, AdjustmentOp, SetStockOp]

OPERATION_KINDS: dict[str, type] = {
    "transfer": TransferOp,
    "sale": SaleOp,
    "purchase": PurchaseOp,
    "adjustment": AdjustmentOp,
    "set_stock": SetStockOp,
}

_INT_FIELDS = {"product_id", "quantity", "unit_cost_cents", "unit_price_cents", "amount_paid_cents", "value"}
_BOOL_FIELDS = {"complete"}


def parse_operation(row: dict) -> BulkOperation:
    if not isinstance(row, dict):
        raise ValidationError("Operation must be an object")
    kind = row.get("kind")
    cls = OPERATION_KINDS.get(kind)
    if cls is None:
        raise ValidationError(
            f"Unknown operation kind: {kind!r}",
            details={"allowed": sorted(OPERATION_KINDS)},
        )

    # legacy payloads send _id for the product reference
    values = dict(row)
    if "product_id" not in values and "_id" in values:
        values["product_id"] = values["_id"]

    kwargs: dict[str, Any] = {}
    for f in fields(cls):
        if f.name not in values or values[f.name] is None:
            continue
        raw = values[f.name]
        if f.name in _INT_FIELDS:
            raw = coerce_int(raw, f.name)
        elif f.name in _BOOL_FIELDS:
            raw = coerce_bool(raw, f.name)
        kwargs[f.name] = raw
    missing = [f.name for f in fields(cls) if f.name not in kwargs and f.default is MISSING]
    if missing:
        raise ValidationError(f"Missing fields for {kind}: {', '.join(missing)}")
    return cls(**kwargs)


def _apply_transfer(op: TransferOp, user_id: int | None) -> dict:
    txn = transfer_service.create_transfer(
        product_id=op.product_id,
        quantity=op.quantity,
        from_location=op.from_location,
        to_location=op.to_location,
        user_id=user_id,
        notes=op.notes,
        complete_immediately=op.complete,
    )
    return {"transaction_id": txn.id, "status": txn.status}


def _apply_sale(op: SaleOp, user_id: int | None) -> dict:
    item = {"product_id": op.product_id, "quantity": op.quantity, "unit_price_cents": op.unit_price_cents}
    if op.amount_paid_cents is None:
        product = stock_service.get_product(op.product_id)
        price = op.unit_price_cents if op.unit_price_cents is not None else product.selling_price_cents
        paid = price * op.quantity
    else:
        paid = op.amount_paid_cents
    sale = checkout_service.checkout(
        items=[item],
        user_id=user_id,
        location=op.location,
        payment_method=op.payment_method,
        amount_paid_cents=paid,
        customer_name=op.customer_name,
        customer_mobile=op.customer_mobile,
    )
    return {"sale_id": sale.id, "payment_status": sale.payment_status}


def _apply_purchase(op: PurchaseOp, user_id: int | None) -> dict:
    purchase = purchase_service.create_purchase(
        items=[{
            "product_id": op.product_id,
            "quantity": op.quantity,
            "unit_cost_cents": op.unit_cost_cents,
            "location": op.location,
            "supplier": op.supplier,
            "batch_number": op.batch_number,
            "purchase_date": op.purchase_date,
        }],
        user_id=user_id,
    )
    return {"purchase_id": purchase.id}


def _apply_adjustment(op: AdjustmentOp, user_id: int | None) -> dict:
    txn = stock_service.adjust_stock(
        product_id=op.product_id,
        location=op.location,
        delta=op.quantity,
        user_id=user_id,
        notes=op.notes,
    )
    return {"transaction_id": txn.id}


def _apply_set_stock(op: SetStockOp, user_id: int | None) -> dict:
    txn = stock_service.set_stock(
        product_id=op.product_id,
        location=op.location,
        value=op.value,
        user_id=user_id,
        notes=op.notes,
    )
    return {"transaction_id": txn.id if txn else None, "type": TXN_ADJUSTMENT if txn else None}


HANDLERS: dict[type, Callable[[Any, int | None], dict]] = {
    TransferOp: _apply_transfer,
    SaleOp: _apply_sale,
    PurchaseOp: _apply_purchase,
    AdjustmentOp: _apply_adjustment,
    SetStockOp: _apply_set_stock,
}


def apply_operation(op: BulkOperation, *, user_id: int | None) -> dict:
    return HANDLERS[type(op)](op, user_id)


def apply_operations(rows: list[dict], *, user_id: int | None) -> dict:
    """
    Apply each row independently.

    Returns {"success": int, "results": [...], "errors": [{"row", "code", "message", "data"}]}.
    """
    if not isinstance(rows, list):
        raise ValidationError("operations must be a list")

    results: list[dict] = []
    errors: list[dict] = []
    for row_number, row in enumerate(rows, start=1):
        try:
            op = parse_operation(row)
            outcome = apply_operation(op, user_id=user_id)
        except LedgerError as e:
            db.session.rollback()
            error = {"row": row_number, "code": e.code, "message": e.message, "data": row}
            if e.details is not None:
                error["details"] = e.details
            errors.append(error)
            continue
        results.append({"row": row_number, "kind": row["kind"], **outcome})

    current_app.logger.info("Bulk update finished: %d applied, %d failed", len(results), len(errors))
    return {"success": len(results), "results": results, "errors": errors}
