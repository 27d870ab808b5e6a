# Overview: Append-only inventory transaction log; recording, listing and replay.

from __future__ import annotations

from sqlalchemy import or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Product
from ..models.inventory import (
    LOCATIONS,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TXN_ADJUSTMENT,
    TXN_PURCHASE,
    TXN_SALE,
    TXN_TRANSFER,
    TXN_TYPES,
)
from ..time_utils import parse_iso_datetime, utcnow
from .pagination import paginate


def validate_location(location: str | None, *, field: str = "location") -> str:
    if location not in LOCATIONS:
        raise ValidationError(
            f"{field} must be one of: {', '.join(LOCATIONS)}",
            details={"field": field, "value": location},
        )
    return location


def record(
    *,
    type: str,
    product: Product,
    quantity: int,
    from_location: str | None = None,
    to_location: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
) -> InventoryTransaction:
    """
    Append a log row. Transfers start pending; every other type is completed
    on creation, so the caller must have applied its stock effect in the same
    transaction. Does not commit.
    """
    if type not in TXN_TYPES:
        raise ValidationError(f"Unknown transaction type: {type}")

    if type == TXN_ADJUSTMENT:
        if quantity == 0:
            raise ValidationError("Adjustment quantity must be non-zero")
    elif quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")

    if type in (TXN_PURCHASE, TXN_ADJUSTMENT):
        validate_location(to_location, field="to_location")
    if type == TXN_SALE:
        validate_location(from_location, field="from_location")
    if type == TXN_TRANSFER:
        validate_location(from_location, field="from_location")
        validate_location(to_location, field="to_location")
        if from_location == to_location:
            raise ValidationError("Cannot transfer to the same location")

    now = utcnow()
    txn = InventoryTransaction(
        product_id=product.id,
        type=type,
        quantity=quantity,
        from_location=from_location,
        to_location=to_location,
        status=STATUS_PENDING if type == TXN_TRANSFER else STATUS_COMPLETED,
        notes=notes,
        reference=reference,
        user_id=user_id,
        sale_id=sale_id,
        purchase_id=purchase_id,
        created_at=now,
        completed_at=None if type == TXN_TRANSFER else now,
    )
    db.session.add(txn)
    db.session.flush()
    return txn


def get_transaction(transaction_id: int) -> InventoryTransaction:
    txn = db.session.get(InventoryTransaction, transaction_id)
    if txn is None:
        raise NotFoundError(f"Transaction {transaction_id} not found")
    return txn


def list_transactions(
    *,
    product_id: int | None = None,
    type: str | None = None,
    status: str | None = None,
    location: str | None = None,
    search: str | None = None,
    start_date: str | None = None,
    end_date: str | None = None,
    page: int = 1,
    per_page: int = 20,
) -> dict:
    """Newest first, filtered, with the standard pagination block."""
    query = db.session.query(InventoryTransaction)

    if product_id is not None:
        query = query.filter(InventoryTransaction.product_id == product_id)
    if type:
        if type not in TXN_TYPES:
            raise ValidationError(f"Unknown transaction type: {type}")
        query = query.filter(InventoryTransaction.type == type)
    if status:
        query = query.filter(InventoryTransaction.status == status)
    if location:
        validate_location(location)
        query = query.filter(
            or_(
                InventoryTransaction.from_location == location,
                InventoryTransaction.to_location == location,
            )
        )
    if search:
        pattern = f"%{search.strip()}%"
        query = query.join(Product, Product.id == InventoryTransaction.product_id).filter(
            or_(
                Product.name.ilike(pattern),
                Product.sku.ilike(pattern),
                InventoryTransaction.reference.ilike(pattern),
                InventoryTransaction.notes.ilike(pattern),
            )
        )
    try:
        start = parse_iso_datetime(start_date)
        end = parse_iso_datetime(end_date)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO-8601 dates")
    if start:
        query = query.filter(InventoryTransaction.created_at >= start)
    if end:
        query = query.filter(InventoryTransaction.created_at <= end)

    query = query.order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
    items, pagination = paginate(query, page=page, per_page=per_page)
    return {
        "transactions": [t.to_dict() for t in items],
        "pagination": pagination,
    }


def replay_stock(product_id: int) -> dict[str, int]:
    """
    Recompute location stock from the log, starting at zero.

    Pending and cancelled transfers have no effect.
    """
    stock = {location: 0 for location in LOCATIONS}
    rows = (
        db.session.query(InventoryTransaction)
        .filter(
            InventoryTransaction.product_id == product_id,
            InventoryTransaction.status == STATUS_COMPLETED,
        )
        .order_by(InventoryTransaction.id.asc())
        .all()
    )
    for txn in rows:
        if txn.type == TXN_PURCHASE:
            stock[txn.to_location] += txn.quantity
        elif txn.type == TXN_SALE:
            stock[txn.from_location] -= txn.quantity
        elif txn.type == TXN_TRANSFER:
            stock[txn.from_location] -= txn.quantity
            stock[txn.to_location] += txn.quantity
        elif txn.type == TXN_ADJUSTMENT:
            stock[txn.to_location] += txn.quantity
    return stock
