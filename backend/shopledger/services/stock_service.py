# Overview: Location stock tracker; warehouse/shop counters paired with log entries.

"""
Location stock tracker.

Each product carries two signed counters, warehouse_stock and shop_stock.
A counter is only ever changed by ``apply_movement`` (or transfer
completion), which performs the counter change and appends the matching
InventoryTransaction in the same DB transaction. Replaying the completed
log from zero therefore reproduces the stored counters.

Writes are optimistic: Product.version_id is a compare-and-swap column, so
a concurrent writer makes the flush raise StaleDataError, and the public
operations here run inside ``run_with_retry``, which re-reads and
re-validates before trying again.
"""
from __future__ import annotations

from flask import current_app

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction, Product
from ..models.inventory import (
    LOCATION_SHOP,
    LOCATION_WAREHOUSE,
    TXN_ADJUSTMENT,
    TXN_PURCHASE,
    TXN_SALE,
    TXN_TRANSFER,
)
from . import transaction_log
from .concurrency import lock_for_update, run_with_retry


_COUNTER_FIELDS = {
    LOCATION_WAREHOUSE: "warehouse_stock",
    LOCATION_SHOP: "shop_stock",
}


def get_product(product_id: int, *, lock: bool = False, include_inactive: bool = True) -> Product:
    query = db.session.query(Product).filter_by(id=product_id)
    if lock:
        query = lock_for_update(query)
    product = query.first()
    if product is None or (not include_inactive and not product.is_active):
        raise NotFoundError(f"Product {product_id} not found")
    return product


def get_stock(product: Product, location: str) -> int:
    transaction_log.validate_location(location)
    return getattr(product, _COUNTER_FIELDS[location])


def can_fulfill(product: Product, location: str, quantity: int) -> bool:
    return quantity <= get_stock(product, location)


def shortage(product: Product, location: str, requested: int) -> dict:
    return {
        "product_id": product.id,
        "name": product.name,
        "location": location,
        "available": get_stock(product, location),
        "requested": requested,
    }


def _adjust(product: Product, location: str, delta: int) -> None:
    """Raw counter mutation. Only called together with a log record."""
    field = _COUNTER_FIELDS[location]
    setattr(product, field, getattr(product, field) + delta)


def apply_transfer_effect(product: Product, from_location: str, to_location: str, quantity: int) -> None:
    """Move ``quantity`` between locations after checking the source can cover it."""
    if not can_fulfill(product, from_location, quantity):
        raise InsufficientStockError([shortage(product, from_location, quantity)])
    _adjust(product, from_location, -quantity)
    _adjust(product, to_location, quantity)


def apply_movement(
    product: Product,
    *,
    type: str,
    quantity: int,
    from_location: str | None = None,
    to_location: str | None = None,
    notes: str | None = None,
    reference: str | None = None,
    user_id: int | None = None,
    sale_id: int | None = None,
    purchase_id: int | None = None,
    allow_negative: bool = False,
) -> InventoryTransaction:
    """
    Apply a completed stock movement and log it. Does not commit.

    - purchase:   +quantity at to_location
    - sale:       -quantity at from_location (InsufficientStockError if short)
    - transfer:   immediate move from_location -> to_location
    - adjustment: signed quantity at to_location; may not drive the counter
                  below zero unless allow_negative
    """
    txn = transaction_log.record(
        type=type,
        product=product,
        quantity=quantity,
        from_location=from_location,
        to_location=to_location,
        notes=notes,
        reference=reference,
        user_id=user_id,
        sale_id=sale_id,
        purchase_id=purchase_id,
    )

    if type == TXN_PURCHASE:
        _adjust(product, to_location, quantity)
    elif type == TXN_SALE:
        if not can_fulfill(product, from_location, quantity):
            raise InsufficientStockError([shortage(product, from_location, quantity)])
        _adjust(product, from_location, -quantity)
    elif type == TXN_TRANSFER:
        apply_transfer_effect(product, from_location, to_location, quantity)
        txn.status = "completed"
        txn.completed_at = txn.created_at
        txn.completed_by_user_id = user_id
    elif type == TXN_ADJUSTMENT:
        current = get_stock(product, to_location)
        if current + quantity < 0 and not allow_negative:
            raise InsufficientStockError([shortage(product, to_location, -quantity)])
        _adjust(product, to_location, quantity)

    db.session.flush()
    return txn


def adjust_stock(
    *,
    product_id: int,
    location: str,
    delta: int,
    user_id: int | None,
    notes: str | None = None,
    reference: str | None = None,
) -> InventoryTransaction:
    """Signed manual correction at one location, logged as an adjustment."""
    if isinstance(delta, bool) or not isinstance(delta, int):
        raise ValidationError("quantity must be an integer")

    def _op():
        product = get_product(product_id, lock=True)
        txn = apply_movement(
            product,
            type=TXN_ADJUSTMENT,
            quantity=delta,
            to_location=location,
            notes=notes,
            reference=reference,
            user_id=user_id,
        )
        db.session.commit()
        current_app.logger.info(
            "Adjusted %s stock of product %s by %+d", location, product_id, delta
        )
        return txn

    return run_with_retry(_op)


def set_stock_in_session(
    product: Product,
    *,
    location: str,
    value: int,
    user_id: int | None,
    notes: str | None = None,
    reference: str | None = None,
    allow_negative: bool = False,
) -> InventoryTransaction | None:
    """
    Bring a counter to ``value`` with one adjustment of (value - current).

    Returns None when the counter already holds ``value``. Does not commit.
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("stock value must be an integer")
    if value < 0 and not allow_negative:
        raise ValidationError("stock value cannot be negative")

    delta = value - get_stock(product, location)
    if delta == 0:
        return None
    return apply_movement(
        product,
        type=TXN_ADJUSTMENT,
        quantity=delta,
        to_location=location,
        notes=notes,
        reference=reference,
        user_id=user_id,
        allow_negative=True,
    )


def set_stock(
    *,
    product_id: int,
    location: str,
    value: int,
    user_id: int | None,
    notes: str | None = None,
) -> InventoryTransaction | None:
    def _op():
        product = get_product(product_id, lock=True)
        txn = set_stock_in_session(
            product, location=location, value=value, user_id=user_id, notes=notes
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def stock_info(product: Product) -> dict:
    threshold = current_app.config.get("LOW_STOCK_THRESHOLD", 5)
    return {
        "product_id": product.id,
        "warehouse_stock": product.warehouse_stock,
        "shop_stock": product.shop_stock,
        "available_stock": product.available_stock,
        "total_quantity": product.total_quantity,
        "total_sold": product.total_sold,
        "in_stock": product.in_stock,
        "stock_level": product.stock_level(threshold),
    }
