# Overview: Warehouse <-> shop transfers and their pending/completed/cancelled lifecycle.

"""
Location transfer service.

LIFECYCLE:
1. pending:   transfer recorded, source availability checked, no stock effect
2. completed: -quantity at from_location, +quantity at to_location (exactly once)
3. cancelled: closed without stock effect

Only pending transfers may change status; anything else raises
InvalidTransitionError. Completion re-checks the source because stock may
have moved since the transfer was created.
"""
from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from ..extensions import db
from ..models import InventoryTransaction
from ..models.inventory import (
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_PENDING,
    TXN_TRANSFER,
)
from ..time_utils import utcnow
from . import stock_service, transaction_log
from .concurrency import run_with_retry


TRANSFER_STATUSES = (STATUS_PENDING, STATUS_COMPLETED, STATUS_CANCELLED)


def _get_transfer(transfer_id: int) -> InventoryTransaction:
    txn = db.session.query(InventoryTransaction).filter_by(id=transfer_id, type=TXN_TRANSFER).first()
    if txn is None:
        raise NotFoundError(f"Transfer {transfer_id} not found")
    return txn


def _claim_pending(txn: InventoryTransaction, action: str, values: dict) -> None:
    """
    Move a pending transfer out of pending with a conditional UPDATE.

    The WHERE clause carries status='pending', so of two writers racing on
    the same transfer only one matches a row; the other raises
    InvalidTransitionError.
    """
    if txn.status != STATUS_PENDING:
        raise InvalidTransitionError(
            f"Cannot {action} transfer in {txn.status} status",
            details={"transfer_id": txn.id, "status": txn.status},
        )

    stmt = (
        update(InventoryTransaction)
        .where(
            InventoryTransaction.id == txn.id,
            InventoryTransaction.type == TXN_TRANSFER,
            InventoryTransaction.status == STATUS_PENDING,
        )
        .values(**values)
    )
    result = db.session.execute(stmt)
    if not result.rowcount:
        db.session.refresh(txn)
        raise InvalidTransitionError(
            f"Cannot {action} transfer in {txn.status} status",
            details={"transfer_id": txn.id, "status": txn.status},
        )


def create_transfer(
    *,
    product_id: int,
    quantity: int,
    from_location: str,
    to_location: str,
    user_id: int | None,
    notes: str | None = None,
    reference: str | None = None,
    complete_immediately: bool = False,
) -> InventoryTransaction:
    """
    Record a pending transfer, or an already completed one when
    ``complete_immediately`` is set.

    Raises:
        ValidationError: bad quantity or locations
        InsufficientStockError: source location cannot cover quantity
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError("Quantity must be a positive integer")

    def _op():
        product = stock_service.get_product(product_id, lock=True)
        transaction_log.validate_location(from_location, field="from_location")
        transaction_log.validate_location(to_location, field="to_location")

        if complete_immediately:
            txn = stock_service.apply_movement(
                product,
                type=TXN_TRANSFER,
                quantity=quantity,
                from_location=from_location,
                to_location=to_location,
                notes=notes,
                reference=reference,
                user_id=user_id,
            )
        else:
            if not stock_service.can_fulfill(product, from_location, quantity):
                raise InsufficientStockError(
                    [stock_service.shortage(product, from_location, quantity)]
                )
            txn = transaction_log.record(
                type=TXN_TRANSFER,
                product=product,
                quantity=quantity,
                from_location=from_location,
                to_location=to_location,
                notes=notes,
                reference=reference,
                user_id=user_id,
            )

        db.session.commit()
        current_app.logger.info(
            "Transfer %s created: %d x product %s %s -> %s (%s)",
            txn.id, quantity, product_id, from_location, to_location, txn.status,
        )
        return txn

    return run_with_retry(_op)


def complete_transfer(*, transfer_id: int, user_id: int | None) -> InventoryTransaction:
    """
    pending -> completed, applying the move exactly once.

    Raises:
        NotFoundError, InvalidTransitionError, InsufficientStockError
    """
    def _op():
        txn = _get_transfer(transfer_id)
        _claim_pending(
            txn,
            "complete",
            {
                "status": STATUS_COMPLETED,
                "completed_at": utcnow(),
                "completed_by_user_id": user_id,
            },
        )

        # A failed source check rolls the claim back with the rest of _op.
        product = stock_service.get_product(txn.product_id, lock=True)
        stock_service.apply_transfer_effect(product, txn.from_location, txn.to_location, txn.quantity)

        db.session.commit()
        return txn

    return run_with_retry(_op)


def cancel_transfer(*, transfer_id: int, user_id: int | None, reason: str | None = None) -> InventoryTransaction:
    """pending -> cancelled. No stock effect."""
    def _op():
        txn = _get_transfer(transfer_id)
        _claim_pending(
            txn,
            "cancel",
            {
                "status": STATUS_CANCELLED,
                "cancelled_at": utcnow(),
                "cancelled_by_user_id": user_id,
                "cancel_reason": reason,
            },
        )
        db.session.commit()
        return txn

    return run_with_retry(_op)


def list_transfers(
    *,
    status: str | None = None,
    location: str | None = None,
    product_id: int | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    if status and status not in TRANSFER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(TRANSFER_STATUSES)}")
    result = transaction_log.list_transactions(
        type=TXN_TRANSFER,
        status=status,
        location=location,
        product_id=product_id,
        page=page,
        per_page=per_page,
    )
    return {"transfers": result["transactions"], "pagination": result["pagination"]}
