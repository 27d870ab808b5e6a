# Overview: Supplier purchases; each line adds a batch and receives stock at a location.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Purchase, PurchaseLine
from ..models.inventory import LOCATION_WAREHOUSE, TXN_PURCHASE
from ..time_utils import period_bounds, start_of_day, utcnow
from . import batch_ledger, stock_service, transaction_log
from .concurrency import run_with_retry
from .pagination import paginate


def receive_batch(
    product,
    *,
    quantity: int,
    unit_cost_cents: int,
    location: str = LOCATION_WAREHOUSE,
    supplier: str | None = None,
    batch_number: str | None = None,
    purchase_date=None,
    user_id: int | None = None,
    purchase_id: int | None = None,
    reference: str | None = None,
    notes: str | None = None,
):
    """
    Add a batch and bring its units into ``location`` with a purchase
    transaction. Does not commit. Returns (batch, transaction).
    """
    transaction_log.validate_location(location)
    batch = batch_ledger.add_batch(
        product,
        quantity=quantity,
        unit_cost_cents=unit_cost_cents,
        supplier=supplier,
        batch_number=batch_number,
        purchase_date=purchase_date,
    )
    txn = stock_service.apply_movement(
        product,
        type=TXN_PURCHASE,
        quantity=quantity,
        to_location=location,
        reference=reference or (f"BATCH-{batch.batch_number}" if batch.batch_number else None),
        notes=notes,
        user_id=user_id,
        purchase_id=purchase_id,
    )
    return batch, txn


def create_purchase(
    *,
    items: list[dict],
    user_id: int | None,
    tax_cents: int = 0,
    invoice_number: str | None = None,
    notes: str | None = None,
) -> Purchase:
    """
    Record a supplier purchase, all-or-nothing.

    items: [{"product_id", "quantity", "unit_cost_cents", "location" (default
    warehouse), "supplier", "batch_number", "purchase_date"}]
    """
    if not isinstance(items, list) or not items:
        raise ValidationError("Purchase must contain at least one item")
    if isinstance(tax_cents, bool) or not isinstance(tax_cents, int) or tax_cents < 0:
        raise ValidationError("tax_cents must be a non-negative integer")
    for idx, item in enumerate(items):
        if not isinstance(item, dict) or not isinstance(item.get("product_id"), int):
            raise ValidationError(f"Item {idx + 1}: product_id is required")

    def _op():
        now = utcnow()
        purchase = Purchase(
            invoice_number=invoice_number,
            tax_cents=tax_cents,
            notes=notes,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(purchase)
        db.session.flush()

        subtotal = 0
        for item in items:
            product = stock_service.get_product(item["product_id"], lock=True)
            location = item.get("location") or LOCATION_WAREHOUSE
            batch, _ = receive_batch(
                product,
                quantity=item.get("quantity"),
                unit_cost_cents=item.get("unit_cost_cents"),
                location=location,
                supplier=item.get("supplier"),
                batch_number=item.get("batch_number"),
                purchase_date=item.get("purchase_date"),
                user_id=user_id,
                purchase_id=purchase.id,
                reference=f"PURCHASE-{purchase.id}",
            )
            db.session.add(PurchaseLine(
                purchase_id=purchase.id,
                product_id=product.id,
                batch_id=batch.id,
                quantity=batch.quantity,
                unit_cost_cents=batch.unit_cost_cents,
                supplier=batch.supplier,
                batch_number=batch.batch_number,
                purchase_date=batch.purchase_date,
                location=location,
            ))
            subtotal += batch.quantity * batch.unit_cost_cents

        purchase.subtotal_cents = subtotal
        purchase.total_cents = subtotal + tax_cents

        db.session.commit()
        current_app.logger.info(
            "Purchase %s recorded: %d line(s), total %d cents", purchase.id, len(items), purchase.total_cents
        )
        return purchase

    return run_with_retry(_op)


def get_purchase(purchase_id: int) -> Purchase:
    purchase = db.session.get(Purchase, purchase_id)
    if purchase is None:
        raise NotFoundError(f"Purchase {purchase_id} not found")
    return purchase


def list_purchases(
    *,
    search: str | None = None,
    period: str | None = None,
    supplier: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    query = db.session.query(Purchase)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(
            or_(
                Purchase.invoice_number.ilike(pattern),
                Purchase.notes.ilike(pattern),
                Purchase.lines.any(PurchaseLine.supplier.ilike(pattern)),
            )
        )
    if supplier:
        query = query.filter(Purchase.lines.any(PurchaseLine.supplier == supplier))
    if period and period != "all":
        try:
            start, end = period_bounds(period)
        except ValueError:
            raise ValidationError("period must be one of: today, week, month, year, all")
        query = query.filter(Purchase.created_at >= start, Purchase.created_at < end)

    query = query.order_by(Purchase.created_at.desc(), Purchase.id.desc())
    items, pagination = paginate(query, page=page, per_page=per_page)
    return {
        "purchases": [p.to_dict() for p in items],
        "pagination": pagination,
        "summary": purchases_summary(),
    }


def purchases_summary() -> dict:
    count = db.session.query(func.count(Purchase.id)).scalar()
    total_spent = db.session.query(func.coalesce(func.sum(Purchase.total_cents), 0)).scalar()
    items = db.session.query(func.coalesce(func.sum(PurchaseLine.quantity), 0)).scalar()

    month_start = start_of_day(utcnow().date()).replace(day=1)
    month_spent = (
        db.session.query(func.coalesce(func.sum(Purchase.total_cents), 0))
        .filter(Purchase.created_at >= month_start)
        .scalar()
    )

    line_cost = PurchaseLine.quantity * PurchaseLine.unit_cost_cents
    top_suppliers = (
        db.session.query(
            PurchaseLine.supplier,
            func.sum(line_cost).label("spent"),
            func.count(func.distinct(PurchaseLine.purchase_id)).label("purchases"),
        )
        .filter(PurchaseLine.supplier.isnot(None))
        .group_by(PurchaseLine.supplier)
        .order_by(func.sum(line_cost).desc())
        .limit(5)
        .all()
    )
    return {
        "total_purchases": int(count),
        "total_spent_cents": int(total_spent),
        "total_items_purchased": int(items),
        "this_month_spent_cents": int(month_spent),
        "top_suppliers": [
            {"supplier": name, "spent_cents": int(spent), "purchases": int(n)}
            for name, spent, n in top_suppliers
        ],
    }
