# Overview: Checkout processor; turns a cart into a Sale, stock movements and profit lines.

"""
Sale / checkout processor.

A checkout is all-or-nothing. Every line is checked against the selling
location first; any shortage aborts the whole sale with an
InsufficientStockError listing each short product and nothing is written.
Otherwise, in one DB transaction:

- each line books unit cost via batch_ledger.consume_by_cost and its profit
- the location counter is decremented with a 'sale' transaction
- total_sold grows by the sold quantity
- the Sale row is written with totals and payment state

Payment state is a pure function of (total, amount_paid); see
compute_payment_state.
"""
from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from sqlalchemy import func, or_

from ..errors import InsufficientStockError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale, SaleLine
from ..models.inventory import LOCATION_SHOP, TXN_SALE
from ..models.sales import PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_UNPAID
from ..time_utils import period_bounds, start_of_day, utcnow
from . import batch_ledger, stock_service, transaction_log
from .concurrency import lock_for_update, run_with_retry
from .pagination import paginate


PAYMENT_METHODS = ("cash", "card", "mobile", "bank", "credit")
PAYMENT_STATUSES = (PAYMENT_PAID, PAYMENT_PARTIAL, PAYMENT_UNPAID)


@dataclass(frozen=True)
class PaymentState:
    payment_status: str
    due_amount_cents: int
    change_due_cents: int


def compute_payment_state(total_cents: int, amount_paid_cents: int) -> PaymentState:
    """
    Derive payment status from the sale total and the amount paid.

    paid >= total -> Paid; 0 < paid < total -> Partial; paid == 0 -> Unpaid.
    Overpayment becomes change_due, never a negative due.
    """
    if amount_paid_cents < 0:
        raise ValidationError("amount_paid must not be negative")
    if amount_paid_cents >= total_cents:
        status = PAYMENT_PAID
    elif amount_paid_cents > 0:
        status = PAYMENT_PARTIAL
    else:
        status = PAYMENT_UNPAID
    return PaymentState(
        payment_status=status,
        due_amount_cents=max(total_cents - amount_paid_cents, 0),
        change_due_cents=max(amount_paid_cents - total_cents, 0),
    )


def _apply_payment_state(sale: Sale) -> None:
    state = compute_payment_state(sale.total_cents, sale.amount_paid_cents)
    sale.payment_status = state.payment_status
    sale.due_amount_cents = state.due_amount_cents
    sale.change_due_cents = state.change_due_cents


def _non_negative_int(value, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer (cents)")
    if value < 0:
        raise ValidationError(f"{field} must not be negative")
    return value


def _normalize_items(items) -> list[dict]:
    if not isinstance(items, list) or not items:
        raise ValidationError("Sale must contain at least one item")
    normalized = []
    for idx, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"Item {idx + 1} must be an object")
        product_id = item.get("product_id")
        quantity = item.get("quantity")
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f"Item {idx + 1}: product_id is required")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f"Item {idx + 1}: quantity must be a positive integer")
        unit_price = item.get("unit_price_cents")
        if unit_price is not None:
            _non_negative_int(unit_price, f"Item {idx + 1}: unit_price_cents")
        normalized.append({"product_id": product_id, "quantity": quantity, "unit_price_cents": unit_price})
    return normalized


def checkout(
    *,
    items: list[dict],
    user_id: int | None,
    location: str = LOCATION_SHOP,
    payment_method: str = "cash",
    amount_paid_cents: int = 0,
    discount_cents: int = 0,
    tax_cents: int | None = None,
    customer_name: str | None = None,
    customer_mobile: str | None = None,
    notes: str | None = None,
) -> Sale:
    """
    Complete a sale.

    Args:
        items: [{"product_id": int, "quantity": int, "unit_price_cents": int (optional)}]
            Lines without unit_price_cents sell at the product's selling price.
        tax_cents: explicit tax; when None, TAX_RATE_BPS of (subtotal - discount).

    Raises:
        ValidationError: malformed cart or amounts
        NotFoundError: unknown or inactive product
        InsufficientStockError: any line short at ``location`` (nothing is written)
    """
    lines_in = _normalize_items(items)
    transaction_log.validate_location(location)
    if payment_method not in PAYMENT_METHODS:
        raise ValidationError(f"payment_method must be one of: {', '.join(PAYMENT_METHODS)}")
    _non_negative_int(amount_paid_cents, "amount_paid_cents")
    _non_negative_int(discount_cents, "discount_cents")
    if tax_cents is not None:
        _non_negative_int(tax_cents, "tax_cents")

    requested: dict[int, int] = {}
    for line in lines_in:
        requested[line["product_id"]] = requested.get(line["product_id"], 0) + line["quantity"]

    def _op():
        products = {
            pid: stock_service.get_product(pid, lock=True, include_inactive=False)
            for pid in sorted(requested)
        }

        shortages = [
            stock_service.shortage(products[pid], location, qty)
            for pid, qty in requested.items()
            if not stock_service.can_fulfill(products[pid], location, qty)
        ]
        if shortages:
            raise InsufficientStockError(shortages)

        now = utcnow()
        sale = Sale(
            location=location,
            payment_method=payment_method,
            amount_paid_cents=amount_paid_cents,
            discount_cents=discount_cents,
            customer_name=(customer_name or "").strip() or None,
            customer_mobile=(customer_mobile or "").strip() or None,
            notes=notes,
            user_id=user_id,
            created_at=now,
            updated_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        subtotal = 0
        for line in lines_in:
            product = products[line["product_id"]]
            qty = line["quantity"]
            price = line["unit_price_cents"]
            if price is None:
                price = product.selling_price_cents
            unit_cost = batch_ledger.consume_by_cost(product, qty)
            line_total = price * qty

            db.session.add(SaleLine(
                sale_id=sale.id,
                product_id=product.id,
                quantity=qty,
                unit_price_cents=price,
                unit_cost_cents=unit_cost,
                line_total_cents=line_total,
                profit_cents=(price - unit_cost) * qty,
            ))
            stock_service.apply_movement(
                product,
                type=TXN_SALE,
                quantity=qty,
                from_location=location,
                reference=f"SALE-{sale.id}",
                user_id=user_id,
                sale_id=sale.id,
            )
            product.total_sold += qty
            subtotal += line_total

        if discount_cents > subtotal:
            raise ValidationError("discount cannot exceed subtotal")

        if tax_cents is None:
            rate_bps = current_app.config.get("TAX_RATE_BPS", 0)
            tax = ((subtotal - discount_cents) * rate_bps + 5000) // 10000
        else:
            tax = tax_cents

        sale.subtotal_cents = subtotal
        sale.tax_cents = tax
        sale.total_cents = subtotal - discount_cents + tax
        _apply_payment_state(sale)

        db.session.commit()
        current_app.logger.info(
            "Sale %s completed: %d line(s), total %d cents, %s",
            sale.id, len(lines_in), sale.total_cents, sale.payment_status,
        )
        return sale

    return run_with_retry(_op)


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise NotFoundError(f"Sale {sale_id} not found")
    return sale


def record_payment(*, sale_id: int, amount_cents: int, user_id: int | None) -> Sale:
    """Add a later payment to a sale and recompute its payment state."""
    if isinstance(amount_cents, bool) or not isinstance(amount_cents, int) or amount_cents <= 0:
        raise ValidationError("amount_cents must be a positive integer")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise NotFoundError(f"Sale {sale_id} not found")
        if sale.payment_status == PAYMENT_PAID:
            raise ValidationError("Sale is already fully paid")

        sale.amount_paid_cents += amount_cents
        _apply_payment_state(sale)
        db.session.commit()
        current_app.logger.info(
            "Payment of %d cents recorded on sale %s by user %s", amount_cents, sale_id, user_id
        )
        return sale

    return run_with_retry(_op)


def _sales_query(*, search=None, period=None, payment_method=None, payment_status=None):
    query = db.session.query(Sale)
    if search:
        pattern = f"%{search.strip()}%"
        conditions = [Sale.customer_name.ilike(pattern), Sale.customer_mobile.ilike(pattern)]
        if search.strip().isdigit():
            conditions.append(Sale.id == int(search.strip()))
        query = query.filter(or_(*conditions))
    if period and period != "all":
        try:
            start, end = period_bounds(period)
        except ValueError:
            raise ValidationError("period must be one of: today, week, month, year, all")
        query = query.filter(Sale.created_at >= start, Sale.created_at < end)
    if payment_method and payment_method != "all":
        query = query.filter(Sale.payment_method == payment_method)
    if payment_status:
        if payment_status not in PAYMENT_STATUSES:
            raise ValidationError(f"payment_status must be one of: {', '.join(PAYMENT_STATUSES)}")
        query = query.filter(Sale.payment_status == payment_status)
    return query


def list_sales(
    *,
    search: str | None = None,
    period: str | None = None,
    payment_method: str | None = None,
    payment_status: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    """Newest first, plus an all-time summary block."""
    query = _sales_query(
        search=search, period=period, payment_method=payment_method, payment_status=payment_status
    ).order_by(Sale.created_at.desc(), Sale.id.desc())
    items, pagination = paginate(query, page=page, per_page=per_page)
    return {
        "sales": [s.to_dict() for s in items],
        "pagination": pagination,
        "summary": sales_summary(),
    }


def sales_summary() -> dict:
    total_revenue = db.session.query(func.coalesce(func.sum(Sale.total_cents), 0)).scalar()
    items_sold = db.session.query(func.coalesce(func.sum(SaleLine.quantity), 0)).scalar()

    today = start_of_day(utcnow().date())
    today_revenue = (
        db.session.query(func.coalesce(func.sum(Sale.total_cents), 0))
        .filter(Sale.created_at >= today)
        .scalar()
    )
    customers = (
        db.session.query(func.count(func.distinct(Sale.customer_name)))
        .filter(Sale.customer_name.isnot(None))
        .scalar()
    )
    return {
        "total_revenue_cents": int(total_revenue),
        "total_items_sold": int(items_sold),
        "today_revenue_cents": int(today_revenue),
        "total_customers": int(customers),
    }
