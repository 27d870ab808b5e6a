# Overview: Customers derived from sales; SQL aggregation with filter, sort and pagination.

"""
Customer aggregation.

Customers are not stored. A customer is a distinct (customer_name,
customer_mobile) pair on sales; anonymous sales (no name) are excluded.

Per customer:
- total_due:       sum of due_amount over sales not Paid
- total_purchases: number of sales
- total_spent:     sum of sale totals
- last_purchase:   latest sale timestamp

Contract:
- status "due" keeps customers with total_due > 0, "paid" those with 0
- sort "due" (default when status=due) orders by total_due desc, then last_purchase desc;
  "recent" (default otherwise) by last_purchase desc; "spent" by total_spent desc;
  "name" by name asc. Name then mobile break ties so pages are stable.
"""
from __future__ import annotations

from sqlalchemy import case, func, or_

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Sale
from ..models.sales import PAYMENT_PAID
from ..time_utils import to_utc_z
from .pagination import clamp_page_args, pagination_block


CUSTOMER_STATUSES = ("all", "due", "paid")
CUSTOMER_SORTS = ("due", "recent", "spent", "name")


def _aggregate_query():
    due_expr = func.coalesce(
        func.sum(case((Sale.payment_status != PAYMENT_PAID, Sale.due_amount_cents), else_=0)),
        0,
    )
    total_due = due_expr.label("total_due")
    return (
        db.session.query(
            Sale.customer_name.label("name"),
            func.coalesce(Sale.customer_mobile, "").label("mobile"),
            total_due,
            func.count(Sale.id).label("total_purchases"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("total_spent"),
            func.max(Sale.created_at).label("last_purchase"),
        )
        .filter(Sale.customer_name.isnot(None), Sale.customer_name != "")
        .group_by(Sale.customer_name, func.coalesce(Sale.customer_mobile, ""))
    ), due_expr


def _row_dict(row) -> dict:
    return {
        "name": row.name,
        "mobile": row.mobile or None,
        "total_due_cents": int(row.total_due),
        "total_purchases": int(row.total_purchases),
        "total_spent_cents": int(row.total_spent),
        "last_purchase": to_utc_z(row.last_purchase),
    }


def list_customers(
    *,
    search: str | None = None,
    status: str | None = None,
    sort: str | None = None,
    page: int = 1,
    per_page: int = 10,
) -> dict:
    status = status or "all"
    if status not in CUSTOMER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(CUSTOMER_STATUSES)}")
    sort = sort or ("due" if status == "due" else "recent")
    if sort not in CUSTOMER_SORTS:
        raise ValidationError(f"sort must be one of: {', '.join(CUSTOMER_SORTS)}")
    page, per_page = clamp_page_args(page, per_page)

    query, due_expr = _aggregate_query()
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Sale.customer_name.ilike(pattern), Sale.customer_mobile.ilike(pattern)))
    if status == "due":
        query = query.having(due_expr > 0)
    elif status == "paid":
        query = query.having(due_expr == 0)

    tiebreak = (Sale.customer_name.asc(), func.coalesce(Sale.customer_mobile, "").asc())
    if sort == "due":
        order = (due_expr.desc(), func.max(Sale.created_at).desc()) + tiebreak
    elif sort == "recent":
        order = (func.max(Sale.created_at).desc(),) + tiebreak
    elif sort == "spent":
        order = (func.sum(Sale.total_cents).desc(),) + tiebreak
    else:
        order = tiebreak

    subq = query.subquery()
    total = db.session.query(func.count()).select_from(subq).scalar()
    rows = query.order_by(*order).offset((page - 1) * per_page).limit(per_page).all()

    return {
        "customers": [_row_dict(r) for r in rows],
        "pagination": pagination_block(page=page, per_page=per_page, total=int(total)),
        "summary": customer_summary(),
    }


def customer_summary() -> dict:
    query, _ = _aggregate_query()
    subq = query.subquery()
    total_customers, with_due, total_due = db.session.query(
        func.count(),
        func.coalesce(func.sum(case((subq.c.total_due > 0, 1), else_=0)), 0),
        func.coalesce(func.sum(subq.c.total_due), 0),
    ).select_from(subq).one()
    with_due = int(with_due)
    total_due = int(total_due)
    return {
        "total_customers": int(total_customers),
        "customers_with_due": with_due,
        "total_due_amount_cents": total_due,
        "average_due_cents": (total_due + with_due // 2) // with_due if with_due else 0,
    }


def get_customer(*, name: str, mobile: str | None = None) -> dict:
    """One customer's aggregate plus their sales, newest first."""
    if not name:
        raise ValidationError("name is required")
    mobile_key = mobile or ""

    query, _ = _aggregate_query()
    row = query.filter(
        Sale.customer_name == name,
        func.coalesce(Sale.customer_mobile, "") == mobile_key,
    ).first()
    if row is None:
        raise NotFoundError(f"Customer '{name}' not found")

    sales = (
        db.session.query(Sale)
        .filter(Sale.customer_name == name, func.coalesce(Sale.customer_mobile, "") == mobile_key)
        .order_by(Sale.created_at.desc(), Sale.id.desc())
        .all()
    )
    data = _row_dict(row)
    data["sales"] = [s.to_dict(include_lines=False) for s in sales]
    return data
