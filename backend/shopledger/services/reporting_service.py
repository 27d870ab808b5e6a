# Overview: Sales, profit and inventory aggregations for the analytics endpoints.

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import func

from ..errors import ValidationError
from ..extensions import db
from ..models import Product, Sale, SaleLine
from ..time_utils import (
    parse_iso_datetime,
    period_bounds,
    previous_period_bounds,
    start_of_day,
    to_utc_z,
    utcnow,
)
from . import batch_ledger


REPORT_PERIODS = ("day", "week", "month", "year")


def _bounds(period: str) -> tuple[datetime, datetime]:
    if period not in REPORT_PERIODS:
        raise ValidationError(f"period must be one of: {', '.join(REPORT_PERIODS)}")
    return period_bounds(period)


def _parse_range(start: str | None, end: str | None) -> tuple[datetime | None, datetime | None]:
    try:
        start_dt = parse_iso_datetime(start) if start else None
        end_dt = parse_iso_datetime(end) if end else None
    except ValueError:
        raise ValidationError("start/end must be ISO-8601 dates")
    return start_dt, end_dt


def _growth(current: int, previous: int) -> float:
    if previous == 0:
        return 100.0 if current else 0.0
    return round((current - previous) * 100.0 / previous, 2)


def _totals(start: datetime, end: datetime) -> dict:
    sale_row = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_cents), 0),
        func.count(func.distinct(Sale.customer_name)),
    ).filter(Sale.created_at >= start, Sale.created_at < end).one()

    line_row = db.session.query(
        func.coalesce(func.sum(SaleLine.quantity), 0),
        func.coalesce(func.sum(SaleLine.profit_cents), 0),
    ).join(Sale, Sale.id == SaleLine.sale_id).filter(
        Sale.created_at >= start, Sale.created_at < end
    ).one()

    return {
        "orders": int(sale_row[0]),
        "revenue_cents": int(sale_row[1]),
        "customers": int(sale_row[2]),
        "items_sold": int(line_row[0]),
        "profit_cents": int(line_row[1]),
    }


def analytics_summary(period: str = "month") -> dict:
    """Current period totals with growth against the preceding period."""
    start, end = _bounds(period)
    prev_start, prev_end = previous_period_bounds(period)
    current = _totals(start, end)
    previous = _totals(prev_start, prev_end)
    return {
        "period": period,
        "start": to_utc_z(start),
        "end": to_utc_z(end),
        "current": current,
        "previous": previous,
        "growth": {key: _growth(current[key], previous[key]) for key in current},
    }


def sales_trend(days: int = 30) -> list[dict]:
    """Revenue and order count per day for the last ``days`` days, zero-filled."""
    if days <= 0 or days > 366:
        raise ValidationError("days must be between 1 and 366")
    today = start_of_day(utcnow().date())
    start = today - timedelta(days=days - 1)
    day_expr = func.strftime("%Y-%m-%d", Sale.created_at)

    rows = (
        db.session.query(
            day_expr.label("day"),
            func.count(Sale.id).label("orders"),
            func.coalesce(func.sum(Sale.total_cents), 0).label("revenue"),
        )
        .filter(Sale.created_at >= start)
        .group_by("day")
        .all()
    )
    by_day = {row.day: row for row in rows}

    trend = []
    for offset in range(days):
        key = (start + timedelta(days=offset)).strftime("%Y-%m-%d")
        row = by_day.get(key)
        trend.append({
            "date": key,
            "orders": int(row.orders) if row else 0,
            "revenue_cents": int(row.revenue) if row else 0,
        })
    return trend


def payment_methods(period: str = "month") -> list[dict]:
    start, end = _bounds(period)
    rows = (
        db.session.query(
            Sale.payment_method,
            func.count(Sale.id),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .group_by(Sale.payment_method)
        .order_by(func.sum(Sale.total_cents).desc())
        .all()
    )
    return [
        {"payment_method": method, "orders": int(count), "revenue_cents": int(revenue)}
        for method, count, revenue in rows
    ]


def top_products(period: str = "month", limit: int = 5) -> list[dict]:
    start, end = _bounds(period)
    rows = (
        db.session.query(
            Product.id,
            Product.name,
            func.sum(SaleLine.quantity).label("quantity"),
            func.sum(SaleLine.line_total_cents).label("revenue"),
            func.sum(SaleLine.profit_cents).label("profit"),
        )
        .join(SaleLine, SaleLine.product_id == Product.id)
        .join(Sale, Sale.id == SaleLine.sale_id)
        .filter(Sale.created_at >= start, Sale.created_at < end)
        .group_by(Product.id, Product.name)
        .order_by(func.sum(SaleLine.quantity).desc(), Product.id.asc())
        .limit(limit)
        .all()
    )
    return [
        {
            "product_id": pid,
            "name": name,
            "quantity_sold": int(qty),
            "revenue_cents": int(revenue),
            "profit_cents": int(profit),
        }
        for pid, name, qty, revenue, profit in rows
    ]


def _margin(revenue: int, profit: int) -> float:
    return round(profit * 100.0 / revenue, 2) if revenue else 0.0


def profit_report(*, start: str | None = None, end: str | None = None) -> dict:
    """Revenue, cost and profit per product and per day, from the cost snapshots on sale lines."""
    start_dt, end_dt = _parse_range(start, end)
    cost_expr = SaleLine.unit_cost_cents * SaleLine.quantity

    def _filtered(query):
        query = query.join(Sale, Sale.id == SaleLine.sale_id)
        if start_dt:
            query = query.filter(Sale.created_at >= start_dt)
        if end_dt:
            query = query.filter(Sale.created_at <= end_dt)
        return query

    product_rows = _filtered(
        db.session.query(
            SaleLine.product_id,
            Product.name,
            func.sum(SaleLine.quantity),
            func.sum(SaleLine.line_total_cents),
            func.sum(cost_expr),
            func.sum(SaleLine.profit_cents),
        ).join(Product, Product.id == SaleLine.product_id)
    ).group_by(SaleLine.product_id, Product.name).order_by(func.sum(SaleLine.profit_cents).desc()).all()

    day_expr = func.strftime("%Y-%m-%d", Sale.created_at)
    day_rows = _filtered(
        db.session.query(
            day_expr.label("day"),
            func.sum(SaleLine.line_total_cents),
            func.sum(cost_expr),
            func.sum(SaleLine.profit_cents),
        )
    ).group_by("day").order_by("day").all()

    by_product = [
        {
            "product_id": pid,
            "name": name,
            "quantity_sold": int(qty),
            "revenue_cents": int(revenue),
            "cost_cents": int(cost),
            "profit_cents": int(profit),
            "margin_pct": _margin(int(revenue), int(profit)),
        }
        for pid, name, qty, revenue, cost, profit in product_rows
    ]
    by_day = [
        {
            "date": day,
            "revenue_cents": int(revenue),
            "cost_cents": int(cost),
            "profit_cents": int(profit),
        }
        for day, revenue, cost, profit in day_rows
    ]
    revenue = sum(p["revenue_cents"] for p in by_product)
    cost = sum(p["cost_cents"] for p in by_product)
    profit = sum(p["profit_cents"] for p in by_product)
    return {
        "start": to_utc_z(start_dt) if start_dt else None,
        "end": to_utc_z(end_dt) if end_dt else None,
        "totals": {
            "revenue_cents": revenue,
            "cost_cents": cost,
            "profit_cents": profit,
            "margin_pct": _margin(revenue, profit),
        },
        "by_product": by_product,
        "by_day": by_day,
    }


def inventory_valuation() -> dict:
    """On-hand stock valued at average unit cost."""
    products = (
        db.session.query(Product)
        .filter(Product.is_active.is_(True))
        .order_by(Product.name.asc())
        .all()
    )
    rows = []
    total = 0
    for p in products:
        avg = batch_ledger.average_unit_cost(p)
        value = batch_ledger.inventory_value_cents(p)
        total += value
        rows.append({
            "product_id": p.id,
            "name": p.name,
            "warehouse_stock": p.warehouse_stock,
            "shop_stock": p.shop_stock,
            "average_unit_cost_cents": avg,
            "value_cents": value,
        })
    return {"total_value_cents": total, "products": rows}
