"""Profit and analytics reports built from sale line cost snapshots."""

from datetime import datetime

from shopledger.extensions import db
from shopledger.services import checkout_service, purchase_service, reporting_service


def _sell(product, user, quantity, *, method="cash", when=None):
    sale = checkout_service.checkout(
        items=[{"product_id": product.id, "quantity": quantity}],
        user_id=user.id,
        payment_method=method,
        amount_paid_cents=quantity * product.selling_price_cents,
        customer_name="Walk-in",
    )
    if when is not None:
        sale.created_at = when
        db.session.commit()
    return sale


def test_profit_report_uses_cost_at_sale_time(make_product, admin_user):
    product = make_product(price_cents=1000, batches=[(10, 500)], shop=10)
    _sell(product, admin_user, 2, when=datetime(2024, 3, 1, 10))

    purchase_service.create_purchase(
        items=[{"product_id": product.id, "quantity": 10, "unit_cost_cents": 700}],
        user_id=admin_user.id,
    )
    _sell(product, admin_user, 1, when=datetime(2024, 3, 2, 10))

    report = reporting_service.profit_report(start="2024-03-01T00:00:00Z", end="2024-03-31T00:00:00Z")

    assert report["totals"] == {
        "revenue_cents": 3000,
        "cost_cents": 1600,
        "profit_cents": 1400,
        "margin_pct": 46.67,
    }
    assert report["by_product"][0]["quantity_sold"] == 3
    assert [d["date"] for d in report["by_day"]] == ["2024-03-01", "2024-03-02"]
    assert [d["profit_cents"] for d in report["by_day"]] == [1000, 400]


def test_profit_report_range_excludes_other_days(make_product, admin_user):
    product = make_product(batches=[(10, 500)], shop=10)
    _sell(product, admin_user, 1, when=datetime(2024, 2, 1, 10))
    report = reporting_service.profit_report(start="2024-03-01T00:00:00Z")
    assert report["totals"]["revenue_cents"] == 0
    assert report["by_product"] == []


def test_summary_and_breakdowns(make_product, admin_user):
    cola = make_product(name="Cola", batches=[(20, 500)], shop=20)
    tea = make_product(name="Tea", price_cents=300, batches=[(20, 100)], shop=20)
    _sell(cola, admin_user, 2, method="card")
    _sell(tea, admin_user, 5)

    summary = reporting_service.analytics_summary("day")
    assert summary["current"]["orders"] == 2
    assert summary["current"]["revenue_cents"] == 3500
    assert summary["current"]["items_sold"] == 7
    assert summary["current"]["profit_cents"] == 2000
    assert summary["growth"]["orders"] == 100.0

    methods = {m["payment_method"]: m for m in reporting_service.payment_methods("day")}
    assert methods["card"]["revenue_cents"] == 2000
    assert methods["cash"]["orders"] == 1

    top = reporting_service.top_products("day", limit=1)
    assert [p["name"] for p in top] == ["Tea"]

    trend = reporting_service.sales_trend(7)
    assert len(trend) == 7
    assert trend[-1]["orders"] == 2
    assert sum(day["orders"] for day in trend[:-1]) == 0


def test_inventory_valuation(make_product):
    make_product(name="Cola", batches=[(10, 500), (10, 700)], shop=5)
    valuation = reporting_service.inventory_valuation()
    assert valuation["products"][0]["average_unit_cost_cents"] == 600
    assert valuation["total_value_cents"] == 20 * 600


def test_reports_api(client, make_product, admin_user):
    product = make_product(batches=[(10, 500)], shop=10)
    _sell(product, admin_user, 1)

    assert client.get("/api/reports/summary?period=week").status_code == 200
    assert client.get("/api/reports/summary?period=decade").status_code == 400
    assert client.get("/api/reports/sales-trend?days=0").status_code == 400
    assert client.get("/api/reports/profit").get_json()["totals"]["profit_cents"] == 500
    assert client.get("/api/reports/inventory-valuation").status_code == 200
