"""Customers aggregated from sales by name and mobile."""

from datetime import datetime

import pytest

from shopledger.errors import NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.services import checkout_service, customer_service


@pytest.fixture
def sell(make_product, admin_user):
    product = make_product(price_cents=1000, batches=[(50, 400)], shop=50)

    def _sell(name, mobile=None, *, quantity=1, paid=None, when=None):
        sale = checkout_service.checkout(
            items=[{"product_id": product.id, "quantity": quantity}],
            user_id=admin_user.id,
            amount_paid_cents=quantity * 1000 if paid is None else paid,
            customer_name=name,
            customer_mobile=mobile,
        )
        if when is not None:
            sale.created_at = when
            db.session.commit()
        return sale

    return _sell


@pytest.fixture
def customers(sell):
    sell("Alice", "0700", quantity=2, paid=500, when=datetime(2024, 1, 1))
    sell("Alice", "0700", quantity=1, when=datetime(2024, 1, 5))
    sell("Bob", quantity=3, paid=0, when=datetime(2024, 1, 3))
    sell("Carol", "0711", quantity=5, when=datetime(2024, 1, 4))
    sell(None, quantity=1, when=datetime(2024, 1, 6))


def test_aggregation_per_customer(customers):
    result = customer_service.list_customers(sort="name")
    by_name = {c["name"]: c for c in result["customers"]}

    assert set(by_name) == {"Alice", "Bob", "Carol"}
    alice = by_name["Alice"]
    assert alice["mobile"] == "0700"
    assert alice["total_purchases"] == 2
    assert alice["total_spent_cents"] == 3000
    assert alice["total_due_cents"] == 1500
    assert alice["last_purchase"] == "2024-01-05T00:00:00Z"
    assert by_name["Bob"]["mobile"] is None
    assert by_name["Bob"]["total_due_cents"] == 3000


def test_same_name_different_mobile_are_distinct(sell):
    sell("Dan", "0800")
    sell("Dan", "0900")
    result = customer_service.list_customers()
    assert result["pagination"]["total"] == 2


def test_status_filters(customers):
    due = customer_service.list_customers(status="due")
    assert [c["name"] for c in due["customers"]] == ["Bob", "Alice"]

    paid = customer_service.list_customers(status="paid")
    assert [c["name"] for c in paid["customers"]] == ["Carol"]


@pytest.mark.parametrize("sort,expected", [
    ("recent", ["Alice", "Carol", "Bob"]),
    ("spent", ["Carol", "Alice", "Bob"]),
    ("name", ["Alice", "Bob", "Carol"]),
    ("due", ["Bob", "Alice", "Carol"]),
])
def test_sorts(customers, sort, expected):
    result = customer_service.list_customers(sort=sort)
    assert [c["name"] for c in result["customers"]] == expected


def test_pagination_and_search(customers):
    page = customer_service.list_customers(sort="name", page=2, per_page=2)
    assert [c["name"] for c in page["customers"]] == ["Carol"]
    assert page["pagination"]["total_pages"] == 2
    assert page["pagination"]["has_prev"] is True

    found = customer_service.list_customers(search="071")
    assert [c["name"] for c in found["customers"]] == ["Carol"]


def test_summary(customers):
    summary = customer_service.customer_summary()
    assert summary == {
        "total_customers": 3,
        "customers_with_due": 2,
        "total_due_amount_cents": 4500,
        "average_due_cents": 2250,
    }


def test_paying_off_clears_due(sell, admin_user):
    sale = sell("Erin", quantity=2, paid=0)
    checkout_service.record_payment(sale_id=sale.id, amount_cents=2000, user_id=admin_user.id)
    assert customer_service.list_customers(status="due")["customers"] == []


def test_detail(customers):
    detail = customer_service.get_customer(name="Alice", mobile="0700")
    assert detail["total_purchases"] == 2
    assert len(detail["sales"]) == 2

    with pytest.raises(NotFoundError):
        customer_service.get_customer(name="Alice", mobile="0999")


def test_invalid_status(db_session):
    with pytest.raises(ValidationError):
        customer_service.list_customers(status="overdue")


def test_customers_api(client, customers):
    resp = client.get("/api/customers?status=due&limit=1")
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["customers"][0]["name"] == "Bob"
    assert body["pagination"]["has_next"] is True
    assert body["summary"]["total_customers"] == 3

    assert client.get("/api/customers/detail?name=Bob").status_code == 200
    assert client.get("/api/customers/detail?name=Nobody").status_code == 404
    assert client.get("/api/customers?sort=age").status_code == 400
