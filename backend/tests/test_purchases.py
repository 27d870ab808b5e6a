"""Supplier purchases add batches and receive stock, all-or-nothing."""

import pytest

from shopledger.errors import InvalidBatchError, NotFoundError
from shopledger.models import Batch, InventoryTransaction, Purchase
from shopledger.services import batch_ledger, purchase_service


def test_purchase_adds_batches_and_stock(make_product, admin_user, db_session):
    product = make_product(batches=[(10, 500)])

    purchase = purchase_service.create_purchase(
        items=[
            {"product_id": product.id, "quantity": 10, "unit_cost_cents": 700, "supplier": "Acme"},
            {"product_id": product.id, "quantity": 2, "unit_cost_cents": 650, "location": "shop"},
        ],
        user_id=admin_user.id,
        tax_cents=150,
        invoice_number="INV-9",
    )

    assert purchase.subtotal_cents == 8300
    assert purchase.total_cents == 8450
    assert len(purchase.lines) == 2
    assert product.warehouse_stock == 20
    assert product.shop_stock == 2
    assert product.total_quantity == 22
    assert batch_ledger.average_unit_cost(product) == 605

    txns = db_session.query(InventoryTransaction).filter_by(purchase_id=purchase.id).all()
    assert {t.to_location for t in txns} == {"warehouse", "shop"}
    assert all(t.reference == f"PURCHASE-{purchase.id}" for t in txns)


def test_bad_line_rolls_back_whole_purchase(make_product, admin_user, db_session):
    product = make_product(batches=[(10, 500)])
    batches_before = db_session.query(Batch).count()

    with pytest.raises(InvalidBatchError):
        purchase_service.create_purchase(
            items=[
                {"product_id": product.id, "quantity": 5, "unit_cost_cents": 700},
                {"product_id": product.id, "quantity": 5, "unit_cost_cents": 0},
            ],
            user_id=admin_user.id,
        )

    assert db_session.query(Purchase).count() == 0
    assert db_session.query(Batch).count() == batches_before
    assert product.warehouse_stock == 10


def test_unknown_product(db_session, admin_user):
    with pytest.raises(NotFoundError):
        purchase_service.create_purchase(
            items=[{"product_id": 999, "quantity": 1, "unit_cost_cents": 100}], user_id=admin_user.id
        )


def test_purchases_api(client, make_product, admin_headers):
    product = make_product()
    created = client.post(
        "/api/purchases",
        json={"items": [{"product_id": product.id, "quantity": 3, "unit_cost_cents": 400, "supplier": "Acme"}]},
        headers=admin_headers,
    )
    assert created.status_code == 201
    purchase_id = created.get_json()["id"]

    listing = client.get("/api/purchases?supplier=Acme").get_json()
    assert [p["id"] for p in listing["purchases"]] == [purchase_id]
    assert listing["summary"]["top_suppliers"][0] == {"supplier": "Acme", "spent_cents": 1200, "purchases": 1}

    assert client.get(f"/api/purchases/{purchase_id}").status_code == 200
    assert client.get("/api/purchases/9999").status_code == 404


def test_purchase_requires_auth(client, db_session):
    assert client.post("/api/purchases", json={"items": []}).status_code == 401
