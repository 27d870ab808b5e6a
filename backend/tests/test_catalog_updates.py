"""Bulk catalog edits: product fields and batch metadata, row by row."""

import pytest

from shopledger.errors import ValidationError
from shopledger.services import batch_ledger, catalog_update_service


def test_patches_fields_and_batches(make_product):
    product = make_product(batches=[(10, 500), (10, 700)])
    first, second = product.batches

    result = catalog_update_service.update_products([
        {
            "product_id": product.id,
            "selling_price_cents": 1500,
            "description": "Chilled",
            "batches": [
                {"batch_id": first.id, "supplier": "Acme"},
                {"_id": second.id, "unit_cost_cents": 900},
            ],
        },
    ])

    assert result["success"] == 1
    assert result["errors"] == []
    assert result["results"][0]["fields"] == ["description", "selling_price_cents"]
    assert result["results"][0]["batches_updated"] == 2
    assert product.selling_price_cents == 1500
    assert first.supplier == "Acme"
    assert second.unit_cost_cents == 900
    assert batch_ledger.average_unit_cost(product) == 700
    assert product.warehouse_stock == 20


def test_bad_row_is_reported_and_rolled_back(make_product):
    cola = make_product(name="Cola")
    tea = make_product(name="Tea")

    result = catalog_update_service.update_products([
        {"_id": cola.id, "name": "Cola Zero"},
        {"product_id": tea.id, "name": "Green Tea", "batches": [{"batch_id": tea.batches[0].id, "quantity": 99}]},
        {"product_id": 9999, "name": "Ghost"},
    ])

    assert result["success"] == 1
    assert [e["row"] for e in result["errors"]] == [2, 3]
    assert [e["code"] for e in result["errors"]] == ["validation_error", "not_found"]
    assert result["errors"][0]["details"] == {"field": "quantity"}
    assert cola.name == "Cola Zero"
    assert tea.name == "Tea"
    assert tea.batches[0].quantity == 10


@pytest.mark.parametrize("row, message", [
    ({"name": "No id"}, "product_id is required"),
    ({"product_id": 1}, "No fields to update"),
    ({"product_id": 1, "batches": [{"supplier": "Acme"}]}, "Batch 1 is missing batch_id; record new stock as a purchase"),
    ({"product_id": 1, "shop_stock": 50}, "Field not allowed: shop_stock"),
    ({"product_id": 1, "is_active": False}, "Field not allowed: is_active"),
])
def test_row_validation(db_session, row, message):
    result = catalog_update_service.update_products([row])
    assert result["success"] == 0
    assert result["errors"][0]["message"] == message


def test_duplicate_sku_conflicts(make_product):
    make_product(name="Cola", sku="COLA-1")
    tea = make_product(name="Tea", sku="TEA-1")

    result = catalog_update_service.update_products([{"product_id": tea.id, "sku": "COLA-1"}])

    assert result["errors"][0]["code"] == "conflict"
    assert tea.sku == "TEA-1"


def test_updates_must_be_a_list(db_session):
    with pytest.raises(ValidationError):
        catalog_update_service.update_products({"product_id": 1})


def test_bulk_update_endpoint(client, make_product, salesmen_headers):
    product = make_product()
    resp = client.post(
        "/api/products/bulk-update",
        json={"updates": [{"product_id": product.id, "image_url": "https://img.example/cola.png"}, "oops"]},
        headers=salesmen_headers,
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] == 1
    assert body["errors"][0]["row"] == 2
    assert body["errors"][0]["message"] == "Row must be an object"

    assert client.get(f"/api/products/{product.id}").get_json()["image_url"] == "https://img.example/cola.png"


def test_bulk_update_requires_auth(client, db_session):
    resp = client.post("/api/products/bulk-update", json={"updates": []})
    assert resp.status_code == 401
