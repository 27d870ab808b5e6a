"""Bulk product import: each row commits or fails on its own."""

from shopledger.models import Product
from shopledger.services import batch_ledger, import_service


def _row(name, sku=None, **overrides):
    row = {
        "name": name,
        "selling_price": "12.50",
        "category": "beverages",
        "batches": [{"quantity": 10, "unit_cost": 6}],
    }
    if sku:
        row["sku"] = sku
    row.update(overrides)
    return row


def test_duplicate_sku_fails_only_its_row(db_session, category, admin_user):
    rows = [_row("Tea", sku="TEA-1"), _row("Tea again", sku="TEA-1"), _row("Coffee", sku="COF-1")]

    result = import_service.import_products(rows, user_id=admin_user.id)

    assert result["success"] == 2
    assert len(result["errors"]) == 1
    assert result["errors"][0]["row"] == 2
    assert result["errors"][0]["code"] == "conflict"
    assert result["errors"][0]["message"] == "SKU 'TEA-1' already exists"
    assert result["errors"][0]["data"]["name"] == "Tea again"
    assert db_session.query(Product).count() == 2


def test_duplicate_barcode_is_a_conflict(db_session, category, admin_user):
    rows = [_row("Tea", barcode="4006381333931"), _row("Tea again", barcode="4006381333931")]

    result = import_service.import_products(rows, user_id=admin_user.id)

    assert result["success"] == 1
    assert result["errors"][0]["code"] == "conflict"
    assert result["errors"][0]["message"] == "Barcode '4006381333931' already exists"


def test_imported_product_has_batches_and_warehouse_stock(db_session, category, admin_user):
    result = import_service.import_products(
        [_row("Juice", batches=[{"quantity": 4, "unit_cost": "1.00"}, {"quantity": 6, "unit_cost": "2.00"}])],
        user_id=admin_user.id,
    )

    product = db_session.get(Product, result["created"][0])
    assert product.selling_price_cents == 1250
    assert product.category_id == category.id
    assert product.warehouse_stock == 10
    assert product.shop_stock == 0
    assert batch_ledger.average_unit_cost(product) == 160
    assert product.sku.startswith("RN-")


def test_unknown_category(db_session, category, admin_user):
    result = import_service.import_products([_row("Milk", category="Dairy")], user_id=admin_user.id)
    assert result["success"] == 0
    assert result["errors"][0]["message"] == "Category 'Dairy' not found"
    assert result["errors"][0]["code"] == "validation_error"


def test_row_without_batches(db_session, category, admin_user):
    result = import_service.import_products([_row("Water", batches=[])], user_id=admin_user.id)
    assert result["errors"][0]["message"] == "At least one batch is required"
    assert db_session.query(Product).count() == 0


def test_invalid_batch_does_not_leave_a_product(db_session, category, admin_user):
    result = import_service.import_products(
        [_row("Soda", batches=[{"quantity": 5, "unit_cost": 1}, {"quantity": 0, "unit_cost": 1}])],
        user_id=admin_user.id,
    )
    assert result["success"] == 0
    assert db_session.query(Product).count() == 0


def test_import_endpoint(client, db_session, category, admin_headers):
    resp = client.post(
        "/api/products/import",
        json={"products": [_row("Tea", sku="TEA-1"), {"name": "No price"}]},
        headers=admin_headers,
    )
    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] == 1
    assert body["errors"][0]["row"] == 2
