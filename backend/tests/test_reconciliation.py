"""
Log replay, drift detection and the stock repair operations.
"""

import pytest

from shopledger.errors import InsufficientStockError, StockDriftError, ValidationError
from shopledger.extensions import db
from shopledger.models import InventoryTransaction
from shopledger.services import (
    checkout_service,
    purchase_service,
    reconciliation_service,
    stock_service,
    transaction_log,
    transfer_service,
)


def _tamper(product, **counters):
    for field, value in counters.items():
        setattr(product, field, value)
    db.session.commit()


class TestReplay:
    def test_replay_matches_counters_after_mixed_operations(self, make_product, admin_user):
        product = make_product(batches=[(20, 500)], shop=8)
        checkout_service.checkout(items=[{"product_id": product.id, "quantity": 3}], user_id=admin_user.id)
        purchase_service.create_purchase(
            items=[{"product_id": product.id, "quantity": 5, "unit_cost_cents": 550}],
            user_id=admin_user.id,
        )
        stock_service.adjust_stock(product_id=product.id, location="shop", delta=-1, user_id=admin_user.id)
        pending = transfer_service.create_transfer(
            product_id=product.id, quantity=2, from_location="warehouse", to_location="shop", user_id=admin_user.id
        )
        cancelled = transfer_service.create_transfer(
            product_id=product.id, quantity=4, from_location="warehouse", to_location="shop", user_id=admin_user.id
        )
        transfer_service.complete_transfer(transfer_id=pending.id, user_id=admin_user.id)
        transfer_service.cancel_transfer(transfer_id=cancelled.id, user_id=admin_user.id)

        replayed = transaction_log.replay_stock(product.id)

        assert replayed == {"warehouse": 15, "shop": 6}
        assert replayed == {"warehouse": product.warehouse_stock, "shop": product.shop_stock}
        assert reconciliation_service.verify_product_stock(product.id)["stock"] == replayed

    def test_failed_adjustment_is_not_logged(self, make_product, admin_user):
        product = make_product(batches=[(2, 500)])
        before = db.session.query(InventoryTransaction).filter_by(product_id=product.id).count()

        with pytest.raises(InsufficientStockError):
            stock_service.adjust_stock(product_id=product.id, location="warehouse", delta=-3, user_id=admin_user.id)

        assert db.session.query(InventoryTransaction).filter_by(product_id=product.id).count() == before
        assert product.warehouse_stock == 2


class TestDrift:
    def test_direct_counter_edit_is_detected(self, make_product):
        product = make_product(batches=[(10, 500)])
        _tamper(product, warehouse_stock=25)

        with pytest.raises(StockDriftError) as exc_info:
            reconciliation_service.verify_product_stock(product.id)

        details = exc_info.value.details
        assert details["stored"]["warehouse"] == 25
        assert details["replayed"]["warehouse"] == 10
        assert details["difference"]["warehouse"] == 15

        drifts = reconciliation_service.detect_drift()
        assert [d["product_id"] for d in drifts] == [product.id]

    def test_no_drift_on_clean_ledger(self, make_product):
        make_product(batches=[(10, 500)], shop=3)
        assert reconciliation_service.detect_drift() == []

    def test_drift_endpoint(self, client, make_product):
        product = make_product(batches=[(10, 500)])
        assert client.get(f"/api/inventory/drift/{product.id}").status_code == 200

        _tamper(product, shop_stock=4)
        resp = client.get(f"/api/inventory/drift/{product.id}")
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "stock_drift"
        assert client.get("/api/inventory/drift").get_json()["count"] == 1


class TestRepairs:
    def test_fix_negative_stock_resets_to_zero(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        _tamper(product, warehouse_stock=-3)

        result = reconciliation_service.fix_negative_stock([{"product_id": product.id}], user_id=admin_user.id)

        assert result["success"] == 1
        assert result["errors"] == []
        assert result["results"][0]["adjustment"] == 3
        assert product.warehouse_stock == 0

        txn = db.session.get(InventoryTransaction, result["results"][0]["transaction_id"])
        assert txn.type == "adjustment"
        assert txn.reference == "STOCK-REPAIR"

    def test_fix_negative_rejects_non_negative_rows(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        result = reconciliation_service.fix_negative_stock(
            [{"product_id": product.id, "location": "warehouse"}], user_id=admin_user.id
        )
        assert result["success"] == 0
        assert result["errors"][0]["row"] == 1
        assert result["errors"][0]["code"] == "validation_error"
        assert product.warehouse_stock == 10

    def test_fix_negative_accepts_legacy_id_key(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        _tamper(product, shop_stock=-2)

        result = reconciliation_service.fix_negative_stock(
            [{"_id": product.id, "location": "shop", "new_stock": 1}], user_id=admin_user.id
        )

        assert result["success"] == 1
        assert product.shop_stock == 1

    def test_fix_double_stock_uses_batch_total(self, make_product, admin_user):
        product = make_product(batches=[(6, 500), (4, 700)])
        _tamper(product, warehouse_stock=20)

        result = reconciliation_service.fix_double_stock(
            [{"product_id": product.id, "use_batch_stock": True}], user_id=admin_user.id
        )

        assert result["success"] == 1
        assert result["results"][0]["previous"] == 20
        assert product.warehouse_stock == 10

    def test_fix_double_stock_requires_target(self, make_product, admin_user):
        product = make_product()
        result = reconciliation_service.fix_double_stock([{"product_id": product.id}], user_id=admin_user.id)
        assert result["success"] == 0
        assert "warehouse_stock" in result["errors"][0]["message"]

    def test_zero_delta_repair_writes_nothing(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        before = db.session.query(InventoryTransaction).count()

        result = reconciliation_service.fix_double_stock(
            [{"product_id": product.id, "warehouse_stock": 10}], user_id=admin_user.id
        )

        assert result["results"][0]["transaction_id"] is None
        assert db.session.query(InventoryTransaction).count() == before

    def test_initial_stock_only_for_empty_warehouse(self, make_product, admin_user):
        stocked = make_product(name="Stocked", batches=[(10, 500)])
        empty = make_product(name="Empty", batches=[(5, 500)], shop=5)

        result = reconciliation_service.set_initial_warehouse_stock(
            [
                {"product_id": stocked.id, "warehouse_stock": 30},
                {"product_id": empty.id, "warehouse_stock": 12},
            ],
            user_id=admin_user.id,
        )

        assert result["success"] == 1
        assert result["errors"][0]["row"] == 1
        assert stocked.warehouse_stock == 10
        assert empty.warehouse_stock == 12

    def test_repaired_counters_still_match_replay(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        reconciliation_service.fix_double_stock(
            [{"product_id": product.id, "warehouse_stock": 7}], user_id=admin_user.id
        )
        assert transaction_log.replay_stock(product.id) == {"warehouse": 7, "shop": 0}

    def test_empty_rows_rejected(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            reconciliation_service.fix_negative_stock([], user_id=admin_user.id)


class TestRepairApi:
    def test_repairs_require_auth(self, client):
        resp = client.post("/api/inventory/fix-negative-stock", json={"products": []})
        assert resp.status_code == 401

    @pytest.mark.parametrize("path", [
        "/api/inventory/fix-negative-stock",
        "/api/inventory/fix-double-stock",
        "/api/inventory/initial-stock",
    ])
    def test_salesmen_cannot_repair(self, client, salesmen_headers, make_product, path):
        product = make_product()
        resp = client.post(path, json={"products": [{"product_id": product.id}]}, headers=salesmen_headers)
        assert resp.status_code == 403

    def test_admin_lists_and_fixes_negative_stock(self, client, admin_headers, make_product):
        product = make_product(batches=[(10, 500)])
        _tamper(product, warehouse_stock=-4)

        listing = client.get("/api/inventory/fix-negative-stock").get_json()
        assert listing["count"] == 1

        resp = client.post(
            "/api/inventory/fix-negative-stock",
            json={"products": [{"product_id": product.id}]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["success"] == 1
        assert client.get("/api/inventory/fix-negative-stock").get_json()["count"] == 0
