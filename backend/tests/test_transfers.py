"""Transfer lifecycle: pending -> completed | cancelled, exactly once."""

import pytest

from shopledger.errors import InsufficientStockError, InvalidTransitionError, NotFoundError, ValidationError
from shopledger.services import checkout_service, transfer_service


def _pending(product, user, quantity=4, src="warehouse", dst="shop"):
    return transfer_service.create_transfer(
        product_id=product.id,
        quantity=quantity,
        from_location=src,
        to_location=dst,
        user_id=user.id,
    )


class TestTransferLifecycle:
    def test_pending_transfer_has_no_stock_effect(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        txn = _pending(product, admin_user)
        assert txn.status == "pending"
        assert product.warehouse_stock == 10
        assert product.shop_stock == 0

    def test_complete_moves_stock(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        txn = _pending(product, admin_user)

        done = transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)

        assert done.status == "completed"
        assert done.completed_at is not None
        assert done.completed_by_user_id == admin_user.id
        assert product.warehouse_stock == 6
        assert product.shop_stock == 4

    def test_second_completion_is_rejected(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        txn = _pending(product, admin_user)
        transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)

        with pytest.raises(InvalidTransitionError):
            transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)

        assert product.warehouse_stock == 6
        assert product.shop_stock == 4

    def test_cancel_then_complete_is_rejected(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)])
        txn = _pending(product, admin_user)
        cancelled = transfer_service.cancel_transfer(transfer_id=txn.id, user_id=admin_user.id, reason="Wrong item")
        assert cancelled.status == "cancelled"
        assert cancelled.cancel_reason == "Wrong item"

        with pytest.raises(InvalidTransitionError):
            transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)
        with pytest.raises(InvalidTransitionError):
            transfer_service.cancel_transfer(transfer_id=txn.id, user_id=admin_user.id)
        assert product.warehouse_stock == 10

    def test_create_checks_source_availability(self, make_product, admin_user):
        product = make_product(batches=[(3, 500)])
        with pytest.raises(InsufficientStockError):
            _pending(product, admin_user, quantity=4)

    def test_completion_rechecks_source(self, make_product, admin_user):
        product = make_product(batches=[(5, 500)])
        txn = _pending(product, admin_user, quantity=4)
        checkout_service.checkout(
            items=[{"product_id": product.id, "quantity": 3}],
            user_id=admin_user.id,
            location="warehouse",
        )

        with pytest.raises(InsufficientStockError):
            transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)

        assert product.warehouse_stock == 2
        assert transfer_service.list_transfers(status="pending")["pagination"]["total"] == 1

    def test_shop_to_warehouse(self, make_product, admin_user):
        product = make_product(batches=[(10, 500)], shop=6)
        txn = _pending(product, admin_user, quantity=2, src="shop", dst="warehouse")
        transfer_service.complete_transfer(transfer_id=txn.id, user_id=admin_user.id)
        assert product.shop_stock == 4
        assert product.warehouse_stock == 6

    @pytest.mark.parametrize("src,dst", [("shop", "shop"), ("warehouse", "backroom")])
    def test_invalid_locations(self, make_product, admin_user, src, dst):
        product = make_product(batches=[(10, 500)])
        with pytest.raises(ValidationError):
            _pending(product, admin_user, src=src, dst=dst)

    def test_unknown_transfer(self, db_session, admin_user):
        with pytest.raises(NotFoundError):
            transfer_service.complete_transfer(transfer_id=12345, user_id=admin_user.id)


class TestTransferApi:
    def test_create_requires_auth(self, client, make_product):
        product = make_product()
        resp = client.post(
            "/api/inventory/transfers",
            json={"product_id": product.id, "quantity": 1, "from_location": "warehouse", "to_location": "shop"},
        )
        assert resp.status_code == 401

    def test_create_complete_and_list(self, client, make_product, admin_headers):
        product = make_product(batches=[(10, 500)])
        created = client.post(
            "/api/inventory/transfers",
            json={"product_id": product.id, "quantity": 3, "from_location": "warehouse", "to_location": "shop"},
            headers=admin_headers,
        )
        assert created.status_code == 201
        transfer_id = created.get_json()["id"]

        pending = client.get("/api/inventory/transfers?status=pending&location=shop").get_json()
        assert [t["id"] for t in pending["transfers"]] == [transfer_id]

        first = client.post(f"/api/inventory/transfers/{transfer_id}/complete", headers=admin_headers)
        assert first.status_code == 200
        second = client.post(f"/api/inventory/transfers/{transfer_id}/complete", headers=admin_headers)
        assert second.status_code == 409
        assert second.get_json()["error"] == "invalid_transition"

        stock = client.get(f"/api/products/{product.id}/stock").get_json()
        assert stock["warehouse_stock"] == 7
        assert stock["shop_stock"] == 3

    def test_transaction_log_endpoints(self, client, make_product, admin_user):
        product = make_product(batches=[(10, 500)], shop=3)

        listing = client.get(f"/api/inventory/transactions?product_id={product.id}&type=transfer").get_json()
        assert listing["pagination"]["total"] == 1
        txn = listing["transactions"][0]
        assert txn["status"] == "completed"

        assert client.get(f"/api/inventory/transactions/{txn['id']}").status_code == 200
        assert client.get("/api/inventory/transactions/9999").status_code == 404
        assert client.get("/api/inventory/transactions?type=theft").status_code == 400
