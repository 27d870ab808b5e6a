"""Batch ledger: batch validation, average costing and batch metadata edits."""

import pytest

from shopledger.errors import InvalidBatchError, NotFoundError, ValidationError
from shopledger.extensions import db
from shopledger.services import batch_ledger, products_service


class TestAverageCost:
    def test_weighted_average_of_two_batches(self, make_product):
        product = make_product(batches=[(10, 500), (10, 700)])
        assert batch_ledger.average_unit_cost(product) == 600

    def test_rounds_half_up_to_nearest_cent(self, make_product):
        # (1 * 100 + 1 * 101) / 2 = 100.5 -> 101
        product = make_product(batches=[(1, 100), (1, 101)])
        assert batch_ledger.average_unit_cost(product) == 101

    def test_no_batches_costs_zero(self, make_product):
        product = make_product(batches=[])
        assert product.batches == []
        assert batch_ledger.average_unit_cost(product) == 0

    def test_consume_leaves_batches_untouched(self, make_product):
        product = make_product(batches=[(10, 500), (10, 700)])
        assert batch_ledger.consume_by_cost(product, 15) == 600
        assert [b.quantity for b in product.batches] == [10, 10]
        assert product.total_quantity == 20


class TestAddBatch:
    def test_add_batch_updates_total_quantity(self, make_product):
        product = make_product(batches=[(4, 250)])
        batch_ledger.add_batch(product, quantity=6, unit_cost_cents=300, supplier="Acme")
        db.session.commit()
        assert product.total_quantity == 10
        assert product.batches[-1].supplier == "Acme"

    def test_add_batch_does_not_touch_location_stock(self, make_product):
        product = make_product(batches=[(4, 250)])
        batch_ledger.add_batch(product, quantity=6, unit_cost_cents=300)
        db.session.commit()
        assert product.warehouse_stock == 4
        assert product.shop_stock == 0

    @pytest.mark.parametrize("quantity,cost", [(0, 100), (-1, 100), (5, 0), (5, -10)])
    def test_rejects_non_positive_values(self, make_product, quantity, cost):
        product = make_product(batches=[(1, 100)])
        with pytest.raises(InvalidBatchError):
            batch_ledger.add_batch(product, quantity=quantity, unit_cost_cents=cost)
        db.session.rollback()

    def test_invalid_batch_is_a_validation_error(self):
        assert issubclass(InvalidBatchError, ValidationError)


class TestUpdateBatch:
    def test_corrects_cost_and_supplier(self, make_product):
        product = make_product(batches=[(10, 500)])
        batch_id = product.batches[0].id
        batch = products_service.update_batch(
            product.id, batch_id, {"unit_cost_cents": 550, "supplier": "New Supplier"}
        )
        assert batch.unit_cost_cents == 550
        assert batch.supplier == "New Supplier"
        assert batch_ledger.average_unit_cost(product) == 550

    def test_quantity_is_immutable(self, make_product):
        product = make_product(batches=[(10, 500)])
        with pytest.raises(ValidationError):
            products_service.update_batch(product.id, product.batches[0].id, {"quantity": 20})
        assert product.batches[0].quantity == 10

    def test_unknown_batch(self, make_product):
        product = make_product(batches=[(10, 500)])
        with pytest.raises(NotFoundError):
            products_service.update_batch(product.id, 9999, {"supplier": "x"})
