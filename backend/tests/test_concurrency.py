"""
Concurrency tests against a file-backed SQLite database.

Two threads race for the same shop stock; the version_id compare-and-swap
plus the retry loop must let exactly one of them through.
"""

import threading

import pytest

from shopledger import create_app
from shopledger.config import TestingConfig
from shopledger.errors import InsufficientStockError, InvalidTransitionError
from shopledger.extensions import db
from shopledger.models import Category, InventoryTransaction, Sale
from shopledger.services import (
    checkout_service,
    products_service,
    reconciliation_service,
    transaction_log,
    transfer_service,
)


@pytest.fixture
def file_app(tmp_path):
    class FileConfig(TestingConfig):
        SQLALCHEMY_DATABASE_URI = f"sqlite:///{tmp_path / 'concurrency.db'}"
        STOCK_RETRY_ATTEMPTS = 10

    app = create_app(FileConfig)
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


@pytest.fixture
def stocked_product_id(file_app):
    with file_app.app_context():
        category = Category(name="Concurrency")
        db.session.add(category)
        db.session.commit()
        product = products_service.create_product(
            {
                "name": "Contended",
                "selling_price_cents": 1000,
                "category_id": category.id,
                "batches": [{"quantity": 5, "unit_cost_cents": 400}],
            },
            user_id=None,
        )
        transfer_service.create_transfer(
            product_id=product.id,
            quantity=5,
            from_location="warehouse",
            to_location="shop",
            user_id=None,
            complete_immediately=True,
        )
        product_id = product.id
        db.session.remove()
    return product_id


def _race(app, workers):
    barrier = threading.Barrier(len(workers))
    results = []
    lock = threading.Lock()

    def run(work):
        with app.app_context():
            try:
                barrier.wait()
                outcome = work()
                with lock:
                    results.append(outcome)
            except Exception as exc:
                with lock:
                    results.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=run, args=(w,)) for w in workers]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


def test_concurrent_checkouts_cannot_oversell(file_app, stocked_product_id):
    def sell():
        sale = checkout_service.checkout(
            items=[{"product_id": stocked_product_id, "quantity": 3}],
            user_id=None,
            amount_paid_cents=3000,
        )
        return sale.id

    results = _race(file_app, [sell, sell])

    sold = [r for r in results if isinstance(r, int)]
    failed = [r for r in results if isinstance(r, InsufficientStockError)]
    assert len(sold) == 1, results
    assert len(failed) == 1, results

    with file_app.app_context():
        product = products_service.get_product(stocked_product_id)
        assert product.shop_stock == 2
        assert product.total_sold == 3
        assert db.session.query(Sale).count() == 1
        assert transaction_log.replay_stock(stocked_product_id) == {"warehouse": 0, "shop": 2}


def test_concurrent_completion_applies_once(file_app, stocked_product_id):
    with file_app.app_context():
        transfer_id = transfer_service.create_transfer(
            product_id=stocked_product_id,
            quantity=2,
            from_location="shop",
            to_location="warehouse",
            user_id=None,
        ).id
        db.session.remove()

    def complete():
        return transfer_service.complete_transfer(transfer_id=transfer_id, user_id=None).status

    results = _race(file_app, [complete, complete])

    assert results.count("completed") == 1, results
    with file_app.app_context():
        product = products_service.get_product(stocked_product_id)
        assert product.shop_stock == 3
        assert product.warehouse_stock == 2
        txn = db.session.get(InventoryTransaction, transfer_id)
        assert txn.status == "completed"


def test_complete_and_cancel_race_has_one_winner(file_app, stocked_product_id):
    with file_app.app_context():
        transfer_id = transfer_service.create_transfer(
            product_id=stocked_product_id,
            quantity=2,
            from_location="shop",
            to_location="warehouse",
            user_id=None,
        ).id
        db.session.remove()

    def complete():
        return transfer_service.complete_transfer(transfer_id=transfer_id, user_id=None).status

    def cancel():
        return transfer_service.cancel_transfer(
            transfer_id=transfer_id, user_id=None, reason="changed mind"
        ).status

    results = _race(file_app, [complete, cancel])

    won = [r for r in results if r in ("completed", "cancelled")]
    lost = [r for r in results if isinstance(r, InvalidTransitionError)]
    assert len(won) == 1, results
    assert len(lost) == 1, results

    with file_app.app_context():
        txn = db.session.get(InventoryTransaction, transfer_id)
        assert txn.status == won[0]
        product = products_service.get_product(stocked_product_id)
        if txn.status == "completed":
            assert (product.warehouse_stock, product.shop_stock) == (2, 3)
            assert txn.cancelled_at is None
        else:
            assert (product.warehouse_stock, product.shop_stock) == (0, 5)
            assert txn.completed_at is None
        assert reconciliation_service.detect_drift() == []
