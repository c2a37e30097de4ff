"""
Concurrency tests against a file-backed SQLite database.

Two workers race for the last unit of stock; exactly one order may win and
the quantity must end at zero, never below.
"""

import threading

import pytest

from posoffice import create_app
from posoffice.errors import InsufficientStock
from posoffice.extensions import db
from posoffice.models import Client, Order, Product
from posoffice.services import order_service, stock_ledger
from posoffice.services.order_service import ItemRequest


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'SQLALCHEMY_ENGINE_OPTIONS': {'connect_args': {'timeout': 15}},
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed(app, stock: int) -> int:
    with app.app_context():
        client = Client(name="acme")
        db.session.add(client)
        db.session.flush()
        product = Product(client_id=client.id, barcode="LAST-1", name="last unit", mrp_cents=1000)
        db.session.add(product)
        db.session.commit()
        stock_ledger.set_absolute(product.id, stock)
        product_id = product.id
        db.session.remove()
        return product_id


def _race(app, worker_count: int, fn):
    created = []
    errors = []
    lock = threading.Lock()
    barrier = threading.Barrier(worker_count)

    def worker():
        with app.app_context():
            try:
                barrier.wait()
                result = fn()
                with lock:
                    created.append(result)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=worker) for _ in range(worker_count)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return created, errors


def test_two_orders_for_last_unit(file_app):
    product_id = _seed(file_app, stock=1)

    def place_order():
        return order_service.create_order(
            [ItemRequest(product_id=product_id, quantity=1, selling_price_cents=500)]
        )["id"]

    created, errors = _race(file_app, 2, place_order)

    assert len(created) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], InsufficientStock)

    with file_app.app_context():
        assert stock_ledger.get_quantity(product_id) == 0
        assert db.session.query(Order).count() == 1


def test_many_decrements_never_oversell(file_app):
    product_id = _seed(file_app, stock=3)

    created, errors = _race(file_app, 6, lambda: stock_ledger.adjust(product_id, -1))

    assert len(created) == 3
    assert all(isinstance(e, InsufficientStock) for e in errors)
    with file_app.app_context():
        assert stock_ledger.get_quantity(product_id) == 0
