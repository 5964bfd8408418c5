# Overview: Pytest coverage for concurrent writers against a shared SQLite file.

"""
Concurrency Tests

Each worker thread gets its own app context (and so its own session and
connection) against a temporary file database, like two checkout terminals
posting at the same moment.
"""

import threading
from datetime import date

import pytest

from pdv import create_app
from pdv.cli import seed_payment_methods
from pdv.errors import AlreadyOpen, InsufficientCredit, InsufficientStock
from pdv.extensions import db
from pdv.models import CashClosing, Customer, PaymentMethod, Product, Sale, Store
from pdv.pricing import Cart, CartLine
from pdv.services import cash_service, credit_service, stock_service
from pdv.services.sales_service import PaymentPlan, Tender, finalize_sale


@pytest.fixture
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'pdv.sqlite3'}",
        'RETRY_ATTEMPTS': 10,
        'RETRY_BACKOFF_BASE': 0.01,
    })
    with app.app_context():
        db.create_all()
    yield app
    with app.app_context():
        db.session.remove()
        db.engine.dispose()


@pytest.fixture
def seeded(file_app):
    """ids of a store, a customer with a R$ 50,00 limit and one product with 5 units."""
    with file_app.app_context():
        seed_payment_methods()
        store = Store(name="Loja Centro", code="LJ1", timezone="America/Sao_Paulo")
        customer = Customer(name="Maria Souza", credit_limit_cents=5000)
        product = Product(internal_code="P0001", name="Produto 1")
        db.session.add_all([store, customer, product])
        db.session.commit()
        stock_service.adjust_stock(
            product_id=product.id, store_id=store.id, delta=5, reference_type="adjustment", notes="Saldo inicial"
        )
        db.session.commit()
        cash_id = db.session.query(PaymentMethod.id).filter_by(code="cash").scalar()
        ids = {"store": store.id, "customer": customer.id, "product": product.id, "cash": cash_id}
        db.session.remove()
    return ids


def run_concurrently(app, func, workers=2):
    """Start `workers` threads at the same instant; collect (results, errors)."""
    barrier = threading.Barrier(workers)
    results, errors = [], []
    lock = threading.Lock()

    def _worker(index):
        with app.app_context():
            try:
                barrier.wait()
                value = func(index)
                with lock:
                    results.append(value)
            except Exception as exc:
                with lock:
                    errors.append(exc)
            finally:
                db.session.remove()

    threads = [threading.Thread(target=_worker, args=(i,)) for i in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


def _cart(ids, quantity=1, unit_price_cents=1000):
    return Cart(
        lines=(CartLine(product_id=ids["product"], quantity=quantity, unit_price_cents=unit_price_cents),),
        customer_id=ids["customer"],
    )


def test_concurrent_sales_get_distinct_sequential_numbers(file_app, seeded):
    def _sell(_):
        plan = PaymentPlan(tenders=(Tender(seeded["cash"], 1000),))
        return finalize_sale(seeded["store"], _cart(seeded), plan).sale_number

    results, errors = run_concurrently(file_app, _sell)

    assert errors == []
    assert sorted(results) == ["LJ1-000001", "LJ1-000002"]
    with file_app.app_context():
        assert stock_service.get_stock_quantity(seeded["product"], seeded["store"]) == 3
        assert stock_service.verify_stock(seeded["store"]) == []


def test_concurrent_sales_cannot_oversell(file_app, seeded):
    def _sell(_):
        plan = PaymentPlan(tenders=(Tender(seeded["cash"], 4000),))
        return finalize_sale(seeded["store"], _cart(seeded, quantity=4), plan).id

    results, errors = run_concurrently(file_app, _sell)

    assert len(results) == 1
    assert len(errors) == 1 and isinstance(errors[0], InsufficientStock)
    with file_app.app_context():
        assert stock_service.get_stock_quantity(seeded["product"], seeded["store"]) == 1
        assert db.session.query(Sale).count() == 1


def test_concurrent_credit_sales_respect_limit(file_app, seeded):
    def _sell(_):
        plan = PaymentPlan(credit_cents=3000)
        return finalize_sale(seeded["store"], _cart(seeded, unit_price_cents=3000), plan).id

    results, errors = run_concurrently(file_app, _sell)

    assert len(results) == 1
    assert len(errors) == 1 and isinstance(errors[0], InsufficientCredit)
    with file_app.app_context():
        assert credit_service.get_used_credit(seeded["customer"]) == 3000


def test_concurrent_open_creates_one_closing(file_app, seeded):
    day = date(2024, 3, 15)

    results, errors = run_concurrently(
        file_app, lambda _: cash_service.open_cash_drawer(seeded["store"], day).id
    )

    assert len(results) == 1
    assert len(errors) == 1 and isinstance(errors[0], AlreadyOpen)
    with file_app.app_context():
        assert db.session.query(CashClosing).filter_by(store_id=seeded["store"]).count() == 1
