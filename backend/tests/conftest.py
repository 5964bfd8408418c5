"""
Pytest fixtures for PDV backend tests.

Provides the test app (in-memory SQLite), a per-test table wipe, the test
client, and store/user/customer/product/payment-method fixtures.
"""

import pytest

from pdv import create_app
from pdv.extensions import db
from pdv.cli import seed_payment_methods
from pdv.models import Customer, PaymentMethod, Product, Store, User, UserStoreAccess
from pdv.pricing import Cart, CartLine, Discount, PERCENTAGE
from pdv.services import customer_service
from pdv.services.sales_service import PaymentPlan, Tender
from pdv.services.stock_service import adjust_stock


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'RETRY_BACKOFF_BASE': 0,
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def store(db_session):
    store = Store(name="Loja Centro", code="LJ1", timezone="America/Sao_Paulo")
    db_session.add(store)
    db_session.commit()
    return store


@pytest.fixture(scope='function')
def other_store(db_session):
    store = Store(name="Loja Norte", code="LJ2", timezone="America/Sao_Paulo")
    db_session.add(store)
    db_session.commit()
    return store


def _make_user(db_session, username, role, stores=()):
    user = User(username=username, name=username.title(), role=role, is_active=True)
    db_session.add(user)
    db_session.flush()
    for s in stores:
        db_session.add(UserStoreAccess(user_id=user.id, store_id=s.id))
    db_session.commit()
    return user


@pytest.fixture(scope='function')
def admin_user(db_session):
    return _make_user(db_session, "admin", "admin")


@pytest.fixture(scope='function')
def cashier_user(db_session, store):
    return _make_user(db_session, "caixa1", "caixa", stores=[store])


@pytest.fixture(scope='function')
def operator_user(db_session, store):
    return _make_user(db_session, "operador1", "operador", stores=[store])


@pytest.fixture(scope='function')
def reader_user(db_session, store):
    return _make_user(db_session, "leitor1", "leitor", stores=[store])


@pytest.fixture(scope='function')
def payment_methods(db_session):
    """Default payment methods keyed by code."""
    seed_payment_methods()
    return {m.code: m for m in db_session.query(PaymentMethod).all()}


@pytest.fixture(scope='function')
def customer(db_session):
    """Customer with a R$ 100,00 credit limit."""
    c = Customer(name="Maria Souza", document="12345678900", credit_limit_cents=10000)
    db_session.add(c)
    db_session.commit()
    return c


@pytest.fixture(scope='function')
def delivery_address(db_session, customer):
    return customer_service.add_delivery_address(
        customer.id, name="Casa", street="Rua das Flores", number="120", city="Campinas", state="SP",
        is_default=True,
    )


@pytest.fixture(scope='function')
def make_product(db_session, store):
    """Factory: product with an initial stock entry at `store`."""
    counter = {"n": 0}

    def _make(quantity=10, name=None, target_store=None):
        counter["n"] += 1
        product = Product(internal_code=f"P{counter['n']:04d}", name=name or f"Produto {counter['n']}")
        db_session.add(product)
        db_session.flush()
        if quantity:
            adjust_stock(
                product_id=product.id,
                store_id=(target_store or store).id,
                delta=quantity,
                reference_type="adjustment",
                notes="Saldo inicial",
            )
        db_session.commit()
        return product

    return _make


@pytest.fixture(scope='function')
def product(make_product):
    return make_product(quantity=10)


@pytest.fixture(scope='function')
def auth_headers():
    def _headers(user, **extra):
        headers = {"X-User-Id": str(user.id)}
        headers.update(extra)
        return headers
    return _headers


def cash_payment(methods, amount_cents):
    return PaymentPlan(tenders=(Tender(payment_method_id=methods["cash"].id, amount_cents=amount_cents),))


def simple_cart(customer, product, quantity=1, unit_price_cents=1000, percent=None):
    discount = Discount(PERCENTAGE, percent * 100) if percent else None
    line = CartLine(product_id=product.id, quantity=quantity, unit_price_cents=unit_price_cents)
    if discount:
        line = line.with_discount(discount)
    return Cart(lines=(line,), customer_id=customer.id)
