# Overview: Pytest coverage for the customer credit ledger (crediário).

"""
Credit Ledger Tests

- available = limit - sum(outstanding pending receivables)
- a credit sale never pushes used credit above the limit
- payments settle receivables oldest due date first
- only admins change limits; each change is written to the history
"""

from datetime import timedelta

import pytest

from pdv.errors import InsufficientCredit, NotFound, PermissionDenied, ValidationError
from pdv.models import AccountReceivable, CreditHistory, Sale
from pdv.pricing import Cart, CartLine
from pdv.services import credit_service
from pdv.services.sales_service import PaymentPlan, Tender, finalize_sale


def _credit_sale(store, customer, product, total_cents, credit_cents, methods, user=None):
    cart = Cart(
        lines=(CartLine(product_id=product.id, quantity=1, unit_price_cents=total_cents),),
        customer_id=customer.id,
    )
    paid = total_cents - credit_cents
    tenders = (Tender(payment_method_id=methods["cash"].id, amount_cents=paid),) if paid else ()
    return finalize_sale(
        store.id,
        cart,
        PaymentPlan(tenders=tenders, credit_cents=credit_cents),
        user_id=user.id if user else None,
    )


@pytest.fixture
def limited_customer(db_session, customer):
    """R$ 50,00 limit."""
    customer.credit_limit_cents = 5000
    db_session.commit()
    return customer


class TestCreditPosition:
    def test_new_customer_has_full_limit(self, db_session, customer):
        status = credit_service.get_credit_status(customer.id)
        assert status["credit_limit_cents"] == 10000
        assert status["used_credit_cents"] == 0
        assert status["available_credit_cents"] == 10000

    def test_unknown_customer(self, db_session):
        with pytest.raises(NotFound):
            credit_service.get_available_credit(999999)

    def test_credit_sale_consumes_limit(self, db_session, store, customer, product, payment_methods):
        _credit_sale(store, customer, product, 3000, 3000, payment_methods)
        assert credit_service.get_used_credit(customer.id) == 3000
        assert credit_service.get_available_credit(customer.id) == 7000


class TestReserveCredit:
    def test_credit_exactly_equal_to_available_succeeds(
        self, db_session, store, limited_customer, make_product, payment_methods
    ):
        # 10.00 already used -> 40.00 available
        _credit_sale(store, limited_customer, make_product(), 1000, 1000, payment_methods)

        sale = _credit_sale(store, limited_customer, make_product(), 10000, 4000, payment_methods)

        assert sale.amount_paid_cents == 6000
        assert sale.amount_credit_cents == 4000
        assert sale.payment_status == "credit"
        assert credit_service.get_available_credit(limited_customer.id) == 0

    def test_credit_above_available_fails_and_writes_nothing(
        self, db_session, store, limited_customer, make_product, payment_methods
    ):
        # 15.00 already used -> 35.00 available
        _credit_sale(store, limited_customer, make_product(), 1500, 1500, payment_methods)
        product = make_product(quantity=5)
        sales_before = db_session.query(Sale).count()

        with pytest.raises(InsufficientCredit) as exc:
            _credit_sale(store, limited_customer, product, 10000, 4000, payment_methods)

        assert exc.value.details["available_cents"] == 3500
        assert db_session.query(Sale).count() == sales_before
        assert credit_service.get_used_credit(limited_customer.id) == 1500

    def test_used_never_exceeds_limit(self, db_session, store, limited_customer, make_product, payment_methods):
        _credit_sale(store, limited_customer, make_product(), 5000, 5000, payment_methods)
        with pytest.raises(InsufficientCredit):
            _credit_sale(store, limited_customer, make_product(), 100, 100, payment_methods)
        assert credit_service.get_used_credit(limited_customer.id) == 5000


class TestReceivables:
    def test_receivable_due_in_thirty_days(self, db_session, store, customer, product, payment_methods):
        sale = _credit_sale(store, customer, product, 2000, 2000, payment_methods)
        receivable = db_session.query(AccountReceivable).filter_by(sale_id=sale.id).one()
        assert receivable.status == "pending"
        assert receivable.amount_cents == 2000
        assert receivable.due_date == sale.business_date + timedelta(days=30)

    def test_purchase_written_to_history(self, db_session, store, customer, product, payment_methods):
        sale = _credit_sale(store, customer, product, 2000, 2000, payment_methods)
        history = credit_service.get_credit_history(customer.id)
        assert [(h.action_type, h.reference_id) for h in history] == [("purchase", sale.id)]


class TestPayments:
    def test_payment_settles_oldest_first(self, db_session, store, customer, make_product, payment_methods, cashier_user):
        first = _credit_sale(store, customer, make_product(), 3000, 3000, payment_methods)
        second = _credit_sale(store, customer, make_product(), 2000, 2000, payment_methods)
        old = db_session.query(AccountReceivable).filter_by(sale_id=first.id).one()
        old.due_date = old.due_date - timedelta(days=10)
        db_session.commit()

        credit_service.record_credit_payment(customer.id, 3500, user_id=cashier_user.id,
                                             payment_method_id=payment_methods["pix"].id)

        r1 = db_session.query(AccountReceivable).filter_by(sale_id=first.id).one()
        r2 = db_session.query(AccountReceivable).filter_by(sale_id=second.id).one()
        assert r1.status == "paid"
        assert r1.paid_by_user_id == cashier_user.id
        assert r1.paid_at is not None
        assert r2.status == "pending"
        assert r2.paid_cents == 500
        assert credit_service.get_used_credit(customer.id) == 1500

    def test_overpayment_rejected(self, db_session, store, customer, product, payment_methods):
        _credit_sale(store, customer, product, 1000, 1000, payment_methods)
        with pytest.raises(ValidationError):
            credit_service.record_credit_payment(customer.id, 1001)
        assert credit_service.get_used_credit(customer.id) == 1000

    def test_zero_payment_rejected(self, db_session, customer):
        with pytest.raises(ValidationError):
            credit_service.record_credit_payment(customer.id, 0)


class TestLimits:
    def test_admin_changes_limit(self, db_session, customer, admin_user):
        credit_service.set_credit_limit(customer.id, 25000, admin_user, notes="Cliente antigo")
        assert credit_service.get_available_credit(customer.id) == 25000
        change = db_session.query(CreditHistory).filter_by(customer_id=customer.id, action_type="limit_change").one()
        assert (change.old_value_cents, change.new_value_cents) == (10000, 25000)

    def test_non_admin_cannot_change_limit(self, db_session, customer, operator_user):
        with pytest.raises(PermissionDenied):
            credit_service.set_credit_limit(customer.id, 25000, operator_user)
        db_session.refresh(customer)
        assert customer.credit_limit_cents == 10000

    def test_lowering_limit_below_debt_leaves_debt(self, db_session, store, customer, product, payment_methods, admin_user):
        _credit_sale(store, customer, product, 6000, 6000, payment_methods)
        credit_service.set_credit_limit(customer.id, 5000, admin_user)
        assert credit_service.get_available_credit(customer.id) == -1000
