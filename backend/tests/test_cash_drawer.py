# Overview: Pytest coverage for the daily cash drawer state machine.

"""
Cash Drawer Tests

not started -> open -> closed, one closing per store and day.
Cash movements are reported next to expected cash and are not part of it,
so an unreported suprimento shows up as a positive difference.
"""

from datetime import date

import pytest

from conftest import cash_payment, simple_cart
from pdv.errors import AlreadyClosed, AlreadyOpen, NotOpen, ValidationError
from pdv.models import CashClosing, LedgerEvent
from pdv.services import cash_service
from pdv.services.reconciliation_service import summarize_day
from pdv.services.sales_service import PaymentPlan, Tender, finalize_sale

DAY = date(2024, 3, 15)


class TestOpen:
    def test_open_creates_closing(self, db_session, store, cashier_user):
        closing = cash_service.open_cash_drawer(store.id, DAY, cashier_user.id)

        assert closing.status == "open"
        assert closing.closing_date == DAY
        assert closing.opened_by_user_id == cashier_user.id
        assert db_session.query(LedgerEvent).filter_by(event_type="cash.opened").count() == 1

    def test_open_twice_fails(self, db_session, store):
        cash_service.open_cash_drawer(store.id, DAY)
        with pytest.raises(AlreadyOpen):
            cash_service.open_cash_drawer(store.id, DAY)
        assert db_session.query(CashClosing).count() == 1

    def test_reopen_after_close_fails(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id, DAY)
        cash_service.close_cash_drawer(closing.id, counted_cash_cents=0)
        with pytest.raises(AlreadyOpen):
            cash_service.open_cash_drawer(store.id, DAY)

    def test_one_closing_per_store(self, db_session, store, other_store):
        cash_service.open_cash_drawer(store.id, DAY)
        cash_service.open_cash_drawer(other_store.id, DAY)
        assert db_session.query(CashClosing).count() == 2

    def test_default_date_is_store_today(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id)
        assert closing.closing_date == cash_service.store_today(store.id)


class TestMovements:
    def test_movement_requires_open_drawer(self, db_session, store):
        with pytest.raises(NotOpen):
            cash_service.record_movement(store.id, "sangria", 1000, "Depósito", closing_date=DAY)

    def test_movement_on_closed_drawer(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id, DAY)
        cash_service.close_cash_drawer(closing.id, counted_cash_cents=0)
        with pytest.raises(AlreadyClosed):
            cash_service.record_movement(store.id, "suprimento", 1000, "Troco", closing_id=closing.id)

    @pytest.mark.parametrize("movement_type,amount,reason", [
        ("retirada", 1000, "x"),
        ("sangria", 0, "x"),
        ("sangria", 1000, " "),
    ])
    def test_invalid_movement(self, db_session, store, movement_type, amount, reason):
        cash_service.open_cash_drawer(store.id, DAY)
        with pytest.raises(ValidationError):
            cash_service.record_movement(store.id, movement_type, amount, reason, closing_date=DAY)

    def test_movements_listed_in_order(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id, DAY)
        cash_service.record_movement(store.id, "suprimento", 10000, "Troco inicial", closing_date=DAY)
        cash_service.record_movement(store.id, "sangria", 4000, "Depósito", closing_id=closing.id)

        movements = cash_service.list_movements(closing.id)
        assert [(m.movement_type, m.amount_cents) for m in movements] == [("suprimento", 10000), ("sangria", 4000)]


class TestClose:
    def _today_sale(self, store, customer, product, methods, amount, method_code="cash"):
        plan = PaymentPlan(tenders=(Tender(methods[method_code].id, amount),))
        return finalize_sale(store.id, simple_cart(customer, product, unit_price_cents=amount), plan)

    def test_suprimento_is_reported_as_difference(self, db_session, store, customer, product, payment_methods):
        day = cash_service.store_today(store.id)
        closing = cash_service.open_cash_drawer(store.id, day)
        self._today_sale(store, customer, product, payment_methods, 12000)
        expected = summarize_day(store.id, day).total_cash_cents
        cash_service.record_movement(store.id, "suprimento", 5000, "Troco", closing_id=closing.id)

        closed = cash_service.close_cash_drawer(closing.id, counted_cash_cents=expected + 5000)

        assert closed.expected_cash_cents == 12000
        assert closed.suprimento_total_cents == 5000
        assert closed.difference_cents == 5000

    def test_close_freezes_expected_totals(self, db_session, store, customer, make_product, payment_methods, cashier_user):
        day = cash_service.store_today(store.id)
        closing = cash_service.open_cash_drawer(store.id, day)
        product = make_product(quantity=10)
        self._today_sale(store, customer, product, payment_methods, 3000, "cash")
        self._today_sale(store, customer, product, payment_methods, 2000, "debit")
        self._today_sale(store, customer, product, payment_methods, 1500, "pix")
        finalize_sale(store.id, simple_cart(customer, product, unit_price_cents=700), PaymentPlan(credit_cents=700))
        cash_service.record_movement(store.id, "sangria", 1000, "Depósito", closing_id=closing.id)

        closed = cash_service.close_cash_drawer(
            closing.id,
            counted_cash_cents=2900,
            counted_card_cents=2000,
            counted_pix_cents=1500,
            notes="Faltou troco",
            user_id=cashier_user.id,
        )

        assert closed.status == "closed"
        assert (closed.expected_cash_cents, closed.expected_card_cents, closed.expected_pix_cents) == (3000, 2000, 1500)
        assert closed.expected_credit_cents == 700
        assert closed.sales_count == 4
        assert closed.sangria_total_cents == 1000
        assert closed.difference_cents == -100
        assert closed.closed_by_user_id == cashier_user.id
        assert closed.closed_at is not None

        # Later sales do not move a closed record
        self._today_sale(store, customer, product, payment_methods, 999, "cash")
        db_session.refresh(closed)
        assert closed.expected_cash_cents == 3000

    def test_second_close_fails(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id, DAY)
        cash_service.close_cash_drawer(closing.id, counted_cash_cents=100)
        with pytest.raises(AlreadyClosed):
            cash_service.close_cash_drawer(closing.id, counted_cash_cents=200)
        db_session.refresh(closing)
        assert closing.counted_cash_cents == 100

    def test_close_unknown_closing(self, db_session):
        with pytest.raises(NotOpen):
            cash_service.close_cash_drawer(999999, counted_cash_cents=0)

    def test_negative_count_rejected(self, db_session, store):
        closing = cash_service.open_cash_drawer(store.id, DAY)
        with pytest.raises(ValidationError):
            cash_service.close_cash_drawer(closing.id, counted_cash_cents=-1)
