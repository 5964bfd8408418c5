# Overview: Pytest coverage for stock receipts and markup.

import pytest

from pdv.errors import InsufficientStock, ReasonRequired, StateConflict, ValidationError
from pdv.models import ProductPricing, StockReceiptLine
from pdv.services import receipt_service, stock_service
from pdv.services.receipt_service import ReceiptLineInput, markup_bps


class TestMarkup:
    @pytest.mark.parametrize("cost,sale,expected", [
        (500, 900, 8000),
        (300, 400, 3333),
        (600, 700, 1667),
        (1000, 800, -2000),
        (0, 900, 0),
    ])
    def test_markup_basis_points(self, cost, sale, expected):
        assert markup_bps(cost, sale) == expected


class TestReceiveStock:
    def test_receipt_adds_stock_and_sets_price(self, db_session, store, make_product, operator_user):
        product = make_product(quantity=0)

        receipt = receipt_service.receive_stock(
            store.id,
            [ReceiptLineInput(product_id=product.id, quantity=12, cost_cents=500, sale_price_cents=900)],
            user_id=operator_user.id,
            supplier_name="Distribuidora X",
            invoice_number="NF-123",
        )

        assert receipt.receipt_number == "LJ1-ENT-000001"
        assert receipt.total_cost_cents == 6000
        assert stock_service.get_stock_quantity(product.id, store.id) == 12
        pricing = receipt_service.get_current_pricing(product.id, store.id)
        assert (pricing.cost_cents, pricing.sale_price_cents, pricing.markup_bps) == (500, 900, 8000)
        assert pricing.receipt_id == receipt.id

    def test_second_receipt_keeps_price_history(self, db_session, store, product):
        line = ReceiptLineInput(product_id=product.id, quantity=1, cost_cents=500, sale_price_cents=900)
        receipt_service.receive_stock(store.id, [line])
        second = receipt_service.receive_stock(
            store.id, [ReceiptLineInput(product_id=product.id, quantity=1, cost_cents=550, sale_price_cents=990)]
        )

        rows = db_session.query(ProductPricing).filter_by(product_id=product.id, store_id=store.id).all()
        assert sorted(r.is_current for r in rows) == [False, True]
        receipt_line = db_session.query(StockReceiptLine).filter_by(receipt_id=second.id).one()
        assert (receipt_line.old_cost_cents, receipt_line.new_cost_cents) == (500, 550)
        assert second.receipt_number == "LJ1-ENT-000002"

    def test_empty_receipt_rejected(self, db_session, store):
        with pytest.raises(ValidationError):
            receipt_service.receive_stock(store.id, [])

    def test_inactive_product_rejected(self, db_session, store, product):
        product.is_active = False
        db_session.commit()
        with pytest.raises(ValidationError):
            receipt_service.receive_stock(
                store.id, [ReceiptLineInput(product_id=product.id, quantity=1, cost_cents=1, sale_price_cents=2)]
            )
        assert stock_service.get_stock_quantity(product.id, store.id) == 10


class TestCancelReceipt:
    def test_cancel_takes_stock_back_and_keeps_price(self, db_session, store, product):
        receipt = receipt_service.receive_stock(
            store.id, [ReceiptLineInput(product_id=product.id, quantity=5, cost_cents=500, sale_price_cents=900)]
        )

        cancelled = receipt_service.cancel_receipt(receipt.id, None, "Nota errada")

        assert cancelled.status == "cancelled"
        assert cancelled.cancellation_reason == "Nota errada"
        assert stock_service.get_stock_quantity(product.id, store.id) == 10
        assert receipt_service.get_current_pricing(product.id, store.id).sale_price_cents == 900
        assert stock_service.verify_stock(store.id) == []

    def test_cancel_requires_reason(self, db_session, store, product):
        receipt = receipt_service.receive_stock(
            store.id, [ReceiptLineInput(product_id=product.id, quantity=1, cost_cents=1, sale_price_cents=2)]
        )
        with pytest.raises(ReasonRequired):
            receipt_service.cancel_receipt(receipt.id, None, "")

    def test_cancel_twice(self, db_session, store, product):
        receipt = receipt_service.receive_stock(
            store.id, [ReceiptLineInput(product_id=product.id, quantity=1, cost_cents=1, sale_price_cents=2)]
        )
        receipt_service.cancel_receipt(receipt.id, None, "Erro")
        with pytest.raises(StateConflict):
            receipt_service.cancel_receipt(receipt.id, None, "Erro")
        assert stock_service.get_stock_quantity(product.id, store.id) == 10

    def test_cancel_blocked_when_goods_already_sold(self, db_session, store, make_product):
        product = make_product(quantity=0)
        receipt = receipt_service.receive_stock(
            store.id, [ReceiptLineInput(product_id=product.id, quantity=2, cost_cents=1, sale_price_cents=2)]
        )
        stock_service.adjust_stock_manually(product_id=product.id, store_id=store.id, delta=-1, reason="Avaria")

        with pytest.raises(InsufficientStock):
            receipt_service.cancel_receipt(receipt.id, None, "Erro")
        assert receipt_service.get_receipt(receipt.id).status == "active"
