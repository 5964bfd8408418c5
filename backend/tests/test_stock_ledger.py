# Overview: Pytest coverage for the stock ledger.

import pytest

from pdv.errors import InsufficientStock, NotFound, ReasonRequired, ValidationError
from pdv.extensions import db
from pdv.models import LedgerEvent, ProductStock, StockMovement
from pdv.services import stock_service


def _adjust(product, store, delta, reference_type="adjustment", **kwargs):
    result = stock_service.adjust_stock(
        product_id=product.id, store_id=store.id, delta=delta, reference_type=reference_type, **kwargs
    )
    db.session.commit()
    return result


class TestAdjustStock:
    def test_entry_and_exit_movements(self, db_session, store, product):
        entry = _adjust(product, store, 5)
        exit_ = _adjust(product, store, -3)

        assert entry.movement.movement_type == "entry"
        assert entry.movement.quantity == 5
        assert exit_.movement.movement_type == "exit"
        assert exit_.movement.quantity == 3
        assert stock_service.get_stock_quantity(product.id, store.id) == 12

    def test_first_movement_creates_stock_row(self, db_session, store, make_product):
        product = make_product(quantity=0)
        assert db_session.query(ProductStock).filter_by(product_id=product.id).count() == 0

        result = _adjust(product, store, 4, reference_type="receipt")

        assert result.quantity == 4
        assert db_session.query(ProductStock).filter_by(product_id=product.id, store_id=store.id).one().quantity == 4

    def test_zero_delta_rejected(self, db_session, store, product):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product_id=product.id, store_id=store.id, delta=0, reference_type="adjustment")

    def test_unknown_reference_type_rejected(self, db_session, store, product):
        with pytest.raises(ValidationError):
            stock_service.adjust_stock(product_id=product.id, store_id=store.id, delta=1, reference_type="magic")

    def test_oversell_rejected_by_default(self, db_session, store, product):
        with pytest.raises(InsufficientStock) as exc:
            stock_service.adjust_stock(product_id=product.id, store_id=store.id, delta=-11, reference_type="sale")
        db.session.rollback()

        assert exc.value.details["available"] == 10
        assert stock_service.get_stock_quantity(product.id, store.id) == 10

    def test_exit_without_stock_row_rejected(self, db_session, store, make_product):
        product = make_product(quantity=0)
        with pytest.raises(InsufficientStock):
            stock_service.adjust_stock(product_id=product.id, store_id=store.id, delta=-1, reference_type="sale")

    def test_negative_allowed_when_store_opts_in(self, db_session, store, product, caplog):
        store.allow_negative_stock = True
        db_session.commit()

        result = _adjust(product, store, -12, reference_type="sale")

        assert result.quantity == -2
        assert any(r.getMessage() == "stock_negative" for r in caplog.records)
        assert stock_service.list_low_stock(store.id)[0].product_id == product.id

    def test_stock_is_per_store(self, db_session, store, other_store, product):
        _adjust(product, other_store, 3)
        assert stock_service.get_stock_quantity(product.id, store.id) == 10
        assert stock_service.get_stock_quantity(product.id, other_store.id) == 3


class TestReplay:
    def test_quantity_equals_replay(self, db_session, store, product):
        for delta in (5, -2, -7, 4):
            _adjust(product, store, delta)
        assert stock_service.get_stock_quantity(product.id, store.id) == 10
        assert stock_service.replay_quantity(product.id, store.id) == 10
        assert stock_service.verify_stock(store.id) == []

    def test_verify_reports_tampered_cache(self, db_session, store, product):
        row = db_session.query(ProductStock).filter_by(product_id=product.id, store_id=store.id).one()
        row.quantity = 99
        db_session.commit()

        mismatches = stock_service.verify_stock(store.id)

        assert mismatches == [{"product_id": product.id, "store_id": store.id, "quantity": 99, "replayed": 10}]


class TestManualAdjustment:
    def test_requires_reason(self, db_session, store, product):
        with pytest.raises(ReasonRequired):
            stock_service.adjust_stock_manually(product_id=product.id, store_id=store.id, delta=-1, reason="  ")

    def test_unknown_product(self, db_session, store):
        with pytest.raises(NotFound):
            stock_service.adjust_stock_manually(product_id=424242, store_id=store.id, delta=1, reason="Contagem")

    def test_commits_movement_and_ledger_event(self, db_session, store, product, operator_user):
        result = stock_service.adjust_stock_manually(
            product_id=product.id, store_id=store.id, delta=-2, reason="Avaria", user_id=operator_user.id
        )

        assert result.quantity == 8
        movement = db_session.get(StockMovement, result.movement.id)
        assert movement.reference_type == "adjustment"
        assert movement.notes == "Avaria"
        event = db_session.query(LedgerEvent).filter_by(event_type="stock.adjusted").one()
        assert event.entity_id == movement.id


class TestLimits:
    def test_set_and_list_low_stock(self, db_session, store, product):
        stock_service.set_stock_limits(product.id, store.id, min_quantity=15, max_quantity=40)
        low = stock_service.list_low_stock(store.id)
        assert [r.product_id for r in low] == [product.id]
        assert stock_service.get_stock_quantity(product.id, store.id) == 10

    def test_invalid_limits(self, db_session, store, product):
        with pytest.raises(ValidationError):
            stock_service.set_stock_limits(product.id, store.id, min_quantity=10, max_quantity=5)
