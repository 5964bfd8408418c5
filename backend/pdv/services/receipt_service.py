"""
Stock receipts (entrada de mercadoria)

Receiving goods adds stock through the stock ledger and resets the store's
current cost/sale price for each product. Cancelling a receipt takes the
quantities back out; prices set by the receipt stay in place.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from ..errors import NotFound, ReasonRequired, StateConflict, ValidationError
from ..extensions import db
from ..models import Product, ProductPricing, StockReceipt, StockReceiptLine, Store
from ..time_utils import utcnow
from .concurrency import atomic, begin_immediate, lock_for_update, run_with_retry
from .document_service import next_receipt_number
from .ledger_service import append_ledger_event
from .stock_service import adjust_stock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiptLineInput:
    product_id: int
    quantity: int
    cost_cents: int
    sale_price_cents: int


def markup_bps(cost_cents: int, sale_price_cents: int) -> int:
    """(sale - cost) / cost in basis points, half-up; 0 when cost is 0."""
    if not cost_cents:
        return 0
    value = Decimal(sale_price_cents - cost_cents) * Decimal(10000) / Decimal(cost_cents)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def get_current_pricing(product_id: int, store_id: int) -> ProductPricing | None:
    return (
        db.session.query(ProductPricing)
        .filter_by(product_id=product_id, store_id=store_id, is_current=True)
        .order_by(ProductPricing.id.desc())
        .first()
    )


def set_current_pricing(
    product_id: int,
    store_id: int,
    cost_cents: int,
    sale_price_cents: int,
    receipt_id: int | None = None,
) -> ProductPricing:
    """Close the current price row and open a new one (caller's transaction)."""
    now = utcnow()
    for row in db.session.query(ProductPricing).filter_by(product_id=product_id, store_id=store_id, is_current=True):
        row.is_current = False
        row.valid_until = now

    pricing = ProductPricing(
        product_id=product_id,
        store_id=store_id,
        cost_cents=cost_cents,
        sale_price_cents=sale_price_cents,
        markup_bps=markup_bps(cost_cents, sale_price_cents),
        is_current=True,
        valid_from=now,
        receipt_id=receipt_id,
    )
    db.session.add(pricing)
    db.session.flush()
    return pricing


def _validate_lines(lines: list[ReceiptLineInput]) -> None:
    if not lines:
        raise ValidationError("A stock receipt needs at least one line")
    for line in lines:
        if line.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", {"product_id": line.product_id})
        if line.cost_cents < 0 or line.sale_price_cents < 0:
            raise ValidationError("Prices cannot be negative", {"product_id": line.product_id})


def receive_stock(
    store_id: int,
    lines: list[ReceiptLineInput],
    user_id: int | None = None,
    supplier_name: str | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
) -> StockReceipt:
    _validate_lines(lines)

    def _op():
        with atomic("receive_stock", store_id=store_id):
            begin_immediate()
            if not db.session.get(Store, store_id):
                raise NotFound("Store not found", {"store_id": store_id})
            for line in lines:
                product = db.session.get(Product, line.product_id)
                if not product or not product.is_active:
                    raise ValidationError("Product not found or inactive", {"product_id": line.product_id})

            receipt = StockReceipt(
                store_id=store_id,
                receipt_number=next_receipt_number(store_id),
                supplier_name=supplier_name,
                invoice_number=invoice_number,
                notes=notes,
                status="active",
                total_cost_cents=sum(line.quantity * line.cost_cents for line in lines),
                created_by_user_id=user_id,
            )
            db.session.add(receipt)
            db.session.flush()

            for line in lines:
                current = get_current_pricing(line.product_id, store_id)
                db.session.add(
                    StockReceiptLine(
                        receipt_id=receipt.id,
                        product_id=line.product_id,
                        quantity=line.quantity,
                        old_cost_cents=current.cost_cents if current else None,
                        old_sale_price_cents=current.sale_price_cents if current else None,
                        new_cost_cents=line.cost_cents,
                        new_sale_price_cents=line.sale_price_cents,
                        markup_bps=markup_bps(line.cost_cents, line.sale_price_cents),
                    )
                )
                adjust_stock(
                    product_id=line.product_id,
                    store_id=store_id,
                    delta=line.quantity,
                    reference_type="receipt",
                    reference_id=receipt.id,
                    user_id=user_id,
                    unit_cost_cents=line.cost_cents,
                    notes=f"Entrada {receipt.receipt_number}",
                )
                set_current_pricing(line.product_id, store_id, line.cost_cents, line.sale_price_cents, receipt.id)

            append_ledger_event(
                store_id=store_id,
                event_type="stock.received",
                event_category="stock",
                entity_type="stock_receipt",
                entity_id=receipt.id,
                actor_user_id=user_id,
                payload={"receipt_number": receipt.receipt_number, "lines": len(lines)},
            )

        logger.info(
            "stock_received",
            extra={"event": "stock_received", "store_id": store_id, "receipt_id": receipt.id},
        )
        return receipt

    return run_with_retry(_op)


def cancel_receipt(receipt_id: int, user_id: int | None, reason: str) -> StockReceipt:
    if not reason or not reason.strip():
        raise ReasonRequired("A cancellation reason is required")

    def _op():
        with atomic("cancel_receipt", receipt_id=receipt_id):
            begin_immediate()
            receipt = lock_for_update(db.session.query(StockReceipt).filter_by(id=receipt_id)).first()
            if not receipt:
                raise NotFound("Stock receipt not found", {"receipt_id": receipt_id})
            if receipt.status == "cancelled":
                raise StateConflict("Stock receipt already cancelled", {"receipt_id": receipt_id})

            for line in receipt.lines:
                adjust_stock(
                    product_id=line.product_id,
                    store_id=receipt.store_id,
                    delta=-line.quantity,
                    reference_type="receipt_cancellation",
                    reference_id=receipt.id,
                    user_id=user_id,
                    unit_cost_cents=line.new_cost_cents,
                    notes=f"Cancelamento da entrada {receipt.receipt_number}: {reason.strip()}",
                )

            receipt.status = "cancelled"
            receipt.cancelled_by_user_id = user_id
            receipt.cancelled_at = utcnow()
            receipt.cancellation_reason = reason.strip()

            append_ledger_event(
                store_id=receipt.store_id,
                event_type="stock.receipt_cancelled",
                event_category="stock",
                entity_type="stock_receipt",
                entity_id=receipt.id,
                actor_user_id=user_id,
                note=reason.strip(),
            )
        return receipt

    return run_with_retry(_op)


def get_receipt(receipt_id: int) -> StockReceipt:
    receipt = db.session.get(StockReceipt, receipt_id)
    if not receipt:
        raise NotFound("Stock receipt not found", {"receipt_id": receipt_id})
    return receipt
