"""
Sale finalization and cancellation

WHY: A sale touches the sale number sequence, stock, the customer's credit
and the receivables. Either all of it is committed or none of it is.

DESIGN:
- finalize_sale runs validation first (nothing written), then every effect in
  ONE database transaction. On SQLite the write lock is taken up front
  (BEGIN IMMEDIATE); elsewhere the contended rows are locked FOR UPDATE.
- A client-supplied idempotency key makes a retried finalize return the sale
  that was already committed instead of selling twice. The sale stores a
  fingerprint of the request; the same key with a different request is an
  IdempotencyConflict.
- cancel_sale reverses stock movements and voids receivables in one
  transaction; a second cancel hits AlreadyCancelled and changes nothing.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass, field
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyCancelled, IdempotencyConflict, NotFound, ReasonRequired, ValidationError
from ..extensions import db
from ..models import (
    Customer,
    CustomerDeliveryAddress,
    PaymentMethod,
    Product,
    Sale,
    SaleItem,
    SalePayment,
    StockMovement,
    Store,
)
from ..pricing import Cart, CartTotals, MONEY_EPSILON_CENTS, amounts_match, price_cart
from ..time_utils import local_business_date, utcnow
from . import credit_service
from .concurrency import atomic, begin_immediate, lock_for_update, run_with_retry
from .document_service import next_sale_number
from .ledger_service import append_ledger_event
from .stock_service import adjust_stock

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Tender:
    payment_method_id: int
    amount_cents: int
    installments: int = 1


@dataclass(frozen=True)
class PaymentPlan:
    """
    How a cart is paid: zero or more tenders plus an optional amount left on
    the customer's credit (crediário).
    """

    tenders: tuple[Tender, ...] = ()
    credit_cents: int = 0
    credit_installments: int = 1

    @property
    def amount_paid_cents(self) -> int:
        return sum(t.amount_cents for t in self.tenders)


PICKUP = "pickup"
DELIVERY = "delivery"
DELIVERY_TYPES = (PICKUP, DELIVERY)


@dataclass(frozen=True)
class Delivery:
    """How the goods leave the store. A delivery needs one of the customer's addresses."""

    delivery_type: str = PICKUP
    address_id: int | None = None
    delivery_date: date | None = None


PICKUP_NOW = Delivery()


@dataclass
class _ValidatedSale:
    totals: CartTotals
    methods: dict[int, PaymentMethod] = field(default_factory=dict)
    credit_method: PaymentMethod | None = None


# =============================================================================
# VALIDATION (no writes)
# =============================================================================

def _check_installments(method: PaymentMethod | None, installments: int) -> None:
    if installments < 1:
        raise ValidationError("Installments must be at least 1")
    if installments == 1:
        return
    if method is None or not method.allow_installments:
        raise ValidationError(
            "Payment method does not allow installments",
            {"payment_method_id": method.id if method else None},
        )
    if installments > method.max_installments:
        raise ValidationError(
            "Too many installments for payment method",
            {"payment_method_id": method.id, "max_installments": method.max_installments},
        )


def _validate_delivery(customer_id: int, delivery: Delivery) -> None:
    if delivery.delivery_type not in DELIVERY_TYPES:
        raise ValidationError("Unknown delivery type", {"delivery_type": delivery.delivery_type})
    if delivery.delivery_type == PICKUP:
        if delivery.address_id is not None:
            raise ValidationError("A pickup sale does not take a delivery address")
        return
    if delivery.address_id is None:
        raise ValidationError("A delivery address must be selected")
    address = db.session.get(CustomerDeliveryAddress, delivery.address_id)
    if not address or not address.is_active or address.customer_id != customer_id:
        raise ValidationError(
            "Delivery address not found for this customer",
            {"address_id": delivery.address_id, "customer_id": customer_id},
        )


def validate_sale(
    store_id: int,
    cart: Cart,
    payment: PaymentPlan,
    delivery: Delivery = PICKUP_NOW,
) -> _ValidatedSale:
    store = db.session.get(Store, store_id)
    if not store or not store.is_active:
        raise NotFound("Store not found", {"store_id": store_id})
    if not cart.lines:
        raise ValidationError("Cart is empty")
    if cart.customer_id is None:
        raise ValidationError("A customer must be selected")
    customer = db.session.get(Customer, cart.customer_id)
    if not customer or not customer.is_active:
        raise ValidationError("Customer not found or inactive", {"customer_id": cart.customer_id})

    for line in cart.lines:
        product = db.session.get(Product, line.product_id)
        if not product or not product.is_active:
            raise ValidationError("Product not found or inactive", {"product_id": line.product_id})

    _validate_delivery(cart.customer_id, delivery)

    if not payment.tenders and payment.credit_cents <= 0:
        raise ValidationError("A payment method must be selected")
    if payment.credit_cents < 0:
        raise ValidationError("Credit amount cannot be negative")

    validated = _ValidatedSale(totals=price_cart(cart))
    # A fully discounted cart is settled with exactly one zero-amount tender
    zero_total = validated.totals.total_cents == 0 and len(payment.tenders) == 1

    for tender in payment.tenders:
        if tender.amount_cents < 0 or (tender.amount_cents == 0 and not zero_total):
            raise ValidationError("Tender amount must be greater than zero", {"payment_method_id": tender.payment_method_id})
        method = db.session.get(PaymentMethod, tender.payment_method_id)
        if not method or not method.is_active:
            raise ValidationError("Payment method not found or inactive", {"payment_method_id": tender.payment_method_id})
        if method.tender_category == "STORE_CREDIT":
            raise ValidationError("Store credit is taken through the credit amount, not as a tender")
        _check_installments(method, tender.installments)
        validated.methods[method.id] = method

    if payment.credit_cents > 0:
        validated.credit_method = (
            db.session.query(PaymentMethod)
            .filter_by(tender_category="STORE_CREDIT", is_active=True)
            .order_by(PaymentMethod.id)
            .first()
        )
        _check_installments(validated.credit_method, payment.credit_installments)

    total = validated.totals.total_cents
    covered = payment.amount_paid_cents + payment.credit_cents
    if not amounts_match(covered, total):
        raise ValidationError(
            "Payment does not match sale total" if covered > total else "Payment does not cover sale total",
            {
                "total_cents": total,
                "amount_paid_cents": payment.amount_paid_cents,
                "credit_cents": payment.credit_cents,
                "epsilon_cents": MONEY_EPSILON_CENTS,
            },
        )
    return validated


# =============================================================================
# FINALIZE
# =============================================================================

def request_fingerprint(store_id: int, cart: Cart, payment: PaymentPlan, delivery: Delivery = PICKUP_NOW) -> str:
    """sha256 over the fields that decide what a finalize writes."""
    canonical = {
        "store_id": store_id,
        "customer_id": cart.customer_id,
        "lines": [
            [line.product_id, line.quantity, line.unit_price_cents, line.discount.kind, line.discount.value]
            for line in cart.lines
        ],
        "discount": [cart.discount.kind, cart.discount.value],
        "tenders": [[t.payment_method_id, t.amount_cents, t.installments] for t in payment.tenders],
        "credit": [payment.credit_cents, payment.credit_installments],
        "delivery": [
            delivery.delivery_type,
            delivery.address_id,
            delivery.delivery_date.isoformat() if delivery.delivery_date else None,
        ],
    }
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


def find_by_idempotency_key(store_id: int, idempotency_key: str | None) -> Sale | None:
    if not idempotency_key:
        return None
    return db.session.query(Sale).filter_by(store_id=store_id, idempotency_key=idempotency_key).first()


def find_replay(store_id: int, idempotency_key: str | None, request_hash: str) -> Sale | None:
    """
    The committed sale for `idempotency_key`, or None when the key is new.

    Raises IdempotencyConflict when the key was used for a different request.
    """
    existing = find_by_idempotency_key(store_id, idempotency_key)
    if existing and existing.request_hash and existing.request_hash != request_hash:
        raise IdempotencyConflict(
            "Idempotency key was already used for a different sale",
            {"idempotency_key": idempotency_key, "sale_id": existing.id},
        )
    return existing


def _write_sale(
    store: Store,
    cart: Cart,
    payment: PaymentPlan,
    validated: _ValidatedSale,
    user_id: int | None,
    idempotency_key: str | None,
    notes: str | None,
    delivery: Delivery,
    request_hash: str,
) -> Sale:
    totals = validated.totals

    sale_number = next_sale_number(store.id)

    if payment.credit_cents > 0:
        credit_service.reserve_credit(cart.customer_id, payment.credit_cents)

    installments = max(
        [t.installments for t in payment.tenders] + ([payment.credit_installments] if payment.credit_cents else [1])
    )
    sale = Sale(
        store_id=store.id,
        customer_id=cart.customer_id,
        sale_number=sale_number,
        idempotency_key=idempotency_key,
        request_hash=request_hash,
        subtotal_cents=totals.subtotal_cents,
        discount_type=totals.discount.kind if totals.discount.value else None,
        discount_value=totals.discount.value if totals.discount.value else None,
        discount_cents=totals.discount_cents,
        total_cents=totals.total_cents,
        amount_paid_cents=payment.amount_paid_cents,
        amount_credit_cents=payment.credit_cents,
        payment_status="credit" if payment.credit_cents > 0 else "paid",
        payment_method_id=payment.tenders[0].payment_method_id if payment.tenders else (
            validated.credit_method.id if validated.credit_method else None
        ),
        installments=installments,
        status="completed",
        business_date=local_business_date(
            utcnow(), store.timezone, current_app.config.get("DEFAULT_STORE_TIMEZONE", "UTC")
        ),
        notes=notes,
        delivery_type=delivery.delivery_type,
        delivery_address_id=delivery.address_id,
        delivery_date=delivery.delivery_date,
        created_by_user_id=user_id,
    )
    db.session.add(sale)
    db.session.flush()

    for priced in totals.lines:
        line = priced.line
        db.session.add(
            SaleItem(
                sale_id=sale.id,
                product_id=line.product_id,
                quantity=line.quantity,
                unit_price_cents=line.unit_price_cents,
                discount_type=line.discount.kind if line.discount.value else None,
                discount_value=line.discount.value if line.discount.value else None,
                discount_cents=priced.discount_cents,
                total_cents=priced.total_cents,
            )
        )

    for tender in payment.tenders:
        db.session.add(
            SalePayment(
                sale_id=sale.id,
                payment_method_id=tender.payment_method_id,
                amount_cents=tender.amount_cents,
                installments=tender.installments,
                is_credit=False,
            )
        )
    if payment.credit_cents > 0:
        db.session.add(
            SalePayment(
                sale_id=sale.id,
                payment_method_id=validated.credit_method.id if validated.credit_method else None,
                amount_cents=payment.credit_cents,
                installments=payment.credit_installments,
                is_credit=True,
            )
        )

    for line in cart.lines:
        adjust_stock(
            product_id=line.product_id,
            store_id=store.id,
            delta=-line.quantity,
            reference_type="sale",
            reference_id=sale.id,
            user_id=user_id,
            unit_price_cents=line.unit_price_cents,
            notes=f"Venda {sale_number}",
            allow_negative=bool(store.allow_negative_stock),
        )

    if payment.credit_cents > 0:
        credit_service.create_receivable(sale, cart.customer_id, payment.credit_cents, user_id)

    append_ledger_event(
        store_id=store.id,
        event_type="sale.finalized",
        event_category="sales",
        entity_type="sale",
        entity_id=sale.id,
        actor_user_id=user_id,
        sale_id=sale.id,
        payload={
            "sale_number": sale_number,
            "total_cents": totals.total_cents,
            "credit_cents": payment.credit_cents,
        },
    )
    return sale


def finalize_sale(
    store_id: int,
    cart: Cart,
    payment: PaymentPlan,
    user_id: int | None = None,
    idempotency_key: str | None = None,
    notes: str | None = None,
    delivery: Delivery = PICKUP_NOW,
) -> Sale:
    """
    Turn a priced cart into a committed sale with all of its effects.

    Raises ValidationError before anything is written, InsufficientCredit or
    InsufficientStock when a business rule fails (nothing is written), and
    ConcurrencyConflict when lock contention outlasts the retry budget.
    Returns the already-committed sale when `idempotency_key` was seen before
    with the same request; a different request under that key raises
    IdempotencyConflict.
    """
    request_hash = request_fingerprint(store_id, cart, payment, delivery)
    existing = find_replay(store_id, idempotency_key, request_hash)
    if existing:
        return existing

    validated = validate_sale(store_id, cart, payment, delivery)

    def _op() -> Sale:
        try:
            with atomic("finalize_sale", store_id=store_id, idempotency_key=idempotency_key, user_id=user_id):
                begin_immediate()
                store = lock_for_update(db.session.query(Store).filter_by(id=store_id)).first()
                if not store:
                    raise NotFound("Store not found", {"store_id": store_id})
                replay = find_replay(store_id, idempotency_key, request_hash)
                if replay:
                    return replay
                sale = _write_sale(
                    store, cart, payment, validated, user_id, idempotency_key, notes, delivery, request_hash
                )
        except IntegrityError:
            # A concurrent request with the same key committed first
            replay = find_replay(store_id, idempotency_key, request_hash)
            if replay:
                return replay
            raise

        logger.info(
            "sale_finalized",
            extra={
                "event": "sale_finalized",
                "store_id": store_id,
                "sale_id": sale.id,
                "sale_number": sale.sale_number,
                "total_cents": sale.total_cents,
            },
        )
        return sale

    return run_with_retry(_op)


# =============================================================================
# CANCEL
# =============================================================================

def cancel_sale(sale_id: int, user_id: int | None, reason: str) -> Sale:
    """
    Cancel a completed sale: give the stock back, void its receivables.

    Each `sale` exit movement gets a matching `sale_cancellation` entry, so
    stock returns exactly to where it was before the sale.
    """
    if not reason or not reason.strip():
        raise ReasonRequired("A cancellation reason is required")
    reason = reason.strip()

    def _op() -> Sale:
        with atomic("cancel_sale", sale_id=sale_id, user_id=user_id):
            begin_immediate()
            sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
            if not sale:
                raise NotFound("Sale not found", {"sale_id": sale_id})
            if sale.status == "cancelled":
                raise AlreadyCancelled("Sale already cancelled", {"sale_id": sale_id, "sale_number": sale.sale_number})

            exits = (
                db.session.query(StockMovement)
                .filter_by(reference_type="sale", reference_id=sale.id, movement_type="exit")
                .order_by(StockMovement.id)
                .all()
            )
            for movement in exits:
                adjust_stock(
                    product_id=movement.product_id,
                    store_id=movement.store_id,
                    delta=movement.quantity,
                    reference_type="sale_cancellation",
                    reference_id=sale.id,
                    user_id=user_id,
                    unit_price_cents=movement.unit_price_cents,
                    notes=f"Cancelamento da venda: {reason}",
                )

            sale.status = "cancelled"
            sale.cancelled_by_user_id = user_id
            sale.cancelled_at = utcnow()
            sale.cancellation_reason = reason

            credit_service.void_receivables_for_sale(sale, user_id)

            append_ledger_event(
                store_id=sale.store_id,
                event_type="sale.cancelled",
                event_category="sales",
                entity_type="sale",
                entity_id=sale.id,
                actor_user_id=user_id,
                sale_id=sale.id,
                note=reason,
            )

        logger.info(
            "sale_cancelled",
            extra={"event": "sale_cancelled", "sale_id": sale_id, "user_id": user_id},
        )
        return sale

    return run_with_retry(_op)


# =============================================================================
# READS
# =============================================================================

def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if not sale:
        raise NotFound("Sale not found", {"sale_id": sale_id})
    return sale


def list_sales(store_id: int, business_date: date | None = None, status: str | None = None, limit: int = 100) -> list[Sale]:
    q = db.session.query(Sale).filter(Sale.store_id == store_id)
    if business_date is not None:
        q = q.filter(Sale.business_date == business_date)
    if status:
        q = q.filter(Sale.status == status)
    return q.order_by(Sale.id.desc()).limit(max(1, min(limit, 500))).all()
