"""
Credit Ledger (crediário)

WHY: Customers may leave part of a sale on account. The amount owed lives in
AccountReceivable rows; the credit position is always derived from them.

INVARIANTS:
- used credit = sum(amount - paid) over PENDING receivables
- available credit = credit_limit - used credit
- A credit sale is only accepted while the customer row is locked inside the
  transaction that also writes the receivable, so two concurrent sales cannot
  both spend the same available credit.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import func

from ..errors import InsufficientCredit, NotFound, PermissionDenied, ValidationError
from ..extensions import db
from ..models import AccountReceivable, CreditHistory, CreditPayment, Customer, PaymentMethod, Sale, User
from ..permissions import MANAGE_CREDIT, has_capability
from ..time_utils import utcnow
from .concurrency import atomic, begin_immediate, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event

logger = logging.getLogger(__name__)


# =============================================================================
# CREDIT POSITION
# =============================================================================

def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if not customer:
        raise NotFound("Customer not found", {"customer_id": customer_id})
    return customer


def get_used_credit(customer_id: int) -> int:
    """Outstanding balance over pending receivables, in cents."""
    used = (
        db.session.query(
            func.coalesce(func.sum(AccountReceivable.amount_cents - AccountReceivable.paid_cents), 0)
        )
        .filter(
            AccountReceivable.customer_id == customer_id,
            AccountReceivable.status == "pending",
        )
        .scalar()
    )
    return int(used or 0)


def get_available_credit(customer_id: int) -> int:
    customer = get_customer(customer_id)
    return customer.credit_limit_cents - get_used_credit(customer_id)


def get_credit_status(customer_id: int) -> dict:
    customer = get_customer(customer_id)
    used = get_used_credit(customer_id)
    return {
        "customer_id": customer.id,
        "credit_limit_cents": customer.credit_limit_cents,
        "used_credit_cents": used,
        "available_credit_cents": customer.credit_limit_cents - used,
    }


def reserve_credit(customer_id: int, amount_cents: int) -> Customer:
    """
    Lock the customer and check that `amount_cents` fits the available credit.

    Must run inside the caller's write transaction; the receivable that
    consumes the credit has to be written before that transaction commits.
    """
    customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
    if not customer:
        raise NotFound("Customer not found", {"customer_id": customer_id})
    if amount_cents <= 0:
        return customer

    available = customer.credit_limit_cents - get_used_credit(customer_id)
    if amount_cents > available:
        raise InsufficientCredit(
            "Customer credit limit exceeded",
            {
                "customer_id": customer_id,
                "requested_cents": amount_cents,
                "available_cents": available,
                "credit_limit_cents": customer.credit_limit_cents,
            },
        )
    return customer


# =============================================================================
# RECEIVABLES
# =============================================================================

def create_receivable(
    sale: Sale,
    customer_id: int,
    amount_cents: int,
    user_id: int | None = None,
    due_date: date | None = None,
) -> AccountReceivable:
    """Write the receivable for the credit portion of a sale (caller's transaction)."""
    if due_date is None:
        days = current_app.config.get("SALE_RECEIVABLE_DUE_DAYS", 30)
        due_date = sale.business_date + timedelta(days=days)

    receivable = AccountReceivable(
        store_id=sale.store_id,
        sale_id=sale.id,
        customer_id=customer_id,
        amount_cents=amount_cents,
        paid_cents=0,
        due_date=due_date,
        status="pending",
        created_by_user_id=user_id,
    )
    db.session.add(receivable)
    db.session.add(
        CreditHistory(
            customer_id=customer_id,
            action_type="purchase",
            new_value_cents=amount_cents,
            reference_type="sale",
            reference_id=sale.id,
            notes=f"Venda {sale.sale_number}",
            created_by_user_id=user_id,
        )
    )
    db.session.flush()
    return receivable


def void_receivables_for_sale(sale: Sale, user_id: int | None = None) -> list[AccountReceivable]:
    """
    Cancel every non-cancelled receivable of a sale.

    Paid or partially paid receivables are cancelled too; whatever the customer
    already paid is reported as a refund to settle outside this system.
    """
    receivables = (
        db.session.query(AccountReceivable)
        .filter(AccountReceivable.sale_id == sale.id, AccountReceivable.status != "cancelled")
        .all()
    )
    now = utcnow()
    for receivable in receivables:
        if receivable.paid_cents > 0:
            logger.warning(
                "receivable_refund_pending",
                extra={
                    "event": "receivable_refund_pending",
                    "sale_id": sale.id,
                    "receivable_id": receivable.id,
                    "customer_id": receivable.customer_id,
                    "paid_cents": receivable.paid_cents,
                },
            )
        db.session.add(
            CreditHistory(
                customer_id=receivable.customer_id,
                action_type="cancellation",
                old_value_cents=receivable.amount_cents - receivable.paid_cents,
                new_value_cents=0,
                reference_type="sale",
                reference_id=sale.id,
                notes=(
                    f"Venda {sale.sale_number} cancelada; valor pago a devolver: {receivable.paid_cents}"
                    if receivable.paid_cents > 0
                    else f"Venda {sale.sale_number} cancelada"
                ),
                created_by_user_id=user_id,
            )
        )
        receivable.status = "cancelled"
        receivable.cancelled_at = now
    db.session.flush()
    return receivables


def list_receivables(customer_id: int, status: str | None = None) -> list[AccountReceivable]:
    q = db.session.query(AccountReceivable).filter_by(customer_id=customer_id)
    if status:
        q = q.filter_by(status=status)
    return q.order_by(AccountReceivable.due_date.asc(), AccountReceivable.id.asc()).all()


# =============================================================================
# PAYMENTS AND LIMITS
# =============================================================================

def record_credit_payment(
    customer_id: int,
    amount_cents: int,
    user_id: int | None = None,
    payment_method_id: int | None = None,
    notes: str | None = None,
) -> CreditPayment:
    """
    Apply a customer payment to pending receivables, oldest due date first.

    A receivable whose balance reaches zero becomes `paid` with who/when.
    Paying more than the outstanding balance is rejected.
    """
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Payment amount must be greater than zero")

    def _op():
        with atomic("record_credit_payment", customer_id=customer_id, amount_cents=amount_cents):
            begin_immediate()
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer:
                raise NotFound("Customer not found", {"customer_id": customer_id})
            if payment_method_id is not None and not db.session.get(PaymentMethod, payment_method_id):
                raise NotFound("Payment method not found", {"payment_method_id": payment_method_id})

            pending = (
                lock_for_update(
                    db.session.query(AccountReceivable).filter_by(customer_id=customer_id, status="pending")
                )
                .order_by(AccountReceivable.due_date.asc(), AccountReceivable.id.asc())
                .all()
            )
            outstanding = sum(r.amount_cents - r.paid_cents for r in pending)
            if amount_cents > outstanding:
                raise ValidationError(
                    "Payment exceeds outstanding balance",
                    {"amount_cents": amount_cents, "outstanding_cents": outstanding},
                )

            now = utcnow()
            remaining = amount_cents
            for receivable in pending:
                if remaining <= 0:
                    break
                applied = min(remaining, receivable.amount_cents - receivable.paid_cents)
                receivable.paid_cents += applied
                remaining -= applied
                if receivable.paid_cents >= receivable.amount_cents:
                    receivable.status = "paid"
                    receivable.paid_at = now
                    receivable.paid_by_user_id = user_id

            payment = CreditPayment(
                customer_id=customer_id,
                amount_cents=amount_cents,
                payment_method_id=payment_method_id,
                notes=notes,
                created_by_user_id=user_id,
            )
            db.session.add(payment)
            db.session.flush()

            db.session.add(
                CreditHistory(
                    customer_id=customer_id,
                    action_type="payment",
                    old_value_cents=outstanding,
                    new_value_cents=outstanding - amount_cents,
                    reference_type="credit_payment",
                    reference_id=payment.id,
                    notes=notes,
                    created_by_user_id=user_id,
                )
            )
            for store_id in sorted({r.store_id for r in pending}):
                append_ledger_event(
                    store_id=store_id,
                    event_type="credit.payment",
                    event_category="credit",
                    entity_type="customer_credit_payment",
                    entity_id=payment.id,
                    actor_user_id=user_id,
                    payload={"customer_id": customer_id, "amount_cents": amount_cents},
                )

        logger.info(
            "credit_payment_recorded",
            extra={"event": "credit_payment_recorded", "customer_id": customer_id, "amount_cents": amount_cents},
        )
        return payment

    return run_with_retry(_op)


def set_credit_limit(customer_id: int, new_limit_cents: int, user: User, notes: str | None = None) -> Customer:
    """Change a customer's credit limit (admin only). Existing debt is untouched."""
    if not has_capability(user.role, MANAGE_CREDIT):
        raise PermissionDenied(
            "Only administrators can change credit limits",
            {"required_capability": MANAGE_CREDIT},
        )
    if new_limit_cents is None or new_limit_cents < 0:
        raise ValidationError("Credit limit cannot be negative")

    def _op():
        with atomic("set_credit_limit", customer_id=customer_id):
            customer = lock_for_update(db.session.query(Customer).filter_by(id=customer_id)).first()
            if not customer:
                raise NotFound("Customer not found", {"customer_id": customer_id})
            old_limit = customer.credit_limit_cents
            customer.credit_limit_cents = new_limit_cents
            db.session.add(
                CreditHistory(
                    customer_id=customer_id,
                    action_type="limit_change",
                    old_value_cents=old_limit,
                    new_value_cents=new_limit_cents,
                    notes=notes,
                    created_by_user_id=user.id,
                )
            )
        return customer

    return run_with_retry(_op)


def get_credit_history(customer_id: int, limit: int = 100) -> list[CreditHistory]:
    get_customer(customer_id)
    return (
        db.session.query(CreditHistory)
        .filter_by(customer_id=customer_id)
        .order_by(CreditHistory.id.desc())
        .limit(max(1, min(limit, 500)))
        .all()
    )
