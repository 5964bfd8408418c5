"""
Cash Drawer (caixa) state machine

WHY: Each store reconciles its drawer once per calendar day.

STATES (keyed by store + closing_date):
    not started --open--> open --close--> closed
- open twice        -> AlreadyOpen (also when two opens race: unique key)
- movement / close without an open closing -> NotOpen
- anything on a closed closing -> AlreadyClosed
- close freezes the day's expected totals; difference = counted cash - expected cash
"""

from __future__ import annotations

import logging
from datetime import date

from flask import current_app
from sqlalchemy.exc import IntegrityError

from ..errors import AlreadyClosed, AlreadyOpen, NotFound, NotOpen, ValidationError
from ..extensions import db
from ..models import CashClosing, CashMovement, Store
from ..time_utils import local_business_date, utcnow
from .concurrency import atomic, begin_immediate, lock_for_update, run_with_retry
from .ledger_service import append_ledger_event
from .reconciliation_service import summarize_day, summarize_movements

logger = logging.getLogger(__name__)

MOVEMENT_TYPES = ("sangria", "suprimento")


def store_today(store_id: int) -> date:
    """Current calendar day on the store's clock."""
    store = db.session.get(Store, store_id)
    if not store:
        raise NotFound("Store not found", {"store_id": store_id})
    return local_business_date(utcnow(), store.timezone, current_app.config.get("DEFAULT_STORE_TIMEZONE", "UTC"))


def get_closing(closing_id: int) -> CashClosing:
    closing = db.session.get(CashClosing, closing_id)
    if not closing:
        raise NotFound("Cash closing not found", {"closing_id": closing_id})
    return closing


def get_closing_for_day(store_id: int, closing_date: date) -> CashClosing | None:
    return db.session.query(CashClosing).filter_by(store_id=store_id, closing_date=closing_date).first()


# =============================================================================
# OPEN
# =============================================================================

def open_cash_drawer(store_id: int, closing_date: date | None = None, user_id: int | None = None) -> CashClosing:
    if closing_date is None:
        closing_date = store_today(store_id)

    def _op():
        try:
            with atomic("open_cash_drawer", store_id=store_id, closing_date=str(closing_date)):
                begin_immediate()
                if not db.session.get(Store, store_id):
                    raise NotFound("Store not found", {"store_id": store_id})
                existing = get_closing_for_day(store_id, closing_date)
                if existing:
                    raise AlreadyOpen(
                        "Cash drawer already opened for this date",
                        {"store_id": store_id, "closing_date": closing_date.isoformat(), "status": existing.status},
                    )
                closing = CashClosing(
                    store_id=store_id,
                    closing_date=closing_date,
                    status="open",
                    opened_by_user_id=user_id,
                    opened_at=utcnow(),
                )
                db.session.add(closing)
                db.session.flush()
                append_ledger_event(
                    store_id=store_id,
                    event_type="cash.opened",
                    event_category="cash",
                    entity_type="cash_closing",
                    entity_id=closing.id,
                    actor_user_id=user_id,
                    cash_closing_id=closing.id,
                )
        except IntegrityError as exc:
            raise AlreadyOpen(
                "Cash drawer already opened for this date",
                {"store_id": store_id, "closing_date": closing_date.isoformat()},
            ) from exc

        logger.info(
            "cash_drawer_opened",
            extra={"event": "cash_drawer_opened", "store_id": store_id, "closing_id": closing.id},
        )
        return closing

    return run_with_retry(_op)


# =============================================================================
# MOVEMENTS
# =============================================================================

def record_movement(
    store_id: int,
    movement_type: str,
    amount_cents: int,
    reason: str,
    user_id: int | None = None,
    closing_date: date | None = None,
    closing_id: int | None = None,
) -> CashMovement:
    """
    Record a sangria (cash out) or suprimento (cash in) on the open closing.

    The closing is addressed by id, or by store + closing_date (default: the
    store's today). Requires an explicitly opened closing.
    """
    if movement_type not in MOVEMENT_TYPES:
        raise ValidationError(f"Unknown movement type: {movement_type}", {"allowed": list(MOVEMENT_TYPES)})
    if amount_cents is None or amount_cents <= 0:
        raise ValidationError("Movement amount must be greater than zero")
    if not reason or not reason.strip():
        raise ValidationError("A reason is required for cash movements")
    if closing_id is None and closing_date is None:
        closing_date = store_today(store_id)

    def _op():
        with atomic("record_cash_movement", store_id=store_id, closing_id=closing_id, closing_date=str(closing_date)):
            begin_immediate()
            if closing_id is not None:
                q = db.session.query(CashClosing).filter_by(id=closing_id, store_id=store_id)
            else:
                q = db.session.query(CashClosing).filter_by(store_id=store_id, closing_date=closing_date)
            closing = lock_for_update(q).first()
            if not closing:
                raise NotOpen(
                    "Cash drawer is not open",
                    {"store_id": store_id, "closing_id": closing_id, "closing_date": str(closing_date)},
                )
            if closing.status == "closed":
                raise AlreadyClosed("Cash drawer already closed", {"closing_id": closing.id})

            movement = CashMovement(
                store_id=store_id,
                closing_id=closing.id,
                movement_type=movement_type,
                amount_cents=amount_cents,
                reason=reason.strip(),
                created_by_user_id=user_id,
            )
            db.session.add(movement)
            db.session.flush()
            append_ledger_event(
                store_id=store_id,
                event_type="cash.movement",
                event_category="cash",
                entity_type="cash_movement",
                entity_id=movement.id,
                actor_user_id=user_id,
                cash_closing_id=closing.id,
                note=reason.strip(),
                payload={"movement_type": movement_type, "amount_cents": amount_cents},
            )

        logger.info(
            "cash_movement_recorded",
            extra={
                "event": "cash_movement_recorded",
                "store_id": store_id,
                "movement_type": movement_type,
                "amount_cents": amount_cents,
            },
        )
        return movement

    return run_with_retry(_op)


def list_movements(closing_id: int) -> list[CashMovement]:
    return (
        db.session.query(CashMovement)
        .filter_by(closing_id=closing_id)
        .order_by(CashMovement.id.asc())
        .all()
    )


# =============================================================================
# CLOSE
# =============================================================================

def close_cash_drawer(
    closing_id: int,
    counted_cash_cents: int,
    counted_card_cents: int = 0,
    counted_pix_cents: int = 0,
    notes: str | None = None,
    user_id: int | None = None,
) -> CashClosing:
    for label, value in (
        ("counted_cash_cents", counted_cash_cents),
        ("counted_card_cents", counted_card_cents),
        ("counted_pix_cents", counted_pix_cents),
    ):
        if value is None or value < 0:
            raise ValidationError(f"{label} must be zero or greater")

    def _op():
        with atomic("close_cash_drawer", closing_id=closing_id):
            begin_immediate()
            closing = lock_for_update(db.session.query(CashClosing).filter_by(id=closing_id)).first()
            if not closing:
                raise NotOpen("Cash drawer is not open", {"closing_id": closing_id})
            if closing.status == "closed":
                raise AlreadyClosed("Cash drawer already closed", {"closing_id": closing_id})

            summary = summarize_day(closing.store_id, closing.closing_date)
            movements = summarize_movements(closing.id)

            closing.expected_cash_cents = summary.total_cash_cents
            closing.expected_card_cents = summary.total_card_cents
            closing.expected_pix_cents = summary.total_pix_cents
            closing.expected_credit_cents = summary.total_credit_cents
            closing.expected_other_cents = summary.total_other_cents
            closing.sales_count = summary.sales_count
            closing.sangria_total_cents = movements.sangria_total_cents
            closing.suprimento_total_cents = movements.suprimento_total_cents

            closing.counted_cash_cents = counted_cash_cents
            closing.counted_card_cents = counted_card_cents
            closing.counted_pix_cents = counted_pix_cents
            closing.difference_cents = counted_cash_cents - summary.total_cash_cents

            closing.notes = notes
            closing.status = "closed"
            closing.closed_by_user_id = user_id
            closing.closed_at = utcnow()

            append_ledger_event(
                store_id=closing.store_id,
                event_type="cash.closed",
                event_category="cash",
                entity_type="cash_closing",
                entity_id=closing.id,
                actor_user_id=user_id,
                cash_closing_id=closing.id,
                payload={
                    "expected_cash_cents": closing.expected_cash_cents,
                    "counted_cash_cents": counted_cash_cents,
                    "difference_cents": closing.difference_cents,
                },
            )

        logger.info(
            "cash_drawer_closed",
            extra={
                "event": "cash_drawer_closed",
                "closing_id": closing_id,
                "difference_cents": closing.difference_cents,
            },
        )
        return closing

    return run_with_retry(_op)


def list_closings(store_id: int, limit: int = 30) -> list[CashClosing]:
    return (
        db.session.query(CashClosing)
        .filter_by(store_id=store_id)
        .order_by(CashClosing.closing_date.desc())
        .limit(max(1, min(limit, 366)))
        .all()
    )
