"""
Stock Ledger

WHY: On-hand quantity must stay exact under concurrent sales, cancellations
and receipts at the same store.

DESIGN PRINCIPLES:
- StockMovement is the append-only source of truth; ProductStock.quantity is
  a cache that always equals sum(entry) - sum(exit) for the same key.
- Every quantity change is one atomic UPDATE (quantity = quantity + delta),
  never read-compute-write.
- Oversell policy: a change that would leave quantity below zero is rejected
  with InsufficientStock unless the store has allow_negative_stock.
- adjust_stock never commits; it joins the caller's transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy import case, func, or_, update
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStock, NotFound, ReasonRequired, ValidationError
from ..extensions import db
from ..models import Product, ProductStock, StockMovement, Store
from .concurrency import atomic, begin_immediate, run_with_retry
from .ledger_service import append_ledger_event

logger = logging.getLogger(__name__)

REFERENCE_TYPES = {"sale", "sale_cancellation", "receipt", "receipt_cancellation", "adjustment"}


@dataclass(frozen=True)
class StockAdjustment:
    movement: StockMovement
    quantity: int


def _quantity(product_id: int, store_id: int) -> int | None:
    return (
        db.session.query(ProductStock.quantity)
        .filter_by(product_id=product_id, store_id=store_id)
        .scalar()
    )


def _apply_delta(product_id: int, store_id: int, delta: int, allow_negative: bool) -> int | None:
    """
    Atomic conditional update. Returns the new quantity, or None when the row
    is missing or the guard rejected the change.
    """
    stmt = (
        update(ProductStock)
        .where(ProductStock.product_id == product_id, ProductStock.store_id == store_id)
        .values(quantity=ProductStock.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if not allow_negative and delta < 0:
        stmt = stmt.where(ProductStock.quantity + delta >= 0)
    result = db.session.execute(stmt)
    if not result.rowcount:
        return None
    return _quantity(product_id, store_id)


def adjust_stock(
    *,
    product_id: int,
    store_id: int,
    delta: int,
    reference_type: str,
    reference_id: int | None = None,
    user_id: int | None = None,
    notes: str | None = None,
    unit_cost_cents: int | None = None,
    unit_price_cents: int | None = None,
    allow_negative: bool | None = None,
) -> StockAdjustment:
    """
    Append one movement and move the on-hand quantity by `delta`.

    delta > 0 writes an `entry`, delta < 0 an `exit`; the movement quantity is
    always |delta|. Raises InsufficientStock when the oversell guard trips.
    """
    if not delta:
        raise ValidationError("Stock delta cannot be zero", {"product_id": product_id})
    if reference_type not in REFERENCE_TYPES:
        raise ValidationError(f"Unknown stock reference type: {reference_type}")

    if allow_negative is None:
        store = db.session.get(Store, store_id)
        if not store:
            raise NotFound("Store not found", {"store_id": store_id})
        allow_negative = bool(store.allow_negative_stock)

    new_quantity = _apply_delta(product_id, store_id, delta, allow_negative)
    if new_quantity is None:
        current = _quantity(product_id, store_id)
        if current is not None:
            raise InsufficientStock(
                "Insufficient stock",
                {"product_id": product_id, "store_id": store_id, "available": current, "requested": -delta},
            )
        if delta < 0 and not allow_negative:
            raise InsufficientStock(
                "Insufficient stock",
                {"product_id": product_id, "store_id": store_id, "available": 0, "requested": -delta},
            )
        try:
            with db.session.begin_nested():
                db.session.add(ProductStock(product_id=product_id, store_id=store_id, quantity=delta))
            new_quantity = delta
        except IntegrityError:
            # Row created concurrently; apply to it instead
            new_quantity = _apply_delta(product_id, store_id, delta, allow_negative)
            if new_quantity is None:
                raise InsufficientStock(
                    "Insufficient stock",
                    {"product_id": product_id, "store_id": store_id, "requested": -delta},
                )

    if new_quantity < 0:
        logger.warning(
            "stock_negative",
            extra={
                "event": "stock_negative",
                "product_id": product_id,
                "store_id": store_id,
                "quantity": new_quantity,
                "reference_type": reference_type,
                "reference_id": reference_id,
            },
        )

    movement = StockMovement(
        product_id=product_id,
        store_id=store_id,
        movement_type="entry" if delta > 0 else "exit",
        quantity=abs(delta),
        unit_cost_cents=unit_cost_cents,
        unit_price_cents=unit_price_cents,
        reference_type=reference_type,
        reference_id=reference_id,
        notes=notes,
        created_by_user_id=user_id,
    )
    db.session.add(movement)
    db.session.flush()
    return StockAdjustment(movement=movement, quantity=new_quantity)


def adjust_stock_manually(
    *,
    product_id: int,
    store_id: int,
    delta: int,
    reason: str,
    user_id: int | None = None,
) -> StockAdjustment:
    """Manual correction (breakage, count difference). Commits its own transaction."""
    if not reason or not reason.strip():
        raise ReasonRequired("A reason is required for manual stock adjustments")
    if not db.session.get(Product, product_id):
        raise NotFound("Product not found", {"product_id": product_id})

    def _op():
        with atomic("adjust_stock", product_id=product_id, store_id=store_id, delta=delta):
            begin_immediate()
            result = adjust_stock(
                product_id=product_id,
                store_id=store_id,
                delta=delta,
                reference_type="adjustment",
                user_id=user_id,
                notes=reason.strip(),
            )
            append_ledger_event(
                store_id=store_id,
                event_type="stock.adjusted",
                event_category="stock",
                entity_type="stock_movement",
                entity_id=result.movement.id,
                actor_user_id=user_id,
                note=reason.strip(),
                payload={"product_id": product_id, "delta": delta, "quantity": result.quantity},
            )
        return result

    return run_with_retry(_op)


# =============================================================================
# READS AND AUDIT
# =============================================================================

def get_stock_quantity(product_id: int, store_id: int) -> int:
    return _quantity(product_id, store_id) or 0


def replay_quantity(product_id: int, store_id: int) -> int:
    """Quantity rebuilt from the movement log."""
    total = (
        db.session.query(
            func.coalesce(
                func.sum(
                    case(
                        (StockMovement.movement_type == "entry", StockMovement.quantity),
                        else_=-StockMovement.quantity,
                    )
                ),
                0,
            )
        )
        .filter(StockMovement.product_id == product_id, StockMovement.store_id == store_id)
        .scalar()
    )
    return int(total or 0)


def verify_stock(store_id: int) -> list[dict]:
    """
    Compare every ProductStock row of a store with its movement replay.

    Returns one dict per mismatch; an empty list means the cache is exact.
    """
    replay = dict(
        db.session.query(
            StockMovement.product_id,
            func.sum(
                case(
                    (StockMovement.movement_type == "entry", StockMovement.quantity),
                    else_=-StockMovement.quantity,
                )
            ),
        )
        .filter(StockMovement.store_id == store_id)
        .group_by(StockMovement.product_id)
        .all()
    )
    stock_rows = dict(
        db.session.query(ProductStock.product_id, ProductStock.quantity)
        .filter(ProductStock.store_id == store_id)
        .all()
    )

    mismatches = []
    for product_id in sorted(set(replay) | set(stock_rows)):
        expected = int(replay.get(product_id) or 0)
        actual = int(stock_rows.get(product_id) or 0)
        if expected != actual:
            mismatches.append(
                {"product_id": product_id, "store_id": store_id, "quantity": actual, "replayed": expected}
            )
    return mismatches


def list_movements(
    store_id: int,
    product_id: int | None = None,
    reference_type: str | None = None,
    reference_id: int | None = None,
    limit: int = 100,
) -> list[StockMovement]:
    q = db.session.query(StockMovement).filter(StockMovement.store_id == store_id)
    if product_id is not None:
        q = q.filter(StockMovement.product_id == product_id)
    if reference_type:
        q = q.filter(StockMovement.reference_type == reference_type)
    if reference_id is not None:
        q = q.filter(StockMovement.reference_id == reference_id)
    return q.order_by(StockMovement.id.desc()).limit(max(1, min(limit, 500))).all()


def list_low_stock(store_id: int) -> list[ProductStock]:
    return (
        db.session.query(ProductStock)
        .filter(
            ProductStock.store_id == store_id,
            or_(ProductStock.quantity < ProductStock.min_quantity, ProductStock.quantity < 0),
        )
        .order_by(ProductStock.product_id)
        .all()
    )


def set_stock_limits(product_id: int, store_id: int, min_quantity: int, max_quantity: int | None = None) -> ProductStock:
    """Reorder thresholds; quantity itself is never written here."""
    if min_quantity < 0 or (max_quantity is not None and max_quantity < min_quantity):
        raise ValidationError("Invalid stock limits", {"min_quantity": min_quantity, "max_quantity": max_quantity})

    def _op():
        with atomic("set_stock_limits", product_id=product_id, store_id=store_id):
            row = db.session.query(ProductStock).filter_by(product_id=product_id, store_id=store_id).first()
            if not row:
                row = ProductStock(product_id=product_id, store_id=store_id, quantity=0)
                db.session.add(row)
            row.min_quantity = min_quantity
            row.max_quantity = max_quantity
        return row

    return run_with_retry(_op)
