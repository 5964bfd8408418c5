"""
Daily reconciliation

Expected totals for one store and one store-local calendar day, computed from
the tenders of COMPLETED sales. Cancelled sales never count.

Cash movements (sangria / suprimento) are NOT part of expected cash; they are
reported next to it. drawer_cash_estimate is informational only.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from datetime import date

from sqlalchemy import case, func

from ..extensions import db
from ..models import CashMovement, PaymentMethod, Sale, SalePayment

TENDER_BUCKETS = {
    "CASH": "cash",
    "CARD": "card",
    "PIX": "pix",
}


@dataclass(frozen=True)
class DailySummary:
    store_id: int
    day: date
    total_sales_cents: int = 0
    total_cash_cents: int = 0
    total_card_cents: int = 0
    total_pix_cents: int = 0
    total_credit_cents: int = 0
    total_other_cents: int = 0
    sales_count: int = 0
    credit_sales_count: int = 0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["day"] = self.day.isoformat()
        return data


@dataclass(frozen=True)
class MovementSummary:
    sangria_total_cents: int = 0
    suprimento_total_cents: int = 0
    sangria_count: int = 0
    suprimento_count: int = 0

    @property
    def net_cents(self) -> int:
        return self.suprimento_total_cents - self.sangria_total_cents

    def to_dict(self) -> dict:
        data = asdict(self)
        data["net_cents"] = self.net_cents
        return data


def _bucket(tender_category: str | None, is_credit: bool) -> str:
    if is_credit:
        return "credit"
    return TENDER_BUCKETS.get((tender_category or "").upper(), "other")


def summarize_day(store_id: int, day: date) -> DailySummary:
    """Expected totals per tender bucket for the store's day."""
    rows = (
        db.session.query(
            PaymentMethod.tender_category,
            SalePayment.is_credit,
            func.coalesce(func.sum(SalePayment.amount_cents), 0),
        )
        .join(Sale, Sale.id == SalePayment.sale_id)
        .outerjoin(PaymentMethod, PaymentMethod.id == SalePayment.payment_method_id)
        .filter(
            Sale.store_id == store_id,
            Sale.status == "completed",
            Sale.business_date == day,
        )
        .group_by(PaymentMethod.tender_category, SalePayment.is_credit)
        .all()
    )

    totals = {"cash": 0, "card": 0, "pix": 0, "credit": 0, "other": 0}
    for tender_category, is_credit, amount in rows:
        totals[_bucket(tender_category, bool(is_credit))] += int(amount or 0)

    sales_count, credit_sales_count, total_sales = (
        db.session.query(
            func.count(Sale.id),
            func.coalesce(func.sum(case((Sale.amount_credit_cents > 0, 1), else_=0)), 0),
            func.coalesce(func.sum(Sale.total_cents), 0),
        )
        .filter(
            Sale.store_id == store_id,
            Sale.status == "completed",
            Sale.business_date == day,
        )
        .one()
    )

    return DailySummary(
        store_id=store_id,
        day=day,
        total_sales_cents=int(total_sales or 0),
        total_cash_cents=totals["cash"],
        total_card_cents=totals["card"],
        total_pix_cents=totals["pix"],
        total_credit_cents=totals["credit"],
        total_other_cents=totals["other"],
        sales_count=int(sales_count or 0),
        credit_sales_count=int(credit_sales_count or 0),
    )


def summarize_movements(closing_id: int | None) -> MovementSummary:
    if closing_id is None:
        return MovementSummary()
    rows = (
        db.session.query(
            CashMovement.movement_type,
            func.coalesce(func.sum(CashMovement.amount_cents), 0),
            func.count(CashMovement.id),
        )
        .filter(CashMovement.closing_id == closing_id)
        .group_by(CashMovement.movement_type)
        .all()
    )
    by_type = {movement_type: (int(total or 0), int(count or 0)) for movement_type, total, count in rows}
    sangria = by_type.get("sangria", (0, 0))
    suprimento = by_type.get("suprimento", (0, 0))
    return MovementSummary(
        sangria_total_cents=sangria[0],
        suprimento_total_cents=suprimento[0],
        sangria_count=sangria[1],
        suprimento_count=suprimento[1],
    )


def drawer_cash_estimate(summary: DailySummary, movements: MovementSummary) -> int:
    """Physical cash one would expect in the drawer. Not used for the difference."""
    return summary.total_cash_cents + movements.net_cents
