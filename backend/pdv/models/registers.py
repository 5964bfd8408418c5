from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class CashClosing(db.Model):
    """
    Daily cash drawer record of a store (fechamento de caixa).

    STATES: (no row) -> open -> closed. One row per (store, closing_date);
    the unique constraint is what makes a concurrent second open fail.

    On close the expected_* values are frozen from the day's completed sales
    and difference = counted_cash - expected_cash. Closed rows are immutable.
    """
    __tablename__ = "cash_closings"
    __table_args__ = (
        db.UniqueConstraint("store_id", "closing_date", name="uq_cash_closings_store_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    closing_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="open", index=True)  # open, closed

    # Frozen at close
    expected_cash_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_card_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_pix_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_credit_cents = db.Column(db.Integer, nullable=False, default=0)
    expected_other_cents = db.Column(db.Integer, nullable=False, default=0)
    sales_count = db.Column(db.Integer, nullable=False, default=0)

    counted_cash_cents = db.Column(db.Integer, nullable=True)
    counted_card_cents = db.Column(db.Integer, nullable=True)
    counted_pix_cents = db.Column(db.Integer, nullable=True)
    difference_cents = db.Column(db.Integer, nullable=True)

    # Informational: movements do not enter expected cash
    sangria_total_cents = db.Column(db.Integer, nullable=False, default=0)
    suprimento_total_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)

    opened_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    opened_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    closed_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    closed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("cash_closings", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "closing_date": self.closing_date.isoformat() if self.closing_date else None,
            "status": self.status,
            "expected_cash_cents": self.expected_cash_cents,
            "expected_card_cents": self.expected_card_cents,
            "expected_pix_cents": self.expected_pix_cents,
            "expected_credit_cents": self.expected_credit_cents,
            "expected_other_cents": self.expected_other_cents,
            "sales_count": self.sales_count,
            "counted_cash_cents": self.counted_cash_cents,
            "counted_card_cents": self.counted_card_cents,
            "counted_pix_cents": self.counted_pix_cents,
            "difference_cents": self.difference_cents,
            "sangria_total_cents": self.sangria_total_cents,
            "suprimento_total_cents": self.suprimento_total_cents,
            "notes": self.notes,
            "opened_by_user_id": self.opened_by_user_id,
            "opened_at": to_utc_z(self.opened_at),
            "closed_by_user_id": self.closed_by_user_id,
            "closed_at": to_utc_z(self.closed_at) if self.closed_at else None,
        }


class CashMovement(db.Model):
    """
    Cash taken out of (sangria) or put into (suprimento) the drawer.

    Immutable; only recorded while the day's closing is open.
    """
    __tablename__ = "cash_movements"
    __table_args__ = (
        db.CheckConstraint("amount_cents > 0", name="ck_cash_movements_amount_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    closing_id = db.Column(db.Integer, db.ForeignKey("cash_closings.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(16), nullable=False)  # sangria, suprimento
    amount_cents = db.Column(db.Integer, nullable=False)
    reason = db.Column(db.String(255), nullable=False)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    closing = db.relationship("CashClosing", backref=db.backref("movements", lazy=True, order_by="CashMovement.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "closing_id": self.closing_id,
            "movement_type": self.movement_type,
            "amount_cents": self.amount_cents,
            "reason": self.reason,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
