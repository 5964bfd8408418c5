from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Customer(db.Model):
    """
    Customer with a store-credit (crediário) limit.

    Used credit is never stored: it is derived from pending receivables so it
    cannot drift from the receivable rows.
    """
    __tablename__ = "customers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(160), nullable=False)
    document = db.Column(db.String(32), nullable=True, index=True)  # CPF / CNPJ
    phone = db.Column(db.String(32), nullable=True)

    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "document": self.document,
            "phone": self.phone,
            "credit_limit_cents": self.credit_limit_cents,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerDeliveryAddress(db.Model):
    """Named delivery address of a customer ("Casa", "Trabalho", ...)."""
    __tablename__ = "customer_delivery_addresses"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    name = db.Column(db.String(64), nullable=False)

    street = db.Column(db.String(160), nullable=False)
    number = db.Column(db.String(16), nullable=True)
    complement = db.Column(db.String(80), nullable=True)
    neighborhood = db.Column(db.String(80), nullable=True)
    city = db.Column(db.String(80), nullable=False)
    state = db.Column(db.String(2), nullable=True)
    zip_code = db.Column(db.String(9), nullable=True)
    contact_name = db.Column(db.String(120), nullable=True)
    contact_phone = db.Column(db.String(32), nullable=True)

    is_default = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", backref=db.backref("delivery_addresses", lazy=True))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "name": self.name,
            "street": self.street,
            "number": self.number,
            "complement": self.complement,
            "neighborhood": self.neighborhood,
            "city": self.city,
            "state": self.state,
            "zip_code": self.zip_code,
            "contact_name": self.contact_name,
            "contact_phone": self.contact_phone,
            "is_default": self.is_default,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class AccountReceivable(db.Model):
    """
    Amount a customer owes for the credit portion of a sale.

    STATUS: pending -> paid (fully settled) | cancelled (sale cancelled).
    Only pending rows count against the credit limit.
    """
    __tablename__ = "accounts_receivable"
    __table_args__ = (
        db.CheckConstraint("paid_cents >= 0 AND paid_cents <= amount_cents", name="ck_receivable_paid_range"),
        db.Index("ix_receivables_customer_status_due", "customer_id", "status", "due_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    amount_cents = db.Column(db.Integer, nullable=False)
    paid_cents = db.Column(db.Integer, nullable=False, default=0)
    due_date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending", index=True)  # pending, paid, cancelled
    paid_at = db.Column(db.DateTime(timezone=True), nullable=True)
    paid_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("receivables", lazy=True))
    customer = db.relationship("Customer", backref=db.backref("receivables", lazy=True))

    @property
    def balance_cents(self) -> int:
        return self.amount_cents - self.paid_cents

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "store_id": self.store_id,
            "sale_id": self.sale_id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "paid_cents": self.paid_cents,
            "balance_cents": self.balance_cents,
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "status": self.status,
            "paid_at": to_utc_z(self.paid_at) if self.paid_at else None,
            "paid_by_user_id": self.paid_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class CreditPayment(db.Model):
    """Money received from a customer against open receivables."""
    __tablename__ = "customer_credit_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "amount_cents": self.amount_cents,
            "payment_method_id": self.payment_method_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class CreditHistory(db.Model):
    """
    Append-only trail of everything that moved a customer's credit position.

    action_type: limit_change, purchase, payment, cancellation
    """
    __tablename__ = "customer_credit_history"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)
    action_type = db.Column(db.String(32), nullable=False, index=True)
    old_value_cents = db.Column(db.Integer, nullable=True)
    new_value_cents = db.Column(db.Integer, nullable=True)
    reference_type = db.Column(db.String(32), nullable=True)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)
    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "action_type": self.action_type,
            "old_value_cents": self.old_value_cents,
            "new_value_cents": self.new_value_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }
