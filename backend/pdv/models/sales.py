from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class PaymentMethod(db.Model):
    """
    Tender accepted at the counter.

    tender_category drives the daily reconciliation buckets:
    CASH, CARD, PIX, STORE_CREDIT, OTHER.
    """
    __tablename__ = "payment_methods"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)
    name = db.Column(db.String(64), nullable=False)
    tender_category = db.Column(db.String(16), nullable=False, default="OTHER")

    allow_installments = db.Column(db.Boolean, nullable=False, default=False)
    max_installments = db.Column(db.Integer, nullable=False, default=1)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "tender_category": self.tender_category,
            "allow_installments": self.allow_installments,
            "max_installments": self.max_installments,
            "is_active": self.is_active,
        }


class Sale(db.Model):
    """
    Finalized sale (venda).

    A Sale row only exists once every effect of the sale (items, payments,
    stock exits, receivable) is committed with it. Amounts are in cents and
    total == amount_paid + amount_credit within one cent.

    STATUS: completed -> cancelled (at most once).
    business_date is the store-local calendar day the sale was committed on;
    the daily cash closing groups sales by it.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.UniqueConstraint("store_id", "sale_number", name="uq_sales_store_number"),
        db.UniqueConstraint("store_id", "idempotency_key", name="uq_sales_store_idempotency"),
        db.Index("ix_sales_store_status_day", "store_id", "status", "business_date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False, index=True)

    # Human-readable number, "<store code>-000123"
    sale_number = db.Column(db.String(64), nullable=False)
    # Client-supplied key; a retried finalize returns the committed sale
    idempotency_key = db.Column(db.String(64), nullable=True)
    # sha256 of the finalize request; a key reused with another request is a conflict
    request_hash = db.Column(db.String(64), nullable=True)

    subtotal_cents = db.Column(db.Integer, nullable=False)
    discount_type = db.Column(db.String(16), nullable=True)  # percentage, fixed
    discount_value = db.Column(db.Integer, nullable=True)  # bps for percentage, cents for fixed
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    amount_paid_cents = db.Column(db.Integer, nullable=False, default=0)
    amount_credit_cents = db.Column(db.Integer, nullable=False, default=0)
    payment_status = db.Column(db.String(16), nullable=False, default="paid")  # paid, credit
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)
    installments = db.Column(db.Integer, nullable=False, default=1)

    status = db.Column(db.String(16), nullable=False, default="completed", index=True)
    business_date = db.Column(db.Date, nullable=False)
    notes = db.Column(db.Text, nullable=True)

    # pickup, delivery; a delivery always points at one of the customer's addresses
    delivery_type = db.Column(db.String(16), nullable=False, default="pickup")
    delivery_address_id = db.Column(db.Integer, db.ForeignKey("customer_delivery_addresses.id"), nullable=True)
    delivery_date = db.Column(db.Date, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    # Cancellation audit trail
    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    store = db.relationship("Store", backref=db.backref("sales", lazy=True))
    customer = db.relationship("Customer")
    delivery_address = db.relationship("CustomerDeliveryAddress")
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_children: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "customer_id": self.customer_id,
            "sale_number": self.sale_number,
            "idempotency_key": self.idempotency_key,
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
            "amount_paid_cents": self.amount_paid_cents,
            "amount_credit_cents": self.amount_credit_cents,
            "payment_status": self.payment_status,
            "payment_method_id": self.payment_method_id,
            "installments": self.installments,
            "status": self.status,
            "business_date": self.business_date.isoformat() if self.business_date else None,
            "notes": self.notes,
            "delivery_type": self.delivery_type,
            "delivery_address_id": self.delivery_address_id,
            "delivery_date": self.delivery_date.isoformat() if self.delivery_date else None,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
            "version_id": self.version_id,
        }
        if include_children:
            data["items"] = [item.to_dict() for item in self.items]
            data["payments"] = [payment.to_dict() for payment in self.payments]
            data["delivery_address"] = self.delivery_address.to_dict() if self.delivery_address else None
        return data


class SaleItem(db.Model):
    """Immutable line of a finalized sale, priced at the moment of sale."""
    __tablename__ = "sale_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Integer, nullable=True)
    discount_cents = db.Column(db.Integer, nullable=False, default=0)
    total_cents = db.Column(db.Integer, nullable=False)

    sale = db.relationship("Sale", backref=db.backref("items", lazy=True, order_by="SaleItem.id"))
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "discount_type": self.discount_type,
            "discount_value": self.discount_value,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


class SalePayment(db.Model):
    """
    One tender of a sale; the credit (crediário) portion is a row with is_credit.

    Sum of amount_cents over a sale == amount_paid + amount_credit.
    """
    __tablename__ = "sale_payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    payment_method_id = db.Column(db.Integer, db.ForeignKey("payment_methods.id"), nullable=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    installments = db.Column(db.Integer, nullable=False, default=1)
    is_credit = db.Column(db.Boolean, nullable=False, default=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    sale = db.relationship("Sale", backref=db.backref("payments", lazy=True, order_by="SalePayment.id"))
    payment_method = db.relationship("PaymentMethod")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "payment_method_id": self.payment_method_id,
            "amount_cents": self.amount_cents,
            "installments": self.installments,
            "is_credit": self.is_credit,
        }
