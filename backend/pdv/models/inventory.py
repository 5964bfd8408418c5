from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Product(db.Model):
    """
    Product master data (catalog is shared by all stores).

    Prices and stock are per store: see ProductPricing and ProductStock.
    """
    __tablename__ = "products"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    internal_code = db.Column(db.String(64), nullable=False, unique=True, index=True)
    ean = db.Column(db.String(32), nullable=True, index=True)
    name = db.Column(db.String(255), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "internal_code": self.internal_code,
            "ean": self.ean,
            "name": self.name,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class ProductPricing(db.Model):
    """
    Cost and sale price of a product at a store over time.

    At most one row per (product, store) has is_current=True. A stock receipt
    closes the current row (valid_until) and opens a new one.
    """
    __tablename__ = "product_pricing"
    __table_args__ = (
        db.Index("ix_product_pricing_current", "product_id", "store_id", "is_current"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    cost_cents = db.Column(db.Integer, nullable=False, default=0)
    sale_price_cents = db.Column(db.Integer, nullable=False)
    # (sale - cost) / cost in basis points; 0 when cost is 0
    markup_bps = db.Column(db.Integer, nullable=False, default=0)

    is_current = db.Column(db.Boolean, nullable=False, default=True)
    valid_from = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    valid_until = db.Column(db.DateTime(timezone=True), nullable=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("stock_receipts.id"), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "cost_cents": self.cost_cents,
            "sale_price_cents": self.sale_price_cents,
            "markup_bps": self.markup_bps,
            "is_current": self.is_current,
            "valid_from": to_utc_z(self.valid_from),
            "valid_until": to_utc_z(self.valid_until) if self.valid_until else None,
            "receipt_id": self.receipt_id,
        }


class ProductStock(db.Model):
    """
    Current on-hand quantity of a product at a store.

    This is a cache of the movement log: quantity must always equal
    sum(entry) - sum(exit) over StockMovement for the same key. It is only
    ever changed by stock_service.adjust_stock through an atomic UPDATE.
    """
    __tablename__ = "product_stock"
    __table_args__ = (
        db.UniqueConstraint("product_id", "store_id", name="uq_product_stock_product_store"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    min_quantity = db.Column(db.Integer, nullable=False, default=0)
    max_quantity = db.Column(db.Integer, nullable=True)

    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "quantity": self.quantity,
            "min_quantity": self.min_quantity,
            "max_quantity": self.max_quantity,
            "below_minimum": self.quantity < self.min_quantity,
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only stock movement log.

    movement_type: entry | exit (quantity is always positive)
    reference_type: sale, sale_cancellation, receipt, receipt_cancellation, adjustment
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_stock_movements_quantity_positive"),
        db.Index("ix_stock_movements_product_store", "product_id", "store_id"),
        db.Index("ix_stock_movements_reference", "reference_type", "reference_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)

    movement_type = db.Column(db.String(8), nullable=False)
    quantity = db.Column(db.Integer, nullable=False)

    unit_cost_cents = db.Column(db.Integer, nullable=True)
    unit_price_cents = db.Column(db.Integer, nullable=True)

    reference_type = db.Column(db.String(32), nullable=False)
    reference_id = db.Column(db.Integer, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    @property
    def signed_quantity(self) -> int:
        return self.quantity if self.movement_type == "entry" else -self.quantity

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "store_id": self.store_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "unit_cost_cents": self.unit_cost_cents,
            "unit_price_cents": self.unit_price_cents,
            "reference_type": self.reference_type,
            "reference_id": self.reference_id,
            "notes": self.notes,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
        }


class StockReceipt(db.Model):
    """
    Goods received from a supplier (entrada de mercadoria).

    STATUS: active -> cancelled (once). Cancelling takes the quantities back
    out of stock but leaves the prices set by the receipt in place.
    """
    __tablename__ = "stock_receipts"
    __table_args__ = (
        db.UniqueConstraint("store_id", "receipt_number", name="uq_stock_receipts_store_number"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    store_id = db.Column(db.Integer, db.ForeignKey("stores.id"), nullable=False, index=True)
    receipt_number = db.Column(db.String(64), nullable=False)

    supplier_name = db.Column(db.String(160), nullable=True)
    invoice_number = db.Column(db.String(64), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    status = db.Column(db.String(16), nullable=False, default="active", index=True)
    total_cost_cents = db.Column(db.Integer, nullable=False, default=0)

    created_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    cancelled_by_user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    cancelled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancellation_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_lines: bool = False) -> dict:
        data = {
            "id": self.id,
            "store_id": self.store_id,
            "receipt_number": self.receipt_number,
            "supplier_name": self.supplier_name,
            "invoice_number": self.invoice_number,
            "notes": self.notes,
            "status": self.status,
            "total_cost_cents": self.total_cost_cents,
            "created_by_user_id": self.created_by_user_id,
            "created_at": to_utc_z(self.created_at),
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "cancelled_at": to_utc_z(self.cancelled_at) if self.cancelled_at else None,
            "cancellation_reason": self.cancellation_reason,
        }
        if include_lines:
            data["lines"] = [line.to_dict() for line in self.lines]
        return data


class StockReceiptLine(db.Model):
    __tablename__ = "stock_receipt_lines"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    receipt_id = db.Column(db.Integer, db.ForeignKey("stock_receipts.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    old_cost_cents = db.Column(db.Integer, nullable=True)
    old_sale_price_cents = db.Column(db.Integer, nullable=True)
    new_cost_cents = db.Column(db.Integer, nullable=False)
    new_sale_price_cents = db.Column(db.Integer, nullable=False)
    markup_bps = db.Column(db.Integer, nullable=False, default=0)

    receipt = db.relationship("StockReceipt", backref=db.backref("lines", lazy=True, order_by="StockReceiptLine.id"))

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "receipt_id": self.receipt_id,
            "product_id": self.product_id,
            "quantity": self.quantity,
            "old_cost_cents": self.old_cost_cents,
            "old_sale_price_cents": self.old_sale_price_cents,
            "new_cost_cents": self.new_cost_cents,
            "new_sale_price_cents": self.new_sale_price_cents,
            "markup_bps": self.markup_bps,
        }
