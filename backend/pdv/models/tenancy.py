from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z


class Store(db.Model):
    """
    A physical store (loja).

    The store code prefixes every sale and receipt number. The timezone decides
    which calendar day a sale belongs to for the daily cash closing.
    """
    __tablename__ = "stores"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    code = db.Column(db.String(32), nullable=False, unique=True, index=True)

    # Store-level configuration
    timezone = db.Column(db.String(64), nullable=False, default="America/Sao_Paulo")
    # Oversell policy: when False a sale that would drive stock below zero is rejected
    allow_negative_stock = db.Column(db.Boolean, nullable=False, default=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True, index=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
    )

    def __repr__(self) -> str:
        return f"<Store id={self.id} code={self.code!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "code": self.code,
            "timezone": self.timezone,
            "allow_negative_stock": self.allow_negative_stock,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }
