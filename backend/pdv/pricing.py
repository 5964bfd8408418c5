# Overview: Pure cart pricing; no database access, no side effects.

"""
Cart pricing rules

- Money is integer cents. Percentages are basis points (1000 = 10%).
- A discount never exceeds its base and never goes negative:
  amount = clamp(round_half_up(base * bps / 10000) | value, 0, base).
- line.total = quantity * unit_price - line discount.
- cart.total = max(0, subtotal - order discount), where the order discount
  is computed on the subtotal with the same rule.
- Two amounts are "equal" when they differ by at most MONEY_EPSILON_CENTS.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from .errors import ValidationError
from .validation import coerce_int

PERCENTAGE = "percentage"
FIXED = "fixed"
DISCOUNT_TYPES = (PERCENTAGE, FIXED)

MONEY_EPSILON_CENTS = 1


@dataclass(frozen=True)
class Discount:
    """`value` is basis points for percentage discounts, cents for fixed ones."""

    kind: str
    value: int

    def __post_init__(self):
        if self.kind not in DISCOUNT_TYPES:
            raise ValidationError(f"Unknown discount type: {self.kind}")
        if self.value < 0:
            raise ValidationError("Discount value cannot be negative")

    def amount_for(self, base_cents: int) -> int:
        if base_cents <= 0:
            return 0
        if self.kind == PERCENTAGE:
            raw = (Decimal(base_cents) * Decimal(self.value) / Decimal(10000)).quantize(
                Decimal("1"), rounding=ROUND_HALF_UP
            )
            amount = int(raw)
        else:
            amount = self.value
        return max(0, min(amount, base_cents))


NO_DISCOUNT = Discount(FIXED, 0)


@dataclass(frozen=True)
class CartLine:
    product_id: int
    quantity: int
    unit_price_cents: int
    discount: Discount = NO_DISCOUNT

    def __post_init__(self):
        if self.quantity <= 0:
            raise ValidationError("Quantity must be greater than zero", {"product_id": self.product_id})
        if self.unit_price_cents < 0:
            raise ValidationError("Unit price cannot be negative", {"product_id": self.product_id})

    def with_quantity(self, quantity: int) -> "CartLine":
        return replace(self, quantity=quantity)

    def with_discount(self, discount: Discount) -> "CartLine":
        return replace(self, discount=discount)


@dataclass(frozen=True)
class Cart:
    lines: tuple[CartLine, ...] = ()
    discount: Discount = NO_DISCOUNT
    customer_id: int | None = None

    def with_line(self, line: CartLine) -> "Cart":
        return replace(self, lines=self.lines + (line,))

    def without_line(self, index: int) -> "Cart":
        return replace(self, lines=self.lines[:index] + self.lines[index + 1:])

    def with_discount(self, discount: Discount) -> "Cart":
        return replace(self, discount=discount)


@dataclass(frozen=True)
class PricedLine:
    line: CartLine
    gross_cents: int
    discount_cents: int
    total_cents: int

    def to_dict(self) -> dict:
        return {
            "product_id": self.line.product_id,
            "quantity": self.line.quantity,
            "unit_price_cents": self.line.unit_price_cents,
            "discount_type": self.line.discount.kind if self.line.discount.value else None,
            "discount_value": self.line.discount.value if self.line.discount.value else None,
            "gross_cents": self.gross_cents,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


@dataclass(frozen=True)
class CartTotals:
    lines: tuple[PricedLine, ...]
    subtotal_cents: int
    discount_cents: int
    total_cents: int
    discount: Discount = field(default=NO_DISCOUNT)

    def to_dict(self) -> dict:
        return {
            "lines": [pl.to_dict() for pl in self.lines],
            "subtotal_cents": self.subtotal_cents,
            "discount_type": self.discount.kind if self.discount.value else None,
            "discount_value": self.discount.value if self.discount.value else None,
            "discount_cents": self.discount_cents,
            "total_cents": self.total_cents,
        }


def price_line(line: CartLine) -> PricedLine:
    gross = line.quantity * line.unit_price_cents
    discount = line.discount.amount_for(gross)
    return PricedLine(line=line, gross_cents=gross, discount_cents=discount, total_cents=gross - discount)


def price_cart(cart: Cart) -> CartTotals:
    priced = tuple(price_line(line) for line in cart.lines)
    subtotal = sum(pl.total_cents for pl in priced)
    discount = cart.discount.amount_for(subtotal)
    return CartTotals(
        lines=priced,
        subtotal_cents=subtotal,
        discount_cents=discount,
        total_cents=max(0, subtotal - discount),
        discount=cart.discount,
    )


def amounts_match(a_cents: int, b_cents: int) -> bool:
    return abs(a_cents - b_cents) <= MONEY_EPSILON_CENTS


def covers_total(total_cents: int, paid_cents: int) -> bool:
    """True when paid >= total - epsilon."""
    return paid_cents >= total_cents - MONEY_EPSILON_CENTS


# =============================================================================
# JSON INPUT
# =============================================================================

def parse_discount(data: dict | None) -> Discount:
    """
    {"type": "percentage", "value": 12.5}  -> 12.5% (stored as 1250 bps)
    {"type": "fixed", "value": 500}        -> R$ 5,00 (cents)
    """
    if not data:
        return NO_DISCOUNT
    kind = data.get("type")
    value = data.get("value", 0)
    if kind == PERCENTAGE:
        try:
            bps = Decimal(str(value)) * 100
        except InvalidOperation:
            raise ValidationError("Percentage discount must be a number")
        if not bps.is_finite():
            raise ValidationError("Percentage discount must be a finite number")
        if bps < 0:
            raise ValidationError("Discount value cannot be negative")
        if bps != bps.to_integral_value():
            raise ValidationError("Percentage discount supports at most two decimals")
        return Discount(PERCENTAGE, int(bps))
    return Discount(kind, coerce_int(value, "discount value"))


def parse_cart(data: dict) -> Cart:
    """Build a Cart from {"customer_id", "lines": [...], "discount": {...}}."""
    if not isinstance(data, dict):
        raise ValidationError("Cart payload must be an object")
    raw_lines = data.get("lines") or []
    if not isinstance(raw_lines, list):
        raise ValidationError("lines must be a list")
    lines = []
    for raw in raw_lines:
        if not isinstance(raw, dict):
            raise ValidationError("Each cart line must be an object")
        lines.append(
            CartLine(
                product_id=coerce_int(raw.get("product_id"), "product_id"),
                quantity=coerce_int(raw.get("quantity"), "quantity"),
                unit_price_cents=coerce_int(raw.get("unit_price_cents"), "unit_price_cents"),
                discount=parse_discount(raw.get("discount")),
            )
        )
    customer_id = data.get("customer_id")
    return Cart(
        lines=tuple(lines),
        discount=parse_discount(data.get("discount")),
        customer_id=coerce_int(customer_id, "customer_id") if customer_id is not None else None,
    )
