# Overview: Pytest coverage for cart pricing rules.

import pytest

from pdv.errors import ValidationError
from pdv.pricing import (
    Cart, CartLine, Discount, FIXED, NO_DISCOUNT, PERCENTAGE,
    amounts_match, covers_total, parse_cart, parse_discount, price_cart, price_line,
)


class TestDiscount:
    def test_percentage_rounds_half_up(self):
        # 12.5% of 1001 = 125.125 -> 125 ; 5% of 10 = 0.5 -> 1
        assert Discount(PERCENTAGE, 1250).amount_for(1001) == 125
        assert Discount(PERCENTAGE, 500).amount_for(10) == 1

    def test_fixed_is_clamped_to_base(self):
        assert Discount(FIXED, 5000).amount_for(1200) == 1200

    def test_percentage_above_hundred_is_clamped(self):
        assert Discount(PERCENTAGE, 15000).amount_for(1000) == 1000

    def test_zero_base_yields_zero(self):
        assert Discount(PERCENTAGE, 1000).amount_for(0) == 0

    def test_negative_value_rejected(self):
        with pytest.raises(ValidationError):
            Discount(FIXED, -1)

    def test_unknown_kind_rejected(self):
        with pytest.raises(ValidationError):
            Discount("bogus", 10)


class TestCartLine:
    def test_zero_quantity_rejected(self):
        with pytest.raises(ValidationError):
            CartLine(product_id=1, quantity=0, unit_price_cents=100)

    def test_negative_price_rejected(self):
        with pytest.raises(ValidationError):
            CartLine(product_id=1, quantity=1, unit_price_cents=-1)

    def test_line_total(self):
        line = CartLine(product_id=1, quantity=3, unit_price_cents=250, discount=Discount(FIXED, 100))
        priced = price_line(line)
        assert priced.gross_cents == 750
        assert priced.discount_cents == 100
        assert priced.total_cents == 650


class TestCartTotals:
    def test_two_units_with_ten_percent_line_discount(self):
        line = CartLine(product_id=1, quantity=2, unit_price_cents=1000, discount=Discount(PERCENTAGE, 1000))
        totals = price_cart(Cart(lines=(line,)))
        assert totals.subtotal_cents == 1800
        assert totals.discount_cents == 0
        assert totals.total_cents == 1800

    def test_two_units_with_ten_percent_order_discount(self):
        line = CartLine(product_id=1, quantity=2, unit_price_cents=1000)
        totals = price_cart(Cart(lines=(line,), discount=Discount(PERCENTAGE, 1000)))
        assert totals.subtotal_cents == 2000
        assert totals.discount_cents == 200
        assert totals.total_cents == 1800

    def test_order_discount_applies_after_line_discounts(self):
        cart = (
            Cart()
            .with_line(CartLine(product_id=1, quantity=1, unit_price_cents=1000, discount=Discount(FIXED, 200)))
            .with_line(CartLine(product_id=2, quantity=2, unit_price_cents=500))
            .with_discount(Discount(FIXED, 300))
        )
        totals = price_cart(cart)
        assert totals.subtotal_cents == 1800
        assert totals.total_cents == 1500

    def test_total_never_negative(self):
        cart = Cart(
            lines=(CartLine(product_id=1, quantity=1, unit_price_cents=100),),
            discount=Discount(FIXED, 10_000),
        )
        assert price_cart(cart).total_cents == 0

    def test_empty_cart_totals_zero(self):
        totals = price_cart(Cart())
        assert totals.subtotal_cents == 0
        assert totals.total_cents == 0

    def test_without_line_and_immutability(self):
        cart = Cart().with_line(CartLine(product_id=1, quantity=1, unit_price_cents=100))
        bigger = cart.with_line(CartLine(product_id=2, quantity=1, unit_price_cents=200))
        assert len(cart.lines) == 1
        assert [l.product_id for l in bigger.without_line(0).lines] == [2]

    def test_to_dict_shape(self):
        line = CartLine(product_id=7, quantity=2, unit_price_cents=1000, discount=Discount(PERCENTAGE, 1000))
        data = price_cart(Cart(lines=(line,))).to_dict()
        assert data["total_cents"] == 1800
        assert data["discount_type"] is None
        assert data["lines"][0]["discount_type"] == PERCENTAGE
        assert data["lines"][0]["discount_value"] == 1000


class TestTolerance:
    def test_one_cent_tolerance(self):
        assert amounts_match(1000, 1001)
        assert amounts_match(1001, 1000)
        assert not amounts_match(1000, 1002)

    def test_covers_total(self):
        assert covers_total(1000, 999)
        assert not covers_total(1000, 998)
        assert covers_total(1000, 5000)


class TestParsing:
    def test_parse_percentage_to_basis_points(self):
        assert parse_discount({"type": "percentage", "value": 12.5}) == Discount(PERCENTAGE, 1250)
        assert parse_discount({"type": "percentage", "value": "10"}) == Discount(PERCENTAGE, 1000)

    def test_parse_percentage_rejects_three_decimals(self):
        with pytest.raises(ValidationError):
            parse_discount({"type": "percentage", "value": "1.234"})

    @pytest.mark.parametrize("value", [float("inf"), float("-inf"), float("nan"), "Infinity", "NaN"])
    def test_parse_percentage_rejects_non_finite(self, value):
        with pytest.raises(ValidationError):
            parse_discount({"type": "percentage", "value": value})

    def test_parse_percentage_rejects_negative(self):
        with pytest.raises(ValidationError):
            parse_discount({"type": "percentage", "value": -5})

    def test_parse_fixed_requires_integer_cents(self):
        assert parse_discount({"type": "fixed", "value": 500}) == Discount(FIXED, 500)
        with pytest.raises(ValidationError):
            parse_discount({"type": "fixed", "value": 5.5})

    def test_parse_missing_discount(self):
        assert parse_discount(None) is NO_DISCOUNT

    def test_parse_cart(self):
        cart = parse_cart({
            "customer_id": "3",
            "lines": [{"product_id": 1, "quantity": 2, "unit_price_cents": 1000,
                       "discount": {"type": "percentage", "value": 10}}],
        })
        assert cart.customer_id == 3
        assert price_cart(cart).total_cents == 1800

    def test_parse_cart_rejects_non_object_lines(self):
        with pytest.raises(ValidationError):
            parse_cart({"lines": [1, 2]})

    def test_parse_cart_rejects_float_price(self):
        with pytest.raises(ValidationError):
            parse_cart({"lines": [{"product_id": 1, "quantity": 1, "unit_price_cents": 10.5}]})
