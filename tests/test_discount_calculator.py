"""Unit tests for the discount calculator."""

from decimal import Decimal

import pytest

from shopbag.coupon_engine.discount_calculator import compute, compute_breakdown, qualifying_items
from shopbag.coupon_engine.models import DiscountContext, DiscountKind, DiscountType


class TestPercentageDiscount:
    """Tests for percentage coupons."""

    def test_capped_at_max_discount(self, make_coupon, make_cart):
        """20% of 1000 is 200, capped to 150."""
        coupon = make_coupon(
            code="SAVE20", discount_type=DiscountType.PERCENTAGE,
            discount=20, threshold=500, max_discount=150,
        )
        assert compute(coupon, make_cart((1000, 1))) == Decimal("150")

    def test_below_cap(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.PERCENTAGE, discount=20, max_discount=150)
        assert compute(coupon, make_cart((250, 2))) == Decimal("100")

    def test_rounds_half_up_to_whole_units(self, make_coupon, make_cart):
        """10% of 25 = 2.5 -> 3; 20% of 333 = 66.6 -> 67."""
        ten = make_coupon(discount_type=DiscountType.PERCENTAGE, discount=10)
        twenty = make_coupon(discount_type=DiscountType.PERCENTAGE, discount=20)
        assert compute(ten, make_cart((25, 1))) == Decimal("3")
        assert compute(twenty, make_cart((333, 1))) == Decimal("67")

    def test_hundred_percent_is_whole_total(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.PERCENTAGE, discount=100)
        assert compute(coupon, make_cart((99.5, 1))) == Decimal("99.5")


class TestFixedDiscount:
    """Tests for fixed-amount coupons."""

    def test_fixed_amount(self, make_coupon, make_cart):
        coupon = make_coupon(discount=100)
        assert compute(coupon, make_cart((500, 1))) == Decimal("100")

    def test_capped_at_cart_total(self, make_coupon, make_cart):
        """FLAT100 on a total of 80 gives 80, not 100."""
        coupon = make_coupon(code="FLAT100", discount=100, threshold=0)
        assert compute(coupon, make_cart((80, 1))) == Decimal("80")

    def test_capped_at_max_discount(self, make_coupon, make_cart):
        coupon = make_coupon(discount=100, max_discount=60)
        assert compute(coupon, make_cart((500, 1))) == Decimal("60")


class TestShippingDiscount:
    """Tests for shipping waivers."""

    def test_waives_supplied_fee(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.SHIPPING, discount=0)
        breakdown = compute_breakdown(coupon, make_cart((500, 1)), DiscountContext(shipping_fee=Decimal("49")))
        assert breakdown.amount == Decimal("49")
        assert breakdown.kind == DiscountKind.SHIPPING_WAIVER

    def test_no_fee_supplied_means_zero(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.SHIPPING, discount=0)
        assert compute(coupon, make_cart((500, 1))) == Decimal("0")

    def test_fee_larger_than_total_is_clamped(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.SHIPPING, discount=0)
        amount = compute(coupon, make_cart((30, 1)), DiscountContext(shipping_fee=Decimal("49")))
        assert amount == Decimal("30")


class TestBogoDiscount:
    """Tests for buy-one-get-one coupons."""

    def test_half_of_cheapest_line(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.BOGO, discount=0)
        assert compute(coupon, make_cart((500, 1), (300, 1))) == Decimal("150.00")

    def test_two_units_of_one_line(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.BOGO, discount=0)
        assert compute(coupon, make_cart((400, 2))) == Decimal("200.00")

    def test_single_unit_gets_nothing(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.BOGO, discount=0)
        assert compute(coupon, make_cart((400, 1))) == Decimal("0")

    def test_only_qualifying_categories_count(self, make_coupon, make_cart):
        coupon = make_coupon(
            discount_type=DiscountType.BOGO, discount=0,
            applicable_categories=frozenset({"Tops"}),
        )
        cart = make_cart((500, 1, "Tops"), (100, 1, "Jeans"))
        assert compute(coupon, cart) == Decimal("0")

        cart = make_cart((500, 1, "Tops"), (300, 1, "Tops"), (100, 1, "Jeans"))
        assert compute(coupon, cart) == Decimal("150.00")


class TestCashbackDiscount:
    """Tests for cashback coupons."""

    def test_cashback_amount_and_kind(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.CASHBACK, discount=50)
        breakdown = compute_breakdown(coupon, make_cart((800, 1)))
        assert breakdown.amount == Decimal("50")
        assert breakdown.kind == DiscountKind.CASHBACK

    def test_cashback_capped_at_total(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.CASHBACK, discount=50)
        assert compute(coupon, make_cart((30, 1))) == Decimal("30")


class TestDiscountBounds:
    """Every discount type stays within [0, min(total, max_discount)]."""

    @pytest.mark.parametrize("discount_type", list(DiscountType))
    def test_empty_cart_gets_zero(self, make_coupon, make_cart, discount_type):
        coupon = make_coupon(discount_type=discount_type, discount=100)
        amount = compute(coupon, make_cart(), DiscountContext(shipping_fee=Decimal("49")))
        assert amount == Decimal("0")

    @pytest.mark.parametrize("discount_type", list(DiscountType))
    def test_never_exceeds_total_or_cap(self, make_coupon, make_cart, discount_type):
        coupon = make_coupon(discount_type=discount_type, discount=90, max_discount=70)
        cart = make_cart((60, 1), (15, 1))
        amount = compute(coupon, cart, DiscountContext(shipping_fee=Decimal("200")))
        assert Decimal("0") <= amount <= min(cart.total, Decimal("70"))


class TestQualifyingItems:
    """Tests for category filtering."""

    def test_no_restrictions_keeps_everything(self, make_coupon, make_cart):
        cart = make_cart((100, 1, "Tops"), (200, 1, None))
        assert len(qualifying_items(make_coupon(), cart.items)) == 2

    def test_excluded_categories_removed(self, make_coupon, make_cart):
        coupon = make_coupon(excluded_categories=frozenset({"Sale"}))
        cart = make_cart((100, 1, "Tops"), (200, 1, "Sale"))
        assert [item.category for item in qualifying_items(coupon, cart.items)] == ["Tops"]
