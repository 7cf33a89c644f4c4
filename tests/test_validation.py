"""Unit tests for coupon validation."""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

from shopbag.coupon_engine.models import (
    CouponConditions,
    DiscountKind,
    DiscountType,
    TimeWindow,
    ValidationCheck,
)
from shopbag.coupon_engine.validation import validate_coupon

from conftest import NOW


class TestValidCoupon:
    """Tests for coupons that pass every check."""

    def test_valid_result_carries_discount_and_final_total(self, make_coupon, make_cart):
        coupon = make_coupon(
            code="SAVE20", discount_type=DiscountType.PERCENTAGE,
            discount=20, threshold=500, max_discount=150,
        )
        result = validate_coupon(coupon, make_cart((1000, 1)), now=NOW)
        assert result.is_valid
        assert result.reasons == []
        assert result.discount_amount == Decimal("150")
        assert result.final_total == Decimal("850")

    def test_threshold_is_inclusive(self, make_coupon, make_cart):
        coupon = make_coupon(threshold=500)
        assert validate_coupon(coupon, make_cart((500, 1)), now=NOW).is_valid

    def test_cashback_is_deducted_from_final_total(self, make_coupon, make_cart):
        coupon = make_coupon(discount_type=DiscountType.CASHBACK, discount=50)
        result = validate_coupon(coupon, make_cart((800, 1)), now=NOW)
        assert result.discount_kind == DiscountKind.CASHBACK
        assert result.final_total == Decimal("750")


class TestThresholdCheck:
    """Tests for the minimum order value."""

    def test_shortfall_reason(self, make_coupon, make_cart):
        """FLAT100 with threshold 300 on a total of 80 is rejected."""
        coupon = make_coupon(code="FLAT100", discount=100, threshold=300)
        result = validate_coupon(coupon, make_cart((80, 1)), now=NOW)
        assert not result.is_valid
        assert result.reasons == ["Add ₹220 more to use this coupon (minimum order value ₹300)"]
        assert result.failures == [ValidationCheck.THRESHOLD]
        assert result.discount_amount == Decimal("0")
        assert result.final_total == Decimal("80")

    def test_fractional_shortfall(self, make_coupon, make_cart):
        coupon = make_coupon(threshold=300)
        result = validate_coupon(coupon, make_cart((280.5, 1)), now=NOW)
        assert result.reasons[0].startswith("Add ₹19.50 more")

    def test_currency_symbol(self, make_coupon, make_cart):
        coupon = make_coupon(threshold=300)
        result = validate_coupon(coupon, make_cart((200, 1)), now=NOW, currency="$")
        assert result.reasons[0] == "Add $100 more to use this coupon (minimum order value $300)"


class TestScheduleCheck:
    """Tests for active flag and date window."""

    def test_inactive(self, make_coupon, make_cart):
        result = validate_coupon(make_coupon(is_active=False), make_cart((500, 1)), now=NOW)
        assert not result.is_valid
        assert "Coupon is not active" in result.reasons

    def test_not_yet_active(self, make_coupon, make_cart):
        coupon = make_coupon(valid_from=NOW + timedelta(days=1))
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW)
        assert result.reasons == ["Coupon is not yet active"]
        assert result.failures == [ValidationCheck.DATE_WINDOW]

    def test_expired(self, make_coupon, make_cart):
        coupon = make_coupon(valid_upto=NOW - timedelta(seconds=1))
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW)
        assert result.reasons == ["Coupon has expired"]

    def test_open_ended_window(self, make_coupon, make_cart):
        coupon = make_coupon(valid_from=None, valid_upto=None)
        assert validate_coupon(coupon, make_cart((500, 1)), now=NOW).is_valid


class TestCategoryCheck:
    """Tests for category restrictions."""

    def test_no_matching_category(self, make_coupon, make_cart):
        coupon = make_coupon(applicable_categories=frozenset({"Footwear"}))
        result = validate_coupon(coupon, make_cart((500, 1, "Tops")), now=NOW)
        assert result.reasons == ["Coupon is not applicable to items in your cart"]
        assert result.failures == [ValidationCheck.CATEGORY]

    def test_one_matching_item_is_enough(self, make_coupon, make_cart):
        coupon = make_coupon(applicable_categories=frozenset({"Footwear"}))
        cart = make_cart((500, 1, "Tops"), (900, 1, "Footwear"))
        assert validate_coupon(coupon, cart, now=NOW).is_valid

    def test_all_items_excluded(self, make_coupon, make_cart):
        coupon = make_coupon(excluded_categories=frozenset({"Sale"}))
        result = validate_coupon(coupon, make_cart((500, 1, "Sale")), now=NOW)
        assert not result.is_valid


class TestUsageChecks:
    """Tests for global and per-user usage limits."""

    def test_global_limit_reached(self, make_coupon, make_cart):
        coupon = make_coupon(usage_limit=10, used=10)
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW)
        assert result.reasons == ["Coupon usage limit reached"]
        assert result.failures == [ValidationCheck.USAGE_LIMIT]

    def test_global_limit_not_reached(self, make_coupon, make_cart):
        coupon = make_coupon(usage_limit=10, used=9)
        assert validate_coupon(coupon, make_cart((500, 1)), now=NOW).is_valid

    def test_per_user_limit_reached(self, make_coupon, make_cart):
        coupon = make_coupon(usage_limit_per_user=1)
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW, user_usage_count=1)
        assert result.reasons == ["You have already used this coupon the maximum number of times"]
        assert result.failures == [ValidationCheck.USER_LIMIT]

    def test_per_user_limit_skipped_without_count(self, make_coupon, make_cart):
        coupon = make_coupon(usage_limit_per_user=1)
        assert validate_coupon(coupon, make_cart((500, 1)), now=NOW).is_valid


class TestConditions:
    """Tests for the optional extra conditions."""

    def test_min_items(self, make_coupon, make_cart):
        coupon = make_coupon(conditions=CouponConditions(min_items=3))
        result = validate_coupon(coupon, make_cart((100, 2)), now=NOW)
        assert result.reasons == ["Minimum 3 items required"]
        assert validate_coupon(coupon, make_cart((100, 2), (50, 1)), now=NOW).is_valid

    def test_max_items(self, make_coupon, make_cart):
        coupon = make_coupon(conditions=CouponConditions(max_items=2))
        result = validate_coupon(coupon, make_cart((100, 3)), now=NOW)
        assert result.reasons == ["Maximum 2 items allowed"]

    def test_max_cart_value(self, make_coupon, make_cart):
        coupon = make_coupon(conditions=CouponConditions(max_cart_value=Decimal("1000")))
        result = validate_coupon(coupon, make_cart((1200, 1)), now=NOW)
        assert result.reasons == ["Maximum cart value ₹1000 exceeded"]

    def test_days(self, make_coupon, make_cart):
        coupon = make_coupon(conditions=CouponConditions(days=("Saturday", "Sunday")))
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW)
        assert result.reasons == ["Coupon only valid on Saturday, Sunday"]

        saturday = datetime(2026, 6, 13, 12, 0, tzinfo=timezone.utc)
        assert validate_coupon(coupon, make_cart((500, 1)), now=saturday).is_valid

    def test_time_window(self, make_coupon, make_cart):
        coupon = make_coupon(conditions=CouponConditions(time_window=TimeWindow.parse("09:00", "11:00")))
        result = validate_coupon(coupon, make_cart((500, 1)), now=NOW)
        assert result.reasons == ["Coupon not valid at this time"]

    def test_time_window_wrapping_midnight(self):
        window = TimeWindow.parse("22:00", "02:00")
        assert window.contains(datetime(2026, 6, 15, 23, 30).time())
        assert window.contains(datetime(2026, 6, 15, 1, 0).time())
        assert not window.contains(datetime(2026, 6, 15, 12, 0).time())

    def test_conditions_round_trip_from_dict(self):
        conditions = CouponConditions.from_dict({
            "min_items": 2,
            "days": ["saturday"],
            "time_window": {"start": "10:00", "end": "18:00"},
        })
        assert conditions.min_items == 2
        assert conditions.days == ("Saturday",)
        assert conditions.to_dict()["time_window"] == {"start": "10:00", "end": "18:00"}


class TestMultipleFailures:
    """All failing checks are reported, in check order."""

    def test_reasons_are_collected(self, make_coupon, make_cart):
        coupon = make_coupon(
            is_active=False,
            threshold=1000,
            usage_limit=5,
            used=5,
        )
        result = validate_coupon(coupon, make_cart((200, 1)), now=NOW)
        assert not result.is_valid
        assert result.failures == [
            ValidationCheck.ACTIVE,
            ValidationCheck.THRESHOLD,
            ValidationCheck.USAGE_LIMIT,
        ]
        assert result.reasons[0] == "Coupon is not active"
