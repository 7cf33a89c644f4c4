"""
Validation Engine

validate_coupon(coupon, cart) -> ValidationResult. Every check runs so all
failing reasons are collected; the first reason is the one shown to users.
"""

import logging
from datetime import datetime
from typing import List, Optional, Tuple

from . import discount_calculator
from .models import (
    WEEKDAYS,
    CartState,
    Coupon,
    DiscountContext,
    ValidationCheck,
    ValidationResult,
    ZERO,
    format_amount,
    utcnow,
)

logger = logging.getLogger(__name__)

Failure = Tuple[ValidationCheck, str]


def _check_schedule(coupon: Coupon, now: datetime) -> List[Failure]:
    failures = []
    if not coupon.is_active:
        failures.append((ValidationCheck.ACTIVE, "Coupon is not active"))
    if coupon.valid_from is not None and now < coupon.valid_from:
        failures.append((ValidationCheck.DATE_WINDOW, "Coupon is not yet active"))
    if coupon.is_expired(now):
        failures.append((ValidationCheck.DATE_WINDOW, "Coupon has expired"))
    return failures


def _check_threshold(coupon: Coupon, cart: CartState, currency: str) -> List[Failure]:
    if cart.total >= coupon.threshold:
        return []
    needed = coupon.threshold - cart.total
    return [(
        ValidationCheck.THRESHOLD,
        f"Add {currency}{format_amount(needed)} more to use this coupon "
        f"(minimum order value {currency}{format_amount(coupon.threshold)})",
    )]


def _check_categories(coupon: Coupon, cart: CartState) -> List[Failure]:
    if not coupon.applicable_categories and not coupon.excluded_categories:
        return []
    if discount_calculator.qualifying_items(coupon, cart.items):
        return []
    return [(ValidationCheck.CATEGORY, "Coupon is not applicable to items in your cart")]


def _check_usage(coupon: Coupon, user_usage_count: Optional[int]) -> List[Failure]:
    failures = []
    if coupon.is_usage_exhausted():
        failures.append((ValidationCheck.USAGE_LIMIT, "Coupon usage limit reached"))
    if (
        coupon.usage_limit_per_user is not None
        and user_usage_count is not None
        and user_usage_count >= coupon.usage_limit_per_user
    ):
        failures.append((
            ValidationCheck.USER_LIMIT,
            "You have already used this coupon the maximum number of times",
        ))
    return failures


def _check_conditions(
    coupon: Coupon, cart: CartState, now: datetime, currency: str
) -> List[Failure]:
    conditions = coupon.conditions
    if conditions.is_empty():
        return []

    failures = []
    units = cart.unit_count
    if conditions.min_items is not None and units < conditions.min_items:
        failures.append((ValidationCheck.CONDITIONS, f"Minimum {conditions.min_items} items required"))
    if conditions.max_items is not None and units > conditions.max_items:
        failures.append((ValidationCheck.CONDITIONS, f"Maximum {conditions.max_items} items allowed"))
    if conditions.max_cart_value is not None and cart.total > conditions.max_cart_value:
        failures.append((
            ValidationCheck.CONDITIONS,
            f"Maximum cart value {currency}{format_amount(conditions.max_cart_value)} exceeded",
        ))
    if conditions.days and WEEKDAYS[now.weekday()] not in conditions.days:
        failures.append((
            ValidationCheck.CONDITIONS,
            f"Coupon only valid on {', '.join(conditions.days)}",
        ))
    if conditions.time_window is not None and not conditions.time_window.contains(now.time()):
        failures.append((ValidationCheck.CONDITIONS, "Coupon not valid at this time"))
    return failures


def validate_coupon(
    coupon: Coupon,
    cart: CartState,
    *,
    now: Optional[datetime] = None,
    user_usage_count: Optional[int] = None,
    context: Optional[DiscountContext] = None,
    currency: str = "₹",
) -> ValidationResult:
    """
    Decide whether `coupon` can be applied to `cart`.

    Args:
        coupon: Coupon definition (its `used` counter is compared to the limit).
        cart: Snapshot from the cart state extractor.
        now: Evaluation instant; defaults to the current UTC time.
        user_usage_count: How often this user already used the coupon. The
            per-user limit is only checked when this is supplied.
        context: Caller-supplied facts such as the shipping fee to waive.

    Returns:
        ValidationResult; `reasons` is non-empty whenever `is_valid` is False.
    """
    now = now or utcnow()

    failures: List[Failure] = []
    failures += _check_schedule(coupon, now)
    failures += _check_threshold(coupon, cart, currency)
    failures += _check_categories(coupon, cart)
    failures += _check_usage(coupon, user_usage_count)
    failures += _check_conditions(coupon, cart, now, currency)

    if failures:
        logger.debug(f"Coupon {coupon.code} rejected: {[r for _, r in failures]}")
        return ValidationResult(
            is_valid=False,
            reasons=[reason for _, reason in failures],
            discount_amount=ZERO,
            final_total=cart.total,
            failures=[check for check, _ in failures],
        )

    breakdown = discount_calculator.compute_breakdown(coupon, cart, context)
    return ValidationResult(
        is_valid=True,
        reasons=[],
        discount_amount=breakdown.amount,
        final_total=max(ZERO, cart.total - breakdown.amount),
        discount_kind=breakdown.kind,
    )
