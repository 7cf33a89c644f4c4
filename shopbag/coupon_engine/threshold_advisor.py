"""
Threshold Advisor

Finds coupons the cart almost qualifies for and how much more it takes to
unlock them. Whether a gap is small enough to show is up to the caller.
"""

import logging
from datetime import datetime
from typing import Iterable, List, Optional

from . import discount_calculator
from .models import (
    CartState,
    Coupon,
    DiscountContext,
    ThresholdSuggestion,
    ValidationCheck,
    utcnow,
)
from .validation import validate_coupon

logger = logging.getLogger(__name__)


def _is_threshold_only_miss(coupon: Coupon, cart: CartState, now: datetime) -> bool:
    result = validate_coupon(coupon, cart, now=now)
    return not result.is_valid and set(result.failures) == {ValidationCheck.THRESHOLD}


def get_threshold_suggestions(
    coupons: Iterable[Coupon],
    cart: CartState,
    *,
    now: Optional[datetime] = None,
    context: Optional[DiscountContext] = None,
) -> List[ThresholdSuggestion]:
    """
    Rank every coupon that only misses its minimum order value.

    Order: smallest amount needed first, then larger potential savings,
    then higher priority.
    """
    now = now or utcnow()
    suggestions = []

    for coupon in coupons:
        if cart.total >= coupon.threshold:
            continue
        if not _is_threshold_only_miss(coupon, cart, now):
            continue
        amount_needed = coupon.threshold - cart.total
        potential_savings = discount_calculator.compute(
            coupon, cart.with_total(coupon.threshold), context
        )
        suggestions.append(ThresholdSuggestion(
            coupon=coupon,
            amount_needed=amount_needed,
            potential_savings=potential_savings,
        ))

    suggestions.sort(key=lambda s: (s.amount_needed, -s.potential_savings, -s.coupon.priority))
    return suggestions


def get_best_threshold_suggestion(
    coupons: Iterable[Coupon],
    cart: CartState,
    *,
    now: Optional[datetime] = None,
    context: Optional[DiscountContext] = None,
) -> Optional[ThresholdSuggestion]:
    suggestions = get_threshold_suggestions(coupons, cart, now=now, context=context)
    if not suggestions:
        return None
    best = suggestions[0]
    logger.debug(f"Best threshold suggestion: {best.coupon.code}, needs {best.amount_needed}")
    return best
