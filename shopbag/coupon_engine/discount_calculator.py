"""
Discount Calculator

Pure, deterministic: (coupon, cart snapshot) -> discount amount.

Amount rules per discount type:
- percentage: total * discount / 100, rounded half-up to whole currency units
- fixed:      min(discount, total)
- shipping:   the shipping fee supplied by the caller (0 when none)
- bogo:       half the unit price of the cheapest qualifying line, once the
              qualifying lines hold two or more units
- cashback:   like fixed, tagged so wallet credit can be told apart

Every amount ends up within [0, min(total, max_discount)].
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import List, Optional

from .models import (
    CartItem,
    CartState,
    Coupon,
    DiscountBreakdown,
    DiscountContext,
    DiscountKind,
    DiscountType,
    ZERO,
    round_money,
)

_HUNDRED = Decimal("100")
_HALF = Decimal("0.5")


def qualifying_items(coupon: Coupon, items) -> List[CartItem]:
    """Cart lines the coupon's category include/exclude lists allow."""
    allowed = coupon.applicable_categories
    excluded = coupon.excluded_categories
    result = []
    for item in items:
        if allowed and item.category not in allowed:
            continue
        if excluded and item.category in excluded:
            continue
        result.append(item)
    return result


def _percentage(coupon: Coupon, cart: CartState) -> Decimal:
    raw = cart.total * coupon.discount / _HUNDRED
    return raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def _bogo(coupon: Coupon, cart: CartState) -> Decimal:
    lines = qualifying_items(coupon, cart.items)
    if sum(item.quantity for item in lines) < 2:
        return ZERO
    cheapest = min(item.price for item in lines)
    return round_money(cheapest * _HALF)


def compute_breakdown(
    coupon: Coupon,
    cart: CartState,
    context: Optional[DiscountContext] = None,
) -> DiscountBreakdown:
    """Compute the amount and how it should be settled."""
    context = context or DiscountContext()
    kind = DiscountKind.DISCOUNT
    discount_type = coupon.discount_type

    if discount_type is DiscountType.PERCENTAGE:
        amount = _percentage(coupon, cart)
    elif discount_type is DiscountType.FIXED:
        amount = round_money(min(coupon.discount, cart.total))
    elif discount_type is DiscountType.SHIPPING:
        amount = round_money(context.shipping_fee)
        kind = DiscountKind.SHIPPING_WAIVER
    elif discount_type is DiscountType.BOGO:
        amount = _bogo(coupon, cart)
    elif discount_type is DiscountType.CASHBACK:
        amount = round_money(min(coupon.discount, cart.total))
        kind = DiscountKind.CASHBACK
    else:
        raise ValueError(f"Unhandled discount type: {discount_type!r}")

    ceiling = max(cart.total, ZERO)
    if coupon.max_discount is not None:
        ceiling = min(ceiling, coupon.max_discount)
    amount = max(ZERO, min(amount, ceiling))
    return DiscountBreakdown(amount=amount, kind=kind)


def compute(
    coupon: Coupon,
    cart: CartState,
    context: Optional[DiscountContext] = None,
) -> Decimal:
    return compute_breakdown(coupon, cart, context).amount
