"""
Display formatting for coupon lists and nudges.

These helpers never raise: a coupon that cannot be evaluated is still listed,
marked as not applicable.
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from .models import (
    CartState,
    Coupon,
    DiscountContext,
    ThresholdSuggestion,
    utcnow,
)
from .validation import validate_coupon

logger = logging.getLogger(__name__)

GENERIC_REASON = "Error validating coupon"


def _num(value) -> Optional[float]:
    return float(value) if value is not None else None


def coupon_to_dict(coupon: Coupon) -> Dict[str, Any]:
    return {
        "id": coupon.id,
        "code": coupon.code,
        "description": coupon.description,
        "discount": _num(coupon.discount),
        "discountType": coupon.discount_type.value,
        "threshold": _num(coupon.threshold),
        "maxDiscount": _num(coupon.max_discount),
        "validFrom": coupon.valid_from.isoformat() if coupon.valid_from else None,
        "validUpto": coupon.valid_upto.isoformat() if coupon.valid_upto else None,
        "isActive": coupon.is_active,
        "priority": coupon.priority,
        "applicableCategories": sorted(coupon.applicable_categories) if coupon.applicable_categories else None,
    }


def _fallback(coupon: Any) -> Dict[str, Any]:
    return {
        "id": str(getattr(coupon, "id", "")),
        "code": str(getattr(coupon, "code", "")),
        "description": str(getattr(coupon, "description", "")),
        "isApplicable": False,
        "reasons": [GENERIC_REASON],
    }


def format_coupon_for_display(
    coupon: Coupon,
    cart: Optional[CartState] = None,
    *,
    now: Optional[datetime] = None,
    user_usage_count: Optional[int] = None,
    context: Optional[DiscountContext] = None,
    currency: str = "₹",
) -> Dict[str, Any]:
    """Coupon summary; with a cart, also whether and how much it applies."""
    try:
        formatted = coupon_to_dict(coupon)
        if cart is not None:
            result = validate_coupon(
                coupon,
                cart,
                now=now,
                user_usage_count=user_usage_count,
                context=context,
                currency=currency,
            )
            formatted["isApplicable"] = result.is_valid
            formatted["reasons"] = result.reasons
            formatted["calculatedDiscount"] = float(result.discount_amount)
            formatted["finalTotal"] = float(result.final_total)
            formatted["discountKind"] = result.discount_kind.value
        return formatted
    except Exception as e:
        logger.exception(f"Error formatting coupon {getattr(coupon, 'id', '?')} for display: {e}")
        return _fallback(coupon)


def suggestion_to_dict(suggestion: ThresholdSuggestion) -> Dict[str, Any]:
    return {
        "coupon": coupon_to_dict(suggestion.coupon),
        "amountNeeded": float(suggestion.amount_needed),
        "potentialSavings": float(suggestion.potential_savings),
    }


def usage_stats(coupon: Coupon, now: Optional[datetime] = None) -> Dict[str, Any]:
    now = now or utcnow()
    days_until_expiry = None
    if coupon.valid_upto is not None:
        days_until_expiry = math.ceil((coupon.valid_upto - now).total_seconds() / 86400)
    return {
        "id": coupon.id,
        "code": coupon.code,
        "used": coupon.used,
        "usageLimit": coupon.usage_limit,
        "usagePercentage": round(coupon.used / coupon.usage_limit * 100, 1) if coupon.usage_limit else 0,
        "isActive": coupon.is_active,
        "daysUntilExpiry": days_until_expiry,
    }
