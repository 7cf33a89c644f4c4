"""
Coupon Engine Models

Dataclasses shared by the calculator, validator, advisor and state manager.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, time, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional, Tuple


ZERO = Decimal("0")
CENT = Decimal("0.01")

WEEKDAYS = (
    "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"
)


def to_decimal(value: Any) -> Decimal:
    """Convert a DB/JSON numeric to Decimal. Raises ValueError on garbage."""
    if isinstance(value, Decimal):
        return value
    if value is None or isinstance(value, bool):
        raise ValueError(f"Not a number: {value!r}")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Not a number: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return result


def round_money(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def format_amount(amount: Decimal) -> str:
    """1500 -> '1500', 49.5 -> '49.50'."""
    if amount == amount.to_integral_value():
        return str(int(amount))
    return f"{round_money(amount):.2f}"


def to_datetime(value: Any) -> Optional[datetime]:
    """Parse ISO strings / datetimes; naive values are treated as UTC."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        dt = value
    else:
        text_value = str(value).strip().replace("Z", "+00:00")
        dt = datetime.fromisoformat(text_value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"
    SHIPPING = "shipping"
    BOGO = "bogo"
    CASHBACK = "cashback"


class DiscountKind(str, Enum):
    """How a computed amount is settled downstream."""

    DISCOUNT = "discount"
    SHIPPING_WAIVER = "shipping_waiver"
    CASHBACK = "cashback"


class ValidationCheck(str, Enum):
    ACTIVE = "active"
    DATE_WINDOW = "date_window"
    THRESHOLD = "threshold"
    CATEGORY = "category"
    USAGE_LIMIT = "usage_limit"
    USER_LIMIT = "user_limit"
    CONDITIONS = "conditions"


@dataclass(frozen=True)
class TimeWindow:
    start: time
    end: time

    def contains(self, moment: time) -> bool:
        # Windows such as 22:00-02:00 wrap past midnight
        if self.start > self.end:
            return moment >= self.start or moment <= self.end
        return self.start <= moment <= self.end

    @classmethod
    def parse(cls, start: str, end: str) -> "TimeWindow":
        return cls(start=time.fromisoformat(start), end=time.fromisoformat(end))


@dataclass(frozen=True)
class CouponConditions:
    """Optional extra restrictions carried over from the legacy rule schema."""

    min_items: Optional[int] = None
    max_items: Optional[int] = None
    max_cart_value: Optional[Decimal] = None
    days: Tuple[str, ...] = ()
    time_window: Optional[TimeWindow] = None

    def is_empty(self) -> bool:
        return (
            self.min_items is None
            and self.max_items is None
            and self.max_cart_value is None
            and not self.days
            and self.time_window is None
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        if self.min_items is not None:
            data["min_items"] = self.min_items
        if self.max_items is not None:
            data["max_items"] = self.max_items
        if self.max_cart_value is not None:
            data["max_cart_value"] = str(self.max_cart_value)
        if self.days:
            data["days"] = list(self.days)
        if self.time_window is not None:
            data["time_window"] = {
                "start": self.time_window.start.strftime("%H:%M"),
                "end": self.time_window.end.strftime("%H:%M"),
            }
        return data

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "CouponConditions":
        if not data:
            return cls()
        window = data.get("time_window")
        max_cart_value = data.get("max_cart_value")
        days = tuple(d.capitalize() for d in data.get("days") or ())
        for day in days:
            if day not in WEEKDAYS:
                raise ValueError(f"Unknown weekday in coupon conditions: {day}")
        return cls(
            min_items=data.get("min_items"),
            max_items=data.get("max_items"),
            max_cart_value=to_decimal(max_cart_value) if max_cart_value is not None else None,
            days=days,
            time_window=TimeWindow.parse(window["start"], window["end"]) if window else None,
        )


@dataclass(frozen=True)
class Coupon:
    """A rule-bound discount definition. Read-only apart from `used`."""

    id: str
    code: str
    description: str
    discount_type: DiscountType
    discount: Decimal
    threshold: Decimal = ZERO
    max_discount: Optional[Decimal] = None
    valid_from: Optional[datetime] = None
    valid_upto: Optional[datetime] = None
    is_active: bool = True
    priority: int = 0
    usage_limit: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    used: int = 0
    applicable_categories: Optional[FrozenSet[str]] = None
    excluded_categories: Optional[FrozenSet[str]] = None
    conditions: CouponConditions = field(default_factory=CouponConditions)
    created_at: Optional[datetime] = None

    def __post_init__(self):
        object.__setattr__(self, "code", canonical_code(self.code))
        if not isinstance(self.discount_type, DiscountType):
            object.__setattr__(self, "discount_type", DiscountType(self.discount_type))

    def is_usage_exhausted(self) -> bool:
        return self.usage_limit is not None and self.used >= self.usage_limit

    def is_expired(self, now: datetime) -> bool:
        return self.valid_upto is not None and now > self.valid_upto

    def is_live(self, now: datetime) -> bool:
        """Active, inside its date window and not used up."""
        if not self.is_active or self.is_expired(now):
            return False
        if self.valid_from is not None and now < self.valid_from:
            return False
        return not self.is_usage_exhausted()

    def with_used(self, used: int) -> "Coupon":
        return replace(self, used=max(0, used))


def canonical_code(code: str) -> str:
    return (code or "").strip().upper()


@dataclass(frozen=True)
class CartItem:
    id: str
    price: Decimal
    quantity: int
    category: Optional[str] = None

    @property
    def line_total(self) -> Decimal:
        return self.price * self.quantity


@dataclass(frozen=True)
class CartState:
    total: Decimal = ZERO
    items: Tuple[CartItem, ...] = ()

    @property
    def unit_count(self) -> int:
        return sum(item.quantity for item in self.items)

    def with_total(self, total: Decimal) -> "CartState":
        return replace(self, total=total)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": float(self.total),
            "items": [
                {
                    "id": item.id,
                    "price": float(item.price),
                    "quantity": item.quantity,
                    "category": item.category,
                }
                for item in self.items
            ],
        }


@dataclass(frozen=True)
class DiscountContext:
    """Caller-supplied facts the engine does not compute itself."""

    shipping_fee: Decimal = ZERO


@dataclass(frozen=True)
class DiscountBreakdown:
    amount: Decimal
    kind: DiscountKind


@dataclass
class ValidationResult:
    is_valid: bool
    reasons: List[str]
    discount_amount: Decimal
    final_total: Decimal
    failures: List[ValidationCheck] = field(default_factory=list)
    discount_kind: DiscountKind = DiscountKind.DISCOUNT


@dataclass
class ThresholdSuggestion:
    coupon: Coupon
    amount_needed: Decimal
    potential_savings: Decimal


class FailureKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"


@dataclass
class CouponActionResult:
    """Outcome of apply/remove. Business failures are data, not exceptions."""

    success: bool
    message: str
    coupon_code: Optional[str] = None
    coupon_id: Optional[str] = None
    discount_amount: Decimal = ZERO
    cart_total: Optional[Decimal] = None
    new_total: Optional[Decimal] = None
    discount_kind: Optional[DiscountKind] = None
    errors: List[str] = field(default_factory=list)
    failure: Optional[FailureKind] = None

    @classmethod
    def failed(cls, failure: FailureKind, errors: List[str]) -> "CouponActionResult":
        return cls(success=False, message=errors[0], errors=list(errors), failure=failure)

    def to_dict(self) -> Dict[str, Any]:
        if not self.success:
            return {"success": False, "message": self.message, "errors": self.errors}
        payload: Dict[str, Any] = {
            "success": True,
            "message": self.message,
            "discountAmount": float(self.discount_amount),
        }
        if self.coupon_id is not None:
            payload.update({
                "couponCode": self.coupon_code,
                "couponId": self.coupon_id,
                "cartTotal": float(self.cart_total),
                "newTotal": float(self.new_total),
                "discountKind": self.discount_kind.value if self.discount_kind else None,
            })
        return payload


@dataclass
class RevalidationResult:
    is_valid: bool
    should_remove: bool
    reason: str
    new_discount: Decimal = ZERO

    def to_dict(self) -> Dict[str, Any]:
        return {
            "isValid": self.is_valid,
            "shouldRemove": self.should_remove,
            "reason": self.reason,
            "newDiscount": float(self.new_discount),
        }
