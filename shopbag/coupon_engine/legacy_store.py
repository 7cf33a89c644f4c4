"""
Legacy Coupon Store

Fallback coupon source backed by the `coupons` table, plus the per-user usage
ledger in `coupon_user_usage`. Counter changes are single atomic UPDATE
statements executed inside the caller's transaction.
"""

import json
import logging
from datetime import datetime
from typing import Any, List, Optional, Tuple

from sqlalchemy import text
from sqlalchemy.orm import Session

from .models import (
    CartState,
    Coupon,
    CouponConditions,
    canonical_code,
    to_datetime,
    to_decimal,
)
from .validation import validate_coupon

logger = logging.getLogger(__name__)

_COUPON_COLUMNS = """
    id, code, description, discount_type, discount_value, threshold,
    max_discount, valid_from, valid_upto, is_active, priority, usage_limit,
    usage_limit_per_user, used_count, applicable_categories,
    excluded_categories, conditions, created_at
"""


def _load_json(value: Any) -> Any:
    if value is None or value == "":
        return None
    if isinstance(value, (list, dict)):
        return value
    return json.loads(value)


def _row_to_coupon(row) -> Coupon:
    m = row._mapping
    applicable = _load_json(m["applicable_categories"])
    excluded = _load_json(m["excluded_categories"])
    return Coupon(
        id=str(m["id"]),
        code=m["code"],
        description=m["description"] or "",
        discount_type=m["discount_type"],
        discount=to_decimal(m["discount_value"]),
        threshold=to_decimal(m["threshold"] or 0),
        max_discount=to_decimal(m["max_discount"]) if m["max_discount"] is not None else None,
        valid_from=to_datetime(m["valid_from"]),
        valid_upto=to_datetime(m["valid_upto"]),
        is_active=bool(m["is_active"]),
        priority=m["priority"] or 0,
        usage_limit=m["usage_limit"],
        usage_limit_per_user=m["usage_limit_per_user"],
        used=m["used_count"] or 0,
        applicable_categories=frozenset(applicable) if applicable else None,
        excluded_categories=frozenset(excluded) if excluded else None,
        conditions=CouponConditions.from_dict(_load_json(m["conditions"])),
        created_at=to_datetime(m["created_at"]),
    )


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


class LegacyCouponStore:
    """Coupons persisted in the database."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        row = self.db.execute(
            text(f"SELECT {_COUPON_COLUMNS} FROM coupons WHERE id = :id"),
            {"id": str(coupon_id)},
        ).fetchone()
        return _row_to_coupon(row) if row else None

    def get_by_code(self, code: str) -> Optional[Coupon]:
        row = self.db.execute(
            text(f"SELECT {_COUPON_COLUMNS} FROM coupons WHERE code = :code"),
            {"code": canonical_code(code)},
        ).fetchone()
        return _row_to_coupon(row) if row else None

    def all(self) -> List[Coupon]:
        rows = self.db.execute(
            text(f"SELECT {_COUPON_COLUMNS} FROM coupons ORDER BY priority DESC, code")
        ).fetchall()
        coupons = []
        for row in rows:
            try:
                coupons.append(_row_to_coupon(row))
            except ValueError as e:
                logger.error(f"Skipping malformed coupon row {row._mapping['id']}: {e}")
        return coupons

    def insert(self, coupon: Coupon) -> None:
        """Persist a coupon definition (admin tooling and seeding)."""
        self.db.execute(
            text(f"""
                INSERT INTO coupons ({_COUPON_COLUMNS})
                VALUES (
                    :id, :code, :description, :discount_type, :discount_value, :threshold,
                    :max_discount, :valid_from, :valid_upto, :is_active, :priority, :usage_limit,
                    :usage_limit_per_user, :used_count, :applicable_categories,
                    :excluded_categories, :conditions, :created_at
                )
            """),
            {
                "id": coupon.id,
                "code": coupon.code,
                "description": coupon.description,
                "discount_type": coupon.discount_type.value,
                "discount_value": str(coupon.discount),
                "threshold": str(coupon.threshold),
                "max_discount": str(coupon.max_discount) if coupon.max_discount is not None else None,
                "valid_from": _iso(coupon.valid_from),
                "valid_upto": _iso(coupon.valid_upto),
                "is_active": coupon.is_active,
                "priority": coupon.priority,
                "usage_limit": coupon.usage_limit,
                "usage_limit_per_user": coupon.usage_limit_per_user,
                "used_count": coupon.used,
                "applicable_categories": json.dumps(sorted(coupon.applicable_categories)) if coupon.applicable_categories else None,
                "excluded_categories": json.dumps(sorted(coupon.excluded_categories)) if coupon.excluded_categories else None,
                "conditions": None if coupon.conditions.is_empty() else json.dumps(coupon.conditions.to_dict()),
                "created_at": _iso(coupon.created_at),
            },
        )

    def increment_usage(self, coupon_id: str) -> bool:
        """Take one use; no row matches once used_count has reached usage_limit."""
        result = self.db.execute(
            text("""
                UPDATE coupons
                SET used_count = used_count + 1
                WHERE id = :id AND (usage_limit IS NULL OR used_count < usage_limit)
            """),
            {"id": str(coupon_id)},
        )
        return result.rowcount > 0

    def decrement_usage(self, coupon_id: str) -> bool:
        result = self.db.execute(
            text("""
                UPDATE coupons
                SET used_count = CASE WHEN used_count > 0 THEN used_count - 1 ELSE 0 END
                WHERE id = :id
            """),
            {"id": str(coupon_id)},
        )
        return result.rowcount > 0

    def find_valid_coupon(
        self,
        code: str,
        user_id: Optional[str],
        cart: CartState,
        now: Optional[datetime] = None,
    ) -> Tuple[bool, List[str], Optional[Coupon]]:
        """
        Look up an active coupon by code and validate it for this user's cart.
        Returns (valid, errors, coupon); coupon is None unless valid.
        """
        coupon = self.get_by_code(code)
        if coupon is None or not coupon.is_active:
            return False, ["Invalid coupon code"], None

        user_usage = UserUsageLedger(self.db).usage_count(coupon.id, user_id) if user_id else None
        result = validate_coupon(coupon, cart, now=now, user_usage_count=user_usage)
        return result.is_valid, result.reasons, coupon if result.is_valid else None


class UserUsageLedger:
    """
    How many times each user has applied a coupon. This is history: removing
    or invalidating a coupon does not give the use back.
    """

    def __init__(self, db: Session):
        self.db = db

    def usage_count(self, coupon_id: str, user_id: str) -> int:
        value = self.db.execute(
            text("""
                SELECT usage_count FROM coupon_user_usage
                WHERE coupon_id = :coupon_id AND user_id = :user_id
            """),
            {"coupon_id": str(coupon_id), "user_id": str(user_id)},
        ).scalar()
        return int(value or 0)

    def increment(self, coupon_id: str, user_id: str) -> None:
        self.db.execute(
            text("""
                INSERT INTO coupon_user_usage (coupon_id, user_id, usage_count)
                VALUES (:coupon_id, :user_id, 1)
                ON CONFLICT (coupon_id, user_id)
                DO UPDATE SET
                    usage_count = coupon_user_usage.usage_count + 1,
                    updated_at = CURRENT_TIMESTAMP
            """),
            {"coupon_id": str(coupon_id), "user_id": str(user_id)},
        )
