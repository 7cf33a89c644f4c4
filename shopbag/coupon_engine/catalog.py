"""
Coupon Catalog

Primary coupon source: a static JSON file of coupon definitions. Definitions
are read-only; the usage counters live in memory for the process lifetime.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .models import Coupon, CouponConditions, DiscountType, canonical_code, to_datetime
from .usage_tracker import InMemoryUsageCounters

logger = logging.getLogger(__name__)


class CatalogEntry(BaseModel):
    id: str
    code: str
    description: str = ""
    discount_type: DiscountType
    discount: Decimal = Field(ge=0)
    threshold: Decimal = Field(default=Decimal("0"), ge=0)
    max_discount: Optional[Decimal] = Field(default=None, ge=0)
    valid_from: Optional[datetime] = None
    valid_upto: Optional[datetime] = None
    is_active: bool = True
    priority: int = 0
    usage_limit: Optional[int] = Field(default=None, ge=0)
    usage_limit_per_user: Optional[int] = Field(default=None, ge=0)
    used: int = Field(default=0, ge=0)
    applicable_categories: Optional[List[str]] = None
    excluded_categories: Optional[List[str]] = None
    conditions: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    def to_coupon(self) -> Coupon:
        return Coupon(
            id=self.id,
            code=self.code,
            description=self.description,
            discount_type=self.discount_type,
            discount=self.discount,
            threshold=self.threshold,
            max_discount=self.max_discount,
            valid_from=to_datetime(self.valid_from),
            valid_upto=to_datetime(self.valid_upto),
            is_active=self.is_active,
            priority=self.priority,
            usage_limit=self.usage_limit,
            usage_limit_per_user=self.usage_limit_per_user,
            used=self.used,
            applicable_categories=frozenset(self.applicable_categories) if self.applicable_categories else None,
            excluded_categories=frozenset(self.excluded_categories) if self.excluded_categories else None,
            conditions=CouponConditions.from_dict(self.conditions),
            created_at=to_datetime(self.created_at),
        )


class CouponCatalog:
    """In-memory coupon catalog with atomic per-coupon usage counters."""

    def __init__(self, coupons: List[Coupon]):
        self._by_id: Dict[str, Coupon] = {}
        self._by_code: Dict[str, str] = {}
        self.counters = InMemoryUsageCounters()
        for coupon in coupons:
            if coupon.code in self._by_code:
                raise ValueError(f"Duplicate coupon code in catalog: {coupon.code}")
            self._by_id[coupon.id] = coupon
            self._by_code[coupon.code] = coupon.id
            self.counters.seed(coupon.id, coupon.used)

    @classmethod
    def from_file(cls, path: Path) -> "CouponCatalog":
        """Load the catalog. A missing file gives an empty catalog."""
        path = Path(path)
        if not path.exists():
            logger.warning(f"Coupon catalog not found: {path}")
            return cls([])

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        coupons = [CatalogEntry(**entry).to_coupon() for entry in data.get("coupons", [])]
        logger.info(f"Loaded {len(coupons)} coupons from {path}")
        return cls(coupons)

    def _current(self, coupon: Coupon) -> Coupon:
        return coupon.with_used(self.counters.get(coupon.id))

    def all(self) -> List[Coupon]:
        return [self._current(c) for c in self._by_id.values()]

    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        coupon = self._by_id.get(str(coupon_id))
        return self._current(coupon) if coupon else None

    def get_by_code(self, code: str) -> Optional[Coupon]:
        coupon_id = self._by_code.get(canonical_code(code))
        return self.get_by_id(coupon_id) if coupon_id else None

    def contains(self, coupon_id: str) -> bool:
        return str(coupon_id) in self._by_id

    def increment_usage(self, coupon_id: str) -> bool:
        """Take one use; False once the coupon's usage_limit is reached."""
        coupon = self._by_id.get(str(coupon_id))
        if coupon is None:
            return False
        return self.counters.try_increment(coupon.id, coupon.usage_limit)

    def decrement_usage(self, coupon_id: str) -> int:
        return self.counters.decrement(str(coupon_id))
