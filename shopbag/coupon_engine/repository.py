"""
Coupon Repository

One lookup surface over both coupon sources. Resolution order is fixed here:
the JSON catalog first, the persisted legacy store second. Callers never
branch on where a coupon came from.

Usage changes for persisted coupons run inside the caller's database
transaction. Catalog counters live in memory: an increment takes its slot
immediately (so concurrent applies cannot overshoot the limit) and is handed
back if the transaction rolls back; a decrement waits until the commit.
"""

import logging
from datetime import datetime
from typing import Callable, List, Optional

from .catalog import CouponCatalog
from .legacy_store import LegacyCouponStore, UserUsageLedger
from .models import Coupon

logger = logging.getLogger(__name__)


class CouponRepository:
    def __init__(
        self,
        catalog: CouponCatalog,
        ledger: UserUsageLedger,
        legacy_store: Optional[LegacyCouponStore] = None,
    ):
        self.catalog = catalog
        self.ledger = ledger
        self.legacy_store = legacy_store
        self._on_commit: List[Callable[[], int]] = []
        self._on_rollback: List[Callable[[], int]] = []

    # --- Lookups ---

    def get_by_code(self, code: str) -> Optional[Coupon]:
        coupon = self.catalog.get_by_code(code)
        if coupon is None and self.legacy_store is not None:
            coupon = self.legacy_store.get_by_code(code)
        return coupon

    def get_by_id(self, coupon_id: str) -> Optional[Coupon]:
        coupon = self.catalog.get_by_id(coupon_id)
        if coupon is None and self.legacy_store is not None:
            coupon = self.legacy_store.get_by_id(coupon_id)
        return coupon

    def all(self) -> List[Coupon]:
        coupons = self.catalog.all()
        if self.legacy_store is not None:
            seen = {c.code for c in coupons} | {c.id for c in coupons}
            coupons += [
                c for c in self.legacy_store.all()
                if c.code not in seen and c.id not in seen
            ]
        return coupons

    def list_active(self, now: datetime) -> List[Coupon]:
        """Active, in their date window and not used up; highest priority first."""
        active = [c for c in self.all() if c.is_live(now)]
        active.sort(key=lambda c: (-c.priority, c.code))
        return active

    def list_available(self, now: datetime) -> List[Coupon]:
        """
        Coupons a user may see as offers: active, not expired and not used up,
        including ones whose window has not opened yet.
        """
        available = [
            c for c in self.all()
            if c.is_active and not c.is_expired(now) and not c.is_usage_exhausted()
        ]
        available.sort(key=lambda c: (-c.priority, c.code))
        return available

    def list_expired(self, now: datetime) -> List[Coupon]:
        return [c for c in self.all() if not c.is_active or c.is_expired(now)]

    def user_usage_count(self, coupon_id: str, user_id: str) -> int:
        return self.ledger.usage_count(coupon_id, user_id)

    # --- Atomic counters ---

    def increment_usage(self, coupon_id: str, user_id: Optional[str] = None) -> bool:
        """
        Take one use of the coupon and record it in the user's history.
        Returns False when the coupon is unknown or its usage limit is reached.
        """
        if self.catalog.contains(coupon_id):
            counted = self.catalog.increment_usage(coupon_id)
            if counted:
                self._on_rollback.append(lambda: self.catalog.decrement_usage(coupon_id))
        elif self.legacy_store is not None:
            counted = self.legacy_store.increment_usage(coupon_id)
        else:
            counted = False
        if counted and user_id:
            self.ledger.increment(coupon_id, user_id)
        return counted

    def decrement_usage(self, coupon_id: str) -> bool:
        """Give back one use. The per-user history is left untouched."""
        if self.catalog.contains(coupon_id):
            self._on_commit.append(lambda: self.catalog.decrement_usage(coupon_id))
            return True
        if self.legacy_store is not None:
            return self.legacy_store.decrement_usage(coupon_id)
        return False

    def apply_pending(self) -> None:
        """Apply queued catalog decrements. Call after a successful commit."""
        pending, self._on_commit, self._on_rollback = self._on_commit, [], []
        for change in pending:
            change()

    def discard_pending(self) -> None:
        """Drop queued decrements and hand back slots taken in this transaction."""
        reserved, self._on_commit, self._on_rollback = self._on_rollback, [], []
        if reserved:
            logger.info(f"Releasing {len(reserved)} uncommitted usage reservations")
        for release in reserved:
            release()
