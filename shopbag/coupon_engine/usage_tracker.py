"""
Usage Tracker

The per-coupon `used` counter is the engine's only shared mutable state.
Increments and decrements are linearizable per coupon id: catalog counters
go through one lock per coupon, persisted counters through a single atomic
UPDATE statement. An increment is refused once the coupon's usage limit is
reached, so the check and the change happen in one step.
"""

import logging
import threading
from typing import TYPE_CHECKING, Dict, Optional

if TYPE_CHECKING:
    from .repository import CouponRepository

logger = logging.getLogger(__name__)


class InMemoryUsageCounters:
    """Process-local usage counters with a serialization point per coupon."""

    def __init__(self):
        self._counts: Dict[str, int] = {}
        self._locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, coupon_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._locks.get(coupon_id)
            if lock is None:
                lock = self._locks[coupon_id] = threading.Lock()
            return lock

    def seed(self, coupon_id: str, used: int) -> None:
        with self._lock_for(coupon_id):
            self._counts[coupon_id] = max(0, int(used))

    def get(self, coupon_id: str) -> int:
        with self._lock_for(coupon_id):
            return self._counts.get(coupon_id, 0)

    def try_increment(self, coupon_id: str, limit: Optional[int] = None) -> bool:
        """Increase by one unless the count has already reached `limit`."""
        with self._lock_for(coupon_id):
            value = self._counts.get(coupon_id, 0)
            if limit is not None and value >= limit:
                return False
            self._counts[coupon_id] = value + 1
            return True

    def decrement(self, coupon_id: str) -> int:
        """Decrease by one, never below zero."""
        with self._lock_for(coupon_id):
            value = max(0, self._counts.get(coupon_id, 0) - 1)
            self._counts[coupon_id] = value
            return value


class UsageTracker:
    """Counts successful applies and removals against a coupon repository."""

    def __init__(self, repository: "CouponRepository"):
        self.repository = repository

    def increment_usage_count(self, coupon_id: str, user_id: Optional[str] = None) -> bool:
        """
        Take one use of the coupon. Returns False, changing nothing, when the
        coupon is unknown or its usage limit is already reached.
        """
        counted = self.repository.increment_usage(coupon_id, user_id)
        if counted:
            logger.info(f"Incremented usage count for coupon {coupon_id}")
        else:
            logger.warning(f"Usage not counted for coupon {coupon_id}: unknown or limit reached")
        return counted

    def decrement_usage_count(self, coupon_id: str) -> bool:
        found = self.repository.decrement_usage(coupon_id)
        if found:
            logger.info(f"Decremented usage count for coupon {coupon_id}")
        else:
            logger.warning(f"Cannot decrement usage, unknown coupon {coupon_id}")
        return found
