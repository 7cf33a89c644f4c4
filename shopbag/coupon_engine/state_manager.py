"""
Application State Manager

Per-user coupon state machine: NoCouponApplied <-> CouponApplied.

Every state change runs as one database transaction: the bag rows are read
(locked on PostgreSQL), validated, a usage slot is taken and the rows are
rewritten with a single UPDATE before commit. If anything fails the
transaction is rolled back and reserved catalog slots are handed back, so no
partial coupon state survives.
"""

import logging
from contextlib import contextmanager
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shopbag.bag_store import BagRow, BagStore

from .cart_state import extract_cart_state
from .config import CouponEngineConfig
from .display import format_coupon_for_display, suggestion_to_dict, usage_stats
from .errors import NotFoundFailure, StateConflictFailure, StorageFailure
from .models import (
    CartState,
    Coupon,
    CouponActionResult,
    DiscountContext,
    FailureKind,
    RevalidationResult,
    ValidationResult,
    canonical_code,
    utcnow,
)
from .repository import CouponRepository
from .threshold_advisor import get_best_threshold_suggestion
from .usage_tracker import UsageTracker
from .validation import validate_coupon

logger = logging.getLogger(__name__)

_UNSET = object()


def _applied_coupon_id(rows: List[BagRow]) -> Optional[str]:
    for row in rows:
        if row.applied_coupon:
            return row.applied_coupon
    return None


class CouponStateManager:
    """Apply, remove and revalidate a user's coupon against their bag."""

    def __init__(
        self,
        config: CouponEngineConfig,
        repository: CouponRepository,
        bag_store: BagStore,
        db: Session,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.repository = repository
        self.bag_store = bag_store
        self.db = db
        self.clock = clock
        self.usage_tracker = UsageTracker(repository)

    # --- Transactions ---

    def _rollback(self) -> None:
        self.repository.discard_pending()
        try:
            self.db.rollback()
        except SQLAlchemyError as e:
            logger.error(f"Rollback failed: {e}")

    @contextmanager
    def _unit_of_work(self):
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            logger.exception(f"Coupon state change failed, rolled back: {e}")
            self._rollback()
            raise StorageFailure(f"Coupon storage error: {e}") from e
        except Exception:
            self._rollback()
            raise
        self.repository.apply_pending()

    @contextmanager
    def _reading(self):
        try:
            yield
        except SQLAlchemyError as e:
            logger.exception(f"Coupon lookup failed: {e}")
            raise StorageFailure(f"Coupon storage error: {e}") from e

    # --- Helpers ---

    def _context(self) -> DiscountContext:
        return DiscountContext(shipping_fee=self.config.shipping_fee)

    def _user_usage(self, coupon: Coupon, user_id: str) -> Optional[int]:
        if coupon.usage_limit_per_user is None:
            return None
        return self.repository.user_usage_count(coupon.id, user_id)

    def _validate(
        self, coupon: Coupon, cart: CartState, user_id: str, exclude_own: bool = False
    ) -> ValidationResult:
        user_usage = self._user_usage(coupon, user_id)
        if exclude_own:
            # The user's current application is already counted in `used` and in their history
            coupon = coupon.with_used(coupon.used - 1)
            if user_usage is not None:
                user_usage = max(0, user_usage - 1)
        return validate_coupon(
            coupon,
            cart,
            now=self.clock(),
            user_usage_count=user_usage,
            context=self._context(),
            currency=self.config.currency_symbol,
        )

    def _load_cart(self, user_id: str, lock: bool = False):
        rows = self.bag_store.active_rows(user_id, lock=lock)
        return rows, extract_cart_state(rows)

    def _clear(self, user_id: str, coupon_id: Optional[str]) -> None:
        self.bag_store.clear_applied_coupon(user_id)
        if coupon_id is not None:
            self.usage_tracker.decrement_usage_count(coupon_id)

    # --- Operations ---

    def apply_coupon(self, user_id: str, code: str) -> CouponActionResult:
        code = canonical_code(code)
        if not code:
            return CouponActionResult.failed(FailureKind.VALIDATION, ["Coupon code is required."])

        try:
            with self._unit_of_work():
                result = self._apply(user_id, code)
        except NotFoundFailure as e:
            logger.info(f"User {user_id} apply {code}: {e}")
            return CouponActionResult.failed(FailureKind.NOT_FOUND, [str(e)])
        except StateConflictFailure as e:
            logger.info(f"User {user_id} apply {code} rejected: {e}")
            return CouponActionResult.failed(FailureKind.CONFLICT, [str(e)])

        if result.success:
            logger.info(f"User {user_id} applied coupon {code}: discount {result.discount_amount}")
        else:
            logger.info(f"User {user_id} could not apply {code}: {result.errors}")
        return result

    def _apply(self, user_id: str, code: str) -> CouponActionResult:
        rows, cart = self._load_cart(user_id, lock=True)
        if not rows:
            raise NotFoundFailure("Your bag is empty.")

        current_id = _applied_coupon_id(rows)
        if current_id is not None:
            current = self.repository.get_by_id(current_id)
            label = current.code if current else current_id
            raise StateConflictFailure(
                f"Coupon {label} is already applied. Remove it before applying another."
            )

        if cart.total <= 0:
            raise NotFoundFailure("Your bag has no items with valid prices.")

        coupon = self.repository.get_by_code(code)
        if coupon is None:
            raise NotFoundFailure("Invalid coupon code")

        validation = self._validate(coupon, cart, user_id)
        if not validation.is_valid:
            return CouponActionResult.failed(FailureKind.VALIDATION, validation.reasons)

        # Another request may have taken the last slot since validation read `used`
        if not self.usage_tracker.increment_usage_count(coupon.id, user_id):
            return CouponActionResult.failed(FailureKind.VALIDATION, ["Coupon usage limit reached"])
        self.bag_store.set_applied_coupon(user_id, coupon.id, validation.discount_amount)

        return CouponActionResult(
            success=True,
            message="Coupon applied successfully!",
            coupon_code=coupon.code,
            coupon_id=coupon.id,
            discount_amount=validation.discount_amount,
            cart_total=cart.total,
            new_total=validation.final_total,
            discount_kind=validation.discount_kind,
        )

    def remove_coupon(self, user_id: str) -> CouponActionResult:
        """Clear the applied coupon. Removing when nothing is applied is a no-op."""
        with self._unit_of_work():
            rows = self.bag_store.active_rows(user_id, lock=True)
            coupon_id = _applied_coupon_id(rows)
            if coupon_id is not None:
                self._clear(user_id, coupon_id)

        if coupon_id is None:
            logger.info(f"User {user_id} remove coupon: nothing applied")
            return CouponActionResult(success=True, message="No coupon applied")

        logger.info(f"User {user_id} removed coupon {coupon_id}")
        return CouponActionResult(success=True, message="Coupon removed successfully!")

    def revalidate_applied_coupon(self, user_id: str) -> RevalidationResult:
        """
        Re-check the applied coupon after the bag changed. Callers must invoke
        this whenever cart composition changes; it is not self-triggering.
        """
        with self._unit_of_work():
            rows, cart = self._load_cart(user_id, lock=True)
            coupon_id = _applied_coupon_id(rows)
            if coupon_id is None:
                return RevalidationResult(is_valid=True, should_remove=False, reason="No coupon applied")

            coupon = self.repository.get_by_id(coupon_id)
            if coupon is None:
                self._clear(user_id, None)
                logger.warning(f"User {user_id}: applied coupon {coupon_id} no longer exists")
                return RevalidationResult(
                    is_valid=False,
                    should_remove=True,
                    reason="Applied coupon no longer exists",
                )

            validation = self._validate(coupon, cart, user_id, exclude_own=True)
            if validation.is_valid:
                # Keeps every active row (including newly added ones) in sync
                self.bag_store.set_applied_coupon(user_id, coupon.id, validation.discount_amount)
                return RevalidationResult(
                    is_valid=True,
                    should_remove=False,
                    reason="",
                    new_discount=validation.discount_amount,
                )

            self._clear(user_id, coupon.id)
            logger.info(f"User {user_id}: coupon {coupon.code} no longer valid: {validation.reasons}")
            return RevalidationResult(
                is_valid=False,
                should_remove=True,
                reason=", ".join(validation.reasons),
            )

    def get_available_coupons(self, user_id: str) -> Dict[str, Any]:
        now = self.clock()
        context = self._context()
        with self._reading():
            _, cart = self._load_cart(user_id)
            active = self.repository.list_available(now)
            expired = self.repository.list_expired(now)
            usage = {c.id: self._user_usage(c, user_id) for c in active}

        available = [
            format_coupon_for_display(
                coupon,
                cart,
                now=now,
                user_usage_count=usage.get(coupon.id),
                context=context,
                currency=self.config.currency_symbol,
            )
            for coupon in active
        ]
        expired_list = [format_coupon_for_display(coupon, now=now) for coupon in expired]

        logger.info(f"User {user_id}: {len(available)} available, {len(expired_list)} expired coupons")
        return {
            "availableCoupons": available,
            "expiredCoupons": expired_list,
            "cartTotal": float(cart.total),
        }

    def find_applicable_coupons(self, user_id: str) -> List[Dict[str, Any]]:
        """Coupons valid for the current bag, best candidates first."""
        listing = self.get_available_coupons(user_id)
        applicable = [c for c in listing["availableCoupons"] if c.get("isApplicable")]
        applicable.sort(key=lambda c: (-c["priority"], -c["calculatedDiscount"]))
        return applicable

    def get_threshold_suggestion(self, user_id: str, max_gap: Any = _UNSET) -> Dict[str, Any]:
        """
        Best "add X more" nudge for the bag. `max_gap` overrides the configured
        display ceiling; None shows any gap.
        """
        if max_gap is _UNSET:
            max_gap = self.config.threshold_suggestion_max_gap
        now = self.clock()
        with self._reading():
            _, cart = self._load_cart(user_id)
            candidates = self.repository.list_active(now)

        suggestion = get_best_threshold_suggestion(candidates, cart, now=now, context=self._context())
        if suggestion is not None and max_gap is not None and suggestion.amount_needed > Decimal(max_gap):
            suggestion = None

        return {
            "cartTotal": float(cart.total),
            "suggestion": suggestion_to_dict(suggestion) if suggestion else None,
        }

    def get_usage_stats(self, coupon_id: str) -> Optional[Dict[str, Any]]:
        with self._reading():
            coupon = self.repository.get_by_id(coupon_id)
        return usage_stats(coupon, self.clock()) if coupon else None
