"""
Coupon Engine Errors

Validation failures are returned as data (ValidationResult). The exceptions
below cover the remaining failure classes.
"""


class CouponEngineError(Exception):
    """Base class for coupon engine failures."""


class NotFoundFailure(CouponEngineError):
    """Unknown coupon code or empty bag."""


class StateConflictFailure(CouponEngineError):
    """A coupon is already applied to the user's bag."""


class StorageFailure(CouponEngineError):
    """Backing store unreachable or errored; no partial state survives it."""
