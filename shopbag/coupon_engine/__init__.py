"""
Coupon Engine Module - cart discount rules for the shopping bag.

Resolves coupon codes, validates them against the user's bag, computes
discounts, suggests "add X more" nudges and keeps the applied-coupon state and
usage counters consistent.
"""

from typing import Optional

from sqlalchemy.orm import Session

from shopbag.bag_store import BagStore

from .catalog import CouponCatalog
from .config import CouponEngineConfig
from .errors import CouponEngineError, NotFoundFailure, StateConflictFailure, StorageFailure
from .legacy_store import LegacyCouponStore, UserUsageLedger
from .repository import CouponRepository
from .state_manager import CouponStateManager
from .usage_tracker import UsageTracker

# Singleton instances
_config: Optional[CouponEngineConfig] = None
_catalog: Optional[CouponCatalog] = None


def get_config() -> CouponEngineConfig:
    """Get or create the coupon engine config."""
    global _config
    if _config is None:
        _config = CouponEngineConfig.from_env()
    return _config


def get_catalog() -> CouponCatalog:
    """Get or load the coupon catalog. Its usage counters live for the process."""
    global _catalog
    if _catalog is None:
        _catalog = CouponCatalog.from_file(get_config().catalog_path)
    return _catalog


def set_catalog(catalog: CouponCatalog) -> None:
    global _catalog
    _catalog = catalog


def reset_engine() -> None:
    """Drop cached config and catalog (tests and reloads)."""
    global _config, _catalog
    _config = None
    _catalog = None


def build_repository(db: Session) -> CouponRepository:
    config = get_config()
    legacy_store = LegacyCouponStore(db) if config.legacy_store_enabled else None
    return CouponRepository(get_catalog(), UserUsageLedger(db), legacy_store)


def build_state_manager(db: Session) -> CouponStateManager:
    """State manager bound to one request's database session."""
    return CouponStateManager(get_config(), build_repository(db), BagStore(db), db)


__all__ = [
    'CouponEngineConfig',
    'CouponCatalog',
    'CouponRepository',
    'CouponStateManager',
    'LegacyCouponStore',
    'UserUsageLedger',
    'UsageTracker',
    'CouponEngineError',
    'NotFoundFailure',
    'StateConflictFailure',
    'StorageFailure',
    'get_config',
    'get_catalog',
    'set_catalog',
    'reset_engine',
    'build_repository',
    'build_state_manager',
]
