"""
Coupon Engine Configuration

Configuration dataclass with environment variable loading.
"""

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Optional

DEFAULT_CATALOG_PATH = Path(__file__).resolve().parent.parent / "data" / "coupons.json"


@dataclass
class CouponEngineConfig:
    """Configuration for the coupon engine."""

    # Primary catalog (static JSON definitions)
    catalog_path: Path = DEFAULT_CATALOG_PATH

    # Fall back to the persisted coupons table when a code is not in the catalog
    legacy_store_enabled: bool = True

    # Only surface "add X more" nudges when the gap is at most this much.
    # None disables the ceiling.
    threshold_suggestion_max_gap: Optional[Decimal] = Decimal("2000")

    # Fee waived by shipping coupons; owned by the shipping collaborator
    shipping_fee: Decimal = Decimal("0")

    currency_symbol: str = "₹"

    @classmethod
    def from_env(cls) -> "CouponEngineConfig":
        """Create config from environment variables."""
        max_gap = os.getenv("THRESHOLD_SUGGESTION_MAX_GAP", "2000").strip()
        return cls(
            catalog_path=Path(os.getenv("COUPON_CATALOG_PATH", str(DEFAULT_CATALOG_PATH))).resolve(),
            legacy_store_enabled=os.getenv("LEGACY_COUPON_STORE", "true").lower() == "true",
            threshold_suggestion_max_gap=Decimal(max_gap) if max_gap and max_gap.lower() != "none" else None,
            shipping_fee=Decimal(os.getenv("SHIPPING_FEE", "0")),
            currency_symbol=os.getenv("CURRENCY_SYMBOL", "₹"),
        )
