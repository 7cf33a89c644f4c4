"""
Cart State Extractor

Turns raw bag rows into the numeric snapshot the rule engine works on.
"""

import logging
from typing import Iterable, List, Optional

from shopbag.bag_store import BagRow

from .models import CartItem, CartState, ZERO, to_decimal

logger = logging.getLogger(__name__)


def _to_item(row: BagRow) -> Optional[CartItem]:
    if row.price is None:
        # Product was deleted; the row stays in the bag but does not count
        return None
    try:
        price = to_decimal(row.price)
        quantity = int(row.quantity)
    except (TypeError, ValueError):
        return None
    if price < 0 or quantity < 1:
        return None
    return CartItem(
        id=str(row.product_id),
        price=price,
        quantity=quantity,
        category=str(row.category) if row.category is not None else None,
    )


def extract_cart_state(rows: Optional[Iterable[BagRow]]) -> CartState:
    """
    Build a CartState from the user's bag rows.

    Saved-for-later rows and rows whose product cannot be resolved are left
    out of both the total and the item list. Never raises.
    """
    items: List[CartItem] = []
    skipped = 0
    try:
        for row in rows or ():
            if getattr(row, "saved_for_later", False):
                continue
            item = _to_item(row)
            if item is None:
                skipped += 1
                continue
            items.append(item)
    except Exception as e:
        logger.warning(f"Could not read bag rows, treating bag as empty: {e}")
        return CartState()

    if skipped:
        logger.debug(f"Skipped {skipped} unresolved bag rows")

    total = sum((item.line_total for item in items), ZERO)
    return CartState(total=total, items=tuple(items))
