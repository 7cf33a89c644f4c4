"""
Bag store

Reads a user's bag rows with their resolved product price/category and writes
the coupon fields this service owns (applied_coupon, discount_amount). Each
write is a single UPDATE covering every active row, so the rows never
disagree about the applied coupon.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, List, Optional

from sqlalchemy import text
from sqlalchemy.orm import Session

logger = logging.getLogger(__name__)


@dataclass
class BagRow:
    """A bag_items row joined with its product (price/category None if deleted)."""

    id: str
    user_id: str
    product_id: str
    quantity: Any
    saved_for_later: bool = False
    price: Any = None
    category: Optional[str] = None
    applied_coupon: Optional[str] = None
    discount_amount: Any = Decimal("0")


class BagStore:
    def __init__(self, db: Session):
        self.db = db

    def _supports_row_locks(self) -> bool:
        return self.db.get_bind().dialect.name == "postgresql"

    def active_rows(self, user_id: str, lock: bool = False) -> List[BagRow]:
        """
        Active (not saved-for-later) rows for the user. With lock=True the rows
        are locked until the transaction ends, serializing the user's own
        concurrent coupon changes.
        """
        sql = """
            SELECT
                bi.id,
                bi.user_id,
                bi.product_id,
                bi.quantity,
                bi.saved_for_later,
                bi.applied_coupon,
                bi.discount_amount,
                p.price,
                p.category
            FROM bag_items bi
            LEFT JOIN products p ON p.id = bi.product_id
            WHERE bi.user_id = :user_id AND bi.saved_for_later = :saved_for_later
            ORDER BY bi.created_at, bi.id
        """
        if lock and self._supports_row_locks():
            sql += " FOR UPDATE OF bi"

        rows = self.db.execute(
            text(sql), {"user_id": str(user_id), "saved_for_later": False}
        ).fetchall()

        return [
            BagRow(
                id=str(row[0]),
                user_id=str(row[1]),
                product_id=str(row[2]),
                quantity=row[3],
                saved_for_later=bool(row[4]),
                applied_coupon=str(row[5]) if row[5] else None,
                discount_amount=row[6],
                price=row[7],
                category=row[8],
            )
            for row in rows
        ]

    def set_applied_coupon(self, user_id: str, coupon_id: str, discount_amount: Decimal) -> int:
        result = self.db.execute(
            text("""
                UPDATE bag_items
                SET applied_coupon = :coupon_id,
                    discount_amount = :discount_amount,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :user_id AND saved_for_later = :saved_for_later
            """),
            {
                "coupon_id": str(coupon_id),
                "discount_amount": str(discount_amount),
                "user_id": str(user_id),
                "saved_for_later": False,
            },
        )
        return result.rowcount

    def clear_applied_coupon(self, user_id: str) -> int:
        result = self.db.execute(
            text("""
                UPDATE bag_items
                SET applied_coupon = NULL,
                    discount_amount = 0,
                    updated_at = CURRENT_TIMESTAMP
                WHERE user_id = :user_id AND saved_for_later = :saved_for_later
            """),
            {"user_id": str(user_id), "saved_for_later": False},
        )
        return result.rowcount
