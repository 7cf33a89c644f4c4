"""Shared fixtures: coupon/cart factories and an in-memory SQLite database."""

import os
import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from sqlalchemy import create_engine, text
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("JWT_SECRET", "test-secret")

from shopbag.bag_store import BagStore
from shopbag.coupon_engine.catalog import CouponCatalog
from shopbag.coupon_engine.config import CouponEngineConfig
from shopbag.coupon_engine.legacy_store import LegacyCouponStore, UserUsageLedger
from shopbag.coupon_engine.models import CartItem, CartState, Coupon, DiscountType, ZERO
from shopbag.coupon_engine.repository import CouponRepository
from shopbag.coupon_engine.state_manager import CouponStateManager
from shopbag.schema import create_schema

# Monday
NOW = datetime(2026, 6, 15, 12, 0, tzinfo=timezone.utc)

_MONEY_FIELDS = ("discount", "threshold", "max_discount")


def build_coupon(**overrides) -> Coupon:
    """Coupon that is live at NOW; numbers may be given as int/str."""
    data = {
        "id": "cpn_test",
        "code": "TEST",
        "description": "Test coupon",
        "discount_type": DiscountType.FIXED,
        "discount": Decimal("100"),
        "threshold": ZERO,
        "valid_from": NOW - timedelta(days=30),
        "valid_upto": NOW + timedelta(days=30),
    }
    data.update(overrides)
    for key in _MONEY_FIELDS:
        if data.get(key) is not None and not isinstance(data[key], Decimal):
            data[key] = Decimal(str(data[key]))
    return Coupon(**data)


def build_cart(*lines) -> CartState:
    """Lines are (price, quantity) or (price, quantity, category)."""
    items = []
    for index, line in enumerate(lines):
        price, quantity = Decimal(str(line[0])), line[1]
        category = line[2] if len(line) > 2 else None
        items.append(CartItem(id=f"p{index}", price=price, quantity=quantity, category=category))
    total = sum((item.line_total for item in items), ZERO)
    return CartState(total=total, items=tuple(items))


@pytest.fixture
def make_coupon():
    return build_coupon


@pytest.fixture
def make_cart():
    return build_cart


# --- Database ---

@pytest.fixture
def engine():
    """Fresh in-memory database per test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    with engine.begin() as conn:
        create_schema(conn)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


class BagSeeder:
    """Writes products and bag rows directly, the way the bag service would."""

    def __init__(self, db):
        self.db = db

    def product(self, price, category=None, product_id=None) -> str:
        product_id = product_id or f"prod_{uuid.uuid4().hex[:8]}"
        self.db.execute(
            text("""
                INSERT INTO products (id, name, price, category)
                VALUES (:id, :name, :price, :category)
            """),
            {"id": product_id, "name": f"Product {product_id}", "price": str(price), "category": category},
        )
        self.db.commit()
        return product_id

    def item(self, user_id, product_id, quantity=1, saved_for_later=False) -> str:
        item_id = f"bag_{uuid.uuid4().hex[:8]}"
        self.db.execute(
            text("""
                INSERT INTO bag_items (id, user_id, product_id, quantity, saved_for_later)
                VALUES (:id, :user_id, :product_id, :quantity, :saved_for_later)
            """),
            {
                "id": item_id,
                "user_id": user_id,
                "product_id": product_id,
                "quantity": quantity,
                "saved_for_later": saved_for_later,
            },
        )
        self.db.commit()
        return item_id

    def add(self, user_id, price, quantity=1, category=None, saved_for_later=False) -> str:
        """Create a product and put it in the user's bag. Returns the bag row id."""
        product_id = self.product(price, category)
        return self.item(user_id, product_id, quantity, saved_for_later)

    def set_quantity(self, item_id, quantity) -> None:
        self.db.execute(
            text("UPDATE bag_items SET quantity = :quantity WHERE id = :id"),
            {"quantity": quantity, "id": item_id},
        )
        self.db.commit()

    def delete_item(self, item_id) -> None:
        self.db.execute(text("DELETE FROM bag_items WHERE id = :id"), {"id": item_id})
        self.db.commit()

    def rows(self, user_id):
        return self.db.execute(
            text("""
                SELECT id, applied_coupon, discount_amount, saved_for_later
                FROM bag_items WHERE user_id = :user_id ORDER BY id
            """),
            {"user_id": user_id},
        ).fetchall()


@pytest.fixture
def bag(db):
    return BagSeeder(db)


# --- Engine wiring ---

@pytest.fixture
def catalog_coupons():
    """Override in a test module to change the catalog contents."""
    return [
        build_coupon(
            id="cpn_save20", code="SAVE20", discount_type=DiscountType.PERCENTAGE,
            discount=20, threshold=500, max_discount=150, priority=10,
        ),
        build_coupon(
            id="cpn_flat100", code="FLAT100", discount_type=DiscountType.FIXED,
            discount=100, threshold=300, priority=5,
        ),
    ]


@pytest.fixture
def catalog(catalog_coupons):
    return CouponCatalog(catalog_coupons)


@pytest.fixture
def config():
    return CouponEngineConfig(
        catalog_path=None,
        legacy_store_enabled=True,
        threshold_suggestion_max_gap=Decimal("2000"),
        shipping_fee=Decimal("49"),
        currency_symbol="₹",
    )


@pytest.fixture
def repository(db, catalog):
    return CouponRepository(catalog, UserUsageLedger(db), LegacyCouponStore(db))


@pytest.fixture
def manager(config, repository, db):
    return CouponStateManager(config, repository, BagStore(db), db, clock=lambda: NOW)
