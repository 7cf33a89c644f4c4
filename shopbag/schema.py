"""
Database schema for bag rows, products and persisted coupons.

The statements are plain SQL accepted by both PostgreSQL and SQLite. They are
applied by the Alembic revision in alembic/versions and by
scripts/create_schema.py.
"""

from sqlalchemy import text
from sqlalchemy.engine import Connection

SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS products (
        id VARCHAR(64) PRIMARY KEY,
        name VARCHAR(255) NOT NULL,
        price NUMERIC(10, 2) NOT NULL,
        category VARCHAR(255),
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    # product_id carries no foreign key: rows outlive deleted products and are
    # skipped when the cart is priced
    """
    CREATE TABLE IF NOT EXISTS bag_items (
        id VARCHAR(64) PRIMARY KEY,
        user_id VARCHAR(64) NOT NULL,
        product_id VARCHAR(64) NOT NULL,
        quantity INTEGER NOT NULL DEFAULT 1,
        saved_for_later BOOLEAN NOT NULL DEFAULT FALSE,
        applied_coupon VARCHAR(64),
        discount_amount NUMERIC(10, 2) NOT NULL DEFAULT 0,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        UNIQUE (user_id, product_id)
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_bag_items_user_saved ON bag_items(user_id, saved_for_later)",
    """
    CREATE TABLE IF NOT EXISTS coupons (
        id VARCHAR(64) PRIMARY KEY,
        code VARCHAR(32) NOT NULL UNIQUE,
        description TEXT NOT NULL DEFAULT '',
        discount_type VARCHAR(16) NOT NULL,
        discount_value NUMERIC(10, 2) NOT NULL,
        threshold NUMERIC(10, 2) NOT NULL DEFAULT 0,
        max_discount NUMERIC(10, 2),
        valid_from TIMESTAMP,
        valid_upto TIMESTAMP,
        is_active BOOLEAN NOT NULL DEFAULT TRUE,
        priority INTEGER NOT NULL DEFAULT 0,
        usage_limit INTEGER,
        usage_limit_per_user INTEGER,
        used_count INTEGER NOT NULL DEFAULT 0 CHECK (used_count >= 0),
        applicable_categories TEXT,
        excluded_categories TEXT,
        conditions TEXT,
        created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_coupons_active ON coupons(is_active, valid_upto)",
    """
    CREATE TABLE IF NOT EXISTS coupon_user_usage (
        coupon_id VARCHAR(64) NOT NULL,
        user_id VARCHAR(64) NOT NULL,
        usage_count INTEGER NOT NULL DEFAULT 0 CHECK (usage_count >= 0),
        updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
        PRIMARY KEY (coupon_id, user_id)
    )
    """,
]

DROP_STATEMENTS = [
    "DROP TABLE IF EXISTS coupon_user_usage",
    "DROP TABLE IF EXISTS coupons",
    "DROP TABLE IF EXISTS bag_items",
    "DROP TABLE IF EXISTS products",
]


def create_schema(conn: Connection) -> None:
    for statement in SCHEMA_STATEMENTS:
        conn.execute(text(statement))
