#!/usr/bin/env python3
"""Create the bag and coupon tables (products, bag_items, coupons, coupon_user_usage)."""

import os
import sys

from dotenv import load_dotenv
from sqlalchemy import create_engine, inspect

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from shopbag.schema import create_schema  # noqa: E402

load_dotenv()

EXPECTED_TABLES = ("products", "bag_items", "coupons", "coupon_user_usage")

db_url = os.getenv("DATABASE_URL")
if not db_url:
    print("ERROR: DATABASE_URL not found in environment")
    sys.exit(1)

# Fix postgres:// to postgresql:// for SQLAlchemy
if db_url.startswith("postgres://"):
    db_url = db_url.replace("postgres://", "postgresql://", 1)

print("Connecting to database...")
engine = create_engine(db_url)


def run_create_schema():
    print("\n=== Creating bag and coupon schema ===")

    with engine.connect() as conn:
        existing = set(inspect(conn).get_table_names())
        missing = [t for t in EXPECTED_TABLES if t not in existing]
        if not missing:
            print("  Schema is already up to date. Skipping...")
            return

        print(f"  Creating tables: {', '.join(missing)}")
        create_schema(conn)
        conn.commit()

    # Verify changes
    print("  Verifying changes...")
    existing = set(inspect(engine).get_table_names())
    for table in EXPECTED_TABLES:
        if table in existing:
            print(f"  ✓ {table}")
        else:
            print(f"  ✗ {table} was not created")
            sys.exit(1)


if __name__ == "__main__":
    run_create_schema()
    print("\n✓ Schema created successfully!")
