"""create_bag_and_coupon_tables

Revision ID: 7c1e4b2a9d3f
Revises: 
Create Date: 2026-10-19 09:00:12.418207

"""
from alembic import op

from shopbag.schema import DROP_STATEMENTS, SCHEMA_STATEMENTS


# revision identifiers, used by Alembic.
revision = '7c1e4b2a9d3f'
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    # products, bag_items, coupons, coupon_user_usage and their indexes
    for statement in SCHEMA_STATEMENTS:
        op.execute(statement)


def downgrade() -> None:
    for statement in DROP_STATEMENTS:
        op.execute(statement)
