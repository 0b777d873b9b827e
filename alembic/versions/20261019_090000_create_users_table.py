"""Create users table for webhook-owned subscription fields

Revision ID: 5f3c2a9d1b7e
Revises:
Create Date: 2026-10-19 09:00:00.000000+00:00

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "5f3c2a9d1b7e"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Upgrade database schema."""
    op.create_table(
        "users",
        sa.Column("user_id", sa.String(length=128), primary_key=True),
        sa.Column("subscription", sa.JSON(), nullable=True),
        sa.Column("referral_code", sa.String(length=64), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.func.now(),
            nullable=False,
        ),
    )

    # Duplicate cleanup looks up ACTIVE subscriptions by product
    op.execute(
        "CREATE INDEX ix_users_subscription_product_status ON users "
        "((subscription->>'productId'), (subscription->>'status'))"
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.execute("DROP INDEX IF EXISTS ix_users_subscription_product_status")
    op.drop_table("users")
