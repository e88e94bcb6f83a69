"""004: listing prior state for failed edits/cancels, per-purchase subscription term

Revision ID: 004
Revises: 003
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        ALTER TABLE listings
            ADD COLUMN prior_status        VARCHAR(20)     DEFAULT NULL,
            ADD COLUMN prior_tx_hash       VARCHAR(64)     DEFAULT NULL,
            ADD COLUMN prior_price         NUMERIC(30, 6)  DEFAULT NULL,
            ADD COLUMN prior_full_price    NUMERIC(30, 6)  DEFAULT NULL,
            ADD COLUMN prior_confirmations INT             DEFAULT NULL,
            ADD CONSTRAINT ck_listings_prior_status CHECK (
                prior_status IS NULL OR prior_status IN ('active', 'confirmed')
            );
    """)
    op.execute("""
        ALTER TABLE purchases
            ADD COLUMN subscription_days INT DEFAULT NULL,
            ADD CONSTRAINT ck_purchases_subscription_days_positive CHECK (
                subscription_days IS NULL OR subscription_days > 0
            );
    """)


def downgrade() -> None:
    op.execute("""
        ALTER TABLE purchases
            DROP CONSTRAINT IF EXISTS ck_purchases_subscription_days_positive,
            DROP COLUMN IF EXISTS subscription_days;
    """)
    op.execute("""
        ALTER TABLE listings
            DROP CONSTRAINT IF EXISTS ck_listings_prior_status,
            DROP COLUMN IF EXISTS prior_confirmations,
            DROP COLUMN IF EXISTS prior_full_price,
            DROP COLUMN IF EXISTS prior_price,
            DROP COLUMN IF EXISTS prior_tx_hash,
            DROP COLUMN IF EXISTS prior_status;
    """)
