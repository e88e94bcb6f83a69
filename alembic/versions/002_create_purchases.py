"""002: create purchases table

Revision ID: 002
Revises: 001
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE purchases (
            id                  UUID            PRIMARY KEY,
            buyer_id            VARCHAR(64)     NOT NULL,
            listing_id          UUID            NOT NULL REFERENCES listings (id),
            amount              NUMERIC(30, 6)  NOT NULL,
            currency            VARCHAR(10)     NOT NULL DEFAULT 'ADA',
            status              VARCHAR(20)     NOT NULL DEFAULT 'pending',
            tx_hash             VARCHAR(64)     DEFAULT NULL,
            confirmations       INT             DEFAULT NULL,
            subscription_expiry TIMESTAMPTZ     DEFAULT NULL,
            failure_reason      TEXT            DEFAULT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            submitted_at        TIMESTAMPTZ     DEFAULT NULL,
            completed_at        TIMESTAMPTZ     DEFAULT NULL,
            updated_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_purchases_status CHECK (
                status IN ('pending', 'completed', 'failed', 'refunded')
            ),
            CONSTRAINT ck_purchases_amount_gte_0 CHECK (amount >= 0),
            CONSTRAINT ck_purchases_completed_has_tx CHECK (
                status <> 'completed' OR tx_hash IS NOT NULL
            )
        );
    """)
    op.execute(
        "CREATE INDEX idx_purchases_tx_hash ON purchases (tx_hash) WHERE tx_hash IS NOT NULL;"
    )
    op.execute(
        "CREATE INDEX idx_purchases_pending ON purchases (submitted_at) WHERE status = 'pending';"
    )
    op.execute("CREATE INDEX idx_purchases_buyer ON purchases (buyer_id, created_at DESC);")
    op.execute("""
        CREATE TRIGGER trg_purchases_updated_at
        BEFORE UPDATE ON purchases
        FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS purchases CASCADE;")
