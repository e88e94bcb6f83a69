"""001: create listings table and updated_at trigger function

Revision ID: 001
Revises: 
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_update_timestamp()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE listings (
            id              UUID            PRIMARY KEY,
            seller_id       VARCHAR(64)     NOT NULL,
            seller_address  VARCHAR(128)    NOT NULL,
            price           NUMERIC(30, 6)  NOT NULL,
            full_price      NUMERIC(30, 6)  DEFAULT NULL,
            access_type     VARCHAR(20)     NOT NULL DEFAULT 'lifetime',
            status          VARCHAR(20)     NOT NULL DEFAULT 'pending',
            pending_action  VARCHAR(10)     DEFAULT NULL,
            tx_hash         VARCHAR(64)     DEFAULT NULL,
            confirmations   INT             DEFAULT NULL,
            metadata        JSONB           NOT NULL DEFAULT '{}'::jsonb,
            failure_reason  TEXT            DEFAULT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            submitted_at    TIMESTAMPTZ     DEFAULT NULL,
            confirmed_at    TIMESTAMPTZ     DEFAULT NULL,
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_listings_status CHECK (
                status IN ('pending', 'active', 'confirmed', 'cancelled', 'failed')
            ),
            CONSTRAINT ck_listings_access_type CHECK (
                access_type IN ('lifetime', 'subscription')
            ),
            CONSTRAINT ck_listings_pending_action CHECK (
                pending_action IS NULL OR pending_action IN ('list', 'edit', 'cancel')
            ),
            CONSTRAINT ck_listings_price_positive CHECK (price > 0),
            CONSTRAINT ck_listings_confirmed_has_tx CHECK (
                status <> 'confirmed' OR tx_hash IS NOT NULL
            ),
            CONSTRAINT ck_listings_metadata_type CHECK (
                metadata = '{}'::jsonb OR metadata->>'type' IN ('agent', 'model')
            )
        );
    """)
    op.execute("CREATE INDEX idx_listings_tx_hash ON listings (tx_hash) WHERE tx_hash IS NOT NULL;")
    op.execute(
        "CREATE INDEX idx_listings_pending ON listings (submitted_at) WHERE status = 'pending';"
    )
    op.execute("""
        CREATE TRIGGER trg_listings_updated_at
        BEFORE UPDATE ON listings
        FOR EACH ROW EXECUTE FUNCTION fn_update_timestamp();
    """)


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS listings CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_update_timestamp();")
