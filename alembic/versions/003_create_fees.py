"""003: create fees table

Revision ID: 003
Revises: 002
Create Date: 2026-10-18
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE fees (
            id           UUID            PRIMARY KEY,
            purchase_id  UUID            NOT NULL REFERENCES purchases (id),
            fee_amount   NUMERIC(30, 6)  NOT NULL,
            recorded_at  TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_fees_purchase_id   UNIQUE (purchase_id),
            CONSTRAINT ck_fees_amount_gte_0  CHECK (fee_amount >= 0)
        );
    """)
    op.execute("COMMENT ON TABLE fees IS 'Immutable marketplace fee audit rows, one per completed purchase';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS fees CASCADE;")
