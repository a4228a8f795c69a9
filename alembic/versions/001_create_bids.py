"""001: create bids table

Revision ID: 001
Revises: 
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE OR REPLACE FUNCTION fn_touch_updated_at()
        RETURNS TRIGGER AS $$
        BEGIN
            NEW.updated_at = NOW();
            RETURN NEW;
        END;
        $$ LANGUAGE plpgsql;
    """)
    op.execute("""
        CREATE TABLE bids (
            id              BIGSERIAL       PRIMARY KEY,
            round_id        BIGINT          NOT NULL,
            user_address    VARCHAR(42)     NOT NULL,
            amount          NUMERIC(78, 18) NOT NULL,
            limit_price     NUMERIC(78, 18) NOT NULL,
            submitted_at    TIMESTAMPTZ     NOT NULL,
            source_tx_id    VARCHAR(80)     NOT NULL,
            status          VARCHAR(10)     NOT NULL DEFAULT 'PENDING',
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_bids_round_source     UNIQUE (round_id, source_tx_id),
            CONSTRAINT ck_bids_amount           CHECK (amount > 0),
            CONSTRAINT ck_bids_limit_price      CHECK (limit_price > 0),
            CONSTRAINT ck_bids_status           CHECK (status IN ('PENDING', 'CLEARED'))
        );
    """)
    op.execute("""
        CREATE INDEX idx_bids_round_priority
        ON bids (round_id, limit_price DESC, submitted_at ASC, source_tx_id ASC);
    """)
    op.execute("""
        CREATE TRIGGER trg_bids_updated_at
            BEFORE UPDATE ON bids
            FOR EACH ROW EXECUTE FUNCTION fn_touch_updated_at();
    """)
    op.execute("COMMENT ON TABLE bids IS 'Bid Store: limit orders per round, never deleted';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS bids CASCADE;")
    op.execute("DROP FUNCTION IF EXISTS fn_touch_updated_at();")
