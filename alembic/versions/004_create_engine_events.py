"""004: create engine_events table

Revision ID: 004
Revises: 003
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "004"
down_revision: Union[str, None] = "003"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE engine_events (
            id              BIGSERIAL       PRIMARY KEY,
            round_id        BIGINT,
            event_type      VARCHAR(30)     NOT NULL,
            payload         JSONB           NOT NULL,
            created_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_engine_event_type CHECK (
                event_type IN (
                    'ROUND_CLEARED',
                    'FALLBACK_SETTLED',
                    'SETTLEMENT_REVERTED',
                    'SETTLEMENT_TIMED_OUT',
                    'PRICE_CLAMPED',
                    'INVENTORY_SHORTFALL',
                    'ROUND_ADVANCED',
                    'STUCK_ROUND_REMEDIATED'
                )
            )
        );
    """)
    op.execute("CREATE INDEX idx_engine_events_round_time ON engine_events (round_id, created_at);")
    op.execute("COMMENT ON TABLE engine_events IS 'Engine transition audit log, append-only';")


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS engine_events CASCADE;")
