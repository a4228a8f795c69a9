"""003: create round_results and settlement_allocations tables

Revision ID: 003
Revises: 002
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "003"
down_revision: Union[str, None] = "002"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE round_results (
            round_id            BIGINT          PRIMARY KEY,
            clearing_price      NUMERIC(78, 18) NOT NULL,
            total_demand_units  NUMERIC(78, 18) NOT NULL,
            units_sold          NUMERIC(78, 18) NOT NULL,
            proceeds            NUMERIC(78, 18) NOT NULL,
            participant_count   INT             NOT NULL,
            successful_count    INT             NOT NULL,
            rejected_count      INT             NOT NULL,
            clamped             BOOLEAN         NOT NULL DEFAULT FALSE,
            degraded            BOOLEAN         NOT NULL DEFAULT FALSE,
            settlement_tx_id    VARCHAR(66),
            settled_at          TIMESTAMPTZ     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT ck_round_results_price     CHECK (clearing_price > 0),
            CONSTRAINT ck_round_results_units     CHECK (units_sold >= 0),
            CONSTRAINT ck_round_results_proceeds  CHECK (proceeds >= 0)
        );
    """)
    op.execute("""
        CREATE TABLE settlement_allocations (
            id                  BIGSERIAL       PRIMARY KEY,
            round_id            BIGINT          NOT NULL REFERENCES round_results (round_id),
            line_no             INT             NOT NULL,
            user_address        VARCHAR(42)     NOT NULL,
            source_tx_id        VARCHAR(80),
            units_allocated     NUMERIC(78, 18) NOT NULL,
            cost_owed           NUMERIC(78, 18) NOT NULL,
            eligible            BOOLEAN         NOT NULL,
            reason              VARCHAR(30)     NOT NULL,
            created_at          TIMESTAMPTZ     NOT NULL DEFAULT NOW(),
            CONSTRAINT uq_settlement_allocations_line UNIQUE (round_id, line_no),
            CONSTRAINT ck_settlement_allocations_units CHECK (units_allocated >= 0),
            CONSTRAINT ck_settlement_allocations_cost  CHECK (cost_owed >= 0),
            CONSTRAINT ck_settlement_allocations_reason CHECK (
                reason IN ('OK', 'INSUFFICIENT_BALANCE', 'USER_CAP_REACHED', 'SUPPLY_EXHAUSTED')
            ),
            CONSTRAINT ck_settlement_allocations_eligible CHECK (eligible = (reason = 'OK'))
        );
    """)
    op.execute(
        "CREATE INDEX idx_settlement_allocations_user "
        "ON settlement_allocations (user_address, round_id);"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS settlement_allocations CASCADE;")
    op.execute("DROP TABLE IF EXISTS round_results CASCADE;")
