"""002: create engine_metadata table

Revision ID: 002
Revises: 001
Create Date: 2026-10-19
"""
from typing import Sequence, Union
from alembic import op

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.execute("""
        CREATE TABLE engine_metadata (
            key             VARCHAR(64)     PRIMARY KEY,
            value           TEXT            NOT NULL,
            updated_at      TIMESTAMPTZ     NOT NULL DEFAULT NOW()
        );
    """)
    op.execute(
        "COMMENT ON TABLE engine_metadata IS "
        "'Engine key/value: last_processed_block checkpoint, last_cleared_round';"
    )


def downgrade() -> None:
    op.execute("DROP TABLE IF EXISTS engine_metadata CASCADE;")
