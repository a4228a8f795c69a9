"""BidRepository / MetadataRepository: concrete Bid Store implementations.

All queries use raw text() SQL (no ORM). Neither repository commits: the
caller owns the transaction, so recovery can commit inserted bids together
with the advanced checkpoint.
asyncpg NULL parameter pattern: CAST(:param AS TYPE) IS NULL required for None values.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_bids.domain.models import Bid
from src.ba_common.enums import BidStatus, MetadataKey

# ---------------------------------------------------------------------------
# SQL
# ---------------------------------------------------------------------------

_INSERT_BID_SQL = text("""
    INSERT INTO bids (
        round_id, user_address, amount, limit_price,
        submitted_at, source_tx_id, status
    ) VALUES (
        :round_id, :user_address, :amount, :limit_price,
        :submitted_at, :source_tx_id, :status
    )
    ON CONFLICT (round_id, source_tx_id) DO NOTHING
    RETURNING id
""")

_LIST_BY_ROUND_SQL = text("""
    SELECT id, round_id, user_address, amount, limit_price,
           submitted_at, source_tx_id, status
    FROM bids
    WHERE round_id = :round_id
      AND (CAST(:status AS TEXT) IS NULL OR status = CAST(:status AS TEXT))
    ORDER BY limit_price DESC, submitted_at ASC, source_tx_id ASC
""")

_MARK_CLEARED_SQL = text("""
    UPDATE bids
    SET status = 'CLEARED', updated_at = NOW()
    WHERE round_id = :round_id AND status = 'PENDING'
""")

_COUNT_BY_ROUND_SQL = text("""
    SELECT COUNT(*) FROM bids WHERE round_id = :round_id
""")

_GET_METADATA_SQL = text("""
    SELECT value FROM engine_metadata WHERE key = :key
""")

_UPSERT_METADATA_SQL = text("""
    INSERT INTO engine_metadata (key, value, updated_at)
    VALUES (:key, :value, NOW())
    ON CONFLICT (key) DO UPDATE
    SET value = EXCLUDED.value, updated_at = NOW()
""")

# ---------------------------------------------------------------------------
# Row mappers
# ---------------------------------------------------------------------------


def _row_to_bid(row: object) -> Bid:
    return Bid(
        id=row.id,  # type: ignore[attr-defined]
        round_id=row.round_id,  # type: ignore[attr-defined]
        user=row.user_address,  # type: ignore[attr-defined]
        amount=row.amount,  # type: ignore[attr-defined]
        limit_price=row.limit_price,  # type: ignore[attr-defined]
        submitted_at=row.submitted_at,  # type: ignore[attr-defined]
        source_tx_id=row.source_tx_id,  # type: ignore[attr-defined]
        status=BidStatus(row.status),  # type: ignore[attr-defined]
    )


# ---------------------------------------------------------------------------
# Repositories
# ---------------------------------------------------------------------------


class BidRepository:
    async def insert_if_absent(self, db: AsyncSession, bid: Bid) -> bool:
        result = await db.execute(
            _INSERT_BID_SQL,
            {
                "round_id": bid.round_id,
                "user_address": bid.user,
                "amount": bid.amount,
                "limit_price": bid.limit_price,
                "submitted_at": bid.submitted_at,
                "source_tx_id": bid.source_tx_id,
                "status": bid.status.value,
            },
        )
        return result.fetchone() is not None

    async def list_by_round(
        self,
        db: AsyncSession,
        round_id: int,
        status: BidStatus | None = None,
    ) -> list[Bid]:
        result = await db.execute(
            _LIST_BY_ROUND_SQL,
            {"round_id": round_id, "status": status.value if status else None},
        )
        return [_row_to_bid(row) for row in result.fetchall()]

    async def mark_cleared(self, db: AsyncSession, round_id: int) -> int:
        result = await db.execute(_MARK_CLEARED_SQL, {"round_id": round_id})
        return result.rowcount  # type: ignore[attr-defined,no-any-return]

    async def count_by_round(self, db: AsyncSession, round_id: int) -> int:
        result = await db.execute(_COUNT_BY_ROUND_SQL, {"round_id": round_id})
        return int(result.scalar_one())


class MetadataRepository:
    """Key/value rows in engine_metadata. The recovery checkpoint lives here."""

    async def get_value(self, db: AsyncSession, key: str) -> str | None:
        result = await db.execute(_GET_METADATA_SQL, {"key": key})
        row = result.fetchone()
        return None if row is None else row.value  # type: ignore[attr-defined]

    async def set_value(self, db: AsyncSession, key: str, value: str) -> None:
        await db.execute(_UPSERT_METADATA_SQL, {"key": key, "value": value})

    async def get_checkpoint(self, db: AsyncSession) -> int | None:
        value = await self.get_value(db, MetadataKey.LAST_PROCESSED_BLOCK.value)
        return None if value is None else int(value)

    async def set_checkpoint(self, db: AsyncSession, block: int) -> None:
        await self.set_value(db, MetadataKey.LAST_PROCESSED_BLOCK.value, str(block))
