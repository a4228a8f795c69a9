"""RecoveryManager: replays BidPlaced events into the Bid Store.

Scans (checkpoint, latest - confirmations] in fixed-size block windows.
Each window's inserts and the advanced checkpoint are committed in one
transaction, so a crash mid-scan re-reads at most one window and the
(round_id, source_tx_id) key turns the replay into a no-op. Live tailing
is the same call made every tick.
"""

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.ba_bids.domain.repository import BidRepositoryProtocol, MetadataRepositoryProtocol
from src.ba_bids.infrastructure.persistence import BidRepository, MetadataRepository
from src.ba_common.errors import InvalidBidError
from src.ba_common.retry import RetryPolicy
from src.ba_ledger.domain.client import LedgerClientProtocol
from src.ba_ledger.domain.models import BidPlacedEvent, BlockMarker

logger = logging.getLogger(__name__)


class RecoveryManager:
    def __init__(
        self,
        ledger: LedgerClientProtocol,
        retry: RetryPolicy,
        bid_repo: BidRepositoryProtocol | None = None,
        metadata_repo: MetadataRepositoryProtocol | None = None,
        confirmations: int | None = None,
        block_range: int | None = None,
        start_block: int | None = None,
    ) -> None:
        self._ledger = ledger
        self._retry = retry
        self._bids: BidRepositoryProtocol = bid_repo or BidRepository()
        self._metadata: MetadataRepositoryProtocol = metadata_repo or MetadataRepository()
        self._confirmations = (
            settings.EVENT_CONFIRMATIONS if confirmations is None else confirmations
        )
        self._block_range = settings.EVENT_BLOCK_RANGE if block_range is None else block_range
        self._start_block = settings.EVENT_START_BLOCK if start_block is None else start_block
        if self._block_range < 1:
            raise ValueError(f"block_range must be >= 1, got {self._block_range}")

    async def load_checkpoint(self, db: AsyncSession) -> int | None:
        return await self._metadata.get_checkpoint(db)

    async def catch_up(self, last_checkpoint: int | None, db: AsyncSession) -> BlockMarker:
        """Ingest every bid event after last_checkpoint; return the new checkpoint."""
        latest = await self._retry.run(self._ledger.latest_marker, description="read latest block")
        target = latest.number - self._confirmations
        start = self._start_block if last_checkpoint is None else last_checkpoint + 1
        if target < start:
            return BlockMarker(start - 1)

        total_inserted = 0
        while start <= target:
            end = min(start + self._block_range - 1, target)
            events = await self._retry.run(
                lambda s=start, e=end: self._ledger.fetch_bid_events(BlockMarker(s), BlockMarker(e)),
                description=f"fetch bid events {start}..{end}",
            )
            total_inserted += await self._ingest_window(events, end, db)
            start = end + 1

        if total_inserted:
            logger.info("Recovered %d new bid(s) up to block %d", total_inserted, target)
        return BlockMarker(target)

    async def _ingest_window(
        self, events: list[BidPlacedEvent], window_end: int, db: AsyncSession
    ) -> int:
        inserted = 0
        try:
            for event in events:
                try:
                    bid = event.to_bid()
                except InvalidBidError as exc:
                    logger.warning("Skipping event at block %d: %s", event.block_number, exc.message)
                    continue
                if await self._bids.insert_if_absent(db, bid):
                    inserted += 1
            await self._metadata.set_checkpoint(db, window_end)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
        logger.debug(
            "Window ending %d: %d event(s), %d inserted", window_end, len(events), inserted
        )
        return inserted
