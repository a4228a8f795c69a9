# src/ba_bids/domain/repository.py
"""Repository Protocols: dependency inversion for testability.

Unit tests inject a mock or in-memory fake conforming to these Protocols.
Infrastructure layer provides the real implementation.
"""

from typing import Protocol

from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_bids.domain.models import Bid
from src.ba_common.enums import BidStatus


class BidRepositoryProtocol(Protocol):
    async def insert_if_absent(self, db: AsyncSession, bid: Bid) -> bool:
        """Insert unless (round_id, source_tx_id) exists. True if a row was written."""
        ...

    async def list_by_round(
        self,
        db: AsyncSession,
        round_id: int,
        status: BidStatus | None = None,
    ) -> list[Bid]:
        """Ordered by limit_price desc, submitted_at asc, source_tx_id asc."""
        ...

    async def mark_cleared(self, db: AsyncSession, round_id: int) -> int:
        """PENDING -> CLEARED for every bid of the round. Returns rows touched."""
        ...

    async def count_by_round(self, db: AsyncSession, round_id: int) -> int: ...


class MetadataRepositoryProtocol(Protocol):
    async def get_value(self, db: AsyncSession, key: str) -> str | None: ...

    async def set_value(self, db: AsyncSession, key: str, value: str) -> None: ...

    async def get_checkpoint(self, db: AsyncSession) -> int | None: ...

    async def set_checkpoint(self, db: AsyncSession, block: int) -> None: ...
