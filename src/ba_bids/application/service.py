"""BidQueryService: read-only composition layer for the ops API.

The caller (router) passes db session; service delegates to repository.
"""

from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_bids.application.schemas import BidOut, RoundBidsResponse
from src.ba_bids.domain.repository import BidRepositoryProtocol
from src.ba_bids.infrastructure.persistence import BidRepository
from src.ba_common.enums import BidStatus
from src.ba_common.errors import BidNotFoundError


class BidQueryService:
    def __init__(self, repo: BidRepositoryProtocol | None = None) -> None:
        self._repo: BidRepositoryProtocol = repo or BidRepository()

    async def list_round_bids(
        self, db: AsyncSession, round_id: int, status: BidStatus | None
    ) -> RoundBidsResponse:
        bids = await self._repo.list_by_round(db, round_id, status)
        # An empty filtered view is fine; a round nobody bid in is a 404.
        if not bids and await self._repo.count_by_round(db, round_id) == 0:
            raise BidNotFoundError(round_id)
        return RoundBidsResponse(
            round_id=round_id,
            count=len(bids),
            bids=[BidOut.from_domain(b) for b in bids],
        )
