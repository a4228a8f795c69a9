"""RoundResultQueryService: read-only; no commit/rollback needed."""

from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_common.errors import RoundResultNotFoundError
from src.ba_settlement.application.schemas import RoundResultResponse
from src.ba_settlement.infrastructure.persistence import RoundResultRepository


class RoundResultQueryService:
    def __init__(self, repo: RoundResultRepository | None = None) -> None:
        self._repo = repo or RoundResultRepository()

    async def get_round_result(self, db: AsyncSession, round_id: int) -> RoundResultResponse:
        result = await self._repo.get_round_result(db, round_id)
        if result is None:
            raise RoundResultNotFoundError(round_id)
        return RoundResultResponse.from_domain(result)
