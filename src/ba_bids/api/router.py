"""ba_bids REST endpoints.

GET /rounds/{round_id}/bids   : bids of a round in clearing order
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_bids.application.service import BidQueryService
from src.ba_common.database import get_db_session
from src.ba_common.enums import BidStatus
from src.ba_common.response import ApiResponse, success_response

router = APIRouter(prefix="/rounds", tags=["bids"])

_service = BidQueryService()


@router.get("/{round_id}/bids")
async def list_round_bids(
    round_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
    status: BidStatus | None = Query(None),
) -> ApiResponse:
    result = await _service.list_round_bids(db, round_id, status)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
