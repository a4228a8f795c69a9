"""ba_settlement REST endpoints.

GET /rounds/{round_id}/result   : stored settlement record with allocation lines
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_common.database import get_db_session
from src.ba_common.response import ApiResponse, success_response
from src.ba_settlement.application.service import RoundResultQueryService

router = APIRouter(prefix="/rounds", tags=["settlement"])

_service = RoundResultQueryService()


@router.get("/{round_id}/result")
async def get_round_result(
    round_id: int,
    request: Request,
    db: Annotated[AsyncSession, Depends(get_db_session)],
) -> ApiResponse:
    result = await _service.get_round_result(db, round_id)
    resp = success_response(result.model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
