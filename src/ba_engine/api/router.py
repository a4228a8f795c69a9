"""ba_engine REST endpoints.

GET /engine/status   : last state the clearing bot published
"""

from typing import Annotated

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel

from config.settings import settings
from src.ba_common.redis_client import get_redis
from src.ba_common.response import ApiResponse, success_response
from src.ba_engine.infrastructure.status import read_status

router = APIRouter(prefix="/engine", tags=["engine"])


class EngineStatusResponse(BaseModel):
    published: bool
    round_id: int | None = None
    phase: str | None = None
    seconds_remaining: int | None = None
    checkpoint: int | None = None
    last_cleared_round: int | None = None
    consecutive_failures: int = 0
    stalled: bool = False
    stall_threshold: int
    last_error: str | None = None
    pending_tx_id: str | None = None
    updated_at: str | None = None

    @classmethod
    def from_hash(cls, raw: dict[str, str]) -> "EngineStatusResponse":
        def opt_int(key: str) -> int | None:
            value = raw.get(key) or None
            return int(value) if value is not None else None

        return cls(
            published=bool(raw),
            round_id=opt_int("round_id"),
            phase=raw.get("phase") or None,
            seconds_remaining=opt_int("seconds_remaining"),
            checkpoint=opt_int("checkpoint"),
            last_cleared_round=opt_int("last_cleared_round"),
            consecutive_failures=opt_int("consecutive_failures") or 0,
            stalled=raw.get("stalled") == "1",
            stall_threshold=settings.STALL_ALERT_THRESHOLD,
            last_error=raw.get("last_error") or None,
            pending_tx_id=raw.get("pending_tx_id") or None,
            updated_at=raw.get("updated_at") or None,
        )


@router.get("/status")
async def get_engine_status(
    request: Request,
    redis: Annotated[aioredis.Redis, Depends(get_redis)],
) -> ApiResponse:
    raw = await read_status(redis)
    resp = success_response(EngineStatusResponse.from_hash(raw).model_dump())
    resp.request_id = getattr(request.state, "request_id", resp.request_id)
    return resp
