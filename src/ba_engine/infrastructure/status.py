"""Engine status hash in Redis: written by the bot each tick, read by the ops API.

Publishing is best-effort: a Redis outage is logged and never stops clearing.
"""

import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from src.ba_engine.domain.state import EngineState

logger = logging.getLogger(__name__)

STATUS_KEY = "ba:engine:status"


def _fmt(value: object) -> str:
    if value is None:
        return ""
    if hasattr(value, "value"):
        return str(value.value)
    if hasattr(value, "isoformat"):
        return value.isoformat()  # type: ignore[no-any-return]
    return str(value)


def state_to_mapping(state: EngineState, stalled: bool) -> dict[str, str]:
    return {
        "round_id": _fmt(state.round_id),
        "phase": _fmt(state.phase),
        "seconds_remaining": _fmt(state.seconds_remaining),
        "checkpoint": _fmt(state.checkpoint),
        "last_cleared_round": _fmt(state.last_cleared_round),
        "consecutive_failures": str(state.consecutive_failures),
        "stalled": "1" if stalled else "0",
        "last_error": _fmt(state.last_error),
        "pending_tx_id": _fmt(state.pending.tx_id if state.pending else None),
        "updated_at": _fmt(state.updated_at),
    }


class RedisStatusPublisher:
    def __init__(self, redis: aioredis.Redis) -> None:
        self._redis = redis

    async def publish(self, state: EngineState, stalled: bool) -> None:
        try:
            await self._redis.hset(STATUS_KEY, mapping=state_to_mapping(state, stalled))
        except (RedisError, OSError) as exc:
            logger.warning("Engine status publish failed: %s", exc)


async def read_status(redis: aioredis.Redis) -> dict[str, str]:
    return await redis.hgetall(STATUS_KEY)  # type: ignore[no-any-return]
