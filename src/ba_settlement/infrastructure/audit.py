"""Append-only engine_events audit log.

Called within the caller's transaction; the caller commits.
"""
import json

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_common.enums import EngineEventType

_INSERT_EVENT_SQL = text("""
    INSERT INTO engine_events (round_id, event_type, payload)
    VALUES (:round_id, :event_type, :payload)
""")


async def write_engine_event(
    event_type: EngineEventType,
    round_id: int | None,
    payload: dict[str, object],
    db: AsyncSession,
) -> None:
    """Insert one row into engine_events. Decimals in payload are stored as strings."""
    await db.execute(
        _INSERT_EVENT_SQL,
        {
            "round_id": round_id,
            "event_type": event_type.value,
            "payload": json.dumps(payload, default=str),
        },
    )
