"""Persist settled-round records: round_results + settlement_allocations.

round_results is keyed by round_id and written insert-if-absent, so a
round's clearing price is recorded exactly once. Allocation lines are only
written alongside the first (and only) round_results row.
"""
from decimal import Decimal

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_clearing.domain.models import Allocation
from src.ba_common.datetime_utils import utc_now

_INSERT_ROUND_RESULT_SQL = text("""
    INSERT INTO round_results (
        round_id, clearing_price, total_demand_units,
        units_sold, proceeds, participant_count,
        successful_count, rejected_count,
        clamped, degraded, settlement_tx_id, settled_at
    ) VALUES (
        :round_id, :clearing_price, :total_demand_units,
        :units_sold, :proceeds, :participant_count,
        :successful_count, :rejected_count,
        :clamped, :degraded, :settlement_tx_id, :settled_at
    )
    ON CONFLICT (round_id) DO NOTHING
    RETURNING round_id
""")

_INSERT_ALLOCATION_SQL = text("""
    INSERT INTO settlement_allocations (
        round_id, line_no, user_address, source_tx_id,
        units_allocated, cost_owed, eligible, reason
    ) VALUES (
        :round_id, :line_no, :user_address, :source_tx_id,
        :units_allocated, :cost_owed, :eligible, :reason
    )
""")


async def write_round_result(
    round_id: int,
    clearing_price: Decimal,
    total_demand_units: Decimal,
    allocations: list[Allocation],
    participant_count: int,
    clamped: bool,
    degraded: bool,
    settlement_tx_id: str | None,
    db: AsyncSession,
) -> bool:
    """Insert the round's result and its allocation lines. False if already recorded."""
    eligible = [a for a in allocations if a.eligible]
    result = await db.execute(
        _INSERT_ROUND_RESULT_SQL,
        {
            "round_id": round_id,
            "clearing_price": clearing_price,
            "total_demand_units": total_demand_units,
            "units_sold": sum((a.units_allocated for a in eligible), Decimal("0")),
            "proceeds": sum((a.cost_owed for a in eligible), Decimal("0")),
            "participant_count": participant_count,
            "successful_count": len(eligible),
            "rejected_count": len(allocations) - len(eligible),
            "clamped": clamped,
            "degraded": degraded,
            "settlement_tx_id": settlement_tx_id,
            "settled_at": utc_now(),
        },
    )
    if result.fetchone() is None:
        return False

    for line_no, line in enumerate(allocations):
        await db.execute(
            _INSERT_ALLOCATION_SQL,
            {
                "round_id": round_id,
                "line_no": line_no,
                "user_address": line.user,
                "source_tx_id": line.source_tx_id,
                "units_allocated": line.units_allocated,
                "cost_owed": line.cost_owed,
                "eligible": line.eligible,
                "reason": line.reason.value,
            },
        )
    return True
