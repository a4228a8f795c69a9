"""RoundResultRepository: read side of round_results / settlement_allocations.

All queries use raw text() SQL (no ORM).
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from src.ba_clearing.domain.models import Allocation
from src.ba_common.enums import AllocationReason
from src.ba_settlement.domain.models import RoundResult

_GET_ROUND_RESULT_SQL = text("""
    SELECT round_id, clearing_price, total_demand_units,
           units_sold, proceeds, participant_count,
           successful_count, rejected_count,
           clamped, degraded, settlement_tx_id, settled_at
    FROM round_results
    WHERE round_id = :round_id
""")

_LIST_ALLOCATIONS_SQL = text("""
    SELECT user_address, source_tx_id, units_allocated, cost_owed, eligible, reason
    FROM settlement_allocations
    WHERE round_id = :round_id
    ORDER BY line_no ASC
""")


def _row_to_allocation(row: object) -> Allocation:
    return Allocation(
        user=row.user_address,  # type: ignore[attr-defined]
        units_allocated=row.units_allocated,  # type: ignore[attr-defined]
        cost_owed=row.cost_owed,  # type: ignore[attr-defined]
        eligible=row.eligible,  # type: ignore[attr-defined]
        reason=AllocationReason(row.reason),  # type: ignore[attr-defined]
        source_tx_id=row.source_tx_id,  # type: ignore[attr-defined]
    )


class RoundResultRepository:
    async def get_round_result(self, db: AsyncSession, round_id: int) -> RoundResult | None:
        result = await db.execute(_GET_ROUND_RESULT_SQL, {"round_id": round_id})
        row = result.fetchone()
        if row is None:
            return None
        alloc_rows = (await db.execute(_LIST_ALLOCATIONS_SQL, {"round_id": round_id})).fetchall()
        r: object = row
        return RoundResult(
            round_id=r.round_id,  # type: ignore[attr-defined]
            clearing_price=r.clearing_price,  # type: ignore[attr-defined]
            total_demand_units=r.total_demand_units,  # type: ignore[attr-defined]
            units_sold=r.units_sold,  # type: ignore[attr-defined]
            proceeds=r.proceeds,  # type: ignore[attr-defined]
            participant_count=r.participant_count,  # type: ignore[attr-defined]
            successful_count=r.successful_count,  # type: ignore[attr-defined]
            rejected_count=r.rejected_count,  # type: ignore[attr-defined]
            clamped=r.clamped,  # type: ignore[attr-defined]
            degraded=r.degraded,  # type: ignore[attr-defined]
            settlement_tx_id=r.settlement_tx_id,  # type: ignore[attr-defined]
            settled_at=r.settled_at,  # type: ignore[attr-defined]
            allocations=[_row_to_allocation(a) for a in alloc_rows],
        )
