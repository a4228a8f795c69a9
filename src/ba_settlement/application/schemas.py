"""Pydantic schemas for ba_settlement API responses."""

from pydantic import BaseModel

from src.ba_clearing.domain.models import Allocation
from src.ba_settlement.domain.models import RoundResult


class AllocationOut(BaseModel):
    user: str
    source_tx_id: str | None
    units_allocated: str
    cost_owed: str
    eligible: bool
    reason: str

    @classmethod
    def from_domain(cls, a: Allocation) -> "AllocationOut":
        return cls(
            user=a.user,
            source_tx_id=a.source_tx_id,
            units_allocated=str(a.units_allocated),
            cost_owed=str(a.cost_owed),
            eligible=a.eligible,
            reason=a.reason.value,
        )


class RoundResultResponse(BaseModel):
    round_id: int
    clearing_price: str
    total_demand_units: str
    units_sold: str
    proceeds: str
    participant_count: int
    successful_count: int
    rejected_count: int
    clamped: bool
    degraded: bool
    settlement_tx_id: str | None
    settled_at: str
    allocations: list[AllocationOut]

    @classmethod
    def from_domain(cls, r: RoundResult) -> "RoundResultResponse":
        return cls(
            round_id=r.round_id,
            clearing_price=str(r.clearing_price),
            total_demand_units=str(r.total_demand_units),
            units_sold=str(r.units_sold),
            proceeds=str(r.proceeds),
            participant_count=r.participant_count,
            successful_count=r.successful_count,
            rejected_count=r.rejected_count,
            clamped=r.clamped,
            degraded=r.degraded,
            settlement_tx_id=r.settlement_tx_id,
            settled_at=r.settled_at.isoformat(),
            allocations=[AllocationOut.from_domain(a) for a in r.allocations],
        )
