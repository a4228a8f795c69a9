"""Domain models for ba_settlement."""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from src.ba_clearing.domain.models import Allocation, ClearingResult
from src.ba_common.enums import SettlementOutcome


@dataclass(frozen=True)
class SettlementReport:
    """What one submit() call achieved.

    degraded=True means the full allocation reverted and the round was closed
    through the price-only fallback: the price is on the ledger, no tokens
    moved, and the round's bids stay PENDING for manual reconciliation.
    """

    round_id: int
    outcome: SettlementOutcome
    clearing_price: Decimal
    degraded: bool = False
    tx_id: str | None = None
    units_sold: Decimal = Decimal("0")
    proceeds: Decimal = Decimal("0")
    winners: int = 0
    rejected: int = 0
    bids_cleared: int = 0
    reason: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.outcome == SettlementOutcome.CONFIRMED


@dataclass
class RoundResult:
    """Stored record of a settled round (one row of round_results)."""

    round_id: int
    clearing_price: Decimal
    total_demand_units: Decimal
    units_sold: Decimal
    proceeds: Decimal
    participant_count: int
    successful_count: int
    rejected_count: int
    clamped: bool
    degraded: bool
    settlement_tx_id: str | None
    settled_at: datetime
    allocations: list[Allocation] = field(default_factory=list)


@dataclass(frozen=True)
class PendingSettlement:
    """A settlement tx that was sent but whose receipt was not seen in time.

    Kept in memory between ticks so the next tick can look the tx up before
    anything else touches the round. `degraded` is True when the pending tx is
    the price-only fallback.
    """

    round_id: int
    tx_id: str
    clearing_price: Decimal
    allocations: tuple[Allocation, ...]
    clearing: ClearingResult | None = None
    degraded: bool = False
    polls: int = 0
