"""Domain models for ba_clearing: immutable results of one clearing attempt."""

from dataclasses import dataclass
from decimal import Decimal

from src.ba_bids.domain.models import Bid
from src.ba_common.enums import AllocationReason


@dataclass(frozen=True)
class PriceBand:
    """Policy bounds for the clearing price (inclusive)."""

    floor: Decimal
    ceiling: Decimal

    def __post_init__(self) -> None:
        if self.floor <= 0:
            raise ValueError(f"price floor must be positive, got {self.floor}")
        if self.ceiling < self.floor:
            raise ValueError(f"price ceiling {self.ceiling} below floor {self.floor}")

    def clamp(self, price: Decimal) -> tuple[Decimal, bool]:
        """Return (price within band, whether it had to move)."""
        if price < self.floor:
            return self.floor, True
        if price > self.ceiling:
            return self.ceiling, True
        return price, False


@dataclass(frozen=True)
class DemandPoint:
    limit_price: Decimal
    cumulative_units: Decimal


@dataclass(frozen=True)
class ClearingResult:
    clearing_price: Decimal
    total_demand_units: Decimal
    ordered_bids: tuple[Bid, ...]
    marginal_bid: Bid | None = None
    demand_curve: tuple[DemandPoint, ...] = ()
    excluded_bids: tuple[Bid, ...] = ()
    clamped: bool = False
    undersubscribed: bool = False

    @property
    def winning_bids(self) -> tuple[Bid, ...]:
        """Bids priced at or above the clearing price, in priority order."""
        return tuple(b for b in self.ordered_bids if b.limit_price >= self.clearing_price)


@dataclass(frozen=True)
class Allocation:
    """One line of the allocation list, answering one winning bid."""

    user: str
    units_allocated: Decimal
    cost_owed: Decimal
    eligible: bool
    reason: AllocationReason
    source_tx_id: str | None = None
