"""Domain models for ba_bids: pure dataclasses, no business logic."""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from src.ba_common.enums import BidStatus


@dataclass(frozen=True)
class Bid:
    """One user's limit order for a round.

    amount is the quote notional offered; the units wanted at a price p are
    amount / p. (round_id, source_tx_id) identifies a bid across replays.
    """

    round_id: int
    user: str
    amount: Decimal
    limit_price: Decimal
    submitted_at: datetime
    source_tx_id: str
    status: BidStatus = BidStatus.PENDING
    id: int | None = None

    @property
    def is_well_formed(self) -> bool:
        return (
            self.amount.is_finite()
            and self.limit_price.is_finite()
            and self.amount > 0
            and self.limit_price > 0
        )
