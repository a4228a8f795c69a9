"""Domain models for ba_ledger: typed views of what the ledger reports.

Raw contract output (wei integers, log AttributeDicts) never leaves the
adapter; everything past the boundary is one of these.
"""

from dataclasses import dataclass
from decimal import Decimal

from src.ba_bids.domain.models import Bid
from src.ba_common.datetime_utils import from_unix
from src.ba_common.enums import TxStatus
from src.ba_common.errors import InvalidBidError


@dataclass(frozen=True)
class BlockMarker:
    """Position in the ledger's event stream (a block number)."""

    number: int


@dataclass(frozen=True)
class TxResult:
    status: TxStatus
    tx_id: str | None = None
    block_number: int | None = None
    reason: str | None = None

    @property
    def confirmed(self) -> bool:
        return self.status == TxStatus.CONFIRMED


@dataclass(frozen=True)
class BidPlacedEvent:
    """A decoded BidPlaced log."""

    round_id: int
    user: str
    amount: Decimal
    limit_price: Decimal
    timestamp: int
    tx_hash: str
    log_index: int
    block_number: int

    @property
    def source_tx_id(self) -> str:
        return f"{self.tx_hash}:{self.log_index}"

    def to_bid(self) -> Bid:
        if self.amount <= 0:
            raise InvalidBidError(f"{self.source_tx_id} has non-positive amount {self.amount}")
        if self.limit_price <= 0:
            raise InvalidBidError(
                f"{self.source_tx_id} has non-positive limit price {self.limit_price}"
            )
        return Bid(
            round_id=self.round_id,
            user=self.user,
            amount=self.amount,
            limit_price=self.limit_price,
            submitted_at=from_unix(self.timestamp),
            source_tx_id=self.source_tx_id,
        )
