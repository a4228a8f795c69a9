"""LedgerClientProtocol: everything the engine needs from the settlement ledger.

Read methods raise LedgerUnavailableError on transport failure. Transaction
methods return a TxResult for every outcome the ledger can produce (confirmed,
reverted, receipt not seen in time) and raise LedgerUnavailableError only when
the transaction could not be sent at all, which makes that case safe to retry.
"""

from decimal import Decimal
from typing import Protocol

from src.ba_ledger.domain.models import BidPlacedEvent, BlockMarker, TxResult


class LedgerClientProtocol(Protocol):
    async def verify(self) -> None:
        """Fail fast (LedgerMisconfiguredError) if addresses do not point at contracts."""
        ...

    # --- round state ---

    async def is_round_active(self) -> bool: ...

    async def current_round_id(self) -> int: ...

    async def last_clearing_timestamp(self) -> int: ...

    async def round_duration_seconds(self) -> int: ...

    async def latest_timestamp(self) -> int:
        """The ledger's own clock (latest block timestamp, unix seconds)."""
        ...

    # --- balances ---

    async def balance_of(self, user: str) -> Decimal:
        """Quote balance the user has deposited with the auction."""
        ...

    async def deliverable_inventory(self) -> Decimal:
        """Auction tokens the auction contract holds and can deliver."""
        ...

    # --- transactions ---

    async def submit_settlement(
        self,
        price: Decimal,
        users: list[str],
        unit_amounts: list[Decimal],
        cost_amounts: list[Decimal],
    ) -> TxResult: ...

    async def submit_settlement_simplified(self, price: Decimal) -> TxResult: ...

    async def advance_round(self) -> TxResult: ...

    async def get_tx_result(self, tx_id: str) -> TxResult | None:
        """Outcome of a previously sent tx; None while no receipt exists."""
        ...

    # --- events ---

    async def latest_marker(self) -> BlockMarker: ...

    async def fetch_bid_events(
        self, from_marker: BlockMarker, to_marker: BlockMarker
    ) -> list[BidPlacedEvent]:
        """BidPlaced events in [from_marker, to_marker], both inclusive."""
        ...
