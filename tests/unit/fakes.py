"""In-memory fakes for the ledger, the Bid Store and DB sessions."""

from collections import deque
from datetime import UTC, datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from src.ba_bids.domain.models import Bid
from src.ba_common.enums import BidStatus, TxStatus
from src.ba_common.retry import RetryPolicy
from src.ba_ledger.domain.models import BidPlacedEvent, BlockMarker, TxResult

T0 = datetime(2026, 1, 1, tzinfo=UTC)


def make_bid(
    user: str,
    amount: str,
    price: str,
    *,
    round_id: int = 1,
    seconds: int = 0,
    tx: str | None = None,
    status: BidStatus = BidStatus.PENDING,
) -> Bid:
    return Bid(
        round_id=round_id,
        user=user,
        amount=Decimal(amount),
        limit_price=Decimal(price),
        submitted_at=T0 + timedelta(seconds=seconds),
        source_tx_id=tx or f"0x{user.lower()}{seconds:04d}:0",
        status=status,
    )


def make_event(
    block: int,
    log_index: int = 0,
    *,
    round_id: int = 1,
    user: str = "0x00000000000000000000000000000000000000A1",
    amount: str = "100",
    price: str = "2",
) -> BidPlacedEvent:
    return BidPlacedEvent(
        round_id=round_id,
        user=user,
        amount=Decimal(amount),
        limit_price=Decimal(price),
        timestamp=1_767_225_600 + block,
        tx_hash=f"0x{block:064x}",
        log_index=log_index,
        block_number=block,
    )


def no_wait_retry(max_attempts: int | None = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=max_attempts, base_delay=0, jitter=0, sleep=AsyncMock())


def make_db() -> MagicMock:
    db = MagicMock()
    db.execute = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    return db


class FakeSessionFactory:
    """Stands in for async_sessionmaker: every call yields the same mock session."""

    def __init__(self, db: MagicMock | None = None) -> None:
        self.db = db or make_db()

    def __call__(self) -> "FakeSessionFactory":
        return self

    async def __aenter__(self) -> MagicMock:
        return self.db

    async def __aexit__(self, *exc: object) -> bool:
        return False


class FakeBidStore:
    def __init__(self, bids: list[Bid] | None = None) -> None:
        self.rows: dict[tuple[int, str], Bid] = {}
        for bid in bids or []:
            self.rows[(bid.round_id, bid.source_tx_id)] = bid

    async def insert_if_absent(self, db: object, bid: Bid) -> bool:
        key = (bid.round_id, bid.source_tx_id)
        if key in self.rows:
            return False
        self.rows[key] = bid
        return True

    async def list_by_round(
        self, db: object, round_id: int, status: BidStatus | None = None
    ) -> list[Bid]:
        bids = [
            b
            for b in self.rows.values()
            if b.round_id == round_id and (status is None or b.status == status)
        ]
        return sorted(bids, key=lambda b: (-b.limit_price, b.submitted_at, b.source_tx_id))

    async def mark_cleared(self, db: object, round_id: int) -> int:
        touched = 0
        for key, bid in list(self.rows.items()):
            if bid.round_id == round_id and bid.status == BidStatus.PENDING:
                self.rows[key] = Bid(
                    round_id=bid.round_id,
                    user=bid.user,
                    amount=bid.amount,
                    limit_price=bid.limit_price,
                    submitted_at=bid.submitted_at,
                    source_tx_id=bid.source_tx_id,
                    status=BidStatus.CLEARED,
                )
                touched += 1
        return touched

    async def count_by_round(self, db: object, round_id: int) -> int:
        return sum(1 for b in self.rows.values() if b.round_id == round_id)


class FakeMetadataStore:
    def __init__(self, values: dict[str, str] | None = None) -> None:
        self.values: dict[str, str] = dict(values or {})

    async def get_value(self, db: object, key: str) -> str | None:
        return self.values.get(key)

    async def set_value(self, db: object, key: str, value: str) -> None:
        self.values[key] = value

    async def get_checkpoint(self, db: object) -> int | None:
        value = self.values.get("last_processed_block")
        return None if value is None else int(value)

    async def set_checkpoint(self, db: object, block: int) -> None:
        self.values["last_processed_block"] = str(block)


def confirmed(tx_id: str = "0xabc") -> TxResult:
    return TxResult(TxStatus.CONFIRMED, tx_id, block_number=10)


def reverted(reason: str = "execution reverted") -> TxResult:
    return TxResult(TxStatus.REVERTED, "0xdead", reason=reason)


def timed_out() -> TxResult:
    return TxResult(TxStatus.TIMED_OUT, "0xslow", reason="receipt timeout")


class FakeLedger:
    """Scriptable ledger. Queued tx results (or exceptions) are consumed in order."""

    def __init__(self) -> None:
        self.round_id = 1
        self.active = True
        self.started_at = 1_000
        self.duration = 300
        self.now = 1_100
        self.balances: dict[str, Decimal] = {}
        self.inventory = Decimal("1000")
        self.block = 0
        self.events: list[BidPlacedEvent] = []
        self.settlement_results: deque[TxResult | Exception] = deque()
        self.simplified_results: deque[TxResult | Exception] = deque()
        self.advance_results: deque[TxResult | Exception] = deque()
        self.settlements: list[tuple[Decimal, list[str], list[Decimal], list[Decimal]]] = []
        self.simplified_calls: list[Decimal] = []
        self.advance_calls = 0
        self.fetch_calls: list[tuple[int, int]] = []
        self.receipts: dict[str, TxResult] = {}
        self.receipt_lookups: list[str] = []
        self.verified = False

    @staticmethod
    def _next(queue: deque[TxResult | Exception]) -> TxResult:
        item = queue.popleft() if queue else confirmed()
        if isinstance(item, Exception):
            raise item
        return item

    async def verify(self) -> None:
        self.verified = True

    async def is_round_active(self) -> bool:
        return self.active

    async def current_round_id(self) -> int:
        return self.round_id

    async def last_clearing_timestamp(self) -> int:
        return self.started_at

    async def round_duration_seconds(self) -> int:
        return self.duration

    async def latest_timestamp(self) -> int:
        return self.now

    async def balance_of(self, user: str) -> Decimal:
        return self.balances.get(user, Decimal("0"))

    async def deliverable_inventory(self) -> Decimal:
        return self.inventory

    async def submit_settlement(
        self,
        price: Decimal,
        users: list[str],
        unit_amounts: list[Decimal],
        cost_amounts: list[Decimal],
    ) -> TxResult:
        self.settlements.append((price, users, unit_amounts, cost_amounts))
        return self._next(self.settlement_results)

    async def submit_settlement_simplified(self, price: Decimal) -> TxResult:
        self.simplified_calls.append(price)
        return self._next(self.simplified_results)

    async def advance_round(self) -> TxResult:
        self.advance_calls += 1
        result = self._next(self.advance_results)
        if result.confirmed:
            self.round_id += 1
            self.active = True
            self.started_at = self.now
        return result

    async def get_tx_result(self, tx_id: str) -> TxResult | None:
        self.receipt_lookups.append(tx_id)
        return self.receipts.get(tx_id)

    async def latest_marker(self) -> BlockMarker:
        return BlockMarker(self.block)

    async def fetch_bid_events(
        self, from_marker: BlockMarker, to_marker: BlockMarker
    ) -> list[BidPlacedEvent]:
        self.fetch_calls.append((from_marker.number, to_marker.number))
        return [
            e for e in self.events if from_marker.number <= e.block_number <= to_marker.number
        ]
