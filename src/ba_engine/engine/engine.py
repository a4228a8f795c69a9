"""ClearingEngine: the single-task clearing loop.

Each iteration, in order: catch up on bid events, poll the round, and once
the round is over run solve -> allocate -> submit, then advance the round.
Round N+1 is only opened after round N's settlement is confirmed, and the
loop order is what guarantees it.

Errors are handled at the iteration boundary (step). Process-fatal errors
(FatalEngineError) and invariant violations propagate; every other error is
logged with the round id, counted, and turned into a backoff before the next
iteration.
"""

import asyncio
import contextlib
import logging
from collections.abc import Callable
from dataclasses import replace
from decimal import Decimal
from typing import Any, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.ba_bids.domain.repository import BidRepositoryProtocol, MetadataRepositoryProtocol
from src.ba_bids.infrastructure.persistence import BidRepository, MetadataRepository
from src.ba_clearing.domain.models import ClearingResult, PriceBand
from src.ba_clearing.engine.allocator import allocate
from src.ba_clearing.engine.solver import solve
from src.ba_common.decimal_utils import ZERO, to_display
from src.ba_common.enums import (
    BidStatus,
    EngineEventType,
    MetadataKey,
    RoundPhase,
    SettlementOutcome,
)
from src.ba_common.errors import (
    AppError,
    FatalEngineError,
    InsufficientInventoryError,
    StaleRoundError,
)
from src.ba_common.retry import RetryPolicy
from src.ba_engine.domain.state import EngineState
from src.ba_ledger.domain.client import LedgerClientProtocol
from src.ba_recovery.application.manager import RecoveryManager
from src.ba_round.application.tracker import RoundLifecycleTracker
from src.ba_round.domain.models import RoundSnapshot
from src.ba_settlement.application.submitter import SettlementSubmitter
from src.ba_settlement.domain.models import PendingSettlement
from src.ba_settlement.infrastructure.audit import write_engine_event

logger = logging.getLogger(__name__)


class StatusPublisher(Protocol):
    async def publish(self, state: EngineState, stalled: bool) -> None: ...


class ClearingEngine:
    def __init__(
        self,
        ledger: LedgerClientProtocol,
        session_factory: Callable[[], Any],
        retry: RetryPolicy,
        *,
        tracker: RoundLifecycleTracker | None = None,
        submitter: SettlementSubmitter | None = None,
        recovery: RecoveryManager | None = None,
        bid_repo: BidRepositoryProtocol | None = None,
        metadata_repo: MetadataRepositoryProtocol | None = None,
        status_publisher: StatusPublisher | None = None,
        supply: Decimal | None = None,
        per_user_cap_ratio: Decimal | None = None,
        price_band: PriceBand | None = None,
    ) -> None:
        self._ledger = ledger
        self._session_factory = session_factory
        self._retry = retry
        self._bids: BidRepositoryProtocol = bid_repo or BidRepository()
        self._metadata: MetadataRepositoryProtocol = metadata_repo or MetadataRepository()
        self._supply = settings.SUPPLY_PER_ROUND if supply is None else supply
        self._cap_ratio = (
            settings.MAX_USER_SHARE if per_user_cap_ratio is None else per_user_cap_ratio
        )
        self._band = price_band or PriceBand(
            settings.MIN_CLEARING_PRICE, settings.MAX_CLEARING_PRICE
        )
        self._tracker = tracker or RoundLifecycleTracker(ledger, retry)
        self._submitter = submitter or SettlementSubmitter(
            ledger, retry, self._bids, self._metadata, self._cap_ratio
        )
        self._recovery = recovery or RecoveryManager(ledger, retry, self._bids, self._metadata)
        self._status = status_publisher

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> EngineState:
        """Verify the ledger and load the durable parts of the state."""
        await self._ledger.verify()
        async with self._session_factory() as db:
            checkpoint = await self._recovery.load_checkpoint(db)
            last_cleared = await self._metadata.get_value(
                db, MetadataKey.LAST_CLEARED_ROUND.value
            )
        logger.info(
            "Engine starting: checkpoint=%s last_cleared_round=%s supply=%s cap_ratio=%s",
            checkpoint,
            last_cleared,
            to_display(self._supply),
            self._cap_ratio,
        )
        return EngineState(
            checkpoint=checkpoint,
            last_cleared_round=int(last_cleared) if last_cleared is not None else None,
        )

    async def run_forever(self, stop: asyncio.Event) -> EngineState:
        """Iterate until stop is set. Shutdown is honoured between ticks only."""
        state = await self.start()
        while not stop.is_set():
            state, delay = await self.step(state)
            await self._publish(state)
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(stop.wait(), timeout=delay)
        logger.info("Engine stopped at round %s", state.round_id)
        return state

    async def step(self, state: EngineState) -> tuple[EngineState, float]:
        """One iteration behind the error boundary. Returns (next state, delay)."""
        try:
            return await self.tick(state)
        except FatalEngineError:
            raise
        except StaleRoundError as exc:
            logger.info("Round %s: %s; re-polling", state.round_id, exc.message)
            return state.evolve(phase=None), settings.POLL_INTERVAL_SECONDS
        except InsufficientInventoryError as exc:
            return self._failure(state, exc.message), settings.INVENTORY_RETRY_SECONDS
        except AppError as exc:
            return self._failure(state, exc.message), settings.ERROR_BACKOFF_SECONDS
        except SQLAlchemyError as exc:
            return self._failure(state, f"database error: {exc}"), settings.ERROR_BACKOFF_SECONDS
        except AssertionError:
            raise
        except Exception as exc:
            logger.exception("Round %s: unexpected error in iteration", state.round_id)
            return (
                self._failure(state, f"unexpected {type(exc).__name__}: {exc}"),
                settings.ERROR_BACKOFF_SECONDS,
            )

    def _failure(self, state: EngineState, error: str) -> EngineState:
        failed = state.failed(error)
        logger.error(
            "Round %s: iteration failed (%d consecutive): %s",
            state.round_id,
            failed.consecutive_failures,
            error,
        )
        if failed.is_stalled(settings.STALL_ALERT_THRESHOLD):
            logger.error(
                "Forward progress interrupted: %d consecutive failures at round %s",
                failed.consecutive_failures,
                state.round_id,
            )
        return failed

    async def _publish(self, state: EngineState) -> None:
        if self._status is not None:
            await self._status.publish(state, state.is_stalled(settings.STALL_ALERT_THRESHOLD))

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    async def tick(self, state: EngineState) -> tuple[EngineState, float]:
        async with self._session_factory() as db:
            marker = await self._recovery.catch_up(state.checkpoint, db)
            state = state.evolve(checkpoint=marker.number)

            snapshot = await self._tracker.poll_state()
            state = state.evolve(
                round_id=snapshot.round_id,
                seconds_remaining=snapshot.seconds_remaining,
                phase=self._tracker.phase_of(snapshot),
            )

            if state.pending is not None:
                return await self._reconcile_pending(state, db)
            if not snapshot.is_active:
                return await self._remediate_stuck(state, snapshot, db)
            if not self._tracker.is_clearable(snapshot):
                return state.succeeded(), settings.POLL_INTERVAL_SECONDS
            return await self._clear_round(state, snapshot, db)

    async def _remediate_stuck(
        self, state: EngineState, snapshot: RoundSnapshot, db: AsyncSession
    ) -> tuple[EngineState, float]:
        result = await self._tracker.force_advance(snapshot)
        if result.confirmed:
            await self._audit(
                EngineEventType.STUCK_ROUND_REMEDIATED,
                snapshot.round_id,
                {"tx_id": result.tx_id},
                db,
            )
            return state.succeeded(), settings.POLL_INTERVAL_SECONDS
        return (
            self._failure(state, f"stuck round advance {result.status.value}: {result.reason}"),
            settings.ERROR_BACKOFF_SECONDS,
        )

    async def _clear_round(
        self, state: EngineState, snapshot: RoundSnapshot, db: AsyncSession
    ) -> tuple[EngineState, float]:
        round_id = snapshot.round_id
        bids = await self._bids.list_by_round(db, round_id, BidStatus.PENDING)
        logger.info("Round #%d over, clearing %d pending bid(s)", round_id, len(bids))

        result = solve(bids, self._supply, self._band)
        if result.clamped:
            await self._audit(
                EngineEventType.PRICE_CLAMPED,
                round_id,
                {
                    "clearing_price": result.clearing_price,
                    "floor": self._band.floor,
                    "ceiling": self._band.ceiling,
                },
                db,
            )

        balances = await self._prefetch_balances(result)
        allocations = allocate(
            result, self._supply, self._cap_ratio, lambda user: balances.get(user, ZERO)
        )
        report = await self._submitter.submit(
            round_id,
            result.clearing_price,
            allocations,
            supply=self._supply,
            db=db,
            clearing=result,
        )

        if report.outcome == SettlementOutcome.TIMED_OUT:
            pending = None
            if report.tx_id is not None:
                pending = PendingSettlement(
                    round_id=round_id,
                    tx_id=report.tx_id,
                    clearing_price=result.clearing_price,
                    allocations=tuple(allocations),
                    clearing=result,
                    degraded=report.degraded,
                )
            return (
                state.evolve(phase=RoundPhase.CLEARING, pending=pending),
                settings.POLL_INTERVAL_SECONDS,
            )
        if report.outcome == SettlementOutcome.REVERTED:
            return (
                self._failure(state, f"settlement reverted: {report.reason}"),
                settings.SETTLEMENT_RETRY_SECONDS,
            )
        return await self._finish_round(state, round_id, db)

    async def _reconcile_pending(
        self, state: EngineState, db: AsyncSession
    ) -> tuple[EngineState, float]:
        """Settle the fate of a timed-out settlement tx before touching the round again."""
        pending = state.pending
        assert pending is not None
        report = await self._submitter.reconcile(pending, db=db)

        if report is None:
            polls = pending.polls + 1
            if polls < settings.PENDING_TX_MAX_POLLS:
                logger.info(
                    "Round #%d: settlement tx %s not mined yet (check %d)",
                    pending.round_id,
                    pending.tx_id,
                    polls,
                )
                return (
                    state.evolve(phase=RoundPhase.CLEARING, pending=replace(pending, polls=polls)),
                    settings.POLL_INTERVAL_SECONDS,
                )
            # Dropped from the mempool; clearing the round again is the only way forward.
            return (
                self._failure(
                    state.evolve(pending=None),
                    f"settlement tx {pending.tx_id} unseen after {polls} checks",
                ),
                settings.ERROR_BACKOFF_SECONDS,
            )

        state = state.evolve(pending=None)
        if report.outcome == SettlementOutcome.REVERTED:
            return (
                self._failure(state, f"settlement reverted: {report.reason}"),
                settings.SETTLEMENT_RETRY_SECONDS,
            )
        return await self._finish_round(state, pending.round_id, db)

    async def _finish_round(
        self, state: EngineState, round_id: int, db: AsyncSession
    ) -> tuple[EngineState, float]:
        """Settlement of round_id is confirmed: record it in state and open the next round."""
        state = state.succeeded(phase=RoundPhase.CLEARED, last_cleared_round=round_id)
        advanced = await self._tracker.advance_round()
        if advanced.confirmed:
            await self._audit(
                EngineEventType.ROUND_ADVANCED,
                round_id,
                {"tx_id": advanced.tx_id, "next_round_id": round_id + 1},
                db,
            )
        return state, settings.POST_CLEARING_DELAY_SECONDS

    async def _prefetch_balances(self, result: ClearingResult) -> dict[str, Decimal]:
        balances: dict[str, Decimal] = {}
        for bid in result.winning_bids:
            if bid.user not in balances:
                balances[bid.user] = await self._retry.run(
                    lambda u=bid.user: self._ledger.balance_of(u),
                    description=f"read balance of {bid.user}",
                )
        return balances

    async def _audit(
        self,
        event_type: EngineEventType,
        round_id: int,
        payload: dict[str, object],
        db: AsyncSession,
    ) -> None:
        try:
            await write_engine_event(event_type, round_id, payload, db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
