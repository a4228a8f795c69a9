"""SettlementSubmitter: one atomic settlement per round, with a degraded fallback.

Order of operations:
  1. the ledger must still be on the round being cleared (StaleRoundError)
  2. the auction must hold at least one round's supply (InsufficientInventoryError)
  3. allocation invariants
  4. one executeClearing with the full allocation list
  5. CONFIRMED -> bids CLEARED, round result + allocations + event, commit
  6. REVERTED  -> one price-only executeClearing; if that confirms the round
                  is closed degraded (bids stay PENDING), otherwise REVERTED
  7. TIMED_OUT -> no fallback, the original tx may still land; the engine
                  keeps it as a PendingSettlement and calls reconcile() on
                  the next tick before anything is resubmitted

Transport errors before a tx is sent are retried through the RetryPolicy.
A revert is never retried with the same payload.
"""

import logging
from decimal import Decimal

from sqlalchemy.ext.asyncio import AsyncSession

from config.settings import settings
from src.ba_bids.domain.repository import BidRepositoryProtocol, MetadataRepositoryProtocol
from src.ba_bids.infrastructure.persistence import BidRepository, MetadataRepository
from src.ba_clearing.domain.invariants import verify_allocation_invariants
from src.ba_clearing.domain.models import Allocation, ClearingResult
from src.ba_clearing.engine.allocator import summarize_allocations
from src.ba_common.decimal_utils import ZERO, to_display
from src.ba_common.enums import EngineEventType, MetadataKey, SettlementOutcome, TxStatus
from src.ba_common.errors import InsufficientInventoryError, StaleRoundError
from src.ba_common.retry import RetryPolicy
from src.ba_ledger.domain.client import LedgerClientProtocol
from src.ba_ledger.domain.models import TxResult
from src.ba_settlement.domain.models import PendingSettlement, SettlementReport
from src.ba_settlement.infrastructure.audit import write_engine_event
from src.ba_settlement.infrastructure.results_writer import write_round_result

logger = logging.getLogger(__name__)


class SettlementSubmitter:
    def __init__(
        self,
        ledger: LedgerClientProtocol,
        retry: RetryPolicy,
        bid_repo: BidRepositoryProtocol | None = None,
        metadata_repo: MetadataRepositoryProtocol | None = None,
        per_user_cap_ratio: Decimal | None = None,
    ) -> None:
        self._ledger = ledger
        self._retry = retry
        self._bids: BidRepositoryProtocol = bid_repo or BidRepository()
        self._metadata: MetadataRepositoryProtocol = metadata_repo or MetadataRepository()
        self._cap_ratio = (
            settings.MAX_USER_SHARE if per_user_cap_ratio is None else per_user_cap_ratio
        )

    async def submit(
        self,
        round_id: int,
        clearing_price: Decimal,
        allocations: list[Allocation],
        *,
        supply: Decimal,
        db: AsyncSession,
        clearing: ClearingResult | None = None,
    ) -> SettlementReport:
        await self._check_round(round_id)
        await self._check_inventory(round_id, supply, db)

        verify_allocation_invariants(allocations, supply, self._cap_ratio, clearing_price)
        users, units, costs = summarize_allocations(allocations)

        logger.info(
            "Submitting settlement for round #%d: price=%s winners=%d units=%s",
            round_id,
            to_display(clearing_price),
            len(users),
            to_display(sum(units, ZERO)),
        )
        tx = await self._retry.run(
            lambda: self._ledger.submit_settlement(clearing_price, users, units, costs),
            description=f"settle round #{round_id}",
        )

        if tx.status == TxStatus.CONFIRMED:
            return await self._record_settled(
                round_id, clearing_price, allocations, tx, clearing, degraded=False, db=db
            )
        if tx.status == TxStatus.TIMED_OUT:
            return await self._record_timed_out(round_id, clearing_price, tx, db, degraded=False)

        logger.error(
            "Settlement for round #%d reverted (%s), trying price-only fallback",
            round_id,
            tx.reason,
        )
        fallback = await self._retry.run(
            lambda: self._ledger.submit_settlement_simplified(clearing_price),
            description=f"fallback settle round #{round_id}",
        )
        if fallback.status == TxStatus.CONFIRMED:
            return await self._record_settled(
                round_id, clearing_price, allocations, fallback, clearing, degraded=True, db=db
            )
        if fallback.status == TxStatus.TIMED_OUT:
            return await self._record_timed_out(round_id, clearing_price, fallback, db, degraded=True)
        return await self._record_reverted(round_id, clearing_price, tx, fallback, db)

    async def reconcile(
        self, pending: PendingSettlement, *, db: AsyncSession
    ) -> SettlementReport | None:
        """Resolve a settlement whose receipt was not seen when it was sent.

        Returns None while the tx is still unmined. A receipt that confirms is
        recorded exactly like a settlement confirmed on the first try; a revert
        is audited and reported so the round can be cleared again.
        """
        tx = await self._retry.run(
            lambda: self._ledger.get_tx_result(pending.tx_id),
            description=f"look up settlement tx {pending.tx_id}",
        )
        if tx is None:
            return None
        if tx.status == TxStatus.CONFIRMED:
            logger.info(
                "Round #%d: pending settlement tx %s landed", pending.round_id, pending.tx_id
            )
            return await self._record_settled(
                pending.round_id,
                pending.clearing_price,
                list(pending.allocations),
                tx,
                pending.clearing,
                degraded=pending.degraded,
                db=db,
            )

        logger.error(
            "Round #%d: pending settlement tx %s reverted (%s)",
            pending.round_id,
            pending.tx_id,
            tx.reason,
        )
        await self._audit(
            EngineEventType.SETTLEMENT_REVERTED,
            pending.round_id,
            {"tx_id": pending.tx_id, "reason": tx.reason, "after_timeout": True},
            db,
        )
        return SettlementReport(
            round_id=pending.round_id,
            outcome=SettlementOutcome.REVERTED,
            clearing_price=pending.clearing_price,
            degraded=pending.degraded,
            tx_id=pending.tx_id,
            reason=tx.reason,
        )

    # ------------------------------------------------------------------
    # Preconditions
    # ------------------------------------------------------------------

    async def _check_round(self, round_id: int) -> None:
        current = await self._retry.run(
            self._ledger.current_round_id, description="read current round id"
        )
        if current != round_id:
            raise StaleRoundError(round_id, current)

    async def _check_inventory(self, round_id: int, supply: Decimal, db: AsyncSession) -> None:
        inventory = await self._retry.run(
            self._ledger.deliverable_inventory, description="read deliverable inventory"
        )
        if inventory >= supply:
            return
        logger.error(
            "Round #%d: auction holds %s tokens, %s required; skipping settlement",
            round_id,
            to_display(inventory),
            to_display(supply),
        )
        await self._audit(
            EngineEventType.INVENTORY_SHORTFALL,
            round_id,
            {"required": supply, "available": inventory},
            db,
        )
        raise InsufficientInventoryError(supply, inventory)

    # ------------------------------------------------------------------
    # Outcome recording
    # ------------------------------------------------------------------

    async def _record_settled(
        self,
        round_id: int,
        clearing_price: Decimal,
        allocations: list[Allocation],
        tx: TxResult,
        clearing: ClearingResult | None,
        *,
        degraded: bool,
        db: AsyncSession,
    ) -> SettlementReport:
        users, units, costs = summarize_allocations(allocations)
        units_sold = sum(units, ZERO)
        proceeds = sum(costs, ZERO)
        try:
            # Degraded: nothing was delivered on the ledger, bids stay PENDING.
            cleared = 0 if degraded else await self._bids.mark_cleared(db, round_id)
            await write_round_result(
                round_id,
                clearing_price,
                clearing.total_demand_units if clearing else units_sold,
                allocations,
                len({b.user for b in clearing.ordered_bids}) if clearing else len(set(users)),
                clearing.clamped if clearing else False,
                degraded,
                tx.tx_id,
                db,
            )
            event = EngineEventType.FALLBACK_SETTLED if degraded else EngineEventType.ROUND_CLEARED
            await write_engine_event(
                event,
                round_id,
                {
                    "tx_id": tx.tx_id,
                    "clearing_price": clearing_price,
                    "winners": len(users),
                    "units_sold": units_sold,
                    "proceeds": proceeds,
                    "bids_cleared": cleared,
                },
                db,
            )
            await self._metadata.set_value(db, MetadataKey.LAST_CLEARED_ROUND.value, str(round_id))
            await db.commit()
        except Exception:
            await db.rollback()
            logger.error(
                "Round #%d settled on the ledger (tx %s) but the local record failed",
                round_id,
                tx.tx_id,
            )
            raise

        if degraded:
            logger.warning(
                "Round #%d closed via price-only fallback (tx %s); %d allocation(s) "
                "left for manual reconciliation",
                round_id,
                tx.tx_id,
                len(users),
            )
        else:
            logger.info(
                "Round #%d settled (tx %s): %d winner(s), %s units, %d bid(s) cleared",
                round_id,
                tx.tx_id,
                len(users),
                to_display(units_sold),
                cleared,
            )
        return SettlementReport(
            round_id=round_id,
            outcome=SettlementOutcome.CONFIRMED,
            clearing_price=clearing_price,
            degraded=degraded,
            tx_id=tx.tx_id,
            units_sold=ZERO if degraded else units_sold,
            proceeds=ZERO if degraded else proceeds,
            winners=0 if degraded else len(users),
            rejected=len(allocations) - len(users),
            bids_cleared=cleared,
        )

    async def _record_timed_out(
        self,
        round_id: int,
        clearing_price: Decimal,
        tx: TxResult,
        db: AsyncSession,
        *,
        degraded: bool,
    ) -> SettlementReport:
        logger.warning("Round #%d settlement tx %s unconfirmed, re-polling", round_id, tx.tx_id)
        await self._audit(
            EngineEventType.SETTLEMENT_TIMED_OUT,
            round_id,
            {"tx_id": tx.tx_id, "degraded": degraded},
            db,
        )
        return SettlementReport(
            round_id=round_id,
            outcome=SettlementOutcome.TIMED_OUT,
            clearing_price=clearing_price,
            degraded=degraded,
            tx_id=tx.tx_id,
            reason=tx.reason,
        )

    async def _record_reverted(
        self,
        round_id: int,
        clearing_price: Decimal,
        tx: TxResult,
        fallback: TxResult,
        db: AsyncSession,
    ) -> SettlementReport:
        logger.error(
            "Round #%d: settlement and fallback both reverted (%s / %s)",
            round_id,
            tx.reason,
            fallback.reason,
        )
        await self._audit(
            EngineEventType.SETTLEMENT_REVERTED,
            round_id,
            {
                "tx_id": tx.tx_id,
                "reason": tx.reason,
                "fallback_tx_id": fallback.tx_id,
                "fallback_reason": fallback.reason,
            },
            db,
        )
        return SettlementReport(
            round_id=round_id,
            outcome=SettlementOutcome.REVERTED,
            clearing_price=clearing_price,
            tx_id=fallback.tx_id or tx.tx_id,
            reason=fallback.reason or tx.reason,
        )

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
