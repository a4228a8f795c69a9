"""RoundLifecycleTracker: decides when a round may be cleared.

A round becomes clearable only after its nominal end plus the settlement
buffer, measured on the ledger's clock (never the local one). The buffer
lets late intake reach the Bid Store before the snapshot is taken.
"""

import logging

from config.settings import settings
from src.ba_common.enums import RoundPhase
from src.ba_common.retry import RetryPolicy
from src.ba_ledger.domain.client import LedgerClientProtocol
from src.ba_ledger.domain.models import TxResult
from src.ba_round.domain.models import RoundSnapshot

logger = logging.getLogger(__name__)


class RoundLifecycleTracker:
    def __init__(
        self,
        ledger: LedgerClientProtocol,
        retry: RetryPolicy,
        buffer_seconds: int | None = None,
    ) -> None:
        self._ledger = ledger
        self._retry = retry
        self._buffer = (
            settings.SETTLEMENT_BUFFER_SECONDS if buffer_seconds is None else buffer_seconds
        )
        self._duration: int | None = None

    @property
    def buffer_seconds(self) -> int:
        return self._buffer

    async def _read_snapshot(self) -> RoundSnapshot:
        # ROUND_DURATION is a contract constant; read it once.
        if self._duration is None:
            self._duration = await self._ledger.round_duration_seconds()
        round_id = await self._ledger.current_round_id()
        is_active = await self._ledger.is_round_active()
        started_at = await self._ledger.last_clearing_timestamp()
        now = await self._ledger.latest_timestamp()
        return RoundSnapshot(
            round_id=round_id,
            is_active=is_active,
            seconds_remaining=self._duration - (now - started_at),
            ledger_now=now,
            started_at=started_at,
            duration_seconds=self._duration,
        )

    async def poll_state(self) -> RoundSnapshot:
        return await self._retry.run(self._read_snapshot, description="poll round state")

    def is_clearable(self, snapshot: RoundSnapshot) -> bool:
        return snapshot.is_active and snapshot.seconds_remaining <= -self._buffer

    def phase_of(self, snapshot: RoundSnapshot) -> RoundPhase:
        if not snapshot.is_active:
            return RoundPhase.STUCK_INACTIVE
        if self.is_clearable(snapshot):
            return RoundPhase.CLEARING
        return RoundPhase.ACTIVE

    async def advance_round(self) -> TxResult:
        """Open the next round after a confirmed settlement."""
        result = await self._retry.run(self._ledger.advance_round, description="advance round")
        if result.confirmed:
            logger.info("Next round started (tx %s)", result.tx_id)
        else:
            # Typically "round still active" or already advanced; the next
            # poll shows which.
            logger.warning(
                "Round advance not confirmed: %s (%s)", result.status.value, result.reason
            )
        return result

    async def force_advance(self, snapshot: RoundSnapshot) -> TxResult:
        """Remediate a round the ledger reports inactive outside of clearing."""
        logger.warning(
            "Round #%d is inactive outside clearing, forcing advance", snapshot.round_id
        )
        return await self.advance_round()
