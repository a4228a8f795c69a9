"""EngineState: everything the clearing loop carries between iterations.

Immutable; each tick returns a replacement. Only checkpoint and
last_cleared_round are durable (engine_metadata), and they are persisted
by the components that advance them, at their commit points. `pending` is a
settlement tx sent without a seen receipt; it lives in memory only.
"""

from dataclasses import dataclass, replace
from datetime import datetime

from src.ba_common.datetime_utils import utc_now
from src.ba_common.enums import RoundPhase
from src.ba_settlement.domain.models import PendingSettlement


@dataclass(frozen=True)
class EngineState:
    round_id: int | None = None
    phase: RoundPhase | None = None
    seconds_remaining: int | None = None
    checkpoint: int | None = None
    last_cleared_round: int | None = None
    consecutive_failures: int = 0
    last_error: str | None = None
    pending: PendingSettlement | None = None
    updated_at: datetime | None = None

    def evolve(self, **changes: object) -> "EngineState":
        return replace(self, updated_at=utc_now(), **changes)  # type: ignore[arg-type]

    def succeeded(self, **changes: object) -> "EngineState":
        return self.evolve(consecutive_failures=0, last_error=None, **changes)

    def failed(self, error: str, **changes: object) -> "EngineState":
        return self.evolve(
            consecutive_failures=self.consecutive_failures + 1, last_error=error, **changes
        )

    def is_stalled(self, threshold: int) -> bool:
        return self.consecutive_failures >= threshold
