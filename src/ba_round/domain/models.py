"""Domain models for ba_round."""

from dataclasses import dataclass


@dataclass(frozen=True)
class RoundSnapshot:
    """One consistent read of the ledger's round state.

    seconds_remaining is computed on the ledger's clock and goes negative
    once the nominal round end has passed.
    """

    round_id: int
    is_active: bool
    seconds_remaining: int
    ledger_now: int
    started_at: int
    duration_seconds: int
