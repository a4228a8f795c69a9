"""Global enums: must match DB CHECK constraints exactly."""

from enum import Enum


class BidStatus(str, Enum):
    PENDING = "PENDING"
    CLEARED = "CLEARED"


class AllocationReason(str, Enum):
    OK = "OK"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    USER_CAP_REACHED = "USER_CAP_REACHED"
    SUPPLY_EXHAUSTED = "SUPPLY_EXHAUSTED"


class TxStatus(str, Enum):
    """Terminal state of one ledger transaction as observed by the engine."""
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"
    TIMED_OUT = "TIMED_OUT"


class SettlementOutcome(str, Enum):
    CONFIRMED = "CONFIRMED"
    REVERTED = "REVERTED"
    TIMED_OUT = "TIMED_OUT"


class RoundPhase(str, Enum):
    """Round state as seen by this engine (not the ledger's own flags)."""
    ACTIVE = "ACTIVE"
    CLEARING = "CLEARING"
    CLEARED = "CLEARED"
    STUCK_INACTIVE = "STUCK_INACTIVE"


class EngineEventType(str, Enum):
    ROUND_CLEARED = "ROUND_CLEARED"
    FALLBACK_SETTLED = "FALLBACK_SETTLED"
    SETTLEMENT_REVERTED = "SETTLEMENT_REVERTED"
    SETTLEMENT_TIMED_OUT = "SETTLEMENT_TIMED_OUT"
    PRICE_CLAMPED = "PRICE_CLAMPED"
    INVENTORY_SHORTFALL = "INVENTORY_SHORTFALL"
    ROUND_ADVANCED = "ROUND_ADVANCED"
    STUCK_ROUND_REMEDIATED = "STUCK_ROUND_REMEDIATED"


class MetadataKey(str, Enum):
    LAST_PROCESSED_BLOCK = "last_processed_block"
    LAST_CLEARED_ROUND = "last_cleared_round"
