"""Unified error codes and custom exceptions.

Error code ranges:
  1xxx: Bid
  2xxx: Ledger
  3xxx: Round
  4xxx: Settlement
  9xxx: System

Errors that mix in FatalEngineError are process-fatal: the clearing loop
re-raises them instead of backing off, since every later poll would fail
the same way. Everything else is caught at the loop boundary and retried.
"""


class AppError(Exception):
    """Base application error."""

    def __init__(
        self,
        code: int,
        message: str,
        http_status: int = 500,
    ) -> None:
        self.code = code
        self.message = message
        self.http_status = http_status
        super().__init__(message)


class FatalEngineError(Exception):
    """Marker base for errors that must stop the clearing loop."""


# --- 1xxx: Bid ---

class BidNotFoundError(AppError):
    def __init__(self, round_id: int) -> None:
        super().__init__(1001, f"No bids found for round {round_id}", 404)


class InvalidBidError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(1002, f"Invalid bid: {detail}", 422)


# --- 2xxx: Ledger ---

class LedgerUnavailableError(AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2001, f"Ledger unavailable: {detail}", 503)


class LedgerMisconfiguredError(FatalEngineError, AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(2002, f"Ledger misconfigured: {detail}", 500)


# --- 3xxx: Round ---

class RoundResultNotFoundError(AppError):
    def __init__(self, round_id: int) -> None:
        super().__init__(3001, f"No settlement result for round {round_id}", 404)


class StaleRoundError(AppError):
    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(
            3002,
            f"Round moved on: clearing round {expected} but ledger is at round {actual}",
            409,
        )


# --- 4xxx: Settlement ---

class InsufficientInventoryError(AppError):
    def __init__(self, required: object, available: object) -> None:
        super().__init__(
            4001,
            f"Insufficient deliverable inventory: required {required}, available {available}",
            422,
        )


# --- 9xxx: System ---

class ConfigurationError(FatalEngineError, AppError):
    def __init__(self, detail: str) -> None:
        super().__init__(9001, f"Configuration error: {detail}", 500)



class InternalError(AppError):
    def __init__(self, detail: str = "Internal server error") -> None:
        super().__init__(9002, detail, 500)
