"""Tests for ba_common.errors and ba_common.response."""

from src.ba_common.errors import (
    AppError,
    BidNotFoundError,
    ConfigurationError,
    FatalEngineError,
    InsufficientInventoryError,
    LedgerMisconfiguredError,
    LedgerUnavailableError,
    RoundResultNotFoundError,
    StaleRoundError,
)
from src.ba_common.response import ApiResponse, error_response, success_response


class TestAppError:
    def test_base_error(self) -> None:
        err = AppError(code=9002, message="Internal error")
        assert err.code == 9002
        assert err.message == "Internal error"
        assert err.http_status == 500

    def test_custom_http_status(self) -> None:
        err = AppError(code=1001, message="nope", http_status=404)
        assert err.http_status == 404


class TestSpecificErrors:
    def test_bid_not_found(self) -> None:
        err = BidNotFoundError(7)
        assert err.code == 1001
        assert err.http_status == 404
        assert "7" in err.message

    def test_ledger_unavailable_is_retryable(self) -> None:
        err = LedgerUnavailableError("connection refused")
        assert err.code == 2001
        assert err.http_status == 503
        assert not isinstance(err, FatalEngineError)

    def test_stale_round(self) -> None:
        err = StaleRoundError(expected=4, actual=5)
        assert err.code == 3002
        assert "4" in err.message and "5" in err.message

    def test_round_result_not_found(self) -> None:
        err = RoundResultNotFoundError(3)
        assert err.code == 3001
        assert err.http_status == 404

    def test_insufficient_inventory(self) -> None:
        err = InsufficientInventoryError(required=500, available=120)
        assert err.code == 4001
        assert "500" in err.message
        assert "120" in err.message


class TestFatalErrors:
    def test_misconfigured_ledger_is_fatal_app_error(self) -> None:
        err = LedgerMisconfiguredError("no code at 0x0")
        assert isinstance(err, FatalEngineError)
        assert isinstance(err, AppError)
        assert err.code == 2002

    def test_configuration_error_is_fatal(self) -> None:
        err = ConfigurationError("missing AUCTION_ADDRESS")
        assert isinstance(err, FatalEngineError)
        assert err.code == 9001
        assert "AUCTION_ADDRESS" in err.message


class TestApiResponse:
    def test_success(self) -> None:
        resp = success_response({"round_id": 1})
        assert resp.code == 0
        assert resp.message == "success"
        assert resp.data == {"round_id": 1}
        assert resp.request_id.startswith("req_")

    def test_error(self) -> None:
        resp = error_response(3001, "No settlement result for round 3")
        assert resp.code == 3001
        assert resp.data is None

    def test_error_keeps_given_request_id(self) -> None:
        resp = error_response(1001, "No bids for round 9", request_id="req_0123456789ab")
        assert resp.request_id == "req_0123456789ab"

    def test_model_dump_keys(self) -> None:
        dumped = ApiResponse().model_dump()
        assert set(dumped) == {"code", "message", "data", "timestamp", "request_id"}
