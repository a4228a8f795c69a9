"""Tests for the web3 ledger adapter: decoding, wei conversion, error mapping."""

from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest
from aiohttp import ClientConnectionError, ClientResponseError
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    TransactionNotFound,
)

from src.ba_common.enums import TxStatus
from src.ba_common.errors import LedgerMisconfiguredError, LedgerUnavailableError
from src.ba_ledger.domain.models import BlockMarker
from src.ba_ledger.infrastructure.web3_client import (
    Web3LedgerClient,
    decode_bid_placed,
    from_wei,
    receipt_to_result,
    to_wei,
)

AUCTION = "0x" + "11" * 20
TOKEN = "0x" + "22" * 20
OPERATOR = "0x" + "33" * 20
USER = "0x" + "ab" * 20
TX_HASH = b"\x01" * 32
WEI = 10**18


def _log(**overrides):
    log = {
        "args": {
            "roundId": 4,
            "user": USER,
            "amount": 150 * WEI,
            "limitPrice": WEI // 2,
            "timestamp": 1_767_225_600,
        },
        "transactionHash": TX_HASH,
        "logIndex": 3,
        "blockNumber": 77,
    }
    log.update(overrides)
    return log


@pytest.fixture
def contracts():
    auction = MagicMock()
    token = MagicMock()
    w3 = MagicMock()
    w3.eth.contract.side_effect = [auction, token]
    w3.eth.wait_for_transaction_receipt = AsyncMock(
        return_value={"status": 1, "transactionHash": TX_HASH, "blockNumber": 12}
    )
    client = Web3LedgerClient(
        w3=w3,
        auction_address=AUCTION,
        token_address=TOKEN,
        operator_address=OPERATOR,
        receipt_timeout=5,
    )
    return client, w3, auction, token


class TestConversion:
    def test_wei_round_trip_of_quantized_value(self) -> None:
        assert to_wei(Decimal("1.5")) == 15 * 10**17
        assert from_wei(15 * 10**17) == Decimal("1.5")

    def test_from_wei_zero_is_decimal(self) -> None:
        assert isinstance(from_wei(0), Decimal)


class TestDecode:
    def test_decode_bid_placed(self) -> None:
        event = decode_bid_placed(_log())
        assert event.round_id == 4
        assert event.amount == Decimal("150")
        assert event.limit_price == Decimal("0.5")
        assert event.source_tx_id == "0x" + "01" * 32 + ":3"
        assert event.block_number == 77

    def test_to_bid_converts_timestamp(self) -> None:
        bid = decode_bid_placed(_log()).to_bid()
        assert bid.submitted_at.year == 2026
        assert bid.source_tx_id.endswith(":3")

    def test_receipt_mapping(self) -> None:
        ok = receipt_to_result({"status": 1, "transactionHash": TX_HASH, "blockNumber": 9})
        failed = receipt_to_result({"status": 0, "transactionHash": TX_HASH, "blockNumber": 9})
        assert ok.status == TxStatus.CONFIRMED
        assert failed.status == TxStatus.REVERTED
        assert ok.tx_id == "0x" + "01" * 32


class TestReads:
    async def test_current_round_id(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.currentRoundId.return_value.call = AsyncMock(return_value=7)
        assert await client.current_round_id() == 7

    async def test_transport_error_is_retryable(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.isRoundActive.return_value.call = AsyncMock(
            side_effect=ConnectionRefusedError("refused")
        )
        with pytest.raises(LedgerUnavailableError):
            await client.is_round_active()

    async def test_undecodable_output_is_fatal(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.ROUND_DURATION.return_value.call = AsyncMock(
            side_effect=BadFunctionCallOutput("no data")
        )
        with pytest.raises(LedgerMisconfiguredError):
            await client.round_duration_seconds()

    async def test_balances_in_decimal(self, contracts) -> None:
        client, _, auction, token = contracts
        auction.functions.userBalances.return_value.call = AsyncMock(return_value=25 * WEI)
        token.functions.balanceOf.return_value.call = AsyncMock(return_value=500 * WEI)
        assert await client.balance_of(USER) == Decimal("25")
        assert await client.deliverable_inventory() == Decimal("500")

    async def test_verify_rejects_missing_code(self, contracts) -> None:
        client, w3, _, _ = contracts
        w3.eth.get_code = AsyncMock(return_value=b"")
        with pytest.raises(LedgerMisconfiguredError, match="no contract code"):
            await client.verify()

    async def test_fetch_bid_events(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.events.BidPlaced.get_logs = AsyncMock(return_value=[_log(), _log(logIndex=4)])
        events = await client.fetch_bid_events(BlockMarker(10), BlockMarker(20))
        assert [e.log_index for e in events] == [3, 4]
        auction.events.BidPlaced.get_logs.assert_awaited_once_with(from_block=10, to_block=20)


class TestTransactions:
    async def test_settlement_confirmed_with_wei_args(self, contracts) -> None:
        client, _, auction, _ = contracts
        fn = MagicMock()
        fn.return_value.transact = AsyncMock(return_value=TX_HASH)
        auction.get_function_by_signature.return_value = fn

        result = await client.submit_settlement(
            Decimal("5"), [USER], [Decimal("200")], [Decimal("1000")]
        )

        assert result.status == TxStatus.CONFIRMED
        auction.get_function_by_signature.assert_called_with(
            "executeClearing(uint256,address[],uint256[],uint256[])"
        )
        price, users, units, costs = fn.call_args.args
        assert price == 5 * WEI
        assert units == [200 * WEI]
        assert costs == [1000 * WEI]
        tx_params = fn.return_value.transact.call_args.args[0]
        assert tx_params["gas"] == 3_000_000

    async def test_contract_logic_error_is_revert(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.startNextRound.return_value.transact = AsyncMock(
            side_effect=ContractLogicError("execution reverted: Round still active")
        )
        result = await client.advance_round()
        assert result.status == TxStatus.REVERTED
        assert "Round still active" in (result.reason or "")

    async def test_receipt_status_zero_is_revert(self, contracts) -> None:
        client, w3, auction, _ = contracts
        fn = MagicMock()
        fn.return_value.transact = AsyncMock(return_value=TX_HASH)
        auction.get_function_by_signature.return_value = fn
        w3.eth.wait_for_transaction_receipt = AsyncMock(
            return_value={"status": 0, "transactionHash": TX_HASH, "blockNumber": 12}
        )
        result = await client.submit_settlement_simplified(Decimal("5"))
        assert result.status == TxStatus.REVERTED
        auction.get_function_by_signature.assert_called_with("executeClearing(uint256)")

    async def test_receipt_timeout(self, contracts) -> None:
        client, w3, auction, _ = contracts
        auction.functions.startNextRound.return_value.transact = AsyncMock(return_value=TX_HASH)
        w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted())
        result = await client.advance_round()
        assert result.status == TxStatus.TIMED_OUT
        assert result.tx_id == "0x" + "01" * 32

    async def test_send_failure_raises_retryable(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.startNextRound.return_value.transact = AsyncMock(
            side_effect=ProviderConnectionError("down")
        )
        with pytest.raises(LedgerUnavailableError):
            await client.advance_round()


def test_invalid_address_is_misconfiguration() -> None:
    with pytest.raises(LedgerMisconfiguredError):
        Web3LedgerClient(
            w3=MagicMock(),
            auction_address="not-an-address",
            token_address=TOKEN,
            operator_address=OPERATOR,
        )


def _http_error(status: int) -> ClientResponseError:
    return ClientResponseError(
        request_info=MagicMock(), history=(), status=status, message="Bad Gateway"
    )


class TestHttpTransportErrors:
    async def test_http_error_on_read_is_retryable(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.currentRoundId.return_value.call = AsyncMock(
            side_effect=_http_error(502)
        )
        with pytest.raises(LedgerUnavailableError):
            await client.current_round_id()

    async def test_rate_limit_before_send_is_retryable(self, contracts) -> None:
        client, _, auction, _ = contracts
        auction.functions.startNextRound.return_value.transact = AsyncMock(
            side_effect=_http_error(429)
        )
        with pytest.raises(LedgerUnavailableError):
            await client.advance_round()

    async def test_connection_drop_after_send_is_timeout(self, contracts) -> None:
        client, w3, auction, _ = contracts
        auction.functions.startNextRound.return_value.transact = AsyncMock(return_value=TX_HASH)
        w3.eth.wait_for_transaction_receipt = AsyncMock(
            side_effect=ClientConnectionError("connection reset")
        )
        result = await client.advance_round()
        assert result.status == TxStatus.TIMED_OUT
        assert result.tx_id == "0x" + "01" * 32


class TestTxLookup:
    async def test_unmined_tx(self, contracts) -> None:
        client, w3, _, _ = contracts
        w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("not found"))
        assert await client.get_tx_result("0xslow") is None

    async def test_mined_tx(self, contracts) -> None:
        client, w3, _, _ = contracts
        w3.eth.get_transaction_receipt = AsyncMock(
            return_value={"status": 1, "transactionHash": TX_HASH, "blockNumber": 40}
        )
        result = await client.get_tx_result("0x" + "01" * 32)
        assert result is not None
        assert result.status == TxStatus.CONFIRMED
        assert result.block_number == 40

    async def test_lookup_transport_error(self, contracts) -> None:
        client, w3, _, _ = contracts
        w3.eth.get_transaction_receipt = AsyncMock(side_effect=_http_error(503))
        with pytest.raises(LedgerUnavailableError):
            await client.get_tx_result("0xslow")
