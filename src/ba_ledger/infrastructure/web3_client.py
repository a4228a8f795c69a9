"""Web3LedgerClient: LedgerClientProtocol over the BatchAuction contract.

Conversion between Decimal token/quote amounts and 18-decimal wei happens
here and nowhere else. Transactions are sent from OPERATOR_ADDRESS via
eth_sendTransaction; signing is the node's (or a signing middleware's) job.

Error mapping:
  transport failure before a tx is sent  -> LedgerUnavailableError (retryable)
  ContractLogicError / receipt status 0  -> TxResult(REVERTED)
  receipt not seen within the timeout    -> TxResult(TIMED_OUT)
  no contract code / undecodable output  -> LedgerMisconfiguredError (fatal)
"""

import asyncio
import logging
from collections.abc import Awaitable
from decimal import Decimal
from typing import Any, TypeVar

from aiohttp import ClientError
from web3 import AsyncWeb3, Web3
from web3.exceptions import (
    BadFunctionCallOutput,
    ContractLogicError,
    ProviderConnectionError,
    TimeExhausted,
    TransactionNotFound,
    Web3RPCError,
)

from config.settings import settings
from src.ba_common.enums import TxStatus
from src.ba_common.errors import LedgerMisconfiguredError, LedgerUnavailableError
from src.ba_ledger.domain.models import BidPlacedEvent, BlockMarker, TxResult
from src.ba_ledger.infrastructure.abi import (
    BATCH_AUCTION_ABI,
    ERC20_BALANCE_ABI,
    SETTLEMENT_SIGNATURE,
    SIMPLIFIED_SETTLEMENT_SIGNATURE,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# AsyncHTTPProvider surfaces HTTP 429/5xx and dropped connections as aiohttp errors.
_TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    ClientError,
    ProviderConnectionError,
    Web3RPCError,
    OSError,
    asyncio.TimeoutError,
)


def to_wei(value: Decimal) -> int:
    return int(Web3.to_wei(value, "ether"))


def from_wei(value: int) -> Decimal:
    return Decimal(Web3.from_wei(value, "ether"))


def decode_bid_placed(log: Any) -> BidPlacedEvent:
    """Map a BidPlaced log (web3 AttributeDict) onto the domain event."""
    args = log["args"]
    return BidPlacedEvent(
        round_id=int(args["roundId"]),
        user=Web3.to_checksum_address(args["user"]),
        amount=from_wei(args["amount"]),
        limit_price=from_wei(args["limitPrice"]),
        timestamp=int(args["timestamp"]),
        tx_hash=Web3.to_hex(log["transactionHash"]),
        log_index=int(log["logIndex"]),
        block_number=int(log["blockNumber"]),
    )


def receipt_to_result(receipt: Any) -> TxResult:
    tx_id = Web3.to_hex(receipt["transactionHash"])
    if receipt["status"] == 1:
        return TxResult(TxStatus.CONFIRMED, tx_id, block_number=receipt["blockNumber"])
    return TxResult(
        TxStatus.REVERTED,
        tx_id,
        block_number=receipt["blockNumber"],
        reason="receipt status 0",
    )


class Web3LedgerClient:
    def __init__(
        self,
        w3: AsyncWeb3 | None = None,
        auction_address: str | None = None,
        token_address: str | None = None,
        operator_address: str | None = None,
        receipt_timeout: float | None = None,
    ) -> None:
        self._w3 = w3 or AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(settings.LEDGER_RPC_URL))
        try:
            self._auction_address = Web3.to_checksum_address(
                auction_address or settings.AUCTION_ADDRESS
            )
            self._token_address = Web3.to_checksum_address(
                token_address or settings.AUCTION_TOKEN_ADDRESS
            )
            self._operator = Web3.to_checksum_address(
                operator_address or settings.OPERATOR_ADDRESS
            )
        except ValueError as exc:
            raise LedgerMisconfiguredError(f"invalid address: {exc}") from exc
        self._receipt_timeout = receipt_timeout or settings.TX_RECEIPT_TIMEOUT_SECONDS
        self._auction = self._w3.eth.contract(
            address=self._auction_address, abi=BATCH_AUCTION_ABI
        )
        self._token = self._w3.eth.contract(
            address=self._token_address, abi=ERC20_BALANCE_ABI
        )

    async def _read(self, awaitable: Awaitable[T], what: str) -> T:
        try:
            return await awaitable
        except BadFunctionCallOutput as exc:
            raise LedgerMisconfiguredError(f"{what}: {exc}") from exc
        except ContractLogicError as exc:
            raise LedgerUnavailableError(f"{what} reverted: {exc}") from exc
        except _TRANSIENT_ERRORS as exc:
            raise LedgerUnavailableError(f"{what}: {exc}") from exc

    async def verify(self) -> None:
        for label, address in (
            ("auction", self._auction_address),
            ("auction token", self._token_address),
        ):
            code = await self._read(self._w3.eth.get_code(address), f"get_code({label})")
            if len(code) == 0:
                raise LedgerMisconfiguredError(f"no contract code at {label} address {address}")
        logger.info(
            "Ledger verified: auction=%s token=%s operator=%s",
            self._auction_address,
            self._token_address,
            self._operator,
        )

    # ------------------------------------------------------------------
    # Round state
    # ------------------------------------------------------------------

    async def is_round_active(self) -> bool:
        return bool(
            await self._read(self._auction.functions.isRoundActive().call(), "isRoundActive")
        )

    async def current_round_id(self) -> int:
        return int(
            await self._read(self._auction.functions.currentRoundId().call(), "currentRoundId")
        )

    async def last_clearing_timestamp(self) -> int:
        return int(
            await self._read(
                self._auction.functions.lastClearingTime().call(), "lastClearingTime"
            )
        )

    async def round_duration_seconds(self) -> int:
        return int(
            await self._read(self._auction.functions.ROUND_DURATION().call(), "ROUND_DURATION")
        )

    async def latest_timestamp(self) -> int:
        block = await self._read(self._w3.eth.get_block("latest"), "get_block(latest)")
        return int(block["timestamp"])

    # ------------------------------------------------------------------
    # Balances
    # ------------------------------------------------------------------

    async def balance_of(self, user: str) -> Decimal:
        raw = await self._read(
            self._auction.functions.userBalances(Web3.to_checksum_address(user)).call(),
            f"userBalances({user})",
        )
        return from_wei(raw)

    async def deliverable_inventory(self) -> Decimal:
        raw = await self._read(
            self._token.functions.balanceOf(self._auction_address).call(),
            "balanceOf(auction)",
        )
        return from_wei(raw)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _transact(self, call: Any, gas: int, what: str) -> TxResult:
        try:
            tx_hash = await call.transact({"from": self._operator, "gas": gas})
        except ContractLogicError as exc:
            logger.warning("%s rejected: %s", what, exc)
            return TxResult(TxStatus.REVERTED, reason=str(exc))
        except _TRANSIENT_ERRORS as exc:
            raise LedgerUnavailableError(f"{what}: {exc}") from exc

        tx_id = Web3.to_hex(tx_hash)
        logger.info("%s sent: %s", what, tx_id)
        try:
            receipt = await self._w3.eth.wait_for_transaction_receipt(
                tx_hash, timeout=self._receipt_timeout
            )
        except TimeExhausted:
            logger.warning("%s %s: no receipt after %.0fs", what, tx_id, self._receipt_timeout)
            return TxResult(TxStatus.TIMED_OUT, tx_id, reason="receipt timeout")
        except _TRANSIENT_ERRORS as exc:
            # Sent but unobserved: it may still land, so this is not a revert.
            logger.warning("%s %s: lost sight of receipt: %s", what, tx_id, exc)
            return TxResult(TxStatus.TIMED_OUT, tx_id, reason=str(exc))
        return receipt_to_result(receipt)

    async def submit_settlement(
        self,
        price: Decimal,
        users: list[str],
        unit_amounts: list[Decimal],
        cost_amounts: list[Decimal],
    ) -> TxResult:
        fn = self._auction.get_function_by_signature(SETTLEMENT_SIGNATURE)
        call = fn(
            to_wei(price),
            [Web3.to_checksum_address(u) for u in users],
            [to_wei(u) for u in unit_amounts],
            [to_wei(c) for c in cost_amounts],
        )
        return await self._transact(call, settings.SETTLEMENT_GAS_LIMIT, "executeClearing")

    async def submit_settlement_simplified(self, price: Decimal) -> TxResult:
        fn = self._auction.get_function_by_signature(SIMPLIFIED_SETTLEMENT_SIGNATURE)
        return await self._transact(
            fn(to_wei(price)), settings.SETTLEMENT_GAS_LIMIT, "executeClearing(simplified)"
        )

    async def advance_round(self) -> TxResult:
        return await self._transact(
            self._auction.functions.startNextRound(),
            settings.ADVANCE_GAS_LIMIT,
            "startNextRound",
        )

    async def get_tx_result(self, tx_id: str) -> TxResult | None:
        """Receipt of an already sent tx, or None while it is not mined."""
        try:
            receipt = await self._w3.eth.get_transaction_receipt(tx_id)
        except TransactionNotFound:
            return None
        except _TRANSIENT_ERRORS as exc:
            raise LedgerUnavailableError(f"receipt {tx_id}: {exc}") from exc
        return receipt_to_result(receipt)

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    async def latest_marker(self) -> BlockMarker:
        number = await self._read(self._w3.eth.block_number, "block_number")
        return BlockMarker(int(number))

    async def fetch_bid_events(
        self, from_marker: BlockMarker, to_marker: BlockMarker
    ) -> list[BidPlacedEvent]:
        logs = await self._read(
            self._auction.events.BidPlaced.get_logs(
                from_block=from_marker.number, to_block=to_marker.number
            ),
            f"BidPlaced logs {from_marker.number}..{to_marker.number}",
        )
        return [decode_bid_placed(log) for log in logs]
