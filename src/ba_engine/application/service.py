"""Wiring: builds the production ClearingEngine from settings.

Tests construct ClearingEngine directly with fakes instead.
"""

from decimal import Decimal

from config.settings import settings
from src.ba_clearing.domain.models import PriceBand
from src.ba_common.database import async_session_factory
from src.ba_common.errors import ConfigurationError
from src.ba_common.redis_client import get_redis
from src.ba_common.retry import RetryPolicy
from src.ba_engine.engine.engine import ClearingEngine
from src.ba_engine.infrastructure.status import RedisStatusPublisher
from src.ba_ledger.infrastructure.web3_client import Web3LedgerClient


def retry_policy_from_settings() -> RetryPolicy:
    return RetryPolicy(
        max_attempts=settings.RETRY_MAX_ATTEMPTS,
        base_delay=settings.RETRY_BASE_DELAY_SECONDS,
        max_delay=settings.RETRY_MAX_DELAY_SECONDS,
        jitter=settings.RETRY_JITTER,
    )


def validate_settings() -> None:
    """Raise ConfigurationError for settings the bot cannot run without."""
    missing = [
        name
        for name in ("AUCTION_ADDRESS", "AUCTION_TOKEN_ADDRESS", "OPERATOR_ADDRESS")
        if not getattr(settings, name)
    ]
    if missing:
        raise ConfigurationError(f"missing {', '.join(missing)}")
    if settings.SUPPLY_PER_ROUND <= 0:
        raise ConfigurationError(f"SUPPLY_PER_ROUND must be positive, got {settings.SUPPLY_PER_ROUND}")
    if not (Decimal("0") < settings.MAX_USER_SHARE <= Decimal("1")):
        raise ConfigurationError(f"MAX_USER_SHARE must be in (0, 1], got {settings.MAX_USER_SHARE}")
    if not (Decimal("0") < settings.MIN_CLEARING_PRICE <= settings.MAX_CLEARING_PRICE):
        raise ConfigurationError(
            "need 0 < MIN_CLEARING_PRICE <= MAX_CLEARING_PRICE, got "
            f"{settings.MIN_CLEARING_PRICE} / {settings.MAX_CLEARING_PRICE}"
        )
    if settings.SETTLEMENT_BUFFER_SECONDS < 0:
        raise ConfigurationError("SETTLEMENT_BUFFER_SECONDS must be >= 0")


async def build_engine() -> ClearingEngine:
    validate_settings()
    redis = await get_redis()
    return ClearingEngine(
        Web3LedgerClient(),
        async_session_factory,
        retry_policy_from_settings(),
        status_publisher=RedisStatusPublisher(redis),
        price_band=PriceBand(settings.MIN_CLEARING_PRICE, settings.MAX_CLEARING_PRICE),
    )
