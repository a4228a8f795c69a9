"""Retry policy shared by the round tracker, settlement submitter and recovery.

One component, parameterized by (max attempts or None, base delay, cap,
multiplier, jitter). A None attempt limit retries until the operation
succeeds; callers that must keep the loop responsive pass a finite limit and
let the next tick try again.

Only exceptions listed in retry_on are retried. Anything else (a revert,
a fatal misconfiguration, a programming error) propagates on the first raise.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TypeVar

from src.ba_common.errors import LedgerUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int | None = 5
    base_delay: float = 0.5
    max_delay: float = 30.0
    multiplier: float = 2.0
    jitter: float = 0.1
    retry_on: tuple[type[BaseException], ...] = (LedgerUnavailableError,)
    sleep: Callable[[float], Awaitable[None]] = field(
        default=asyncio.sleep, compare=False, repr=False
    )

    def __post_init__(self) -> None:
        if self.max_attempts is not None and self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1 or None, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("delays must be non-negative")
        if not (0 <= self.jitter < 1):
            raise ValueError(f"jitter must be in [0, 1), got {self.jitter}")

    @classmethod
    def fixed(
        cls,
        delay: float,
        max_attempts: int | None = None,
        **kwargs: object,
    ) -> "RetryPolicy":
        """Constant delay between attempts."""
        return cls(
            max_attempts=max_attempts,
            base_delay=delay,
            max_delay=delay,
            multiplier=1.0,
            jitter=0.0,
            **kwargs,  # type: ignore[arg-type]
        )

    def delay_for(self, attempt: int) -> float:
        """Backoff before retry number `attempt` (1-based), capped and jittered."""
        raw = self.base_delay * (self.multiplier ** (attempt - 1))
        capped = min(raw, self.max_delay)
        if self.jitter:
            capped *= 1 + random.uniform(-self.jitter, self.jitter)
        return max(capped, 0.0)

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        description: str,
    ) -> T:
        """Await operation(), retrying retryable failures per this policy.

        Re-raises the last error once max_attempts is exhausted.
        """
        attempt = 0
        while True:
            attempt += 1
            try:
                return await operation()
            except self.retry_on as exc:
                if self.max_attempts is not None and attempt >= self.max_attempts:
                    logger.error(
                        "%s failed after %d attempts: %s", description, attempt, exc
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s failed (attempt %d): %s, retrying in %.2fs",
                    description,
                    attempt,
                    exc,
                    delay,
                )
                await self.sleep(delay)
