"""
Retry policy shared by every remote call site.

Delays grow linearly: attempt n waits base_delay * n seconds before the next
try. The operation is a zero-argument coroutine factory so each attempt builds
a fresh request (for the ledger this means a freshly read sequence number).
"""

from __future__ import annotations
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar


logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """How many times to try an operation and how long to wait in between."""
    max_attempts: int = 3
    base_delay: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be non-negative")

    def delay_for(self, attempt: int) -> float:
        """Delay after the given (1-based) failed attempt."""
        return self.base_delay * attempt

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        retry_on: Tuple[Type[BaseException], ...] = (Exception,),
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        label: Optional[str] = None,
    ) -> T:
        """
        Run operation until it succeeds or attempts are exhausted.

        Only exceptions listed in retry_on are retried; anything else
        propagates immediately. The last exception is re-raised once
        max_attempts is reached.
        """
        name = label or getattr(operation, "__name__", "operation")
        attempt = 1
        while True:
            try:
                return await operation()
            except retry_on as e:
                if attempt >= self.max_attempts:
                    logger.warning(f"{name} failed after {attempt} attempts: {e}")
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    f"{name} attempt {attempt}/{self.max_attempts} failed ({e}), "
                    f"retrying in {delay:.1f}s"
                )
                await sleep(delay)
                attempt += 1


NO_RETRY = RetryPolicy(max_attempts=1, base_delay=0.0)
