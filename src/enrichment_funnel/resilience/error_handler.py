"""
Error Handler - Retry with Backoff for Provider Calls.

Provides:
    - Async retry with fixed or exponential backoff
    - Configurable retryable exception types

Design Notes:
    - Provider calls are retried exactly once after a fixed backoff by
      default (two attempts, exponential base 1.0)
    - The final failure is surfaced as RetryExhausted chained to the
      provider's own exception
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, TypeVar

from enrichment_funnel.resilience.errors import EnrichmentFunnelError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RetryExhausted(EnrichmentFunnelError):
    """Raised when all retry attempts are exhausted."""
    pass


@dataclass
class RetryConfig:
    """Configuration for retry logic."""
    max_attempts: int = 2
    base_delay_seconds: float = 3.0
    max_delay_seconds: float = 30.0
    exponential_base: float = 1.0
    retryable_exceptions: tuple = (Exception,)


class ErrorHandler:
    """
    Provides retry for awaitable operations.

    Features:
        - Retry with fixed or exponential backoff
        - Injectable sleep for deterministic tests
    """

    def __init__(
        self,
        retry_config: Optional[RetryConfig] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ) -> None:
        """
        Initialize error handler.

        Args:
            retry_config: Configuration for retry logic
            sleep: Awaitable sleep function (default: asyncio.sleep)
        """
        self.retry_config = retry_config or RetryConfig()
        self._sleep = sleep or asyncio.sleep

    async def retry(
        self,
        func: Callable[[], Awaitable[T]],
        operation_name: str = "operation",
    ) -> T:
        """
        Await func with retry and backoff.

        Args:
            func: Zero-argument coroutine function
            operation_name: Name for logging

        Returns:
            Result of successful execution

        Raises:
            RetryExhausted: When all attempts fail
        """
        last_exception: Optional[BaseException] = None

        for attempt in range(1, self.retry_config.max_attempts + 1):
            try:
                result = await func()
                if attempt > 1:
                    logger.info(
                        f"{operation_name} succeeded on attempt {attempt}"
                    )
                return result

            except self.retry_config.retryable_exceptions as e:
                last_exception = e
                if attempt < self.retry_config.max_attempts:
                    delay = self._calculate_delay(attempt)
                    logger.warning(
                        f"{operation_name} failed (attempt {attempt}/{self.retry_config.max_attempts}), "
                        f"retrying in {delay:.2f}s: {e}"
                    )
                    await self._sleep(delay)
                else:
                    logger.error(
                        f"{operation_name} failed after {attempt} attempts: {e}"
                    )

        raise RetryExhausted(
            f"{operation_name} failed after {self.retry_config.max_attempts} attempts: "
            f"{last_exception}"
        ) from last_exception

    def _calculate_delay(self, attempt: int) -> float:
        """Calculate delay with exponential backoff."""
        delay = self.retry_config.base_delay_seconds * (
            self.retry_config.exponential_base ** (attempt - 1)
        )
        return min(delay, self.retry_config.max_delay_seconds)
