"""
Retry mechanism for resilient operations.
"""

import asyncio
import random
from typing import Any, Awaitable, Callable, Optional

from shared.errors import is_retryable
from shared.logging import get_logger


class RetryConfig:
    """Configuration for retry behavior."""

    def __init__(self,
                 max_attempts: int = 3,
                 base_delay: float = 0.1,
                 max_delay: float = 5.0,
                 exponential_base: float = 2.0,
                 jitter: bool = False):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Delay to wait after failed ``attempt`` before the next one.

    Attempt 1 fails -> wait ``base``, attempt 2 fails -> wait ``2 * base``...
    """
    delay = config.base_delay * (config.exponential_base ** (attempt - 1))
    delay = min(delay, config.max_delay)

    if config.jitter:
        jitter_amount = delay * 0.1  # 10% jitter
        delay += random.uniform(-jitter_amount, jitter_amount)

    return max(0.0, delay)


class RetryExecutor:
    """Runs an async callable with bounded, classified retries.

    Only failures accepted by ``classifier`` are retried. Anything else is
    raised on the attempt it happened. When attempts run out the last failure
    is raised unchanged.
    """

    def __init__(self,
                 config: Optional[RetryConfig] = None,
                 *,
                 classifier: Callable[[BaseException], bool] = is_retryable,
                 sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
                 metrics=None):
        self.config = config or RetryConfig()
        self.classifier = classifier
        self._sleep = sleep
        self.metrics = metrics
        self.logger = get_logger("library.retry")

    async def call(self,
                   func: Callable[..., Awaitable[Any]],
                   *args,
                   max_attempts: Optional[int] = None,
                   operation: str = "call",
                   **kwargs) -> Any:
        attempts = max_attempts or self.config.max_attempts
        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        attempt = 1
        while True:
            try:
                result = await func(*args, **kwargs)
            except Exception as exc:
                if not self.classifier(exc):
                    self.logger.error(
                        "Terminal failure, not retrying",
                        operation=operation,
                        attempt=attempt,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    raise

                if attempt >= attempts:
                    self.logger.error(
                        "All retry attempts exhausted",
                        operation=operation,
                        attempt=attempt,
                        max_attempts=attempts,
                        error=str(exc),
                        error_type=type(exc).__name__,
                    )
                    raise

                delay = calculate_delay(attempt, self.config)
                self.logger.warning(
                    "Retry attempt failed, waiting before next attempt",
                    operation=operation,
                    attempt=attempt,
                    max_attempts=attempts,
                    delay=delay,
                    error=str(exc),
                    error_type=type(exc).__name__,
                )
                if self.metrics is not None:
                    self.metrics.increment_counter(
                        "upstream_retries_total",
                        operation=operation,
                        error_type=type(exc).__name__,
                    )
                await self._sleep(delay)
                attempt += 1
                continue

            if attempt > 1:
                self.logger.info("Retry succeeded", operation=operation, attempt=attempt)
            return result
