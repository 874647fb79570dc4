"""Retry policy shared by every network-touching operation.

Exponential backoff with optional jitter. The policy decides which errors are
retryable through a predicate, defaulting to ``is_retryable_error``.
"""

from __future__ import annotations

import asyncio
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, TypeVar

import structlog

from docsfetcher.errors import is_retryable_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from structlog.typing import FilteringBoundLogger

    from docsfetcher.config import RetrySettings

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    initial_delay: float = 1.0  # seconds
    max_delay: float = 10.0
    backoff_factor: float = 2.0
    jitter: bool = True
    is_retryable: Callable[[BaseException], bool] = field(default=is_retryable_error)

    @classmethod
    def from_settings(cls, settings: RetrySettings) -> RetryPolicy:
        return cls(
            max_attempts=settings.max_attempts,
            initial_delay=settings.initial_delay_seconds,
            max_delay=settings.max_delay_seconds,
            backoff_factor=settings.backoff_factor,
            jitter=settings.jitter,
        )

    def next_delay(self, previous: float) -> float:
        """Delay before the next attempt, given the delay used before the last one."""
        delay = min(previous * self.backoff_factor, self.max_delay)
        if self.jitter:
            delay *= random.uniform(0.5, 1.5)
        return delay


NO_RETRY = RetryPolicy(max_attempts=1)


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    context: str = "operation",
    logger: FilteringBoundLogger | None = None,
) -> T:
    """Await ``operation()`` until it succeeds or the policy gives up.

    Non-retryable errors and the error from the final attempt propagate
    unchanged.
    """
    log = logger or structlog.get_logger()
    delay = policy.initial_delay
    attempt = 1
    while True:
        try:
            return await operation()
        except Exception as exc:
            if attempt >= policy.max_attempts or not policy.is_retryable(exc):
                raise
            delay = policy.next_delay(delay)
            log.warning(
                "retrying",
                context=context,
                attempt=attempt,
                max_attempts=policy.max_attempts,
                delay_seconds=round(delay, 3),
                error=str(exc),
            )
            await asyncio.sleep(delay)
            attempt += 1
