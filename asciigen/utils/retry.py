"""Bounded retry with exponential backoff for async model calls."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Tuple, Type, TypeVar

import openai

from ..errors import RetryExhaustedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RetryCallback = Callable[[int, BaseException, float], Awaitable[None]]

# Retrying cannot fix a rejected key.
NON_RETRYABLE_ERRORS: Tuple[Type[BaseException], ...] = (
    openai.AuthenticationError,
    openai.PermissionDeniedError,
)


@dataclass(slots=True)
class RetryPolicy:
    """Runs an async operation up to ``max_attempts`` times.

    The delay after failed attempt ``n`` (1-based) is
    ``backoff_unit * backoff_base ** n`` seconds. Errors listed in
    ``non_retryable`` propagate immediately.
    """

    max_attempts: int = 3
    backoff_base: float = 2.0
    backoff_unit: float = 1.0
    non_retryable: Tuple[Type[BaseException], ...] = NON_RETRYABLE_ERRORS
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep

    def delay_for(self, attempt: int) -> float:
        return self.backoff_unit * self.backoff_base**attempt

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        label: str,
        on_retry: Optional[RetryCallback] = None,
    ) -> T:
        attempts = max(1, self.max_attempts)
        last_error: Optional[BaseException] = None
        for attempt in range(1, attempts + 1):
            try:
                return await operation()
            except self.non_retryable:
                raise
            except Exception as exc:
                last_error = exc
                if attempt == attempts:
                    break
                delay = self.delay_for(attempt)
                logger.warning(
                    "%s attempt %d/%d failed (%s); retrying in %.2fs",
                    label,
                    attempt,
                    attempts,
                    exc,
                    delay,
                )
                if on_retry is not None:
                    await on_retry(attempt, exc, delay)
                await self.sleep(delay)
        logger.error("%s exhausted %d attempts: %s", label, attempts, last_error)
        raise RetryExhaustedError(label, attempts, last_error)


__all__ = ["NON_RETRYABLE_ERRORS", "RetryPolicy"]
