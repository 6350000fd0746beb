"""Retry with exponential backoff for backend calls."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from pydantic import BaseModel, Field

from ganglia.errors import BrainError

logger = logging.getLogger("ganglia.retry")

__all__ = ["RetryPolicy", "backoff_delay", "is_retryable", "retry_with_backoff"]

T = TypeVar("T")


class RetryPolicy(BaseModel):
    """Configures retry behaviour for transient backend failures."""

    max_retries: int = Field(default=2, ge=0)
    base_delay_seconds: float = Field(default=0.5, gt=0.0)
    max_delay_seconds: float = Field(default=4.0, gt=0.0)
    exponential_base: float = Field(default=2.0, gt=0.0)


def backoff_delay(policy: RetryPolicy, attempt: int) -> float:
    """Delay before retry number ``attempt + 1`` (``attempt`` is zero-based)."""
    return min(
        policy.base_delay_seconds * (policy.exponential_base**attempt),
        policy.max_delay_seconds,
    )


def is_retryable(exc: BaseException) -> bool:
    """Only backend errors flagged retryable are retried."""
    return isinstance(exc, BrainError) and exc.retryable


async def retry_with_backoff(
    fn: Callable[..., Coroutine[Any, Any, T]],
    policy: RetryPolicy,
    *args: Any,
    should_retry: Callable[[BaseException], bool] = is_retryable,
    **kwargs: Any,
) -> T:
    """Execute *fn* with exponential backoff retry.

    Exceptions rejected by *should_retry* propagate immediately; the last
    exception is raised once retries are exhausted.
    """
    last_exc: Exception | None = None
    for attempt in range(1 + policy.max_retries):
        try:
            return await fn(*args, **kwargs)
        except Exception as exc:
            if not should_retry(exc):
                raise
            last_exc = exc
            if attempt >= policy.max_retries:
                break
            delay = backoff_delay(policy, attempt)
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt + 1,
                policy.max_retries + 1,
                exc,
                delay,
                extra={"attempt": attempt + 1, "delay": delay},
            )
            await asyncio.sleep(delay)

    assert last_exc is not None
    raise last_exc
