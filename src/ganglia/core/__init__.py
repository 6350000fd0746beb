"""Shared runtime helpers."""

from ganglia.core.locks import SessionLockManager
from ganglia.core.retry import RetryPolicy, backoff_delay, is_retryable, retry_with_backoff

__all__ = [
    "RetryPolicy",
    "SessionLockManager",
    "backoff_delay",
    "is_retryable",
    "retry_with_backoff",
]
