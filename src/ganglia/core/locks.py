"""Per-session async locking with LRU eviction."""

from __future__ import annotations

import asyncio
from collections import OrderedDict
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager


class SessionLockManager:
    """In-process per-session asyncio locks with LRU eviction.

    Serializes backend calls within one session: a turn takes the lock for
    its whole generation, so the next turn cannot start its call until the
    previous one has finished or acknowledged cancellation.  Locks that
    are held or awaited are never evicted.
    """

    def __init__(self, max_locks: int = 1024) -> None:
        self._locks: OrderedDict[str, asyncio.Lock] = OrderedDict()
        self._refcounts: dict[str, int] = {}
        self._max_locks = max_locks

    def _get_lock(self, session_id: str) -> asyncio.Lock:
        if session_id in self._locks:
            self._locks.move_to_end(session_id)
            self._refcounts[session_id] = self._refcounts.get(session_id, 0) + 1
            return self._locks[session_id]

        lock = asyncio.Lock()
        self._locks[session_id] = lock
        self._refcounts[session_id] = 1
        self._evict()
        return lock

    def _release_ref(self, session_id: str) -> None:
        count = self._refcounts.get(session_id, 0) - 1
        if count <= 0:
            self._refcounts.pop(session_id, None)
        else:
            self._refcounts[session_id] = count

    def _evict(self) -> None:
        if len(self._locks) <= self._max_locks:
            return
        stale = [
            key
            for key, lock in self._locks.items()
            if not lock.locked() and self._refcounts.get(key, 0) <= 0
        ]
        for key in stale[: len(self._locks) - self._max_locks]:
            self._locks.pop(key)
            self._refcounts.pop(key, None)

    @asynccontextmanager
    async def locked(self, session_id: str) -> AsyncIterator[None]:
        """Hold the lock for *session_id* for the duration of the block."""
        lock = self._get_lock(session_id)
        try:
            async with lock:
                yield
        finally:
            self._release_ref(session_id)

    def is_locked(self, session_id: str) -> bool:
        lock = self._locks.get(session_id)
        return lock is not None and lock.locked()

    @property
    def size(self) -> int:
        """Number of locks currently tracked."""
        return len(self._locks)
