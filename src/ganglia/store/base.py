"""Abstract base class for session storage."""

from __future__ import annotations

from abc import ABC, abstractmethod

from ganglia.models.enums import SessionState
from ganglia.models.session import ManagedSession, SessionInfo

# Valid session transitions; anything else is a logged no-op.
SESSION_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.ACTIVE: frozenset({SessionState.RECONNECTING, SessionState.DISCONNECTED}),
    SessionState.RECONNECTING: frozenset({SessionState.ACTIVE, SessionState.DISCONNECTED}),
    SessionState.DISCONNECTED: frozenset({SessionState.EXPIRED}),
    SessionState.EXPIRED: frozenset(),
}


class SessionStore(ABC):
    """Owns the lifecycle of :class:`ManagedSession` records.

    This is the only component allowed to mutate session records.  Every
    operation tolerates unknown ids and invalid transitions by logging a
    warning instead of raising, so bookkeeping never blocks the audio path.
    The library ships with :class:`InMemorySessionStore`.
    """

    @abstractmethod
    async def resolve(self, hints: SessionInfo) -> ManagedSession:
        """Return the session for *hints*, creating it on first sight.

        Idempotent: equivalent hints return the same record, with
        ``last_activity_at`` refreshed and ``created_at`` untouched.
        """
        ...

    @abstractmethod
    async def get(self, session_id: str) -> ManagedSession | None:
        """Get a session by id, or ``None``."""
        ...

    @abstractmethod
    async def touch(self, session_id: str) -> None:
        """Refresh ``last_activity_at``."""
        ...

    @abstractmethod
    async def record_request(self, session_id: str) -> None:
        """Count one completed backend invocation against the session."""
        ...

    @abstractmethod
    async def mark_state(self, session_id: str, state: SessionState) -> bool:
        """Apply a state transition. Returns ``False`` if it was rejected."""
        ...

    @abstractmethod
    async def begin_turn(self, session_id: str) -> None:
        """Pin the session while a turn is in flight."""
        ...

    @abstractmethod
    async def end_turn(self, session_id: str) -> None:
        """Release a pin taken by :meth:`begin_turn`."""
        ...

    @abstractmethod
    async def evict_expired(self, now: float | None = None) -> list[str]:
        """Expire and remove disconnected sessions past their TTL.

        Returns:
            The ids of evicted sessions.
        """
        ...

    @abstractmethod
    async def remove(self, session_id: str) -> bool:
        """Remove a session. Returns ``True`` if it existed."""
        ...

    @abstractmethod
    async def remove_room(self, room: str) -> list[str]:
        """Remove every session bound to a room (by sid or name)."""
        ...

    @abstractmethod
    async def list_sessions(self) -> list[ManagedSession]:
        """List all live sessions."""
        ...
