"""In-memory implementation of SessionStore."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from ganglia.models.enums import SessionState
from ganglia.models.session import ManagedSession, SessionInfo
from ganglia.store.base import SESSION_TRANSITIONS, SessionStore
from ganglia.store.identity import generate_session_id

logger = logging.getLogger("ganglia.store")

_HINT_FIELDS = (
    "room_sid",
    "room_name",
    "participant_identity",
    "participant_sid",
    "custom_session_id",
)


class InMemorySessionStore(SessionStore):
    """Dict-based session store for single-process deployments.

    Args:
        disconnect_ttl: Seconds a disconnected session is kept for a
            possible rejoin before :meth:`evict_expired` expires it.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        disconnect_ttl: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sessions: dict[str, ManagedSession] = {}
        self._disconnect_ttl = disconnect_ttl
        self._clock = clock

    @property
    def disconnect_ttl(self) -> float:
        return self._disconnect_ttl

    async def resolve(self, hints: SessionInfo) -> ManagedSession:
        session_id = generate_session_id(hints)
        now = self._clock()
        session = self._sessions.get(session_id)

        if session is None or session.state == SessionState.EXPIRED:
            session = ManagedSession(
                session_id=session_id,
                created_at=now,
                last_activity_at=now,
                **{name: getattr(hints, name) for name in _HINT_FIELDS},
            )
            self._sessions[session_id] = session
            logger.info("Created session %s", session_id)
            return session

        # Later hints may carry fields the transport did not know at first sight.
        for name in _HINT_FIELDS:
            value = getattr(hints, name)
            if value and getattr(session, name) is None:
                setattr(session, name, value)

        if session.state == SessionState.DISCONNECTED:
            # Rejoin inside the TTL window resumes the same thread.
            session.state = SessionState.ACTIVE
            session.disconnected_at = None
            logger.info("Resumed disconnected session %s", session_id)

        session.last_activity_at = max(now, session.created_at)
        return session

    async def get(self, session_id: str) -> ManagedSession | None:
        return self._sessions.get(session_id)

    async def touch(self, session_id: str) -> None:
        session = self._lookup(session_id, "touch")
        if session is not None:
            session.last_activity_at = max(self._clock(), session.created_at)

    async def record_request(self, session_id: str) -> None:
        session = self._lookup(session_id, "record_request")
        if session is None:
            return
        session.request_count += 1
        session.last_activity_at = max(self._clock(), session.created_at)
        if session.state == SessionState.RECONNECTING:
            session.state = SessionState.ACTIVE

    async def mark_state(self, session_id: str, state: SessionState) -> bool:
        session = self._lookup(session_id, "mark_state")
        if session is None:
            return False
        if state == session.state:
            return True
        if state not in SESSION_TRANSITIONS[session.state]:
            logger.warning(
                "Ignoring invalid session transition %s -> %s for %s",
                session.state,
                state,
                session_id,
            )
            return False

        previous = session.state
        session.state = state
        if state == SessionState.DISCONNECTED:
            session.disconnected_at = self._clock()
        elif state == SessionState.ACTIVE:
            session.disconnected_at = None
        logger.debug("Session %s: %s -> %s", session_id, previous, state)
        return True

    async def begin_turn(self, session_id: str) -> None:
        session = self._lookup(session_id, "begin_turn")
        if session is not None:
            session.active_turns += 1

    async def end_turn(self, session_id: str) -> None:
        session = self._lookup(session_id, "end_turn")
        if session is not None and session.active_turns > 0:
            session.active_turns -= 1

    async def evict_expired(self, now: float | None = None) -> list[str]:
        if now is None:
            now = self._clock()
        evicted: list[str] = []
        for session_id, session in list(self._sessions.items()):
            if session.state != SessionState.DISCONNECTED or session.disconnected_at is None:
                continue
            if session.active_turns > 0:
                continue
            if now - session.disconnected_at < self._disconnect_ttl:
                continue
            session.state = SessionState.EXPIRED
            del self._sessions[session_id]
            evicted.append(session_id)
        if evicted:
            logger.info("Evicted %d expired session(s)", len(evicted))
        return evicted

    async def remove(self, session_id: str) -> bool:
        return self._sessions.pop(session_id, None) is not None

    async def remove_room(self, room: str) -> list[str]:
        removed = [
            sid
            for sid, session in self._sessions.items()
            if room in (session.room_sid, session.room_name) and session.active_turns == 0
        ]
        for sid in removed:
            del self._sessions[sid]
        if removed:
            logger.info("Removed %d session(s) for room %s", len(removed), room)
        return removed

    async def list_sessions(self) -> list[ManagedSession]:
        return list(self._sessions.values())

    def _lookup(self, session_id: str, operation: str) -> ManagedSession | None:
        session = self._sessions.get(session_id)
        if session is None:
            logger.warning("%s: unknown session %s", operation, session_id)
        return session
