"""Session identity hints and managed session records."""

from __future__ import annotations

from dataclasses import dataclass

from pydantic import BaseModel, ConfigDict

from ganglia.models.enums import SessionKeyType, SessionState


class SessionInfo(BaseModel):
    """Identity hints available from the transport for one participant.

    Any subset of the fields may be missing depending on what the room
    SDK exposes at the time.
    """

    model_config = ConfigDict(frozen=True)

    room_sid: str | None = None
    room_name: str | None = None
    participant_identity: str | None = None
    participant_sid: str | None = None
    custom_session_id: str | None = None


class SessionKey(BaseModel):
    """Backend routing key: owner, guest or shared room conversation."""

    model_config = ConfigDict(frozen=True)

    type: SessionKeyType
    key: str


@dataclass
class ManagedSession:
    """One logical conversation thread bound to a room + participant.

    Records are owned by a :class:`~ganglia.store.base.SessionStore`; other
    components read them but never assign to their fields.
    """

    session_id: str
    created_at: float
    last_activity_at: float
    room_sid: str | None = None
    room_name: str | None = None
    participant_identity: str | None = None
    participant_sid: str | None = None
    custom_session_id: str | None = None
    state: SessionState = SessionState.ACTIVE
    request_count: int = 0
    disconnected_at: float | None = None
    active_turns: int = 0

    @property
    def info(self) -> SessionInfo:
        return SessionInfo(
            room_sid=self.room_sid,
            room_name=self.room_name,
            participant_identity=self.participant_identity,
            participant_sid=self.participant_sid,
            custom_session_id=self.custom_session_id,
        )
