"""Session id derivation and session-key routing."""

from __future__ import annotations

from dataclasses import dataclass

from ganglia.models.enums import SessionKeyType
from ganglia.models.session import SessionInfo, SessionKey

OWNER_SESSION_KEY = "main"


def generate_session_id(info: SessionInfo) -> str:
    """Derive a stable session id from transport identity hints.

    Priority: explicit ``custom_session_id``; ``room_sid:identity``;
    ``room_name:identity``; ``room:participant_sid``.  The same hints
    always yield the same id so a participant rejoining the same room
    resumes the same session.

    Raises:
        ValueError: If the hints identify neither a room nor a participant.
    """
    if info.custom_session_id:
        return info.custom_session_id

    identity = info.participant_identity
    if identity:
        if info.room_sid:
            return f"{info.room_sid}:{identity}"
        if info.room_name:
            return f"{info.room_name}:{identity}"

    room = info.room_sid or info.room_name
    if room and info.participant_sid:
        return f"{room}:{info.participant_sid}"

    raise ValueError(
        "Cannot derive a session id: need custom_session_id or a room and participant"
    )


@dataclass(frozen=True)
class SpeakerVerification:
    """Outcome of checking whether the speaker is the device owner."""

    is_owner: bool
    confidence: float | None = None


def resolve_session_key(
    participant_count: int,
    identity: str,
    room_name: str,
    verification: SpeakerVerification,
) -> SessionKey:
    """Route a conversation to the owner's, a guest's or the room's thread.

    A one-on-one conversation with the verified owner shares the owner's
    main thread; other solo speakers get a guest thread; anything with
    more than one human participant shares one thread per room.
    """
    if participant_count <= 1:
        if verification.is_owner:
            return SessionKey(type=SessionKeyType.OWNER, key=OWNER_SESSION_KEY)
        return SessionKey(type=SessionKeyType.GUEST, key=f"guest_{identity}")
    return SessionKey(type=SessionKeyType.ROOM, key=f"room_{room_name}")


def resolve_session_key_simple(
    identity: str,
    owner_identity: str | None,
    room_name: str = "",
    participant_count: int = 1,
) -> SessionKey:
    """Like :func:`resolve_session_key`, with ownership from identity equality."""
    verification = SpeakerVerification(is_owner=bool(owner_identity) and identity == owner_identity)
    return resolve_session_key(participant_count, identity, room_name, verification)
