"""Room transport collaborator interface and disconnect taxonomy."""

from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum, unique

from ganglia.voice.base import AudioChunk

SIDE_CHANNEL_TOPIC = "ganglia-events"


class RoomTransport(ABC):
    """The slice of the WebRTC room SDK the orchestration layer needs."""

    @abstractmethod
    async def send_audio(self, chunk: AudioChunk) -> None:
        """Queue synthesized audio on the agent's published track."""
        ...

    @abstractmethod
    async def clear_audio(self) -> None:
        """Discard audio queued but not yet played (used on interruption)."""
        ...

    @abstractmethod
    async def publish_data(
        self,
        payload: bytes,
        *,
        topic: str | None = SIDE_CHANNEL_TOPIC,
        reliable: bool = True,
    ) -> None:
        """Send an arbitrary byte payload to the room's participants."""
        ...


@unique
class DisconnectReason(StrEnum):
    """Why the room connection ended, as reported by the transport."""

    UNKNOWN = "unknown"
    CLIENT_INITIATED = "client_initiated"
    DUPLICATE_IDENTITY = "duplicate_identity"
    SERVER_SHUTDOWN = "server_shutdown"
    PARTICIPANT_REMOVED = "participant_removed"
    ROOM_DELETED = "room_deleted"
    STATE_MISMATCH = "state_mismatch"
    JOIN_FAILURE = "join_failure"
    DISCONNECTED = "disconnected"
    SIGNALING_CONNECTION_FAILURE = "signaling_connection_failure"
    RECONNECT_ATTEMPTS_EXCEEDED = "reconnect_attempts_exceeded"


_RECONNECTABLE = frozenset(
    {
        DisconnectReason.UNKNOWN,
        DisconnectReason.DISCONNECTED,
        DisconnectReason.SIGNALING_CONNECTION_FAILURE,
        DisconnectReason.RECONNECT_ATTEMPTS_EXCEEDED,
    }
)

_MESSAGES: dict[DisconnectReason, str] = {
    DisconnectReason.CLIENT_INITIATED: "Disconnected",
    DisconnectReason.DUPLICATE_IDENTITY: "Another session took over this connection",
    DisconnectReason.PARTICIPANT_REMOVED: "Removed from room",
    DisconnectReason.ROOM_DELETED: "Room no longer exists",
    DisconnectReason.SERVER_SHUTDOWN: "Server shut down",
    DisconnectReason.JOIN_FAILURE: "Failed to join room",
    DisconnectReason.STATE_MISMATCH: "Connection state error",
}


def should_reconnect(reason: DisconnectReason) -> bool:
    """Network-level drops are worth resuming; deliberate ends are not."""
    return reason in _RECONNECTABLE


def disconnect_message(reason: DisconnectReason) -> str:
    """User-facing text; transient drops all read as a lost connection."""
    return _MESSAGES.get(reason, "Connection lost")
