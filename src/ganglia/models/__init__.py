"""Data models for ganglia."""

from ganglia.models.enums import (
    ArtifactType,
    SessionKeyType,
    SessionState,
    StatusAction,
    TurnOutcome,
    TurnState,
)
from ganglia.models.session import ManagedSession, SessionInfo, SessionKey

__all__ = [
    "ArtifactType",
    "ManagedSession",
    "SessionInfo",
    "SessionKey",
    "SessionKeyType",
    "SessionState",
    "StatusAction",
    "TurnOutcome",
    "TurnState",
]
