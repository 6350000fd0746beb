"""Session storage and identity routing."""

from ganglia.store.base import SESSION_TRANSITIONS, SessionStore
from ganglia.store.identity import (
    OWNER_SESSION_KEY,
    SpeakerVerification,
    generate_session_id,
    resolve_session_key,
    resolve_session_key_simple,
)
from ganglia.store.memory import InMemorySessionStore

__all__ = [
    "OWNER_SESSION_KEY",
    "SESSION_TRANSITIONS",
    "InMemorySessionStore",
    "SessionStore",
    "SpeakerVerification",
    "generate_session_id",
    "resolve_session_key",
    "resolve_session_key_simple",
]
