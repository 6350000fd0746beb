"""All string enums for ganglia."""

from __future__ import annotations

from enum import StrEnum, unique


@unique
class SessionState(StrEnum):
    ACTIVE = "active"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    EXPIRED = "expired"


@unique
class SessionKeyType(StrEnum):
    OWNER = "owner"
    GUEST = "guest"
    ROOM = "room"


@unique
class TurnState(StrEnum):
    LISTENING = "listening"
    TRANSCRIBING = "transcribing"
    GENERATING = "generating"
    SPEAKING = "speaking"
    IDLE = "idle"


@unique
class TurnOutcome(StrEnum):
    COMPLETED = "completed"
    NO_RESPONSE = "no_response"
    INTERRUPTED = "interrupted"
    FAILED = "failed"
    TIMED_OUT = "timed_out"


@unique
class StatusAction(StrEnum):
    THINKING = "thinking"
    SEARCHING_FILES = "searching_files"
    READING_FILE = "reading_file"
    WRITING_FILE = "writing_file"
    EDITING_FILE = "editing_file"
    WEB_SEARCH = "web_search"
    EXECUTING_COMMAND = "executing_command"
    ANALYZING = "analyzing"


@unique
class ArtifactType(StrEnum):
    DIFF = "diff"
    CODE = "code"
    FILE = "file"
    SEARCH_RESULTS = "search_results"
    IMAGE = "image"
    MARKDOWN = "markdown"
    ERROR = "error"
