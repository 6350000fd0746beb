"""Voice data types shared with the transcription and synthesis collaborators."""

from __future__ import annotations

import time
from dataclasses import dataclass, field


@dataclass
class AudioChunk:
    """A chunk of synthesized audio for streaming to the room."""

    data: bytes
    sample_rate: int = 16000
    channels: int = 1
    format: str = "pcm_s16le"
    timestamp_ms: int | None = None
    is_final: bool = False


@dataclass
class TranscriptionEvent:
    """Interim or final text from the streaming transcriber."""

    text: str
    is_final: bool = False
    confidence: float | None = None
    language: str | None = None
    received_at: float = field(default_factory=time.monotonic)
