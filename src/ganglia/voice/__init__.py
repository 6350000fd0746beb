"""Voice collaborator interfaces: transcription, synthesis and room transport."""

from ganglia.voice.base import AudioChunk, TranscriptionEvent
from ganglia.voice.interruption import (
    InterruptionConfig,
    InterruptionDecision,
    InterruptionHandler,
    InterruptionStrategy,
)
from ganglia.voice.transport import (
    SIDE_CHANNEL_TOPIC,
    DisconnectReason,
    RoomTransport,
    disconnect_message,
    should_reconnect,
)
from ganglia.voice.tts import SentenceChunker, TTSProvider, split_sentences

__all__ = [
    "SIDE_CHANNEL_TOPIC",
    "AudioChunk",
    "DisconnectReason",
    "InterruptionConfig",
    "InterruptionDecision",
    "InterruptionHandler",
    "InterruptionStrategy",
    "RoomTransport",
    "SentenceChunker",
    "TTSProvider",
    "TranscriptionEvent",
    "disconnect_message",
    "should_reconnect",
    "split_sentences",
]
