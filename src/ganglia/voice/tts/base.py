"""Text-to-speech provider ABC."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ganglia.voice.base import AudioChunk


class TTSProvider(ABC):
    """Streaming text-to-speech transducer.

    The orchestrator feeds it one sentence at a time and forwards each
    chunk to the room as soon as it arrives.
    """

    @property
    def name(self) -> str:
        """Provider name (e.g. 'elevenlabs', 'cartesia')."""
        return self.__class__.__name__

    @property
    def default_voice(self) -> str | None:
        """Default voice ID. Override in subclasses."""
        return None

    @abstractmethod
    def synthesize_stream(self, text: str, *, voice: str | None = None) -> AsyncIterator[AudioChunk]:
        """Stream audio chunks for *text* as they are generated."""
        ...

    async def warmup(self) -> None:  # noqa: B027
        """Pre-load models so the first call is fast. Override in subclasses."""

    async def close(self) -> None:  # noqa: B027
        """Release resources. Override in subclasses if needed."""
