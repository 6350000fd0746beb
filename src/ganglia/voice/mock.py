"""Mock voice collaborators for testing."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from dataclasses import dataclass

from ganglia.voice.base import AudioChunk
from ganglia.voice.transport import SIDE_CHANNEL_TOPIC, RoomTransport
from ganglia.voice.tts.base import TTSProvider


class MockTTSProvider(TTSProvider):
    """Yields one audio chunk per word; ``chunk_delay`` paces the stream."""

    def __init__(self, voice: str = "mock-voice", *, chunk_delay: float = 0.0) -> None:
        self._default_voice = voice
        self.chunk_delay = chunk_delay
        self.calls: list[dict[str, str | None]] = []

    @property
    def default_voice(self) -> str:
        return self._default_voice

    @property
    def texts(self) -> list[str]:
        return [str(c["text"]) for c in self.calls]

    async def synthesize_stream(
        self, text: str, *, voice: str | None = None
    ) -> AsyncIterator[AudioChunk]:
        self.calls.append({"text": text, "voice": voice or self._default_voice})
        words = text.split()
        for i, word in enumerate(words):
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield AudioChunk(
                data=f"mock-audio-{word}".encode(),
                sample_rate=16000,
                is_final=(i == len(words) - 1),
            )


@dataclass
class PublishedPacket:
    payload: bytes
    topic: str | None
    reliable: bool


class MockTransport(RoomTransport):
    """Records audio and data sent to the room."""

    def __init__(self, *, fail_publish: bool = False) -> None:
        self.audio: list[AudioChunk] = []
        self.packets: list[PublishedPacket] = []
        self.clear_count = 0
        self.fail_publish = fail_publish

    async def send_audio(self, chunk: AudioChunk) -> None:
        self.audio.append(chunk)

    async def clear_audio(self) -> None:
        self.clear_count += 1

    async def publish_data(
        self,
        payload: bytes,
        *,
        topic: str | None = SIDE_CHANNEL_TOPIC,
        reliable: bool = True,
    ) -> None:
        if self.fail_publish:
            raise ConnectionError("data channel closed")
        self.packets.append(PublishedPacket(payload=payload, topic=topic, reliable=reliable))
