"""Scripted brain for tests."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Sequence

from ganglia.brains.base import BrainClient, ChatChunk, ChatOptions, RequestHandle
from ganglia.models.session import SessionInfo


def text_chunks(*parts: str, finish_reason: str = "stop") -> list[ChatChunk]:
    """Content deltas for *parts* followed by a terminal chunk."""
    chunks = [ChatChunk(content=p) for p in parts]
    chunks.append(ChatChunk(finish_reason=finish_reason))
    return chunks


class MockBrainClient(BrainClient):
    """Replays scripted responses, one script per call, round-robin.

    A script entry that is an exception is raised, after one
    ``chunk_delay``, when the stream is first read; this is how tests
    model backend failures.  ``chunk_delay`` slows every chunk down so
    cancellation can be observed mid-stream.
    """

    def __init__(
        self,
        responses: Sequence[Sequence[ChatChunk] | BaseException] | None = None,
        *,
        chunk_delay: float = 0.0,
        model: str = "mock-brain",
    ) -> None:
        super().__init__()
        self.responses = list(responses or [text_chunks("Hello from the brain.")])
        self.chunk_delay = chunk_delay
        self.calls: list[ChatOptions] = []
        self.sessions: list[SessionInfo | None] = []
        self.cancelled: list[str] = []
        self._model = model
        self._index = 0

    def ganglia_type(self) -> str:
        return "mock"

    @property
    def model(self) -> str:
        return self._model

    @property
    def call_texts(self) -> list[str]:
        """Content of the last user message of every call."""
        texts: list[str] = []
        for options in self.calls:
            users = [m for m in options.messages if m.role == "user"]
            texts.append((users[-1].content or "") if users else "")
        return texts

    async def _open_stream(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        handle: RequestHandle,
    ) -> AsyncIterator[ChatChunk]:
        self.calls.append(options)
        self.sessions.append(session)
        script = self.responses[self._index % len(self.responses)]
        self._index += 1

        if isinstance(script, BaseException):
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            raise script
        for chunk in script:
            if self.chunk_delay:
                await asyncio.sleep(self.chunk_delay)
            yield chunk

    async def cancel_pending(self, handle: RequestHandle | None = None) -> None:
        if handle is not None:
            self.cancelled.append(handle.id)
        await super().cancel_pending(handle)
