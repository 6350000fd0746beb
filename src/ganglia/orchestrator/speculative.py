"""Speculative backend calls on stable interim transcripts."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import AsyncIterator, Callable

from ganglia.brains.base import BrainClient, ChatChunk, ChatOptions, RequestHandle

logger = logging.getLogger("ganglia.orchestrator")

_PUNCTUATION = re.compile(r"[^\w\s]")
_WHITESPACE = re.compile(r"\s+")

_DONE = object()


def normalize_transcript(text: str) -> str:
    """Lowercase, drop punctuation and collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def transcripts_match(a: str, b: str) -> bool:
    return normalize_transcript(a) == normalize_transcript(b)


class SpeculativeAttempt:
    """A backend call started before the transcript is final.

    Chunks are buffered in a queue and never spoken until the attempt is
    adopted; :meth:`chunks` then replays the buffer and keeps streaming.
    A discarded attempt is cancelled through ``cancel_pending`` and
    awaited, so it is finished before the replacement call starts.
    """

    def __init__(
        self,
        brain: BrainClient,
        options: ChatOptions,
        *,
        text: str,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.text = text
        self.normalized = normalize_transcript(text)
        self.handle = options.handle or RequestHandle()
        self._options = options.model_copy(update={"handle": self.handle})
        self._brain = brain
        self._clock = clock
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self.started_at: float | None = None
        self.first_delta_at: float | None = None
        self.chunk_count = 0
        self.error: BaseException | None = None
        self.adopted = False
        self.discarded = False
        self.span_id: str | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def failed(self) -> bool:
        """True if the call failed before producing anything."""
        return self.error is not None and self.chunk_count == 0

    def matches(self, text: str) -> bool:
        return self.normalized == normalize_transcript(text)

    def start(self) -> None:
        self.started_at = self._clock()
        self._task = asyncio.create_task(self._pump(), name=f"ganglia-speculative-{self.handle.id}")

    async def _pump(self) -> None:
        try:
            async with self._brain.stream_chat(self._options) as stream:
                async for chunk in stream:
                    if self.first_delta_at is None and chunk.content:
                        self.first_delta_at = self._clock()
                    self.chunk_count += 1
                    self._queue.put_nowait(chunk)
        except Exception as exc:
            # Surfaced to the turn if adopted; dropped with the attempt otherwise.
            logger.debug("Speculative call %s failed: %s", self.handle.id, exc)
            self.error = exc
            self._queue.put_nowait(exc)
        finally:
            self._queue.put_nowait(_DONE)

    async def chunks(self) -> AsyncIterator[ChatChunk]:
        """Buffered chunks followed by the rest of the live stream."""
        self.adopted = True
        while True:
            item = await self._queue.get()
            if item is _DONE:
                return
            if isinstance(item, BaseException):
                raise item
            yield item  # type: ignore[misc]

    async def cancel(self) -> None:
        """Abort the call if it is still running and wait until it has stopped."""
        if self.running:
            self.handle.cancel()
            await self._brain.cancel_pending(self.handle)
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)

    async def discard(self) -> None:
        """Cancel the call and wait until it has stopped."""
        if self.discarded:
            return
        self.discarded = True
        self.handle.cancel()
        await self._brain.cancel_pending(self.handle)
        if self._task is not None:
            await asyncio.gather(self._task, return_exceptions=True)
