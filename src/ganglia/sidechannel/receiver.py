"""Consumes side-channel packets: reassembles chunks and dispatches events."""

from __future__ import annotations

import inspect
import logging
from collections import deque
from collections.abc import Awaitable, Callable, Iterator
from typing import Any

from pydantic import ValidationError

from ganglia.sidechannel.chunking import ChunkReassembler
from ganglia.sidechannel.events import (
    Artifact,
    ChunkEnvelope,
    MetricsEvent,
    StatusEvent,
    parse_side_channel_event,
)

logger = logging.getLogger("ganglia.sidechannel")

EventHandler = Callable[[Any], Awaitable[None] | None]

DEFAULT_MAX_ARTIFACTS = 20


class ArtifactBuffer:
    """Bounded buffer of recent artifacts; the oldest is evicted first."""

    def __init__(self, max_size: int = DEFAULT_MAX_ARTIFACTS) -> None:
        if max_size < 1:
            raise ValueError("max_size must be >= 1")
        self._items: deque[Artifact] = deque(maxlen=max_size)

    @property
    def max_size(self) -> int:
        return self._items.maxlen or 0

    def add(self, artifact: Artifact) -> None:
        self._items.append(artifact)

    @property
    def latest(self) -> Artifact | None:
        return self._items[-1] if self._items else None

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Artifact]:
        return iter(self._items)


class SideChannelReceiver:
    """Decodes data packets from the room into typed events.

    Chunk envelopes are fed to the :class:`ChunkReassembler` and the
    completed payload is decoded and dispatched exactly once.  Malformed
    packets are logged and dropped; they never raise into the transport
    callback that delivered them.

    Example::

        receiver = SideChannelReceiver()
        receiver.on_status(lambda e: print(e.action, e.detail))
        await receiver.handle_data(packet)
    """

    def __init__(
        self,
        *,
        reassembler: ChunkReassembler | None = None,
        artifacts: ArtifactBuffer | None = None,
    ) -> None:
        self.reassembler = reassembler or ChunkReassembler()
        self.artifacts = artifacts or ArtifactBuffer()
        self._status_handlers: list[EventHandler] = []
        self._artifact_handlers: list[EventHandler] = []
        self._metrics_handlers: list[EventHandler] = []
        self.last_status: StatusEvent | None = None

    def on_status(self, handler: EventHandler) -> EventHandler:
        self._status_handlers.append(handler)
        return handler

    def on_artifact(self, handler: EventHandler) -> EventHandler:
        self._artifact_handlers.append(handler)
        return handler

    def on_metrics(self, handler: EventHandler) -> EventHandler:
        self._metrics_handlers.append(handler)
        return handler

    async def handle_data(self, data: bytes | str) -> StatusEvent | Artifact | MetricsEvent | None:
        """Process one raw packet. Returns the dispatched event, if any."""
        try:
            event = parse_side_channel_event(data)
        except (ValidationError, ValueError, UnicodeDecodeError) as exc:
            logger.warning("Dropping malformed side-channel packet: %s", exc)
            return None

        if isinstance(event, ChunkEnvelope):
            completed = self.reassembler.accept_envelope(event)
            if completed is None:
                return None
            try:
                event = parse_side_channel_event(completed.data)
            except (ValidationError, ValueError, UnicodeDecodeError) as exc:
                logger.warning(
                    "Dropping undecodable payload from transfer %s: %s",
                    completed.transfer_id,
                    exc,
                )
                return None
            if isinstance(event, ChunkEnvelope):
                logger.warning("Ignoring nested chunk envelope in %s", completed.transfer_id)
                return None

        await self._dispatch(event)
        return event

    async def _dispatch(self, event: StatusEvent | Artifact | MetricsEvent) -> None:
        if isinstance(event, StatusEvent):
            self.last_status = event
            handlers = self._status_handlers
        elif isinstance(event, MetricsEvent):
            handlers = self._metrics_handlers
        else:
            self.artifacts.add(event)
            handlers = self._artifact_handlers

        for handler in handlers:
            try:
                result = handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Side-channel handler failed for %s event", event.type)
