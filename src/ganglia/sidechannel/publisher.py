"""Publishes side-channel events to the room, chunking large payloads."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from pydantic import ValidationError

from ganglia.models.enums import StatusAction
from ganglia.sidechannel.chunking import MAX_CHUNK_SIZE, encode_chunks
from ganglia.sidechannel.events import StatusEvent, WireModel, parse_side_channel_event
from ganglia.telemetry.base import Attr, SpanKind, TelemetryProvider
from ganglia.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("ganglia.sidechannel")

SendData = Callable[[bytes], Awaitable[None]]

DEFAULT_STATUS_DEBOUNCE = 0.5


class SideChannelPublisher:
    """Serializes events to JSON and sends them over the data channel.

    Payloads above *max_chunk_size* bytes are split into chunk envelopes.
    A status event repeating the previous action within *status_debounce*
    seconds is suppressed so rapid tool calls do not flood the UI.  Send
    failures are logged and reported as ``False``; they never propagate
    into the turn that produced the event.
    """

    def __init__(
        self,
        send: SendData,
        *,
        max_chunk_size: int = MAX_CHUNK_SIZE,
        status_debounce: float = DEFAULT_STATUS_DEBOUNCE,
        clock: Callable[[], float] = time.monotonic,
        telemetry: TelemetryProvider | None = None,
    ) -> None:
        self._send = send
        self._max_chunk_size = max_chunk_size
        self._status_debounce = status_debounce
        self._clock = clock
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._last_status: tuple[StatusAction, float] | None = None

    def _should_emit_status(self, event: StatusEvent) -> bool:
        now = self._clock()
        last = self._last_status
        if last is not None and last[0] == event.action and now - last[1] <= self._status_debounce:
            return False
        self._last_status = (event.action, now)
        return True

    async def publish(self, event: WireModel | dict[str, Any]) -> bool:
        """Send one event. Returns ``True`` if it went out.

        Raw dicts (events relayed from a backend) are validated first and
        dropped with a warning when they match no known event.
        """
        if not isinstance(event, WireModel):
            try:
                event = parse_side_channel_event(event)
            except (ValidationError, ValueError) as exc:
                logger.warning("Dropping malformed side-channel event: %s", exc)
                return False

        if isinstance(event, StatusEvent) and not self._should_emit_status(event):
            logger.debug("Debounced status %s", event.action)
            return False

        payload = event.to_bytes()
        kind = str(getattr(event, "type", "unknown"))

        packets = (
            [payload]
            if len(payload) <= self._max_chunk_size
            else [c.to_bytes() for c in encode_chunks(payload, max_chunk_size=self._max_chunk_size)]
        )
        span_id = self._telemetry.start_span(
            SpanKind.SIDECHANNEL_PUBLISH,
            f"publish.{kind}",
            attributes={Attr.SIDECHANNEL_TYPE: kind, Attr.SIDECHANNEL_CHUNKS: len(packets)},
        )
        try:
            for packet in packets:
                await self._send(packet)
        except Exception as exc:
            self._telemetry.end_span(span_id, status="error", error_message=str(exc))
            logger.warning("Failed to publish %s event: %s", kind, exc)
            return False
        self._telemetry.end_span(span_id)
        return True
