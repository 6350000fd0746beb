"""Telemetry provider ABC, Span dataclass, SpanKind enum, and Attr constants."""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import Generator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum, unique
from typing import Any

logger = logging.getLogger("ganglia.telemetry")


@unique
class SpanKind(StrEnum):
    """Span classifications for telemetry."""

    TURN = "turn"
    BRAIN_STREAM = "brain.stream"
    TTS_SYNTHESIZE = "tts.synthesize"
    SPECULATIVE = "speculative"
    SIDECHANNEL_PUBLISH = "sidechannel.publish"
    SESSION_RESOLVE = "session.resolve"
    CUSTOM = "custom"


class Attr:
    """Well-known attribute key constants for telemetry spans and metrics."""

    # Common
    BACKEND = "backend"
    MODEL = "model"
    ROOM = "room"
    SESSION_ID = "session_id"
    TURN_ID = "turn_id"

    # Timing
    TTFB_MS = "ttfb_ms"
    DURATION_MS = "duration_ms"

    # Turn
    TURN_OUTCOME = "turn.outcome"
    TURN_SPECULATIVE = "turn.speculative"
    TURN_TEXT_LENGTH = "turn.text_length"

    # Brain
    BRAIN_ATTEMPT = "brain.attempt"
    BRAIN_TOOL_CALLS = "brain.tool_calls"
    BRAIN_CONTENT_LENGTH = "brain.content_length"

    # TTS
    TTS_SENTENCES = "tts.sentences"
    TTS_CHAR_COUNT = "tts.char_count"

    # Side channel
    SIDECHANNEL_TYPE = "sidechannel.type"
    SIDECHANNEL_CHUNKS = "sidechannel.chunks"


@dataclass
class Span:
    """Represents a telemetry span."""

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:16])
    kind: SpanKind = SpanKind.CUSTOM
    name: str = ""
    parent_id: str | None = None
    attributes: dict[str, Any] = field(default_factory=dict)
    start_time: datetime = field(default_factory=lambda: datetime.now(UTC))
    end_time: datetime | None = None
    status: str = "ok"
    error_message: str | None = None
    session_id: str | None = None

    @property
    def duration_ms(self) -> float | None:
        """Duration in milliseconds, or None if not yet ended."""
        if self.end_time is None:
            return None
        delta = self.end_time - self.start_time
        return delta.total_seconds() * 1000


@dataclass(frozen=True)
class TurnSummary:
    """Outcome and latency breakdown of one finished turn."""

    turn_id: str
    outcome: str
    latencies_ms: Mapping[str, float]
    session_id: str | None = None
    speculative: bool = False


class TelemetryProvider(ABC):
    """Base class for telemetry providers.

    The base keeps open spans in memory and hands each one to
    :meth:`on_span_end` once it is ended.  Metric values go to
    :meth:`on_metric` and per-turn summaries from
    :class:`~ganglia.metrics.MetricsCollector` go to :meth:`on_turn`.
    """

    def __init__(self) -> None:
        self._open_spans: dict[str, Span] = {}

    @property
    @abstractmethod
    def name(self) -> str:
        """Provider name for identification."""
        ...

    @abstractmethod
    def on_span_end(self, span: Span) -> None:
        """Receive a finished span."""
        ...

    @abstractmethod
    def on_metric(
        self, name: str, value: float, unit: str, attributes: dict[str, Any]
    ) -> None:
        """Receive one metric value."""
        ...

    def on_turn(self, summary: TurnSummary) -> None:  # noqa: B027
        """Receive the latency breakdown of a finished turn."""

    @property
    def active_span_count(self) -> int:
        return len(self._open_spans)

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        """Start a new telemetry span and return its id."""
        span = Span(
            kind=kind,
            name=name,
            parent_id=parent_id,
            attributes=dict(attributes) if attributes else {},
            session_id=session_id,
        )
        self._open_spans[span.id] = span
        return span.id

    def end_span(
        self,
        span_id: str,
        *,
        status: str = "ok",
        error_message: str | None = None,
        attributes: dict[str, Any] | None = None,
    ) -> None:
        """End a previously started span. Unknown ids are ignored."""
        span = self._open_spans.pop(span_id, None)
        if span is None:
            return
        span.end_time = datetime.now(UTC)
        span.status = status
        span.error_message = error_message
        if attributes:
            span.attributes.update(attributes)
        self.on_span_end(span)

    def set_attribute(self, span_id: str, key: str, value: Any) -> None:
        span = self._open_spans.get(span_id)
        if span is not None:
            span.attributes[key] = value

    def record_metric(
        self,
        name: str,
        value: float,
        *,
        unit: str = "",
        attributes: dict[str, Any] | None = None,
    ) -> None:
        self.on_metric(name, value, unit, dict(attributes) if attributes else {})

    def record_turn(self, summary: TurnSummary) -> None:
        self.on_turn(summary)

    def close(self) -> None:
        """Drop spans that were never ended."""
        if self._open_spans:
            logger.warning(
                "%s telemetry closed with %d active spans", self.name, len(self._open_spans)
            )
        self._open_spans.clear()

    def reset(self) -> None:
        self._open_spans.clear()

    @contextmanager
    def span(
        self,
        kind: SpanKind,
        name: str,
        **kwargs: Any,
    ) -> Generator[str, None, None]:
        """Context manager for span lifecycle.

        Yields the span ID. Automatically ends the span on exit,
        recording error status if an exception occurs.
        """
        span_id = self.start_span(kind, name, **kwargs)
        try:
            yield span_id
            self.end_span(span_id)
        except BaseException as exc:
            self.end_span(span_id, status="error", error_message=str(exc) or type(exc).__name__)
            raise
