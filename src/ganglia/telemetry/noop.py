"""Default provider that discards everything."""

from __future__ import annotations

from typing import Any

from ganglia.telemetry.base import Span, SpanKind, TelemetryProvider


class NoopTelemetryProvider(TelemetryProvider):
    """Never allocates a span; every id it hands out is empty."""

    @property
    def name(self) -> str:
        return "noop"

    def start_span(
        self,
        kind: SpanKind,
        name: str,
        *,
        parent_id: str | None = None,
        attributes: dict[str, Any] | None = None,
        session_id: str | None = None,
    ) -> str:
        return ""

    def on_span_end(self, span: Span) -> None:
        pass

    def on_metric(
        self, name: str, value: float, unit: str, attributes: dict[str, Any]
    ) -> None:
        pass
