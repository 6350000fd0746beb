"""In-memory provider for test assertions."""

from __future__ import annotations

from typing import Any

from ganglia.telemetry.base import Span, SpanKind, TelemetryProvider, TurnSummary


class MockTelemetryProvider(TelemetryProvider):
    """Keeps every finished span, metric value and turn summary.

    Example::

        telemetry = MockTelemetryProvider()
        collector = MetricsCollector(telemetry=telemetry)
        # ... run a turn ...
        (turn,) = telemetry.turns
        assert turn.outcome == "completed"
    """

    def __init__(self) -> None:
        super().__init__()
        self.spans: list[Span] = []
        self.metrics: list[dict[str, Any]] = []
        self.turns: list[TurnSummary] = []

    @property
    def name(self) -> str:
        return "mock"

    def on_span_end(self, span: Span) -> None:
        self.spans.append(span)

    def on_metric(
        self, name: str, value: float, unit: str, attributes: dict[str, Any]
    ) -> None:
        self.metrics.append({"name": name, "value": value, "unit": unit, "attributes": attributes})

    def on_turn(self, summary: TurnSummary) -> None:
        self.turns.append(summary)

    def get_spans(self, kind: SpanKind) -> list[Span]:
        return [s for s in self.spans if s.kind == kind]

    def get_metrics(self, name: str) -> list[dict[str, Any]]:
        return [m for m in self.metrics if m["name"] == name]

    def reset(self) -> None:
        super().reset()
        self.spans.clear()
        self.metrics.clear()
        self.turns.clear()
