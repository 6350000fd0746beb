"""Logs one latency line per turn, for tuning a deployment locally."""

from __future__ import annotations

import logging
from typing import Any

from ganglia.telemetry.base import Span, TelemetryProvider, TurnSummary

logger = logging.getLogger("ganglia.telemetry")

# Short labels for the breakdown keys produced by TurnMetrics.breakdown().
_LABELS = {
    "endpointing_delay_ms": "endpointing",
    "generation_latency_ms": "generation",
    "synthesis_start_latency_ms": "synthesis",
    "time_to_first_audio_ms": "first_audio",
    "total_ms": "total",
}


def format_turn(summary: TurnSummary) -> str:
    parts = [f"turn {summary.turn_id} {summary.outcome}"]
    if summary.speculative:
        parts.append("(speculative)")
    for key, value in summary.latencies_ms.items():
        parts.append(f"{_LABELS.get(key, key)}={value:.0f}ms")
    return " ".join(parts)


class ConsoleTelemetryProvider(TelemetryProvider):
    """Writes turn breakdowns to the ``ganglia.telemetry`` logger.

    Failed spans are logged as warnings; successful spans and raw metric
    values only at DEBUG.

    Example::

        logging.basicConfig(level=logging.INFO)
        bridge = VoiceBridge(..., telemetry=ConsoleTelemetryProvider())
        # INFO ganglia.telemetry: turn 3f2a completed endpointing=180ms
        #   generation=420ms synthesis=95ms first_audio=695ms total=1840ms
    """

    def __init__(self, *, level: int = logging.INFO) -> None:
        super().__init__()
        self._level = level

    @property
    def name(self) -> str:
        return "console"

    def on_turn(self, summary: TurnSummary) -> None:
        logger.log(self._level, "%s", format_turn(summary))

    def on_span_end(self, span: Span) -> None:
        if span.status == "error":
            logger.warning(
                "%s %s failed after %.0fms: %s",
                span.kind,
                span.name,
                span.duration_ms or 0.0,
                span.error_message or "unknown error",
            )
        else:
            logger.debug("%s %s %.0fms", span.kind, span.name, span.duration_ms or 0.0)

    def on_metric(
        self, name: str, value: float, unit: str, attributes: dict[str, Any]
    ) -> None:
        logger.debug("%s=%s%s", name, value, unit)
