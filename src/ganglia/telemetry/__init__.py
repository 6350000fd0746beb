"""Telemetry provider system for ganglia."""

from ganglia.telemetry.base import Attr, Span, SpanKind, TelemetryProvider, TurnSummary
from ganglia.telemetry.config import TelemetryConfig
from ganglia.telemetry.console import ConsoleTelemetryProvider
from ganglia.telemetry.mock import MockTelemetryProvider
from ganglia.telemetry.noop import NoopTelemetryProvider

__all__ = [
    "Attr",
    "ConsoleTelemetryProvider",
    "MockTelemetryProvider",
    "NoopTelemetryProvider",
    "Span",
    "SpanKind",
    "TelemetryConfig",
    "TelemetryProvider",
    "TurnSummary",
]
