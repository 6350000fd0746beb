"""Telemetry configuration."""

from __future__ import annotations

from dataclasses import dataclass

from ganglia.telemetry.base import TelemetryProvider
from ganglia.telemetry.noop import NoopTelemetryProvider


@dataclass
class TelemetryConfig:
    """Configuration for telemetry collection.

    Attributes:
        provider: The telemetry provider to use. Defaults to
            ``NoopTelemetryProvider`` if not set.
        metric_prefix: Prefix applied to every metric name.
    """

    provider: TelemetryProvider | None = None
    metric_prefix: str = "ganglia"

    def resolve_provider(self) -> TelemetryProvider:
        return self.provider if self.provider is not None else NoopTelemetryProvider()
