"""Turn latency metrics."""

from ganglia.metrics.collector import MetricsCollector, TurnMetrics

__all__ = ["MetricsCollector", "TurnMetrics"]
