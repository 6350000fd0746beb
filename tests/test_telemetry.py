"""Tests for the telemetry providers."""

from __future__ import annotations

import logging

import pytest

from ganglia.telemetry.base import Attr, SpanKind, TurnSummary
from ganglia.telemetry.config import TelemetryConfig
from ganglia.telemetry.console import ConsoleTelemetryProvider, format_turn
from ganglia.telemetry.mock import MockTelemetryProvider
from ganglia.telemetry.noop import NoopTelemetryProvider


def summary(**overrides) -> TurnSummary:
    values = {
        "turn_id": "t1",
        "outcome": "completed",
        "latencies_ms": {"generation_latency_ms": 420.4, "total_ms": 1840.0},
        "session_id": "s1",
    }
    values.update(overrides)
    return TurnSummary(**values)


class TestMockTelemetry:
    def test_span_lifecycle(self) -> None:
        provider = MockTelemetryProvider()
        span_id = provider.start_span(
            SpanKind.TURN, "turn", attributes={Attr.TURN_ID: "t1"}, session_id="s1"
        )
        provider.set_attribute(span_id, Attr.MODEL, "m")
        assert provider.active_span_count == 1
        provider.end_span(span_id, attributes={Attr.TURN_OUTCOME: "completed"})

        (span,) = provider.get_spans(SpanKind.TURN)
        assert span.session_id == "s1"
        assert span.attributes == {"turn_id": "t1", "model": "m", "turn.outcome": "completed"}
        assert span.duration_ms is not None
        assert provider.active_span_count == 0

    def test_context_manager_records_error(self) -> None:
        provider = MockTelemetryProvider()
        with pytest.raises(RuntimeError):
            with provider.span(SpanKind.SESSION_RESOLVE, "resolve"):
                raise RuntimeError("store down")
        (span,) = provider.spans
        assert span.status == "error"
        assert span.error_message == "store down"

    def test_metrics_turns_and_reset(self) -> None:
        provider = MockTelemetryProvider()
        provider.record_metric("ganglia.turn.total", 12.0, unit="ms")
        provider.record_turn(summary())
        assert provider.get_metrics("ganglia.turn.total")[0]["value"] == 12.0
        assert provider.turns[0].turn_id == "t1"

        provider.reset()
        assert provider.metrics == []
        assert provider.turns == []

    def test_end_unknown_span_ignored(self) -> None:
        provider = MockTelemetryProvider()
        provider.end_span("missing")
        assert provider.spans == []


class TestNoopTelemetry:
    def test_keeps_no_state(self) -> None:
        provider = NoopTelemetryProvider()
        span_id = provider.start_span(SpanKind.TURN, "turn")
        provider.set_attribute(span_id, Attr.MODEL, "m")
        provider.end_span(span_id)
        provider.record_turn(summary())
        assert span_id == ""
        assert provider.active_span_count == 0


class TestConsoleTelemetry:
    def test_format_turn(self) -> None:
        line = format_turn(summary(speculative=True))
        assert line == "turn t1 completed (speculative) generation=420ms total=1840ms"

    def test_logs_turn_breakdown(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = ConsoleTelemetryProvider()
        with caplog.at_level(logging.INFO, logger="ganglia.telemetry"):
            provider.record_turn(summary(outcome="timed_out", latencies_ms={"total_ms": 30000.0}))
        assert "turn t1 timed_out total=30000ms" in caplog.text

    def test_successful_spans_only_at_debug(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = ConsoleTelemetryProvider()
        with caplog.at_level(logging.INFO, logger="ganglia.telemetry"):
            with provider.span(SpanKind.BRAIN_STREAM, "stream"):
                pass
            provider.record_metric("ganglia.turn.total", 12.5, unit="ms")
        assert caplog.text == ""

    def test_failed_span_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = ConsoleTelemetryProvider()
        with pytest.raises(TimeoutError):
            with provider.span(SpanKind.TTS_SYNTHESIZE, "synthesize"):
                raise TimeoutError("tts stalled")
        assert "tts.synthesize synthesize failed" in caplog.text
        assert "tts stalled" in caplog.text

    def test_close_warns_on_open_spans(self, caplog: pytest.LogCaptureFixture) -> None:
        provider = ConsoleTelemetryProvider()
        provider.start_span(SpanKind.TURN, "turn")
        provider.close()
        assert "closed with 1 active spans" in caplog.text
        assert provider.active_span_count == 0


class TestTelemetryConfig:
    def test_defaults_to_noop(self) -> None:
        assert isinstance(TelemetryConfig().resolve_provider(), NoopTelemetryProvider)

    def test_explicit_provider(self) -> None:
        provider = MockTelemetryProvider()
        assert TelemetryConfig(provider=provider).resolve_provider() is provider
