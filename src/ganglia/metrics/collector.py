"""Per-turn latency capture and the derived breakdown metrics."""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any

from pydantic import BaseModel

from ganglia.models.enums import TurnOutcome
from ganglia.sidechannel.events import MetricsEvent
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.telemetry.base import Attr, TelemetryProvider, TurnSummary
from ganglia.telemetry.noop import NoopTelemetryProvider

logger = logging.getLogger("ganglia.metrics")


def _ms(start: float | None, end: float | None) -> float | None:
    if start is None or end is None:
        return None
    return round((end - start) * 1000, 1)


class TurnMetrics(BaseModel):
    """Monotonic timestamps captured for one turn.

    The ``*_ms`` properties derive the latency breakdown; each is ``None``
    when one of its endpoints was never observed.
    """

    turn_id: str
    session_id: str
    started_at: float
    speech_end_at: float | None = None
    transcript_final_at: float | None = None
    first_delta_at: float | None = None
    first_audio_at: float | None = None
    finished_at: float | None = None
    speculative: bool = False
    outcome: TurnOutcome | None = None

    @property
    def endpointing_delay_ms(self) -> float | None:
        """Speech end to final transcript."""
        return _ms(self.speech_end_at, self.transcript_final_at)

    @property
    def generation_latency_ms(self) -> float | None:
        """Final transcript to first content delta.

        An adopted speculative call can produce its first delta before the
        transcript is final, so the value is clamped at zero.
        """
        value = _ms(self.transcript_final_at, self.first_delta_at)
        if value is not None and self.speculative:
            return max(value, 0.0)
        return value

    @property
    def synthesis_start_latency_ms(self) -> float | None:
        """First content delta to first synthesized audio."""
        return _ms(self.first_delta_at, self.first_audio_at)

    @property
    def time_to_first_audio_ms(self) -> float | None:
        """Speech end (or final transcript) to first audio."""
        return _ms(self.speech_end_at or self.transcript_final_at, self.first_audio_at)

    @property
    def total_ms(self) -> float | None:
        return _ms(self.speech_end_at or self.started_at, self.finished_at)

    def breakdown(self) -> dict[str, float]:
        """Derived latencies that were observed, keyed by metric name."""
        values = {
            "endpointing_delay_ms": self.endpointing_delay_ms,
            "generation_latency_ms": self.generation_latency_ms,
            "synthesis_start_latency_ms": self.synthesis_start_latency_ms,
            "time_to_first_audio_ms": self.time_to_first_audio_ms,
            "total_ms": self.total_ms,
        }
        return {k: v for k, v in values.items() if v is not None}

    def to_event(self) -> MetricsEvent:
        metrics: dict[str, Any] = {
            "turn_id": self.turn_id,
            "session_id": self.session_id,
            "speculative": self.speculative,
            "outcome": str(self.outcome) if self.outcome else None,
            **self.breakdown(),
        }
        return MetricsEvent(metrics=metrics)


class MetricsCollector:
    """Records turn timestamps and emits one metrics event per turn.

    Collection never blocks the orchestrator: ``mark_*`` calls are plain
    attribute writes and :meth:`finish_turn` hands publishing to a
    fire-and-forget task whose failures are only logged.

    Args:
        publisher: Side-channel publisher for :class:`MetricsEvent`; when
            ``None`` metrics are only recorded through telemetry.
        telemetry: Provider receiving ``<prefix>.turn.*`` metric values.
        clock: Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        publisher: SideChannelPublisher | None = None,
        telemetry: TelemetryProvider | None = None,
        clock: Callable[[], float] = time.monotonic,
        metric_prefix: str = "ganglia",
    ) -> None:
        self._publisher = publisher
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._clock = clock
        self._prefix = metric_prefix
        self._turns: dict[str, TurnMetrics] = {}
        self._scheduled_tasks: set[asyncio.Task[Any]] = set()
        self.speculation_started = 0
        self.speculation_used = 0
        self.speculation_discarded = 0

    # -------------------------------------------------------------------------
    # Turn timestamps
    # -------------------------------------------------------------------------

    def begin_turn(self, turn_id: str, session_id: str) -> TurnMetrics:
        metrics = TurnMetrics(turn_id=turn_id, session_id=session_id, started_at=self._clock())
        self._turns[turn_id] = metrics
        return metrics

    def get(self, turn_id: str) -> TurnMetrics | None:
        return self._turns.get(turn_id)

    def mark_speech_end(self, turn_id: str, at: float | None = None) -> None:
        # The latest pause before the final transcript is the one that counts.
        metrics = self._turns.get(turn_id)
        if metrics is not None:
            metrics.speech_end_at = self._clock() if at is None else at

    def mark_transcript_final(self, turn_id: str, at: float | None = None) -> None:
        metrics = self._turns.get(turn_id)
        if metrics is not None and metrics.transcript_final_at is None:
            metrics.transcript_final_at = self._clock() if at is None else at

    def mark_first_delta(self, turn_id: str, at: float | None = None) -> None:
        metrics = self._turns.get(turn_id)
        if metrics is not None and metrics.first_delta_at is None:
            metrics.first_delta_at = self._clock() if at is None else at

    def mark_first_audio(self, turn_id: str, at: float | None = None) -> None:
        metrics = self._turns.get(turn_id)
        if metrics is not None and metrics.first_audio_at is None:
            metrics.first_audio_at = self._clock() if at is None else at

    def mark_speculative(self, turn_id: str) -> None:
        metrics = self._turns.get(turn_id)
        if metrics is not None:
            metrics.speculative = True

    def finish_turn(self, turn_id: str, outcome: TurnOutcome) -> TurnMetrics | None:
        """Close the turn, record its metrics and publish them in the background."""
        metrics = self._turns.pop(turn_id, None)
        if metrics is None:
            logger.debug("finish_turn: unknown turn %s", turn_id)
            return None
        metrics.finished_at = self._clock()
        metrics.outcome = outcome

        attributes = {
            Attr.SESSION_ID: metrics.session_id,
            Attr.TURN_OUTCOME: str(outcome),
            Attr.TURN_SPECULATIVE: metrics.speculative,
        }
        for name, value in metrics.breakdown().items():
            self._telemetry.record_metric(
                f"{self._prefix}.turn.{name.removesuffix('_ms')}",
                value,
                unit="ms",
                attributes=attributes,
            )
        self._telemetry.record_turn(
            TurnSummary(
                turn_id=turn_id,
                outcome=str(outcome),
                latencies_ms=metrics.breakdown(),
                session_id=metrics.session_id,
                speculative=metrics.speculative,
            )
        )
        logger.debug("Turn %s metrics: %s", turn_id, metrics.breakdown())

        if self._publisher is not None:
            self._schedule(self._publish(metrics), name=f"ganglia-metrics-{turn_id}")
        return metrics

    async def _publish(self, metrics: TurnMetrics) -> None:
        assert self._publisher is not None
        if not await self._publisher.publish(metrics.to_event()):
            logger.debug("Metrics for turn %s were not delivered", metrics.turn_id)

    # -------------------------------------------------------------------------
    # Speculation counters
    # -------------------------------------------------------------------------

    def record_speculation_started(self) -> None:
        self.speculation_started += 1

    def record_speculation_used(self, turn_id: str | None = None) -> None:
        self.speculation_used += 1
        if turn_id is not None:
            self.mark_speculative(turn_id)

    def record_speculation_discarded(self, reason: str = "") -> None:
        self.speculation_discarded += 1
        self._telemetry.record_metric(
            f"{self._prefix}.speculative.discarded",
            1,
            attributes={"reason": reason} if reason else None,
        )

    @property
    def discard_rate(self) -> float:
        """Fraction of speculative attempts that were discarded."""
        if self.speculation_started == 0:
            return 0.0
        return self.speculation_discarded / self.speculation_started

    # -------------------------------------------------------------------------
    # Background publishing
    # -------------------------------------------------------------------------

    def _schedule(self, coro: Coroutine[Any, Any, Any], *, name: str) -> None:
        """Run *coro* as a tracked fire-and-forget task."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.warning("No running event loop; dropping %s", name)
            return
        task = loop.create_task(coro, name=name)
        task.add_done_callback(self._task_done)
        self._scheduled_tasks.add(task)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        self._scheduled_tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Unhandled exception in scheduled task %s: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    async def flush(self) -> None:
        """Wait for in-flight metric publications."""
        if self._scheduled_tasks:
            await asyncio.gather(*self._scheduled_tasks, return_exceptions=True)

    async def aclose(self) -> None:
        for task in list(self._scheduled_tasks):
            task.cancel()
        await self.flush()
