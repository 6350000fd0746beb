"""Interruption (barge-in) strategy configuration and handler."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum, unique

logger = logging.getLogger("ganglia.voice.interruption")


@unique
class InterruptionStrategy(StrEnum):
    """How user speech during a response is treated."""

    IMMEDIATE = "immediate"
    """Interrupt as soon as speech is detected."""

    CONFIRMED = "confirmed"
    """Interrupt only once the user has spoken for min_speech_ms."""

    DISABLED = "disabled"
    """Let the agent finish; user speech is ignored until it does."""


@dataclass
class InterruptionConfig:
    """Configuration for interruption (barge-in) behaviour."""

    strategy: InterruptionStrategy = InterruptionStrategy.IMMEDIATE
    min_speech_ms: int = 200
    """Minimum speech duration (ms) before triggering (used by CONFIRMED)."""

    allow_during_first_ms: int = 0
    """If > 0, ignore speech during this many ms of playback (echo guard)."""


@dataclass
class InterruptionDecision:
    should_interrupt: bool
    reason: str = ""


class InterruptionHandler:
    """Decides whether user speech during generation or playback cancels the turn."""

    def __init__(self, config: InterruptionConfig | None = None) -> None:
        self._config = config or InterruptionConfig()

    @property
    def config(self) -> InterruptionConfig:
        return self._config

    def evaluate(
        self,
        *,
        playback_position_ms: int,
        speech_duration_ms: int = 0,
    ) -> InterruptionDecision:
        """Evaluate whether an interruption should proceed.

        Args:
            playback_position_ms: How far into the agent's audio (ms); 0
                while still generating.
            speech_duration_ms: How long the user has been speaking (ms).
        """
        strategy = self._config.strategy
        if strategy == InterruptionStrategy.DISABLED:
            return InterruptionDecision(False, "interruptions disabled")

        if 0 < playback_position_ms < self._config.allow_during_first_ms:
            return InterruptionDecision(False, "playback too early")

        if strategy == InterruptionStrategy.CONFIRMED:
            if speech_duration_ms >= self._config.min_speech_ms:
                return InterruptionDecision(True, "speech confirmed")
            return InterruptionDecision(False, "speech too short")

        return InterruptionDecision(True, "immediate strategy")
