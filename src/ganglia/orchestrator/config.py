"""Orchestrator configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field

from ganglia.core.retry import RetryPolicy
from ganglia.voice.interruption import InterruptionConfig

DEFAULT_FALLBACK_UTTERANCE = "Sorry, something went wrong."


class OrchestratorConfig(BaseModel):
    """Tuning for one :class:`~ganglia.orchestrator.TurnOrchestrator`.

    The speculative debounce and minimum length are latency/cost knobs,
    not protocol constants; deployments are expected to tune them.
    """

    speculative: bool = True
    speculative_debounce: float = Field(default=0.35, ge=0.0)
    """Seconds an interim transcript must stay unchanged before a speculative call."""
    min_speculative_chars: int = Field(default=8, ge=1)
    """Normalized interim text shorter than this never triggers speculation."""

    turn_timeout: float = Field(default=30.0, gt=0.0)
    synthesis_timeout: float = Field(default=15.0, gt=0.0)
    """Per-sentence bound on speech synthesis."""

    min_sentence_chars: int = Field(default=20, ge=0)
    fallback_utterance: str | None = DEFAULT_FALLBACK_UTTERANCE
    """Spoken when a turn fails or times out; ``None`` means silence."""

    system_prompt: str | None = None
    max_history: int = Field(default=50, ge=0)
    voice: str | None = None

    retry: RetryPolicy = Field(default_factory=RetryPolicy)
    interruption: InterruptionConfig = Field(default_factory=InterruptionConfig)
