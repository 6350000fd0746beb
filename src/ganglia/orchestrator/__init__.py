"""Turn orchestration: the per-session voice turn state machine."""

from ganglia.orchestrator.config import DEFAULT_FALLBACK_UTTERANCE, OrchestratorConfig
from ganglia.orchestrator.orchestrator import FatalErrorHook, TurnOrchestrator
from ganglia.orchestrator.speculative import (
    SpeculativeAttempt,
    normalize_transcript,
    transcripts_match,
)
from ganglia.orchestrator.state import TURN_TRANSITIONS, Turn
from ganglia.orchestrator.tool_calls import ToolCallAccumulator, parse_arguments

__all__ = [
    "DEFAULT_FALLBACK_UTTERANCE",
    "TURN_TRANSITIONS",
    "FatalErrorHook",
    "OrchestratorConfig",
    "SpeculativeAttempt",
    "ToolCallAccumulator",
    "Turn",
    "TurnOrchestrator",
    "normalize_transcript",
    "parse_arguments",
    "transcripts_match",
]
