"""ganglia - async bridge between realtime voice rooms and pluggable LLM brains."""

from ganglia._version import __version__
from ganglia.bridge import VoiceBridge
from ganglia.brains import (
    BrainClient,
    BrainConfig,
    BrainRegistry,
    ChatChunk,
    ChatMessage,
    ChatOptions,
    ChatStream,
    RequestHandle,
    ToolCallDelta,
    ToolDefinition,
    brain_config_from_env,
    create_brain,
    create_default_registry,
    default_registry,
)
from ganglia.config import GangliaSettings
from ganglia.core import RetryPolicy, SessionLockManager
from ganglia.errors import (
    AuthenticationError,
    AuthErrorCode,
    BrainError,
    GangliaError,
    InvalidTurnTransition,
    SessionError,
    SessionErrorReason,
    TransferProtocolError,
    TurnTimeout,
    UnknownBackendKind,
)
from ganglia.metrics import MetricsCollector, TurnMetrics
from ganglia.models import (
    ManagedSession,
    SessionInfo,
    SessionKey,
    SessionKeyType,
    SessionState,
    StatusAction,
    TurnOutcome,
    TurnState,
)
from ganglia.orchestrator import OrchestratorConfig, Turn, TurnOrchestrator
from ganglia.sidechannel import (
    ChunkReassembler,
    CompletedPayload,
    SideChannelPublisher,
    SideChannelReceiver,
    encode_chunks,
    parse_side_channel_event,
)
from ganglia.store import (
    InMemorySessionStore,
    SessionStore,
    generate_session_id,
    resolve_session_key,
)
from ganglia.telemetry import TelemetryConfig, TelemetryProvider
from ganglia.voice import (
    AudioChunk,
    DisconnectReason,
    InterruptionConfig,
    InterruptionStrategy,
    RoomTransport,
    TranscriptionEvent,
    TTSProvider,
)

__all__ = [
    "AudioChunk",
    "AuthErrorCode",
    "AuthenticationError",
    "BrainClient",
    "BrainConfig",
    "BrainError",
    "BrainRegistry",
    "ChatChunk",
    "ChatMessage",
    "ChatOptions",
    "ChatStream",
    "ChunkReassembler",
    "CompletedPayload",
    "DisconnectReason",
    "GangliaError",
    "GangliaSettings",
    "InMemorySessionStore",
    "InterruptionConfig",
    "InterruptionStrategy",
    "InvalidTurnTransition",
    "ManagedSession",
    "MetricsCollector",
    "OrchestratorConfig",
    "RequestHandle",
    "RetryPolicy",
    "RoomTransport",
    "SessionError",
    "SessionErrorReason",
    "SessionInfo",
    "SessionKey",
    "SessionKeyType",
    "SessionLockManager",
    "SessionState",
    "SessionStore",
    "SideChannelPublisher",
    "SideChannelReceiver",
    "StatusAction",
    "TTSProvider",
    "TelemetryConfig",
    "TelemetryProvider",
    "ToolCallDelta",
    "ToolDefinition",
    "TranscriptionEvent",
    "TransferProtocolError",
    "Turn",
    "TurnMetrics",
    "TurnOrchestrator",
    "TurnOutcome",
    "TurnState",
    "TurnTimeout",
    "UnknownBackendKind",
    "VoiceBridge",
    "__version__",
    "brain_config_from_env",
    "create_brain",
    "create_default_registry",
    "default_registry",
    "encode_chunks",
    "generate_session_id",
    "parse_side_channel_event",
    "resolve_session_key",
]
