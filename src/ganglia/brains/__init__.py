"""Brain backends: the streaming chat contract and its registry."""

from ganglia.brains.base import (
    BrainClient,
    ChatChunk,
    ChatMessage,
    ChatOptions,
    ChatStream,
    RequestHandle,
    ToolCallDelta,
    ToolDefinition,
)
from ganglia.brains.mock import MockBrainClient, text_chunks
from ganglia.brains.registry import (
    BrainConfig,
    BrainFactory,
    BrainRegistry,
    brain_config_from_env,
    create_brain,
    create_default_registry,
    default_registry,
    register_builtin_brains,
)

__all__ = [
    "BrainClient",
    "BrainConfig",
    "BrainFactory",
    "BrainRegistry",
    "ChatChunk",
    "ChatMessage",
    "ChatOptions",
    "ChatStream",
    "MockBrainClient",
    "RequestHandle",
    "ToolCallDelta",
    "ToolDefinition",
    "brain_config_from_env",
    "create_brain",
    "create_default_registry",
    "default_registry",
    "register_builtin_brains",
    "text_chunks",
]
