"""Side channel: structured status, artifact and metrics events."""

from ganglia.sidechannel.chunking import (
    MAX_CHUNK_SIZE,
    ChunkReassembler,
    CompletedPayload,
    encode_chunks,
)
from ganglia.sidechannel.events import (
    Artifact,
    ChunkEnvelope,
    CodeArtifact,
    DiffArtifact,
    ErrorArtifact,
    FileArtifact,
    ImageArtifact,
    MarkdownArtifact,
    MetricsEvent,
    SearchResult,
    SearchResultsArtifact,
    SideChannelEvent,
    StatusEvent,
    parse_side_channel_event,
    status_from_tool_call,
)
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.sidechannel.receiver import ArtifactBuffer, SideChannelReceiver
from ganglia.sidechannel.tools import (
    ToolCall,
    ToolInterceptor,
    ToolResult,
    artifact_from_tool_result,
    detect_language,
)

__all__ = [
    "MAX_CHUNK_SIZE",
    "Artifact",
    "ArtifactBuffer",
    "ChunkEnvelope",
    "ChunkReassembler",
    "CodeArtifact",
    "CompletedPayload",
    "DiffArtifact",
    "ErrorArtifact",
    "FileArtifact",
    "ImageArtifact",
    "MarkdownArtifact",
    "MetricsEvent",
    "SearchResult",
    "SearchResultsArtifact",
    "SideChannelEvent",
    "SideChannelPublisher",
    "SideChannelReceiver",
    "StatusEvent",
    "ToolCall",
    "ToolInterceptor",
    "ToolResult",
    "artifact_from_tool_result",
    "detect_language",
    "encode_chunks",
    "parse_side_channel_event",
    "status_from_tool_call",
]
