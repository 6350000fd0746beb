"""Side-channel wire events: status, artifacts, metrics and chunk envelopes."""

from __future__ import annotations

import json
import time
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ganglia.models.enums import ArtifactType, StatusAction


class WireModel(BaseModel):
    """Base for JSON events exchanged with the client UI."""

    model_config = ConfigDict(populate_by_name=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)

    def to_bytes(self) -> bytes:
        return json.dumps(self.to_wire(), separators=(",", ":")).encode("utf-8")


class StatusEvent(WireModel):
    """Ephemeral "what the agent is doing" feedback; never persisted."""

    type: Literal["status"] = "status"
    action: StatusAction
    detail: str | None = None
    started_at: int | None = Field(default=None, alias="startedAt")
    """Milliseconds since the epoch."""


class _Artifact(WireModel):
    type: Literal["artifact"] = "artifact"
    title: str | None = None


class DiffArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.DIFF] = ArtifactType.DIFF
    file: str
    diff: str


class CodeArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.CODE] = ArtifactType.CODE
    content: str
    language: str | None = None
    file: str | None = None
    start_line: int | None = Field(default=None, alias="startLine")


class FileArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.FILE] = ArtifactType.FILE
    path: str
    content: str
    language: str | None = None


class SearchResult(BaseModel):
    file: str
    line: int
    content: str


class SearchResultsArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.SEARCH_RESULTS] = ArtifactType.SEARCH_RESULTS
    query: str
    results: list[SearchResult] = Field(default_factory=list)


class ImageArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.IMAGE] = ArtifactType.IMAGE
    url: str | None = None
    data: str | None = None
    """Base64 image bytes when no URL is available."""
    mime_type: str | None = None
    alt: str | None = None


class MarkdownArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.MARKDOWN] = ArtifactType.MARKDOWN
    content: str
    path: str | None = None


class ErrorArtifact(_Artifact):
    artifact_type: Literal[ArtifactType.ERROR] = ArtifactType.ERROR
    message: str
    stack: str | None = None


Artifact = Annotated[
    DiffArtifact
    | CodeArtifact
    | FileArtifact
    | SearchResultsArtifact
    | ImageArtifact
    | MarkdownArtifact
    | ErrorArtifact,
    Field(discriminator="artifact_type"),
]


class MetricsEvent(WireModel):
    """Latency breakdown for one turn."""

    type: Literal["metrics"] = "metrics"
    metrics: dict[str, Any]


class ChunkEnvelope(WireModel):
    """One fragment of a payload too large for a single data packet."""

    type: Literal["chunk"] = "chunk"
    transfer_id: str
    chunk_index: int = Field(ge=0)
    total_chunks: int = Field(ge=1)
    data: str
    """Base64 encoded slice of the JSON payload."""


SideChannelEvent = StatusEvent | Artifact | MetricsEvent

_artifact_adapter: TypeAdapter[Any] = TypeAdapter(Artifact)


def parse_side_channel_event(
    raw: bytes | str | dict[str, Any],
) -> StatusEvent | Artifact | MetricsEvent | ChunkEnvelope:
    """Validate one decoded packet.

    Raises:
        pydantic.ValidationError: If the payload matches no known event.
        ValueError: If *raw* is not valid JSON.
    """
    if isinstance(raw, (bytes, str)):
        raw = json.loads(raw)
    if not isinstance(raw, dict):
        raise ValueError("side-channel payload must be a JSON object")
    kind = raw.get("type")
    if kind == "status":
        return StatusEvent.model_validate(raw)
    if kind == "metrics":
        return MetricsEvent.model_validate(raw)
    if kind == "chunk":
        return ChunkEnvelope.model_validate(raw)
    if kind == "artifact":
        return _artifact_adapter.validate_python(raw)
    raise ValueError(f"unknown side-channel event type: {kind!r}")


TOOL_STATUS_ACTIONS: dict[str, StatusAction] = {
    "read_file": StatusAction.READING_FILE,
    "Read": StatusAction.READING_FILE,
    "write_file": StatusAction.WRITING_FILE,
    "Write": StatusAction.WRITING_FILE,
    "edit_file": StatusAction.EDITING_FILE,
    "Edit": StatusAction.EDITING_FILE,
    "search": StatusAction.SEARCHING_FILES,
    "grep": StatusAction.SEARCHING_FILES,
    "Grep": StatusAction.SEARCHING_FILES,
    "glob": StatusAction.SEARCHING_FILES,
    "Glob": StatusAction.SEARCHING_FILES,
    "web_search": StatusAction.WEB_SEARCH,
    "WebSearch": StatusAction.WEB_SEARCH,
    "bash": StatusAction.EXECUTING_COMMAND,
    "Bash": StatusAction.EXECUTING_COMMAND,
}

_DETAIL_KEYS = ("path", "file_path", "pattern", "query", "command")


def status_from_tool_call(name: str, args: dict[str, Any] | None = None) -> StatusEvent:
    """Status event announcing a tool call; unknown tools read as "thinking"."""
    action = TOOL_STATUS_ACTIONS.get(name, StatusAction.THINKING)
    detail: str | None = None
    for key in _DETAIL_KEYS:
        if args and key in args:
            detail = str(args[key])
            break
    return StatusEvent(action=action, detail=detail, started_at=int(time.time() * 1000))
