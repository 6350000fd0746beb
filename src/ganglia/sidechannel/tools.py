"""Tool interception: status before a tool runs, an artifact after."""

from __future__ import annotations

import logging
import re
import traceback
from collections.abc import Awaitable, Callable
from pathlib import PurePosixPath
from typing import Any

from pydantic import BaseModel, Field

from ganglia.sidechannel.events import (
    Artifact,
    CodeArtifact,
    DiffArtifact,
    ErrorArtifact,
    FileArtifact,
    SearchResult,
    SearchResultsArtifact,
    status_from_tool_call,
)
from ganglia.sidechannel.publisher import SideChannelPublisher

logger = logging.getLogger("ganglia.sidechannel")

LANGUAGES: dict[str, str] = {
    "ts": "typescript",
    "tsx": "typescript",
    "js": "javascript",
    "jsx": "javascript",
    "py": "python",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "java": "java",
    "kt": "kotlin",
    "swift": "swift",
    "c": "c",
    "cpp": "cpp",
    "h": "c",
    "hpp": "cpp",
    "cs": "csharp",
    "php": "php",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "json": "json",
    "yaml": "yaml",
    "yml": "yaml",
    "xml": "xml",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "md": "markdown",
    "dart": "dart",
}

_RG_LINE = re.compile(r"^([^:]+):(\d+):(.*)$")

_READ_TOOLS = frozenset({"read_file", "read"})
_EDIT_TOOLS = frozenset({"edit_file", "edit", "apply_diff"})
_SEARCH_TOOLS = frozenset({"grep", "glob", "search"})


class ToolCall(BaseModel):
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    id: str | None = None


class ToolResult(BaseModel):
    content: Any = None
    success: bool = True
    error: str | None = None


ToolExecutor = Callable[[ToolCall], Awaitable[ToolResult]]


def detect_language(path: str) -> str | None:
    suffix = PurePosixPath(path).suffix.lstrip(".").lower()
    return LANGUAGES.get(suffix) if suffix else None


def _file_path(args: dict[str, Any]) -> str | None:
    for key in ("file_path", "path", "file"):
        value = args.get(key)
        if isinstance(value, str):
            return value
    return None


def _read_artifact(call: ToolCall, result: ToolResult) -> Artifact | None:
    path = _file_path(call.args)
    if path is None or not isinstance(result.content, str):
        return None
    title = PurePosixPath(path).name
    language = detect_language(path)
    if language:
        return CodeArtifact(content=result.content, file=path, language=language, title=title)
    return FileArtifact(path=path, content=result.content, title=title)


def _edit_artifact(call: ToolCall) -> DiffArtifact | None:
    path = _file_path(call.args)
    if path is None:
        return None
    old = call.args.get("old_string")
    new = call.args.get("new_string")
    header = f"--- {path}\n+++ {path}\n"
    if isinstance(old, str) and isinstance(new, str):
        old_lines = old.split("\n")
        new_lines = new.split("\n")
        body = f"@@ -1,{len(old_lines)} +1,{len(new_lines)} @@\n"
        body += "".join(f"-{line}\n" for line in old_lines)
        body += "".join(f"+{line}\n" for line in new_lines)
    else:
        body = "@@ Edit applied @@\n"
    return DiffArtifact(file=path, diff=header + body, title=f"Edit: {PurePosixPath(path).name}")


def parse_search_results(content: Any) -> list[SearchResult]:
    """Parse ripgrep-style ``file:line:content`` text or pre-structured rows."""
    results: list[SearchResult] = []
    if isinstance(content, str):
        for line in content.splitlines():
            match = _RG_LINE.match(line.strip())
            if match:
                results.append(
                    SearchResult(file=match[1], line=int(match[2]), content=match[3])
                )
    elif isinstance(content, list):
        for item in content:
            if isinstance(item, dict) and "file" in item and "line" in item:
                results.append(
                    SearchResult(
                        file=str(item["file"]),
                        line=int(item["line"]),
                        content=str(item.get("content", "")),
                    )
                )
    return results


def _search_artifact(call: ToolCall, result: ToolResult) -> SearchResultsArtifact | None:
    query = str(call.args.get("pattern") or call.args.get("query") or call.args.get("path") or "")
    results = parse_search_results(result.content)
    if not results:
        if not isinstance(result.content, str):
            return None
        results = [SearchResult(file="", line=0, content=result.content[:500])]
    title = f"Search: {query[:30]}{'...' if len(query) > 30 else ''}"
    return SearchResultsArtifact(query=query, results=results, title=title)


def artifact_from_tool_result(call: ToolCall, result: ToolResult) -> Artifact | None:
    """Visual artifact for a finished tool call, or ``None`` for tools without one."""
    if not result.success:
        return ErrorArtifact(message=result.error or "Unknown error", title=f"Error: {call.name}")
    name = call.name.lower()
    if name in _READ_TOOLS:
        return _read_artifact(call, result)
    if name in _EDIT_TOOLS:
        return _edit_artifact(call)
    if name in _SEARCH_TOOLS:
        return _search_artifact(call, result)
    return None


class ToolInterceptor:
    """Wraps tool execution to surface progress on the side channel.

    A status event goes out before the tool runs and an artifact (code,
    diff, search results or error) after it.  An executor that raises is
    turned into a failed :class:`ToolResult` with an error artifact.
    """

    def __init__(
        self,
        publisher: SideChannelPublisher,
        *,
        emit_status: bool = True,
        emit_artifacts: bool = True,
    ) -> None:
        self._publisher = publisher
        self._emit_status = emit_status
        self._emit_artifacts = emit_artifacts

    async def execute(self, call: ToolCall, executor: ToolExecutor) -> ToolResult:
        if self._emit_status:
            await self._publisher.publish(status_from_tool_call(call.name, call.args))

        try:
            result = await executor(call)
        except Exception as exc:
            logger.warning("Tool %s failed: %s", call.name, exc)
            if self._emit_artifacts:
                await self._publisher.publish(
                    ErrorArtifact(
                        message=str(exc),
                        stack="".join(traceback.format_exception(exc)),
                        title=f"Error: {call.name}",
                    )
                )
            return ToolResult(content="", success=False, error=str(exc))

        if self._emit_artifacts:
            artifact = artifact_from_tool_result(call, result)
            if artifact is not None:
                await self._publisher.publish(artifact)
        return result

    def wrap(self, executor: ToolExecutor) -> ToolExecutor:
        async def wrapped(call: ToolCall) -> ToolResult:
            return await self.execute(call, executor)

        return wrapped
