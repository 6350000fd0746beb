"""Reassembly of streamed tool-call deltas."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from ganglia.brains.base import ChatChunk
from ganglia.sidechannel.tools import ToolCall

logger = logging.getLogger("ganglia.orchestrator")


@dataclass
class _PartialCall:
    index: int
    id: str | None = None
    name: str | None = None
    arguments: list[str] = field(default_factory=list)


def parse_arguments(raw: str) -> dict[str, Any]:
    """Decode streamed JSON arguments; undecodable text is kept under ``raw``."""
    if not raw.strip():
        return {}
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Tool call arguments are not JSON: %.200s", raw)
        return {"raw": raw}
    if isinstance(parsed, dict):
        return parsed
    return {"value": parsed}


class ToolCallAccumulator:
    """Groups :class:`~ganglia.brains.base.ToolCallDelta` fragments by index.

    A call is complete once a delta with a higher index starts, the stream
    reports a ``finish_reason``, or :meth:`finish` is called at end of
    stream.  Each call is returned exactly once.
    """

    def __init__(self) -> None:
        self._pending: dict[int, _PartialCall] = {}
        self.completed: list[ToolCall] = []

    @property
    def has_pending(self) -> bool:
        return bool(self._pending)

    def add(self, chunk: ChatChunk) -> list[ToolCall]:
        done: list[ToolCall] = []
        for delta in chunk.tool_calls:
            if delta.index not in self._pending:
                for index in sorted(i for i in self._pending if i < delta.index):
                    done.extend(self._complete(index))
            partial = self._pending.setdefault(delta.index, _PartialCall(index=delta.index))
            if delta.id:
                partial.id = delta.id
            if delta.name:
                partial.name = delta.name
            if delta.arguments:
                partial.arguments.append(delta.arguments)
        if chunk.finish_reason is not None:
            done.extend(self.finish())
        return done

    def finish(self) -> list[ToolCall]:
        done: list[ToolCall] = []
        for index in sorted(self._pending):
            done.extend(self._complete(index))
        return done

    def _complete(self, index: int) -> list[ToolCall]:
        partial = self._pending.pop(index)
        if not partial.name:
            logger.warning("Dropping tool call %d without a name", index)
            return []
        call = ToolCall(
            name=partial.name,
            args=parse_arguments("".join(partial.arguments)),
            id=partial.id,
        )
        self.completed.append(call)
        return [call]
