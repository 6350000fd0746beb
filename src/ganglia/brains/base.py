"""Abstract base class for brain backends and the streaming chat contract."""

from __future__ import annotations

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator, Callable
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from ganglia.models.session import SessionInfo, SessionKey

logger = logging.getLogger("ganglia.brains")


class ChatMessage(BaseModel):
    """A message in the conversation sent to the brain."""

    role: Literal["system", "user", "assistant", "tool"]
    content: str | None = None
    name: str | None = None
    tool_call_id: str | None = None
    tool_calls: list[dict[str, Any]] | None = None

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class ToolDefinition(BaseModel):
    """Tool definition for function calling."""

    name: str
    description: str = ""
    parameters: dict[str, Any] = Field(default_factory=dict)

    def to_wire(self) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


class ToolCallDelta(BaseModel):
    """A fragment of a streamed tool call.

    Fragments sharing an ``index`` belong to the same call; ``arguments``
    pieces are concatenated in arrival order by the consumer.
    """

    index: int
    id: str | None = None
    name: str | None = None
    arguments: str | None = None


class ChatChunk(BaseModel):
    """One incremental delta from a streamed chat completion."""

    id: str | None = None
    content: str | None = None
    tool_calls: list[ToolCallDelta] = Field(default_factory=list)
    finish_reason: str | None = None
    event: dict[str, Any] | None = None
    """Side-channel event emitted by the backend itself (status, artifact)."""


class RequestHandle:
    """Cancellation handle for one in-flight :meth:`BrainClient.stream_chat` call."""

    def __init__(self, request_id: str | None = None) -> None:
        self.id = request_id or uuid.uuid4().hex[:12]
        self._cancelled = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        self._cancelled.set()

    async def wait(self) -> None:
        """Block until the handle is cancelled."""
        await self._cancelled.wait()

    def __repr__(self) -> str:
        return f"RequestHandle(id={self.id!r}, cancelled={self.cancelled})"


class ChatOptions(BaseModel):
    """Inputs for one streamed chat call."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    messages: list[ChatMessage]
    tools: list[ToolDefinition] = Field(default_factory=list)
    tool_choice: str | dict[str, Any] | None = None
    session: SessionInfo | None = None
    """Identity hints; falls back to the client's default session."""
    session_id: str | None = None
    """Session id resolved by the session store, used for correlation."""
    handle: RequestHandle | None = None


_END = object()


class ChatStream:
    """Cancellable asynchronous sequence of :class:`ChatChunk`.

    Every read races the backend against the request handle, so a
    cancelled call stops within one read and never yields another chunk,
    even when the backend is blocked mid-response.

    Example::

        stream = brain.stream_chat(ChatOptions(messages=[...]))
        async with stream:
            async for chunk in stream:
                ...
    """

    def __init__(
        self,
        source: AsyncIterator[ChatChunk],
        handle: RequestHandle,
        *,
        on_close: Callable[[], None] | None = None,
    ) -> None:
        self._source = source
        self._handle = handle
        self._on_close = on_close
        self._closed = False
        self._cancel_waiter: asyncio.Task[None] | None = None

    @property
    def handle(self) -> RequestHandle:
        return self._handle

    @property
    def closed(self) -> bool:
        return self._closed

    def cancel(self) -> None:
        self._handle.cancel()

    def __aiter__(self) -> ChatStream:
        return self

    async def __anext__(self) -> ChatChunk:
        if self._closed:
            raise StopAsyncIteration
        if self._handle.cancelled:
            await self.aclose()
            raise StopAsyncIteration

        if self._cancel_waiter is None:
            self._cancel_waiter = asyncio.ensure_future(self._handle.wait())
        read = asyncio.ensure_future(self._read())
        try:
            await asyncio.wait({read, self._cancel_waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            read.cancel()
            await asyncio.gather(read, return_exceptions=True)
            await self.aclose()
            raise

        if not read.done():
            read.cancel()
            await asyncio.gather(read, return_exceptions=True)
            await self.aclose()
            raise StopAsyncIteration

        try:
            result = read.result()
        except BaseException:
            await self.aclose()
            raise
        if result is _END or self._handle.cancelled:
            await self.aclose()
            raise StopAsyncIteration
        return result  # type: ignore[return-value]

    async def _read(self) -> Any:
        try:
            return await anext(self._source)
        except StopAsyncIteration:
            return _END

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._cancel_waiter is not None:
            self._cancel_waiter.cancel()
        aclose = getattr(self._source, "aclose", None)
        if aclose is not None:
            await aclose()
        if self._on_close is not None:
            self._on_close()

    async def __aenter__(self) -> ChatStream:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()


class BrainClient(ABC):
    """Capability set every brain backend implements.

    Callers only ever use these methods, so backends are interchangeable:
    :meth:`ganglia_type`, :meth:`label`, :attr:`model`,
    :meth:`set_default_session`, :meth:`set_session_key`,
    :meth:`stream_chat`, :meth:`cancel_pending` and :meth:`aclose`.
    Subclasses implement :meth:`ganglia_type`, :attr:`model` and
    :meth:`_open_stream`.
    """

    def __init__(self) -> None:
        self._default_session: SessionInfo | None = None
        self._session_key: SessionKey | None = None
        self._pending: dict[str, RequestHandle] = {}

    @abstractmethod
    def ganglia_type(self) -> str:
        """Registered backend type, for diagnostics and metric tags."""
        ...

    @property
    @abstractmethod
    def model(self) -> str:
        """Identifier of the underlying model."""
        ...

    def label(self) -> str:
        """Human-readable name for logs and UI."""
        return self.ganglia_type()

    @property
    def default_session(self) -> SessionInfo | None:
        return self._default_session

    def set_default_session(self, info: SessionInfo | None) -> None:
        """Bind the session used when a call does not carry one."""
        self._default_session = info

    @property
    def session_key(self) -> SessionKey | None:
        return self._session_key

    def set_session_key(self, key: SessionKey | None) -> None:
        """Bind the owner/guest/room routing key sent with each call."""
        self._session_key = key

    def stream_chat(self, options: ChatOptions) -> ChatStream:
        """Start a streamed chat completion.

        The request is issued lazily on the first read.  Use the returned
        stream's handle with :meth:`cancel_pending` to abort it.
        """
        handle = options.handle or RequestHandle()
        session = options.session or self._default_session
        self._pending[handle.id] = handle
        source = self._open_stream(options, session, handle)
        return ChatStream(source, handle, on_close=lambda: self._pending.pop(handle.id, None))

    @abstractmethod
    def _open_stream(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        handle: RequestHandle,
    ) -> AsyncIterator[ChatChunk]:
        """Backend-specific async generator of chunks."""
        ...

    async def cancel_pending(self, handle: RequestHandle | None = None) -> None:
        """Abort one in-flight call, or every one when *handle* is ``None``."""
        if handle is None:
            handles = list(self._pending.values())
        else:
            handles = [handle]
        for h in handles:
            if not h.cancelled:
                logger.debug("%s: cancelling request %s", self.label(), h.id)
            h.cancel()
            self._pending.pop(h.id, None)

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    async def aclose(self) -> None:
        """Cancel outstanding calls and release resources."""
        await self.cancel_pending()
