"""Tests for the streaming chat contract and the HTTP backends."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest

from ganglia.brains.base import (
    BrainClient,
    ChatChunk,
    ChatMessage,
    ChatOptions,
    RequestHandle,
    ToolDefinition,
)
from ganglia.brains.mock import MockBrainClient, text_chunks
from ganglia.brains.nanoclaw import NanoclawBrain, NanoclawConfig
from ganglia.brains.nanoclaw.client import (
    CHANNEL_HEADER,
    generate_channel_jid,
    session_key_to_channel,
)
from ganglia.brains.openclaw import OpenClawBrain, OpenClawConfig
from ganglia.brains.openclaw.client import SESSION_ID_HEADER, SESSION_KEY_HEADER
from ganglia.errors import (
    AuthenticationError,
    AuthErrorCode,
    BrainError,
    SessionError,
    SessionErrorReason,
)
from ganglia.models.enums import SessionKeyType
from ganglia.models.session import SessionInfo, SessionKey

INFO = SessionInfo(
    room_sid="RM_1", room_name="kitchen", participant_identity="alice", participant_sid="PA_1"
)


def sse_body(*payloads: dict[str, Any], done: bool = True) -> bytes:
    lines = [f"data: {json.dumps(p)}\n\n" for p in payloads]
    if done:
        lines.append("data: [DONE]\n\n")
    return "".join(lines).encode()


def delta(content: str | None = None, **extra: Any) -> dict[str, Any]:
    d: dict[str, Any] = {}
    if content is not None:
        d["content"] = content
    d.update(extra)
    return {"id": "c1", "choices": [{"index": 0, "delta": d, "finish_reason": None}]}


def finish(reason: str = "stop") -> dict[str, Any]:
    return {"id": "c1", "choices": [{"index": 0, "delta": {}, "finish_reason": reason}]}


class Recorder:
    """httpx MockTransport handler that records requests and replays one response."""

    def __init__(self, response: Callable[[], httpx.Response]) -> None:
        self.requests: list[httpx.Request] = []
        self._response = response

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self._response()

    @property
    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)

    @property
    def last_headers(self) -> httpx.Headers:
        return self.requests[-1].headers


def streaming(body: bytes) -> Callable[[], httpx.Response]:
    return lambda: httpx.Response(
        200, headers={"content-type": "text/event-stream"}, content=body
    )


def failing(status: int, text: str) -> Callable[[], httpx.Response]:
    return lambda: httpx.Response(status, text=text)


def openclaw(recorder: Recorder, **config: Any) -> OpenClawBrain:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return OpenClawBrain(OpenClawConfig(**config), client=client)


def nanoclaw(recorder: Recorder, **config: Any) -> NanoclawBrain:
    client = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return NanoclawBrain(NanoclawConfig(**config), client=client)


async def collect(brain: BrainClient, options: ChatOptions) -> list[ChatChunk]:
    async with brain.stream_chat(options) as stream:
        return [chunk async for chunk in stream]


def ask(text: str = "hi", **kwargs: Any) -> ChatOptions:
    return ChatOptions(messages=[ChatMessage(role="user", content=text)], **kwargs)


# ---------------------------------------------------------------------------
# ChatStream cancellation
# ---------------------------------------------------------------------------


class BlockingBrain(BrainClient):
    """Yields one chunk, then blocks until cancelled from outside."""

    def __init__(self) -> None:
        super().__init__()
        self.closed = False

    def ganglia_type(self) -> str:
        return "blocking"

    @property
    def model(self) -> str:
        return "blocking"

    async def _open_stream(
        self, options: ChatOptions, session: SessionInfo | None, handle: RequestHandle
    ) -> AsyncIterator[ChatChunk]:
        try:
            yield ChatChunk(content="first")
            await asyncio.Event().wait()
            yield ChatChunk(content="never")
        finally:
            self.closed = True


class TestChatStream:
    async def test_cancel_stops_blocked_read(self, advance) -> None:
        brain = BlockingBrain()
        stream = brain.stream_chat(ask())
        received: list[str | None] = []

        async def consume() -> None:
            async for chunk in stream:
                received.append(chunk.content)

        task = asyncio.create_task(consume())
        await advance()
        assert received == ["first"]
        assert brain.pending_count == 1

        await brain.cancel_pending(stream.handle)
        await asyncio.wait_for(task, timeout=1.0)

        assert received == ["first"]
        assert stream.closed
        assert brain.closed
        assert brain.pending_count == 0

    async def test_cancelled_before_first_read(self) -> None:
        brain = MockBrainClient([text_chunks("a", "b")])
        stream = brain.stream_chat(ask())
        stream.cancel()
        assert [c async for c in stream] == []

    async def test_cancel_all_pending(self) -> None:
        brain = BlockingBrain()
        streams = [brain.stream_chat(ask()) for _ in range(3)]
        await brain.cancel_pending()
        assert all(s.handle.cancelled for s in streams)
        assert brain.pending_count == 0

    async def test_default_session_used_when_options_have_none(self) -> None:
        brain = MockBrainClient()
        brain.set_default_session(INFO)
        await collect(brain, ask())
        await collect(brain, ask(session=SessionInfo(custom_session_id="x")))
        assert brain.sessions[0] == INFO
        assert brain.sessions[1] == SessionInfo(custom_session_id="x")


# ---------------------------------------------------------------------------
# OpenAI-compatible streaming
# ---------------------------------------------------------------------------


class TestStreaming:
    async def test_parses_content_and_stops_at_done(self) -> None:
        recorder = Recorder(
            streaming(sse_body(delta(role="assistant"), delta("Hel"), delta("lo"), finish()))
        )
        brain = openclaw(recorder)
        chunks = await collect(brain, ask())
        assert [c.content for c in chunks if c.content] == ["Hel", "lo"]
        assert chunks[-1].finish_reason == "stop"

    async def test_tool_call_deltas(self) -> None:
        call = {"index": 0, "id": "call_1", "function": {"name": "Read", "arguments": '{"pa'}}
        rest = {"index": 0, "function": {"arguments": 'th": "a.py"}'}}
        recorder = Recorder(
            streaming(
                sse_body(delta(tool_calls=[call]), delta(tool_calls=[rest]), finish("tool_calls"))
            )
        )
        chunks = await collect(openclaw(recorder), ask())
        deltas = [d for c in chunks for d in c.tool_calls]
        assert deltas[0].name == "Read"
        assert deltas[0].id == "call_1"
        assert "".join(d.arguments or "" for d in deltas) == '{"path": "a.py"}'

    async def test_malformed_line_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        body = b"data: {oops\n\n" + sse_body(delta("ok"))
        chunks = await collect(openclaw(Recorder(streaming(body))), ask())
        assert [c.content for c in chunks] == ["ok"]
        assert "skipping malformed SSE data" in caplog.text

    async def test_request_body(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        tool = ToolDefinition(name="lookup", description="Look up", parameters={"type": "object"})
        await collect(openclaw(recorder, model="gpt-x"), ask("what's up", tools=[tool]))

        body = recorder.last_body
        assert recorder.requests[0].url.path == "/v1/chat/completions"
        assert body["model"] == "gpt-x"
        assert body["stream"] is True
        assert body["messages"] == [{"role": "user", "content": "what's up"}]
        assert body["tools"][0]["function"]["name"] == "lookup"

    async def test_transport_error_is_retryable(self) -> None:
        def explode(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(explode))
        brain = OpenClawBrain(OpenClawConfig(), client=client)
        with pytest.raises(BrainError) as exc_info:
            await collect(brain, ask())
        assert exc_info.value.retryable


class TestErrorMapping:
    @pytest.mark.parametrize(
        ("status", "text", "code"),
        [
            (401, "token expired", AuthErrorCode.TOKEN_EXPIRED),
            (401, "invalid token", AuthErrorCode.INVALID_TOKEN),
            (401, "no", AuthErrorCode.UNAUTHORIZED),
            (403, "nope", AuthErrorCode.FORBIDDEN),
        ],
    )
    async def test_auth_errors(self, status: int, text: str, code: AuthErrorCode) -> None:
        brain = openclaw(Recorder(failing(status, text)))
        with pytest.raises(AuthenticationError) as exc_info:
            await collect(brain, ask())
        assert exc_info.value.code == code
        assert exc_info.value.status_code == status
        assert not exc_info.value.retryable

    @pytest.mark.parametrize(
        ("status", "text", "reason"),
        [
            (440, "", SessionErrorReason.EXPIRED),
            (400, "Session expired", SessionErrorReason.EXPIRED),
            (400, "invalid session", SessionErrorReason.INVALID),
            (404, "session not found", SessionErrorReason.NOT_FOUND),
        ],
    )
    async def test_session_errors(
        self, status: int, text: str, reason: SessionErrorReason
    ) -> None:
        brain = openclaw(Recorder(failing(status, text)))
        with pytest.raises(SessionError) as exc_info:
            await collect(brain, ask(session=INFO))
        assert exc_info.value.reason == reason
        assert exc_info.value.session_id == "RM_1:alice"

    @pytest.mark.parametrize(("status", "retryable"), [(500, True), (503, True), (429, True), (400, False)])
    async def test_other_failures(self, status: int, retryable: bool) -> None:
        brain = openclaw(Recorder(failing(status, "boom")))
        with pytest.raises(BrainError) as exc_info:
            await collect(brain, ask())
        assert not isinstance(exc_info.value, (AuthenticationError, SessionError))
        assert exc_info.value.retryable is retryable
        assert exc_info.value.backend == "openclaw"


# ---------------------------------------------------------------------------
# OpenClaw
# ---------------------------------------------------------------------------


class TestOpenClaw:
    async def test_bearer_and_session_headers(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        brain = openclaw(recorder, token="s3cret")
        brain.set_default_session(INFO)
        await collect(brain, ask())

        headers = recorder.last_headers
        assert headers["authorization"] == "Bearer s3cret"
        assert headers[SESSION_ID_HEADER] == "RM_1:alice"
        assert headers["X-OpenClaw-Room-SID"] == "RM_1"
        assert headers["X-OpenClaw-Room-Name"] == "kitchen"
        assert headers["X-OpenClaw-Participant-Identity"] == "alice"
        assert headers["X-OpenClaw-Participant-SID"] == "PA_1"
        assert recorder.last_body["session_id"] == "RM_1:alice"

    async def test_store_resolved_session_id_preferred(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        await collect(openclaw(recorder), ask(session=INFO, session_id="custom-42"))
        assert recorder.last_headers[SESSION_ID_HEADER] == "custom-42"

    async def test_no_token_no_auth_header(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        await collect(openclaw(recorder), ask())
        assert "authorization" not in recorder.last_headers

    async def test_owner_session_key(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        brain = openclaw(recorder)
        brain.set_default_session(INFO)
        brain.set_session_key(SessionKey(type=SessionKeyType.OWNER, key="main"))
        await collect(brain, ask())

        assert recorder.last_headers[SESSION_KEY_HEADER] == "main"
        assert SESSION_ID_HEADER not in recorder.last_headers
        assert recorder.last_headers["X-OpenClaw-Room-Name"] == "kitchen"
        assert "session_id" not in recorder.last_body
        assert "user" not in recorder.last_body

    async def test_guest_session_key_goes_in_user_field(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        brain = openclaw(recorder)
        brain.set_session_key(SessionKey(type=SessionKeyType.GUEST, key="guest_bob"))
        await collect(brain, ask())
        assert recorder.last_body["user"] == "guest_bob"
        assert SESSION_KEY_HEADER not in recorder.last_headers


# ---------------------------------------------------------------------------
# Nanoclaw
# ---------------------------------------------------------------------------


class TestNanoclaw:
    async def test_channel_from_identity(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        brain = nanoclaw(recorder)
        brain.set_default_session(INFO)
        await collect(brain, ask())
        assert recorder.last_headers[CHANNEL_HEADER] == "lk:alice"
        assert "authorization" not in recorder.last_headers

    async def test_channel_from_session_key(self) -> None:
        recorder = Recorder(streaming(sse_body()))
        brain = nanoclaw(recorder)
        brain.set_session_key(SessionKey(type=SessionKeyType.ROOM, key="room_kitchen"))
        await collect(brain, ask())
        assert recorder.last_headers[CHANNEL_HEADER] == "room:kitchen"

    async def test_inline_events_passed_through(self) -> None:
        status = {"type": "status", "action": "searching_files", "detail": "*.py"}
        artifact = {"type": "artifact", "artifact_type": "markdown", "content": "# Hi"}
        recorder = Recorder(streaming(sse_body(status, delta("Found it."), artifact)))
        chunks = await collect(nanoclaw(recorder), ask())
        assert chunks[0].event == status
        assert chunks[1].content == "Found it."
        assert chunks[2].event == artifact

    def test_channel_jid_priority(self) -> None:
        assert generate_channel_jid(SessionInfo(custom_session_id="c"), "x") == "x:c"
        assert (
            generate_channel_jid(SessionInfo(room_name="den", participant_sid="PA"), "lk")
            == "lk:den:PA"
        )
        assert (
            generate_channel_jid(SessionInfo(room_sid="RM", participant_sid="PA"), "lk")
            == "lk:RM:PA"
        )
        assert generate_channel_jid(SessionInfo(), "lk") == "lk:unknown"

    def test_session_key_to_channel(self) -> None:
        assert session_key_to_channel(SessionKey(type=SessionKeyType.OWNER, key="main")) == "main"
        assert (
            session_key_to_channel(SessionKey(type=SessionKeyType.GUEST, key="guest_a_b"))
            == "guest:a_b"
        )
