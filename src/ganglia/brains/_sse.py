"""Shared streaming client for OpenAI-compatible chat completion gateways."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import Any
from urllib.parse import urlparse

import httpx
from httpx_sse import SSEError, aconnect_sse

from ganglia.brains.base import (
    BrainClient,
    ChatChunk,
    ChatOptions,
    RequestHandle,
    ToolCallDelta,
)
from ganglia.errors import (
    AuthenticationError,
    AuthErrorCode,
    BrainError,
    SessionError,
    SessionErrorReason,
)
from ganglia.models.session import SessionInfo
from ganglia.store.identity import generate_session_id

logger = logging.getLogger("ganglia.brains")

# Non-standard status some gateways use for "login/session timeout".
SESSION_EXPIRED_STATUS = 440


def validate_endpoint(value: str) -> str:
    """Require an http(s) URL and strip any trailing slash."""
    parsed = urlparse(value)
    if parsed.scheme not in ("http", "https") or not parsed.hostname:
        raise ValueError(f"endpoint must be an http(s) URL, got {value!r}")
    return value.rstrip("/")


def error_for_status(
    status_code: int,
    body: str,
    *,
    backend: str,
    session_id: str | None = None,
) -> BrainError:
    """Map a failed HTTP response to the ganglia error taxonomy."""
    lowered = body.lower()
    detail = body.strip() or httpx.codes.get_reason_phrase(status_code)

    if status_code == 401:
        if "expired" in lowered:
            code = AuthErrorCode.TOKEN_EXPIRED
        elif "invalid" in lowered and "token" in lowered:
            code = AuthErrorCode.INVALID_TOKEN
        else:
            code = AuthErrorCode.UNAUTHORIZED
        return AuthenticationError(
            f"{backend} authentication failed: {detail}",
            code=code,
            backend=backend,
            status_code=status_code,
        )
    if status_code == 403:
        return AuthenticationError(
            f"{backend} access forbidden: {detail}",
            code=AuthErrorCode.FORBIDDEN,
            backend=backend,
            status_code=status_code,
        )

    reason: SessionErrorReason | None = None
    if status_code == SESSION_EXPIRED_STATUS or "session expired" in lowered:
        reason = SessionErrorReason.EXPIRED
    elif "invalid session" in lowered:
        reason = SessionErrorReason.INVALID
    elif status_code == 404 and "session" in lowered:
        reason = SessionErrorReason.NOT_FOUND
    if reason is not None:
        return SessionError(
            f"{backend} session {reason}: {detail}",
            reason=reason,
            session_id=session_id,
            backend=backend,
            status_code=status_code,
        )

    return BrainError(
        f"{backend} request failed ({status_code}): {detail}",
        retryable=status_code == 429 or status_code >= 500,
        backend=backend,
        status_code=status_code,
    )


def parse_completion_chunk(payload: dict[str, Any]) -> ChatChunk | None:
    """Translate one OpenAI ``chat.completion.chunk`` into a :class:`ChatChunk`.

    Returns ``None`` for role-only or empty deltas.
    """
    choices = payload.get("choices") or []
    if not choices:
        return None
    choice = choices[0]
    delta = choice.get("delta") or {}

    tool_calls: list[ToolCallDelta] = []
    for position, raw in enumerate(delta.get("tool_calls") or []):
        function = raw.get("function") or {}
        tool_calls.append(
            ToolCallDelta(
                index=raw.get("index", position),
                id=raw.get("id"),
                name=function.get("name"),
                arguments=function.get("arguments"),
            )
        )

    content = delta.get("content") or None
    finish_reason = choice.get("finish_reason")
    if content is None and not tool_calls and finish_reason is None:
        return None
    return ChatChunk(
        id=payload.get("id"),
        content=content,
        tool_calls=tool_calls,
        finish_reason=finish_reason,
    )


class OpenAICompatibleBrain(BrainClient):
    """Brain speaking ``POST /v1/chat/completions`` with SSE streaming.

    Subclasses provide the backend type, auth and correlation headers
    through :meth:`_build_request`, and may extend :meth:`_parse_payload`
    for backend-specific event lines.
    """

    backend_type: str = ""

    def __init__(
        self,
        *,
        endpoint: str,
        model: str,
        timeout: float = 120.0,
        extra_headers: dict[str, str] | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__()
        self._endpoint = endpoint.rstrip("/")
        self._model = model
        self._extra_headers = dict(extra_headers or {})
        self._owns_client = client is None
        # read=None keeps the connection open across long pauses between deltas
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout, read=None))

    def ganglia_type(self) -> str:
        return self.backend_type

    @property
    def model(self) -> str:
        return self._model

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def _session_id_for(self, options: ChatOptions, session: SessionInfo | None) -> str | None:
        if options.session_id:
            return options.session_id
        if session is None:
            return None
        try:
            return generate_session_id(session)
        except ValueError:
            return None

    def _base_body(self, options: ChatOptions) -> dict[str, Any]:
        body: dict[str, Any] = {
            "model": self._model,
            "messages": [m.to_wire() for m in options.messages],
            "stream": True,
        }
        if options.tools:
            body["tools"] = [t.to_wire() for t in options.tools]
        if options.tool_choice is not None:
            body["tool_choice"] = options.tool_choice
        return body

    def _build_request(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        session_id: str | None,
    ) -> tuple[dict[str, str], dict[str, Any]]:
        """Return ``(headers, body)`` for one call."""
        return dict(self._extra_headers), self._base_body(options)

    def _parse_payload(self, payload: dict[str, Any]) -> ChatChunk | None:
        return parse_completion_chunk(payload)

    async def _open_stream(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        handle: RequestHandle,
    ) -> AsyncIterator[ChatChunk]:
        session_id = self._session_id_for(options, session)
        headers, body = self._build_request(options, session, session_id)
        headers.setdefault("Accept", "text/event-stream")
        url = f"{self._endpoint}/v1/chat/completions"
        logger.debug(
            "%s: POST %s (request=%s, session=%s, messages=%d)",
            self.label(),
            url,
            handle.id,
            session_id,
            len(options.messages),
        )

        try:
            async with aconnect_sse(
                self._client, "POST", url, json=body, headers=headers
            ) as event_source:
                response = event_source.response
                if response.status_code >= 400:
                    await response.aread()
                    raise error_for_status(
                        response.status_code,
                        response.text,
                        backend=self.ganglia_type(),
                        session_id=session_id,
                    )

                async for sse in event_source.aiter_sse():
                    if handle.cancelled:
                        return
                    data = sse.data.strip()
                    if not data:
                        continue
                    if data == "[DONE]":
                        return
                    try:
                        payload = json.loads(data)
                    except json.JSONDecodeError:
                        logger.warning("%s: skipping malformed SSE data: %.200s", self.label(), data)
                        continue
                    if not isinstance(payload, dict):
                        continue
                    chunk = self._parse_payload(payload)
                    if chunk is not None:
                        yield chunk
        except httpx.TransportError as exc:
            raise BrainError(
                f"{self.ganglia_type()} transport error: {exc}",
                retryable=True,
                backend=self.ganglia_type(),
            ) from exc
        except SSEError as exc:
            raise BrainError(
                f"{self.ganglia_type()} returned a non-SSE response: {exc}",
                backend=self.ganglia_type(),
            ) from exc

    async def aclose(self) -> None:
        await super().aclose()
        if self._owns_client:
            await self._client.aclose()
