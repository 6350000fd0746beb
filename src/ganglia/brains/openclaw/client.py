"""OpenClaw brain: session-correlated OpenAI-compatible gateway."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ganglia.brains._sse import OpenAICompatibleBrain
from ganglia.brains.base import ChatOptions
from ganglia.brains.openclaw.config import OpenClawConfig
from ganglia.models.enums import SessionKeyType
from ganglia.models.session import SessionInfo, SessionKey
from ganglia.store.identity import OWNER_SESSION_KEY

logger = logging.getLogger("ganglia.brains.openclaw")

SESSION_ID_HEADER = "X-OpenClaw-Session-Id"
SESSION_KEY_HEADER = "x-openclaw-session-key"

_METADATA_HEADERS = (
    ("room_sid", "X-OpenClaw-Room-SID"),
    ("room_name", "X-OpenClaw-Room-Name"),
    ("participant_identity", "X-OpenClaw-Participant-Identity"),
    ("participant_sid", "X-OpenClaw-Participant-SID"),
)


def build_metadata_headers(info: SessionInfo) -> dict[str, str]:
    """Room and participant headers, without the session id."""
    headers: dict[str, str] = {}
    for attr, header in _METADATA_HEADERS:
        value = getattr(info, attr)
        if value:
            headers[header] = value
    return headers


def build_session_headers(info: SessionInfo, session_id: str | None) -> dict[str, str]:
    """Legacy correlation headers: session id plus room/participant metadata."""
    headers: dict[str, str] = {}
    if session_id:
        headers[SESSION_ID_HEADER] = session_id
    headers.update(build_metadata_headers(info))
    return headers


def apply_session_key(key: SessionKey, headers: dict[str, str], body: dict[str, Any]) -> None:
    """Route the call to the owner's main thread or a guest/room thread.

    The owner is addressed by header so the gateway can apply owner
    privileges; guests and rooms are addressed through the OpenAI
    ``user`` field.
    """
    if key.type == SessionKeyType.OWNER:
        headers[SESSION_KEY_HEADER] = OWNER_SESSION_KEY
    else:
        body["user"] = key.key


class OpenClawBrain(OpenAICompatibleBrain):
    """OpenClaw gateway client.

    Example::

        brain = OpenClawBrain(OpenClawConfig(token=SecretStr("...")))
        brain.set_default_session(SessionInfo(room_name="kitchen", participant_identity="ana"))
        async for chunk in brain.stream_chat(ChatOptions(messages=[...])):
            ...
    """

    backend_type = "openclaw"

    def __init__(self, config: OpenClawConfig, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(
            endpoint=config.endpoint,
            model=config.model,
            timeout=config.timeout,
            extra_headers=config.headers,
            client=client,
        )
        self._config = config

    def label(self) -> str:
        return "OpenClaw"

    def _build_request(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        session_id: str | None,
    ) -> tuple[dict[str, str], dict[str, Any]]:
        headers, body = super()._build_request(options, session, session_id)
        token = self._config.token.get_secret_value()
        if token:
            headers["Authorization"] = f"Bearer {token}"

        key = self.session_key
        if key is not None:
            if session is not None:
                headers.update(build_metadata_headers(session))
            apply_session_key(key, headers, body)
        elif session is not None:
            headers.update(build_session_headers(session, session_id))
            if session_id:
                body["session_id"] = session_id
        return headers, body
