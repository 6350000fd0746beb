"""Nanoclaw brain: channel-addressed local assistant with inline UI events."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from ganglia.brains._sse import OpenAICompatibleBrain
from ganglia.brains.base import ChatChunk, ChatOptions
from ganglia.brains.nanoclaw.config import NanoclawConfig
from ganglia.models.enums import SessionKeyType
from ganglia.models.session import SessionInfo, SessionKey
from ganglia.store.identity import OWNER_SESSION_KEY

logger = logging.getLogger("ganglia.brains.nanoclaw")

CHANNEL_HEADER = "X-Nanoclaw-Channel"

_PASSTHROUGH_EVENTS = frozenset({"status", "artifact"})


def session_key_to_channel(key: SessionKey) -> str:
    """``main`` for the owner; ``guest_x`` -> ``guest:x``, ``room_y`` -> ``room:y``."""
    if key.type == SessionKeyType.OWNER:
        return OWNER_SESSION_KEY
    return key.key.replace("_", ":", 1)


def generate_channel_jid(info: SessionInfo, prefix: str = "lk") -> str:
    """Channel JID for a session without a routing key.

    Priority: participant identity, custom session id, room name with
    participant sid, room sid with participant sid.
    """
    if info.participant_identity:
        return f"{prefix}:{info.participant_identity}"
    if info.custom_session_id:
        return f"{prefix}:{info.custom_session_id}"
    if info.room_name and info.participant_sid:
        return f"{prefix}:{info.room_name}:{info.participant_sid}"
    if info.room_sid and info.participant_sid:
        return f"{prefix}:{info.room_sid}:{info.participant_sid}"
    return f"{prefix}:unknown"


class NanoclawBrain(OpenAICompatibleBrain):
    """Nanoclaw client; forwards inline status/artifact events to the caller."""

    backend_type = "nanoclaw"

    def __init__(self, config: NanoclawConfig, *, client: httpx.AsyncClient | None = None) -> None:
        super().__init__(
            endpoint=config.endpoint,
            model=config.model,
            timeout=config.timeout,
            extra_headers=config.headers,
            client=client,
        )
        self._config = config

    def label(self) -> str:
        return "Nanoclaw"

    def channel_for(self, session: SessionInfo | None) -> str:
        if self.session_key is not None:
            return session_key_to_channel(self.session_key)
        if session is not None:
            return generate_channel_jid(session, self._config.channel_prefix)
        return f"{self._config.channel_prefix}:unknown"

    def _build_request(
        self,
        options: ChatOptions,
        session: SessionInfo | None,
        session_id: str | None,
    ) -> tuple[dict[str, str], dict[str, Any]]:
        headers, body = super()._build_request(options, session, session_id)
        headers[CHANNEL_HEADER] = self.channel_for(session)
        return headers, body

    def _parse_payload(self, payload: dict[str, Any]) -> ChatChunk | None:
        if payload.get("type") in _PASSTHROUGH_EVENTS:
            return ChatChunk(event=payload)
        return super()._parse_payload(payload)
