"""Nanoclaw configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, field_validator

from ganglia.brains._sse import validate_endpoint


class NanoclawConfig(BaseModel):
    """Configuration for a Nanoclaw single-user assistant.

    Nanoclaw runs on localhost and needs no authentication; conversations
    are addressed by a channel JID instead of a session id.
    """

    endpoint: str = "http://localhost:18789"
    channel_prefix: str = "lk"
    model: str = "nanoclaw"
    timeout: float = Field(default=120.0, gt=0.0)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v: str) -> str:
        return validate_endpoint(v)
