"""OpenClaw gateway configuration."""

from __future__ import annotations

from pydantic import BaseModel, Field, SecretStr, field_validator

from ganglia.brains._sse import validate_endpoint


class OpenClawConfig(BaseModel):
    """Configuration for the OpenClaw chat-completions gateway.

    Attributes:
        endpoint: Gateway base URL (``/v1/chat/completions`` is appended).
        token: Bearer token. Empty disables the ``Authorization`` header.
        model: Model identifier sent in each request.
        timeout: Connect/write timeout in seconds; reads never time out.
        headers: Extra headers added to every request.
    """

    endpoint: str = "http://localhost:8080"
    token: SecretStr = SecretStr("")
    model: str = "openclaw-gateway"
    timeout: float = Field(default=120.0, gt=0.0)
    headers: dict[str, str] = Field(default_factory=dict)

    @field_validator("endpoint")
    @classmethod
    def _check_endpoint(cls, v: str) -> str:
        return validate_endpoint(v)
