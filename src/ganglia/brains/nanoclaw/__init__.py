"""Nanoclaw backend."""

from ganglia.brains.nanoclaw.client import (
    NanoclawBrain,
    generate_channel_jid,
    session_key_to_channel,
)
from ganglia.brains.nanoclaw.config import NanoclawConfig

__all__ = [
    "NanoclawBrain",
    "NanoclawConfig",
    "generate_channel_jid",
    "session_key_to_channel",
]
