"""OpenClaw gateway backend."""

from ganglia.brains.openclaw.client import (
    OpenClawBrain,
    apply_session_key,
    build_metadata_headers,
    build_session_headers,
)
from ganglia.brains.openclaw.config import OpenClawConfig

__all__ = [
    "OpenClawBrain",
    "OpenClawConfig",
    "apply_session_key",
    "build_metadata_headers",
    "build_session_headers",
]
