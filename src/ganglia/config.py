"""Environment-driven settings for a ganglia deployment."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from ganglia.brains.registry import BrainConfig, brain_config_from_env
from ganglia.orchestrator.config import OrchestratorConfig

logger = logging.getLogger("ganglia.config")

_TRUE = frozenset({"1", "true", "yes", "on"})
_FALSE = frozenset({"0", "false", "no", "off"})


def _parse_bool(name: str, value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE:
        return True
    if lowered in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean, got {value!r}")


class GangliaSettings(BaseModel):
    """Top-level settings: backend selection, owner identity and turn tuning."""

    brain: BrainConfig
    owner_identity: str | None = None
    """Participant identity treated as the device owner for session routing."""
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GangliaSettings:
        """Read settings from the environment.

        Recognised variables, beyond those of
        :func:`~ganglia.brains.registry.brain_config_from_env`:

        - ``FLETCHER_OWNER_IDENTITY`` / ``GANGLIA_OWNER_IDENTITY``
        - ``GANGLIA_SPECULATIVE`` (boolean)
        - ``GANGLIA_TURN_TIMEOUT`` (seconds)
        - ``GANGLIA_FALLBACK_UTTERANCE`` (empty string disables it)

        Raises:
            ValueError: If a variable has an unparseable value.
        """
        env = os.environ if environ is None else environ

        overrides: dict[str, Any] = {}
        if "GANGLIA_SPECULATIVE" in env:
            overrides["speculative"] = _parse_bool("GANGLIA_SPECULATIVE", env["GANGLIA_SPECULATIVE"])
        if env.get("GANGLIA_TURN_TIMEOUT"):
            try:
                overrides["turn_timeout"] = float(env["GANGLIA_TURN_TIMEOUT"])
            except ValueError as exc:
                raise ValueError(
                    f"GANGLIA_TURN_TIMEOUT must be a number, got {env['GANGLIA_TURN_TIMEOUT']!r}"
                ) from exc
        if "GANGLIA_FALLBACK_UTTERANCE" in env:
            overrides["fallback_utterance"] = env["GANGLIA_FALLBACK_UTTERANCE"] or None

        owner = env.get("FLETCHER_OWNER_IDENTITY") or env.get("GANGLIA_OWNER_IDENTITY") or None
        settings = cls(
            brain=brain_config_from_env(env),
            owner_identity=owner,
            orchestrator=OrchestratorConfig.model_validate(overrides),
        )
        logger.debug(
            "Loaded settings: brain=%s owner=%s speculative=%s",
            settings.brain.type,
            "set" if owner else "unset",
            settings.orchestrator.speculative,
        )
        return settings
