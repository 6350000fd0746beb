"""Tests for environment-driven settings."""

from __future__ import annotations

import pytest

from ganglia.config import GangliaSettings
from ganglia.orchestrator.config import DEFAULT_FALLBACK_UTTERANCE, OrchestratorConfig
from ganglia.voice.interruption import InterruptionStrategy


class TestOrchestratorConfig:
    def test_defaults(self) -> None:
        config = OrchestratorConfig()
        assert config.speculative
        assert config.speculative_debounce == 0.35
        assert config.min_speculative_chars == 8
        assert config.turn_timeout == 30.0
        assert config.fallback_utterance == DEFAULT_FALLBACK_UTTERANCE
        assert config.retry.max_retries == 2
        assert config.interruption.strategy == InterruptionStrategy.IMMEDIATE

    def test_rejects_non_positive_timeout(self) -> None:
        with pytest.raises(ValueError):
            OrchestratorConfig(turn_timeout=0)


class TestSettingsFromEnv:
    def test_empty_environment(self) -> None:
        settings = GangliaSettings.from_env({})
        assert settings.brain.type == "openclaw"
        assert settings.owner_identity is None
        assert settings.orchestrator == OrchestratorConfig()

    def test_owner_identity(self) -> None:
        assert GangliaSettings.from_env({"FLETCHER_OWNER_IDENTITY": "ana"}).owner_identity == "ana"
        assert GangliaSettings.from_env({"GANGLIA_OWNER_IDENTITY": "bo"}).owner_identity == "bo"

    def test_orchestrator_overrides(self) -> None:
        settings = GangliaSettings.from_env(
            {
                "GANGLIA_SPECULATIVE": "off",
                "GANGLIA_TURN_TIMEOUT": "12.5",
                "GANGLIA_FALLBACK_UTTERANCE": "",
            }
        )
        assert not settings.orchestrator.speculative
        assert settings.orchestrator.turn_timeout == 12.5
        assert settings.orchestrator.fallback_utterance is None

    def test_backend_section(self) -> None:
        settings = GangliaSettings.from_env(
            {"GANGLIA_TYPE": "nanoclaw", "NANOCLAW_URL": "http://localhost:9999"}
        )
        assert settings.brain.type == "nanoclaw"
        assert settings.brain.settings()["endpoint"] == "http://localhost:9999"

    @pytest.mark.parametrize(
        ("name", "value"),
        [("GANGLIA_SPECULATIVE", "maybe"), ("GANGLIA_TURN_TIMEOUT", "soon")],
    )
    def test_invalid_values(self, name: str, value: str) -> None:
        with pytest.raises(ValueError, match=name):
            GangliaSettings.from_env({name: value})
