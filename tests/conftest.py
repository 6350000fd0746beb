"""Shared test fixtures and helpers."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from typing import Any

import pytest

from ganglia.brains.mock import MockBrainClient, text_chunks
from ganglia.metrics.collector import MetricsCollector
from ganglia.models.session import ManagedSession, SessionInfo
from ganglia.orchestrator.config import OrchestratorConfig
from ganglia.orchestrator.orchestrator import TurnOrchestrator
from ganglia.sidechannel.events import parse_side_channel_event
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.store.memory import InMemorySessionStore
from ganglia.telemetry.mock import MockTelemetryProvider
from ganglia.voice.mock import MockTransport, MockTTSProvider


@pytest.fixture
def advance() -> Callable[[int], Coroutine[Any, Any, None]]:
    """Yield control to let pending tasks run without real delay.

    Replaces ``await asyncio.sleep(0.05)`` patterns with zero-delay
    event loop yields::

        await advance()       # 5 yields (default)
        await advance(10)     # 10 yields for heavier workloads
    """

    async def _advance(n: int = 5) -> None:
        for _ in range(n):
            await asyncio.sleep(0)

    return _advance


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def tick(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def hints() -> SessionInfo:
    return SessionInfo(room_sid="RM_1", room_name="kitchen", participant_identity="alice")


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore()


@pytest.fixture
def telemetry() -> MockTelemetryProvider:
    return MockTelemetryProvider()


@pytest.fixture
def transport() -> MockTransport:
    return MockTransport()


@pytest.fixture
def tts() -> MockTTSProvider:
    return MockTTSProvider()


def published_events(transport: MockTransport) -> list[Any]:
    """Decode every unchunked side-channel packet the transport received."""
    return [parse_side_channel_event(p.payload) for p in transport.packets]


class OrchestratorHarness:
    """Bundles an orchestrator with its recorded collaborators."""

    def __init__(
        self,
        *,
        brain: MockBrainClient,
        store: InMemorySessionStore,
        session: ManagedSession,
        tts: MockTTSProvider,
        transport: MockTransport,
        telemetry: MockTelemetryProvider,
        config: OrchestratorConfig,
    ) -> None:
        self.brain = brain
        self.store = store
        self.session = session
        self.tts = tts
        self.transport = transport
        self.telemetry = telemetry
        self.publisher = SideChannelPublisher(transport.publish_data, status_debounce=0.0)
        self.metrics = MetricsCollector(publisher=self.publisher, telemetry=telemetry)
        self.fatal_errors: list[Exception] = []
        self.orchestrator = TurnOrchestrator(
            brain=brain,
            store=store,
            session=session,
            tts=tts,
            transport=transport,
            publisher=self.publisher,
            metrics=self.metrics,
            config=config,
            telemetry=telemetry,
            on_fatal_error=self.fatal_errors.append,
        )

    @property
    def spoken(self) -> list[str]:
        return self.tts.texts

    def events(self) -> list[Any]:
        return published_events(self.transport)


@pytest.fixture
def make_harness(
    store: InMemorySessionStore,
    hints: SessionInfo,
    tts: MockTTSProvider,
    transport: MockTransport,
    telemetry: MockTelemetryProvider,
) -> Callable[..., Coroutine[Any, Any, OrchestratorHarness]]:
    async def _make(
        responses: list[Any] | None = None,
        *,
        chunk_delay: float = 0.0,
        **config: Any,
    ) -> OrchestratorHarness:
        config.setdefault("fallback_utterance", None)
        brain = MockBrainClient(
            responses or [text_chunks("It's", " sunny", " today")], chunk_delay=chunk_delay
        )
        session = await store.resolve(hints)
        return OrchestratorHarness(
            brain=brain,
            store=store,
            session=session,
            tts=tts,
            transport=transport,
            telemetry=telemetry,
            config=OrchestratorConfig(**config),
        )

    return _make
