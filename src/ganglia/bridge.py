"""VoiceBridge: wires one room's transport events to per-participant orchestrators."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import StrEnum, unique
from typing import Any

from ganglia.brains.base import BrainClient
from ganglia.core.locks import SessionLockManager
from ganglia.metrics.collector import MetricsCollector
from ganglia.models.enums import SessionState
from ganglia.models.session import ManagedSession, SessionInfo
from ganglia.orchestrator.config import OrchestratorConfig
from ganglia.orchestrator.orchestrator import FatalErrorHook, TurnOrchestrator
from ganglia.sidechannel.events import Artifact, MetricsEvent, StatusEvent
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.sidechannel.receiver import SideChannelReceiver
from ganglia.store.base import SessionStore
from ganglia.store.identity import resolve_session_key_simple
from ganglia.store.memory import InMemorySessionStore
from ganglia.telemetry.base import Attr, SpanKind, TelemetryProvider
from ganglia.telemetry.config import TelemetryConfig
from ganglia.telemetry.noop import NoopTelemetryProvider
from ganglia.voice.base import TranscriptionEvent
from ganglia.voice.transport import (
    SIDE_CHANNEL_TOPIC,
    DisconnectReason,
    RoomTransport,
    disconnect_message,
    should_reconnect,
)
from ganglia.voice.tts.base import TTSProvider

logger = logging.getLogger("ganglia.bridge")

DEFAULT_HOUSEKEEPING_INTERVAL = 30.0


@unique
class _EventKind(StrEnum):
    TRANSCRIPTION = "transcription"
    VOICE_ACTIVITY = "voice_activity"
    SPEECH_END = "speech_end"
    STOP = "stop"


@dataclass
class _Participant:
    identity: str
    session_id: str
    orchestrator: TurnOrchestrator
    inbox: asyncio.Queue[tuple[_EventKind, Any]] = field(default_factory=asyncio.Queue)
    worker: asyncio.Task[None] | None = None


class VoiceBridge:
    """Room-level coordinator between the transport and the orchestration layer.

    Each participant gets one worker task draining an event inbox, so all
    turn and session mutations for that participant happen on a single
    task while different participants progress concurrently.

    Example::

        bridge = VoiceBridge(brain=brain, tts=tts, transport=transport, room_name="kitchen")
        await bridge.participant_joined(SessionInfo(participant_identity="alice"))
        await bridge.transcription("alice", TranscriptionEvent("hello there", is_final=True))
        ...
        await bridge.aclose()
    """

    def __init__(
        self,
        *,
        brain: BrainClient,
        tts: TTSProvider,
        transport: RoomTransport,
        store: SessionStore | None = None,
        room_name: str | None = None,
        room_sid: str | None = None,
        owner_identity: str | None = None,
        config: OrchestratorConfig | None = None,
        publisher: SideChannelPublisher | None = None,
        receiver: SideChannelReceiver | None = None,
        telemetry: TelemetryConfig | TelemetryProvider | None = None,
        on_fatal_error: FatalErrorHook | None = None,
    ) -> None:
        self._brain = brain
        self._tts = tts
        self._transport = transport
        self._store = store or InMemorySessionStore()
        self._room_name = room_name
        self._room_sid = room_sid
        self._owner_identity = owner_identity
        self._config = config or OrchestratorConfig()
        metric_prefix = "ganglia"
        if isinstance(telemetry, TelemetryProvider):
            self._telemetry: TelemetryProvider = telemetry
        elif isinstance(telemetry, TelemetryConfig):
            self._telemetry = telemetry.resolve_provider()
            metric_prefix = telemetry.metric_prefix
        else:
            self._telemetry = NoopTelemetryProvider()
        self._publisher = publisher or SideChannelPublisher(
            self._send_data, telemetry=self._telemetry
        )
        self._receiver = receiver or SideChannelReceiver()
        self._metrics = MetricsCollector(
            publisher=self._publisher, telemetry=self._telemetry, metric_prefix=metric_prefix
        )
        self._locks = SessionLockManager()
        self._on_fatal_error = on_fatal_error
        self._participants: dict[str, _Participant] = {}
        self._housekeeping: asyncio.Task[None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def store(self) -> SessionStore:
        return self._store

    @property
    def publisher(self) -> SideChannelPublisher:
        return self._publisher

    @property
    def receiver(self) -> SideChannelReceiver:
        return self._receiver

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    @property
    def participants(self) -> list[str]:
        return list(self._participants)

    def orchestrator_for(self, identity: str) -> TurnOrchestrator | None:
        participant = self._participants.get(identity)
        return participant.orchestrator if participant else None

    # -------------------------------------------------------------------------
    # Participant lifecycle
    # -------------------------------------------------------------------------

    async def participant_joined(self, info: SessionInfo) -> ManagedSession:
        """Resolve the participant's session and start its worker."""
        if not info.participant_identity:
            raise ValueError("participant_joined requires participant_identity")
        identity = info.participant_identity
        info = info.model_copy(
            update={
                "room_name": info.room_name or self._room_name,
                "room_sid": info.room_sid or self._room_sid,
            }
        )

        with self._telemetry.span(
            SpanKind.SESSION_RESOLVE,
            "session.resolve",
            attributes={Attr.ROOM: info.room_name or info.room_sid or ""},
        ):
            session = await self._store.resolve(info)

        existing = self._participants.get(identity)
        if existing is not None:
            logger.debug("Participant %s already joined (session %s)", identity, session.session_id)
            return session

        self._brain.set_default_session(info)
        orchestrator = TurnOrchestrator(
            brain=self._brain,
            store=self._store,
            session=session,
            tts=self._tts,
            transport=self._transport,
            publisher=self._publisher,
            metrics=self._metrics,
            locks=self._locks,
            config=self._config,
            telemetry=self._telemetry,
            on_fatal_error=self._on_fatal_error,
        )
        participant = _Participant(
            identity=identity, session_id=session.session_id, orchestrator=orchestrator
        )
        participant.worker = asyncio.create_task(
            self._run_worker(participant), name=f"ganglia-participant-{identity}"
        )
        self._participants[identity] = participant
        self._update_session_key()
        logger.info("Participant %s joined (session %s)", identity, session.session_id)
        return session

    async def participant_left(self, identity: str) -> None:
        participant = self._participants.pop(identity, None)
        if participant is None:
            logger.debug("participant_left: unknown participant %s", identity)
            return
        await self._stop_worker(participant)
        await self._store.mark_state(participant.session_id, SessionState.DISCONNECTED)
        self._update_session_key()
        logger.info("Participant %s left (session %s)", identity, participant.session_id)

    def _update_session_key(self) -> None:
        """Route the brain to the owner, guest or room thread for the current roster."""
        if not self._participants:
            return
        count = len(self._participants)
        identity = next(iter(self._participants))
        key = resolve_session_key_simple(
            identity,
            self._owner_identity,
            room_name=self._room_name or self._room_sid or "",
            participant_count=count,
        )
        self._brain.set_session_key(key)
        logger.debug("Session key for %d participant(s): %s/%s", count, key.type, key.key)

    # -------------------------------------------------------------------------
    # Per-participant events
    # -------------------------------------------------------------------------

    async def transcription(self, identity: str, event: TranscriptionEvent) -> None:
        self._enqueue(identity, _EventKind.TRANSCRIPTION, event)

    async def voice_activity(self, identity: str, *, speech_duration_ms: int = 0) -> None:
        self._enqueue(identity, _EventKind.VOICE_ACTIVITY, speech_duration_ms)

    async def speech_end(self, identity: str) -> None:
        self._enqueue(identity, _EventKind.SPEECH_END, None)

    def _enqueue(self, identity: str, kind: _EventKind, payload: Any) -> None:
        participant = self._participants.get(identity)
        if participant is None:
            logger.warning("Dropping %s for unknown participant %s", kind, identity)
            return
        participant.inbox.put_nowait((kind, payload))

    async def drain(self, identity: str | None = None) -> None:
        """Wait until queued events are handled and turns have finished."""
        targets = (
            [self._participants[identity]]
            if identity is not None and identity in self._participants
            else list(self._participants.values())
        )
        for participant in targets:
            await participant.inbox.join()
            await participant.orchestrator.wait_idle()

    async def _run_worker(self, participant: _Participant) -> None:
        orchestrator = participant.orchestrator
        while True:
            kind, payload = await participant.inbox.get()
            try:
                if kind == _EventKind.STOP:
                    break
                if kind == _EventKind.TRANSCRIPTION:
                    await self._store.touch(participant.session_id)
                    await orchestrator.on_transcription(payload)
                elif kind == _EventKind.VOICE_ACTIVITY:
                    await orchestrator.on_voice_activity(speech_duration_ms=payload)
                elif kind == _EventKind.SPEECH_END:
                    await orchestrator.on_speech_end()
            except Exception:
                logger.exception("Error handling %s for %s", kind, participant.identity)
            finally:
                participant.inbox.task_done()
        await orchestrator.aclose()

    async def _stop_worker(self, participant: _Participant) -> None:
        participant.inbox.put_nowait((_EventKind.STOP, None))
        if participant.worker is not None:
            await asyncio.gather(participant.worker, return_exceptions=True)

    # -------------------------------------------------------------------------
    # Connection events
    # -------------------------------------------------------------------------

    async def reconnecting(self) -> None:
        logger.info("Room connection lost, reconnecting")
        await self._mark_all(SessionState.RECONNECTING)

    async def reconnected(self) -> None:
        logger.info("Room connection restored")
        await self._mark_all(SessionState.ACTIVE)

    async def disconnected(self, reason: DisconnectReason) -> None:
        """Handle the end of the room connection."""
        if should_reconnect(reason):
            logger.warning("Room disconnected (%s): %s", reason, disconnect_message(reason))
            await self._mark_all(SessionState.RECONNECTING)
            return
        logger.info("Room disconnected (%s): %s", reason, disconnect_message(reason))
        participants = list(self._participants.values())
        self._participants.clear()
        for participant in participants:
            await self._stop_worker(participant)
            await self._store.mark_state(participant.session_id, SessionState.DISCONNECTED)

    async def _mark_all(self, state: SessionState) -> None:
        for participant in self._participants.values():
            await self._store.mark_state(participant.session_id, state)

    # -------------------------------------------------------------------------
    # Side channel
    # -------------------------------------------------------------------------

    async def _send_data(self, payload: bytes) -> None:
        await self._transport.publish_data(payload, topic=SIDE_CHANNEL_TOPIC, reliable=True)

    async def data_received(
        self, payload: bytes, *, topic: str | None = SIDE_CHANNEL_TOPIC
    ) -> StatusEvent | Artifact | MetricsEvent | None:
        """Feed an inbound data packet to the side-channel receiver."""
        if topic != SIDE_CHANNEL_TOPIC:
            return None
        return await self._receiver.handle_data(payload)

    # -------------------------------------------------------------------------
    # Housekeeping and shutdown
    # -------------------------------------------------------------------------

    async def housekeep(self) -> tuple[list[str], list[str]]:
        """Expire lapsed sessions and idle chunk transfers once."""
        sessions = await self._store.evict_expired()
        transfers = self._receiver.reassembler.evict_idle()
        return sessions, transfers

    async def run_housekeeping(self, interval: float = DEFAULT_HOUSEKEEPING_INTERVAL) -> None:
        """Run :meth:`housekeep` every *interval* seconds until cancelled."""
        while not self._closed:
            await asyncio.sleep(interval)
            try:
                await self.housekeep()
            except Exception:
                logger.exception("Housekeeping failed")

    def start_housekeeping(self, interval: float = DEFAULT_HOUSEKEEPING_INTERVAL) -> None:
        if self._housekeeping is None or self._housekeeping.done():
            self._housekeeping = asyncio.create_task(
                self.run_housekeeping(interval), name="ganglia-housekeeping"
            )

    async def aclose(self, *, teardown: bool = True) -> None:
        """Stop every worker; with *teardown* also drop the room's sessions."""
        if self._closed:
            return
        self._closed = True
        if self._housekeeping is not None:
            self._housekeeping.cancel()
            await asyncio.gather(self._housekeeping, return_exceptions=True)

        participants = list(self._participants.values())
        self._participants.clear()
        for participant in participants:
            await self._stop_worker(participant)
            await self._store.mark_state(participant.session_id, SessionState.DISCONNECTED)

        await self._metrics.flush()
        if teardown:
            room = self._room_sid or self._room_name
            if room:
                await self._store.remove_room(room)
            for participant in participants:
                await self._store.remove(participant.session_id)
        logger.info("Voice bridge closed (%d participant(s))", len(participants))
