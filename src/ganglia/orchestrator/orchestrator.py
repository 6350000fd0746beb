"""TurnOrchestrator: drives voice turns from transcription to synthesized speech."""

from __future__ import annotations

import asyncio
import inspect
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import aclosing
from typing import Any

from ganglia.brains.base import (
    BrainClient,
    ChatChunk,
    ChatMessage,
    ChatOptions,
    ChatStream,
    RequestHandle,
)
from ganglia.core.locks import SessionLockManager
from ganglia.core.retry import retry_with_backoff
from ganglia.errors import AuthenticationError, BrainError, SessionError, TurnTimeout
from ganglia.metrics.collector import MetricsCollector
from ganglia.models.enums import TurnOutcome, TurnState
from ganglia.models.session import ManagedSession
from ganglia.orchestrator.config import OrchestratorConfig
from ganglia.orchestrator.speculative import SpeculativeAttempt, normalize_transcript
from ganglia.orchestrator.state import Turn
from ganglia.orchestrator.tool_calls import ToolCallAccumulator
from ganglia.sidechannel.events import status_from_tool_call
from ganglia.sidechannel.publisher import SideChannelPublisher
from ganglia.sidechannel.tools import ToolCall
from ganglia.store.base import SessionStore
from ganglia.telemetry.base import Attr, SpanKind, TelemetryProvider
from ganglia.telemetry.noop import NoopTelemetryProvider
from ganglia.voice.base import TranscriptionEvent
from ganglia.voice.interruption import InterruptionHandler
from ganglia.voice.transport import RoomTransport
from ganglia.voice.tts.base import TTSProvider
from ganglia.voice.tts.sentence_splitter import SentenceChunker

logger = logging.getLogger("ganglia.orchestrator")

FatalErrorHook = Callable[[Exception], Awaitable[None] | None]


class TurnOrchestrator:
    """State machine for the voice turns of one session.

    Every entry point is called from the task that owns the session, so
    turn state is never mutated concurrently.  The backend call and
    speech synthesis run in one child task per turn, holding the
    session's lock from :class:`SessionLockManager` so turns reach the
    backend strictly one after another.  The only overlap is a
    speculative call started on a stable interim transcript, which is
    either adopted by the final transcript or cancelled before the
    replacement call starts.

    Example::

        orchestrator = TurnOrchestrator(
            brain=brain,
            store=store,
            session=await store.resolve(hints),
            tts=tts,
            transport=transport,
        )
        await orchestrator.on_voice_activity()
        await orchestrator.on_transcription(TranscriptionEvent("what's the", is_final=False))
        await orchestrator.on_transcription(TranscriptionEvent("what's the weather", is_final=True))
        await orchestrator.wait_idle()
    """

    def __init__(
        self,
        *,
        brain: BrainClient,
        store: SessionStore,
        session: ManagedSession,
        tts: TTSProvider,
        transport: RoomTransport,
        publisher: SideChannelPublisher | None = None,
        metrics: MetricsCollector | None = None,
        locks: SessionLockManager | None = None,
        config: OrchestratorConfig | None = None,
        telemetry: TelemetryProvider | None = None,
        on_fatal_error: FatalErrorHook | None = None,
    ) -> None:
        self._brain = brain
        self._store = store
        self._session_id = session.session_id
        self._hints = session.info
        self._tts = tts
        self._transport = transport
        self._publisher = publisher
        self._config = config or OrchestratorConfig()
        self._telemetry = telemetry or NoopTelemetryProvider()
        self._metrics = metrics or MetricsCollector(publisher=publisher, telemetry=self._telemetry)
        self._locks = locks or SessionLockManager()
        self._interruption = InterruptionHandler(self._config.interruption)
        self._on_fatal_error = on_fatal_error

        self._history: list[ChatMessage] = []
        self._turn: Turn | None = None
        self._generation: asyncio.Task[None] | None = None
        self._speculation: SpeculativeAttempt | None = None
        self._debounce: asyncio.Task[None] | None = None
        self._closed = False

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def session_id(self) -> str:
        return self._session_id

    @property
    def state(self) -> TurnState:
        return self._turn.state if self._turn is not None else TurnState.IDLE

    @property
    def current_turn(self) -> Turn | None:
        return self._turn

    @property
    def history(self) -> list[ChatMessage]:
        return list(self._history)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    # -------------------------------------------------------------------------
    # Transport events
    # -------------------------------------------------------------------------

    async def on_voice_activity(self, *, speech_duration_ms: int = 0) -> None:
        """The user started speaking."""
        if self._closed:
            return
        turn = self._turn
        if turn is not None and turn.is_active:
            position_ms = 0
            if turn.speaking_started_at is not None:
                position_ms = int((time.monotonic() - turn.speaking_started_at) * 1000)
            decision = self._interruption.evaluate(
                playback_position_ms=position_ms,
                speech_duration_ms=speech_duration_ms,
            )
            if not decision.should_interrupt:
                logger.debug("Not interrupting turn %s: %s", turn.turn_id, decision.reason)
                return
            await self.interrupt()
            return
        if turn is None or turn.done:
            self._open_turn()

    async def on_speech_end(self) -> None:
        turn = self._turn
        if turn is not None and turn.state in (TurnState.LISTENING, TurnState.TRANSCRIBING):
            self._metrics.mark_speech_end(turn.turn_id)

    async def on_transcription(self, event: TranscriptionEvent) -> None:
        """Handle an interim or final transcript for the current utterance."""
        if self._closed:
            return
        turn = self._turn
        if turn is None or turn.done:
            turn = self._open_turn()
        if turn.is_active:
            logger.debug(
                "Ignoring transcript while turn %s is %s: %.80s",
                turn.turn_id,
                turn.state,
                event.text,
            )
            return

        text = event.text.strip()
        if turn.state == TurnState.LISTENING and (text or event.is_final):
            turn.transition(TurnState.TRANSCRIBING)

        if not event.is_final:
            if text:
                turn.transcript = text
                await self._arm_speculation(turn, text)
            return

        self._cancel_debounce()
        self._metrics.mark_transcript_final(turn.turn_id)
        if not text:
            await self._discard_speculation("empty transcript")
            self._finish_turn(turn, TurnOutcome.NO_RESPONSE)
            return

        turn.transcript = text
        attempt = await self._take_speculation(turn, text)
        turn.transition(TurnState.GENERATING)
        self._generation = asyncio.create_task(
            self._run_turn(turn, text, attempt), name=f"ganglia-turn-{turn.turn_id}"
        )
        self._generation.add_done_callback(self._task_done)

    async def interrupt(self) -> None:
        """Cancel the current turn and start listening for the next one.

        Returns only after the turn's generation task has finished, so no
        audio from the interrupted turn can reach the transport afterwards.
        """
        turn = self._turn
        if turn is None or turn.done:
            return
        logger.info("Interrupting turn %s (%s)", turn.turn_id, turn.state)
        await self._cancel_turn(turn)
        self._finish_turn(turn, TurnOutcome.INTERRUPTED)
        if not self._closed:
            self._open_turn()

    async def wait_idle(self) -> None:
        """Wait until the current turn's generation task has finished."""
        task = self._generation
        if task is not None and not task.done():
            await asyncio.wait({task})

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        turn = self._turn
        if turn is not None and not turn.done:
            await self._cancel_turn(turn)
            self._finish_turn(turn, TurnOutcome.INTERRUPTED)
        self._cancel_debounce()
        await self._discard_speculation("closed")

    # -------------------------------------------------------------------------
    # Turn lifecycle
    # -------------------------------------------------------------------------

    def _open_turn(self) -> Turn:
        turn = Turn(session_id=self._session_id)
        self._turn = turn
        self._metrics.begin_turn(turn.turn_id, self._session_id)
        logger.debug("Turn %s opened for session %s", turn.turn_id, self._session_id)
        return turn

    def _finish_turn(self, turn: Turn, outcome: TurnOutcome) -> None:
        if turn.done:
            return
        turn.finish(outcome)
        self._metrics.finish_turn(turn.turn_id, outcome)
        logger.info("Turn %s finished: %s", turn.turn_id, outcome)

    async def _cancel_turn(self, turn: Turn) -> None:
        turn.cancel()
        self._cancel_debounce()
        await self._discard_speculation("interrupted")
        if turn.handle is not None:
            await self._brain.cancel_pending(turn.handle)

        task = self._generation
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

        try:
            await self._transport.clear_audio()
        except Exception as exc:
            logger.warning("Failed to clear queued audio: %s", exc)

    def _task_done(self, task: asyncio.Task[Any]) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Unhandled exception in turn task %s: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )

    # -------------------------------------------------------------------------
    # Speculation
    # -------------------------------------------------------------------------

    def _cancel_debounce(self) -> None:
        if self._debounce is not None and not self._debounce.done():
            self._debounce.cancel()
        self._debounce = None

    async def _arm_speculation(self, turn: Turn, text: str) -> None:
        if not self._config.speculative:
            return
        attempt = self._speculation
        if attempt is not None:
            if attempt.matches(text):
                return
            await self._discard_speculation("interim changed")

        self._cancel_debounce()
        if len(normalize_transcript(text)) < self._config.min_speculative_chars:
            return
        self._debounce = asyncio.create_task(
            self._speculate_when_stable(turn, text),
            name=f"ganglia-debounce-{turn.turn_id}",
        )

    async def _speculate_when_stable(self, turn: Turn, text: str) -> None:
        await asyncio.sleep(self._config.speculative_debounce)
        if self._turn is not turn or turn.state != TurnState.TRANSCRIBING:
            return
        if self._speculation is not None:
            return
        options = self._build_options(text)
        attempt = SpeculativeAttempt(self._brain, options, text=text)
        attempt.span_id = self._telemetry.start_span(
            SpanKind.SPECULATIVE,
            "speculative",
            attributes={Attr.TURN_ID: turn.turn_id, Attr.TURN_TEXT_LENGTH: len(text)},
            session_id=self._session_id,
        )
        attempt.start()
        turn.speculative_attempts.append(attempt)
        self._speculation = attempt
        self._metrics.record_speculation_started()
        logger.debug("Turn %s: speculative call on %r", turn.turn_id, text)

    async def _take_speculation(self, turn: Turn, text: str) -> SpeculativeAttempt | None:
        """Adopt the speculative attempt if it answers *text*, else discard it."""
        attempt = self._speculation
        if attempt is None:
            return None
        if not attempt.matches(text):
            await self._discard_speculation("final transcript differs")
            return None
        if attempt.failed and not isinstance(attempt.error, AuthenticationError):
            await self._discard_speculation("speculative call failed")
            return None

        self._speculation = None
        turn.handle = attempt.handle
        self._metrics.record_speculation_used(turn.turn_id)
        if attempt.span_id is not None:
            self._telemetry.end_span(attempt.span_id, attributes={"adopted": True})
        logger.debug("Turn %s: adopted speculative call %s", turn.turn_id, attempt.handle.id)
        return attempt

    async def _discard_speculation(self, reason: str) -> None:
        attempt = self._speculation
        if attempt is None:
            return
        self._speculation = None
        await attempt.discard()
        self._metrics.record_speculation_discarded(reason)
        if attempt.span_id is not None:
            self._telemetry.end_span(attempt.span_id, attributes={"adopted": False})
        logger.debug("Discarded speculative call %s: %s", attempt.handle.id, reason)

    # -------------------------------------------------------------------------
    # Generation
    # -------------------------------------------------------------------------

    def _build_options(self, text: str) -> ChatOptions:
        messages: list[ChatMessage] = []
        if self._config.system_prompt:
            messages.append(ChatMessage(role="system", content=self._config.system_prompt))
        if self._config.max_history:
            messages.extend(self._history[-self._config.max_history :])
        messages.append(ChatMessage(role="user", content=text))
        return ChatOptions(
            messages=messages,
            session=self._hints,
            session_id=self._session_id,
            handle=RequestHandle(),
        )

    async def _run_turn(self, turn: Turn, text: str, attempt: SpeculativeAttempt | None) -> None:
        span_id = self._telemetry.start_span(
            SpanKind.TURN,
            "turn",
            attributes={
                Attr.TURN_ID: turn.turn_id,
                Attr.BACKEND: self._brain.ganglia_type(),
                Attr.MODEL: self._brain.model,
                Attr.TURN_SPECULATIVE: attempt is not None,
            },
            session_id=self._session_id,
        )
        try:
            outcome = await self._execute(turn, text, attempt)
        except asyncio.CancelledError:
            self._telemetry.end_span(
                span_id, attributes={Attr.TURN_OUTCOME: str(TurnOutcome.INTERRUPTED)}
            )
            raise
        except AuthenticationError as exc:
            logger.error("Backend authentication failed (%s): %s", exc.code, exc)
            await self._notify_fatal(exc)
            outcome = TurnOutcome.FAILED
        except TurnTimeout as exc:
            logger.warning("Turn %s timed out: %s", turn.turn_id, exc)
            outcome = TurnOutcome.TIMED_OUT
        except BrainError as exc:
            logger.error("Turn %s failed: %s", turn.turn_id, exc)
            outcome = TurnOutcome.FAILED
        except Exception:
            logger.exception("Turn %s failed unexpectedly", turn.turn_id)
            outcome = TurnOutcome.FAILED

        if outcome in (TurnOutcome.FAILED, TurnOutcome.TIMED_OUT):
            await self._speak_fallback(turn)

        self._telemetry.end_span(
            span_id,
            status="ok" if outcome != TurnOutcome.FAILED else "error",
            attributes={
                Attr.TURN_OUTCOME: str(outcome),
                Attr.BRAIN_CONTENT_LENGTH: len(turn.response_text),
            },
        )
        self._finish_turn(turn, outcome)

    async def _execute(
        self, turn: Turn, text: str, attempt: SpeculativeAttempt | None
    ) -> TurnOutcome:
        async with self._locks.locked(self._session_id):
            await self._store.begin_turn(self._session_id)
            try:
                try:
                    async with asyncio.timeout(self._config.turn_timeout):
                        await self._generate(turn, text, attempt)
                except TimeoutError:
                    raise TurnTimeout("turn", self._config.turn_timeout) from None

                if turn.cancelled:
                    return TurnOutcome.INTERRUPTED
                await self._store.record_request(self._session_id)
            finally:
                await self._store.end_turn(self._session_id)

        self._remember(text, turn.response_text)
        return TurnOutcome.COMPLETED if turn.response_text else TurnOutcome.NO_RESPONSE

    def _remember(self, text: str, response: str) -> None:
        self._history.append(ChatMessage(role="user", content=text))
        if response:
            self._history.append(ChatMessage(role="assistant", content=response))
        limit = self._config.max_history
        if limit and len(self._history) > limit:
            del self._history[:-limit]

    async def _generate(self, turn: Turn, text: str, attempt: SpeculativeAttempt | None) -> None:
        chunker = SentenceChunker(self._config.min_sentence_chars)
        sentences: asyncio.Queue[str | None] = asyncio.Queue()
        speaker = asyncio.create_task(
            self._speak(turn, sentences), name=f"ganglia-speak-{turn.turn_id}"
        )
        tool_calls = ToolCallAccumulator()
        parts: list[str] = []
        try:
            async with aclosing(self._response_chunks(turn, text, attempt)) as chunks:
                async for chunk in chunks:
                    if turn.cancelled or speaker.done():
                        break
                    if chunk.event is not None:
                        await self._publish(chunk.event)
                    for call in tool_calls.add(chunk):
                        await self._publish_tool_status(call)
                    if not chunk.content:
                        continue
                    if not parts:
                        self._metrics.mark_first_delta(turn.turn_id)
                        turn.transition(TurnState.SPEAKING)
                    parts.append(chunk.content)
                    for sentence in chunker.push(chunk.content):
                        sentences.put_nowait(sentence)

            for call in tool_calls.finish():
                await self._publish_tool_status(call)
            for sentence in chunker.flush():
                sentences.put_nowait(sentence)
            sentences.put_nowait(None)
            await speaker
        finally:
            turn.response_text = "".join(parts)
            if not speaker.done():
                speaker.cancel()
                await asyncio.gather(speaker, return_exceptions=True)

    async def _response_chunks(
        self, turn: Turn, text: str, attempt: SpeculativeAttempt | None
    ) -> AsyncIterator[ChatChunk]:
        if attempt is not None:
            if attempt.first_delta_at is not None:
                self._metrics.mark_first_delta(turn.turn_id, at=attempt.first_delta_at)
            try:
                async with aclosing(attempt.chunks()) as buffered:
                    async for chunk in buffered:
                        yield chunk
                return
            except AuthenticationError:
                raise
            except BrainError as exc:
                if attempt.chunk_count:
                    raise
                logger.warning(
                    "Turn %s: speculative call failed before any output (%s); calling again",
                    turn.turn_id,
                    exc,
                )
            finally:
                await attempt.cancel()

        stream, first = await self._open_stream(turn, text)
        async with stream:
            if first is None:
                return
            yield first
            async for chunk in stream:
                yield chunk

    async def _open_stream(self, turn: Turn, text: str) -> tuple[ChatStream, ChatChunk | None]:
        """Start the call and read its first chunk, retrying transient failures."""

        async def attempt_once() -> tuple[ChatStream, ChatChunk | None]:
            options = self._build_options(text)
            turn.handle = options.handle
            stream = self._brain.stream_chat(options)
            try:
                first = await anext(stream, None)
            except BaseException:
                await stream.aclose()
                raise
            return stream, first

        try:
            return await retry_with_backoff(attempt_once, self._config.retry)
        except SessionError as exc:
            logger.warning(
                "Session %s rejected by %s (%s); re-resolving and retrying once",
                self._session_id,
                exc.backend or self._brain.ganglia_type(),
                exc.reason,
            )
            session = await self._store.resolve(self._hints)
            self._session_id = session.session_id
            return await attempt_once()

    async def _speak(self, turn: Turn, sentences: asyncio.Queue[str | None]) -> None:
        while True:
            sentence = await sentences.get()
            if sentence is None or turn.cancelled:
                return
            await self._synthesize(turn, sentence)

    async def _synthesize(self, turn: Turn, sentence: str) -> None:
        timeout = self._config.synthesis_timeout
        try:
            async with asyncio.timeout(timeout):
                stream = self._tts.synthesize_stream(sentence, voice=self._config.voice)
                try:
                    async for audio in stream:
                        # Checked before every frame: nothing leaves after an interrupt.
                        if turn.cancelled:
                            return
                        self._metrics.mark_first_audio(turn.turn_id)
                        await self._transport.send_audio(audio)
                finally:
                    aclose = getattr(stream, "aclose", None)
                    if aclose is not None:
                        await aclose()
        except TimeoutError:
            raise TurnTimeout("synthesis", timeout) from None

    async def _speak_fallback(self, turn: Turn) -> None:
        utterance = self._config.fallback_utterance
        if not utterance or turn.cancelled:
            return
        if turn.state == TurnState.GENERATING:
            turn.transition(TurnState.SPEAKING)
        try:
            await self._synthesize(turn, utterance)
        except Exception as exc:
            logger.warning("Failed to speak fallback utterance: %s", exc)

    # -------------------------------------------------------------------------
    # Side channel
    # -------------------------------------------------------------------------

    async def _publish(self, event: Any) -> None:
        if self._publisher is not None:
            await self._publisher.publish(event)

    async def _publish_tool_status(self, call: ToolCall) -> None:
        logger.debug("Tool call %s(%s)", call.name, call.args)
        await self._publish(status_from_tool_call(call.name, call.args))

    async def _notify_fatal(self, exc: Exception) -> None:
        if self._on_fatal_error is None:
            return
        try:
            result = self._on_fatal_error(exc)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("on_fatal_error hook failed")
