"""Turn state machine."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from ganglia.errors import InvalidTurnTransition
from ganglia.models.enums import TurnOutcome, TurnState

if TYPE_CHECKING:
    from ganglia.brains.base import RequestHandle
    from ganglia.orchestrator.speculative import SpeculativeAttempt

logger = logging.getLogger("ganglia.orchestrator")

TURN_TRANSITIONS: dict[TurnState, frozenset[TurnState]] = {
    TurnState.LISTENING: frozenset({TurnState.TRANSCRIBING, TurnState.IDLE}),
    TurnState.TRANSCRIBING: frozenset({TurnState.GENERATING, TurnState.IDLE}),
    TurnState.GENERATING: frozenset({TurnState.SPEAKING, TurnState.IDLE}),
    TurnState.SPEAKING: frozenset({TurnState.IDLE}),
    TurnState.IDLE: frozenset(),
}

ACTIVE_STATES = frozenset({TurnState.GENERATING, TurnState.SPEAKING})


@dataclass
class Turn:
    """One user utterance through to one agent utterance.

    ``state`` only changes through :meth:`transition`; ``idle`` is
    terminal and a new turn is created for the next utterance.
    """

    session_id: str
    turn_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])
    state: TurnState = TurnState.LISTENING
    outcome: TurnOutcome | None = None
    transcript: str = ""
    response_text: str = ""
    handle: RequestHandle | None = None
    speculative_attempts: list[SpeculativeAttempt] = field(default_factory=list)
    created_at: float = field(default_factory=time.monotonic)
    speaking_started_at: float | None = None
    _cancel: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    @property
    def done(self) -> bool:
        return self.state == TurnState.IDLE

    @property
    def is_active(self) -> bool:
        """True while the agent is generating or speaking."""
        return self.state in ACTIVE_STATES

    def cancel(self) -> None:
        self._cancel.set()

    async def wait_cancelled(self) -> None:
        await self._cancel.wait()

    def transition(self, new_state: TurnState) -> None:
        if new_state not in TURN_TRANSITIONS[self.state]:
            raise InvalidTurnTransition(
                f"Turn {self.turn_id}: cannot go from {self.state} to {new_state}"
            )
        logger.debug("Turn %s: %s -> %s", self.turn_id, self.state, new_state)
        if new_state == TurnState.SPEAKING:
            self.speaking_started_at = time.monotonic()
        self.state = new_state

    def finish(self, outcome: TurnOutcome) -> None:
        """Record *outcome* and move to idle."""
        self.outcome = outcome
        if self.state != TurnState.IDLE:
            self.transition(TurnState.IDLE)
