"""Per-conversation orchestration state.

The engine keeps one ConversationOrchestrationState per attached
conversation. Nothing in here is persisted; a reset simply forgets it.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterator, Optional

from thinktank.errors import UnknownConversationError

from .events import LoopState, TurnDecision


@dataclass
class ConversationOrchestrationState:
    """Mutable state the engine keeps for one conversation.

    Attributes:
        conversation_id: Conversation this state belongs to
        last_speaker_id: Persona chosen by the latest accepted decision
        turn_counts: Accepted decisions per persona id
        decisions: Total accepted decisions
        last_decision: Latest accepted decision
        cancel_requested: Set when the running auto-run should stop
        running: True while an auto-run loop owns the conversation
        task: The auto-run task, if one is running
        phase: Where the auto-run loop currently is
    """

    conversation_id: str
    last_speaker_id: Optional[str] = None
    turn_counts: dict[str, int] = field(default_factory=dict)
    decisions: int = 0
    last_decision: Optional[TurnDecision] = None
    cancel_requested: bool = False
    running: bool = False
    task: Optional[asyncio.Task] = None
    phase: LoopState = LoopState.IDLE
    attached_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def record(self, decision: TurnDecision) -> None:
        """Apply an accepted decision."""
        if decision.is_empty:
            return
        self.last_speaker_id = decision.persona_id
        self.turn_counts[decision.persona_id] = self.turn_counts.get(decision.persona_id, 0) + 1
        self.decisions += 1
        self.last_decision = decision

    def request_cancel(self) -> None:
        self.cancel_requested = True


class StateRegistry:
    """Orchestration states keyed by conversation id."""

    def __init__(self) -> None:
        self._states: dict[str, ConversationOrchestrationState] = {}

    def attach(self, conversation_id: str) -> ConversationOrchestrationState:
        """Get the state for a conversation, creating it if needed."""
        state = self._states.get(conversation_id)
        if state is None:
            state = ConversationOrchestrationState(conversation_id=conversation_id)
            self._states[conversation_id] = state
        return state

    def get(self, conversation_id: str) -> ConversationOrchestrationState:
        """Get the state of an attached conversation.

        Raises:
            UnknownConversationError: If the conversation is not attached
        """
        try:
            return self._states[conversation_id]
        except KeyError:
            raise UnknownConversationError(conversation_id) from None

    def detach(self, conversation_id: str) -> Optional[ConversationOrchestrationState]:
        return self._states.pop(conversation_id, None)

    def clear(self) -> list[ConversationOrchestrationState]:
        states = list(self._states.values())
        self._states.clear()
        return states

    def __contains__(self, conversation_id: object) -> bool:
        return conversation_id in self._states

    def __iter__(self) -> Iterator[ConversationOrchestrationState]:
        return iter(list(self._states.values()))

    def __len__(self) -> int:
        return len(self._states)
