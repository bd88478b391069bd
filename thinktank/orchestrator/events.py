"""Orchestrator decision and event types.

TurnDecision is the output of every speaker decision. LoopEvent values are
emitted by the auto-run loop to communicate state changes to the host.
"""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Literal, Optional

from thinktank.conversation.models import Message
from thinktank.errors import LoopFailure

# Which path produced a decision
DecisionSource = Literal["reasoning", "fallback", "weighted", "round-robin", "random", "manual"]


@dataclass(frozen=True)
class TurnFactors:
    """The four per-persona factors, each in [0, 1]."""

    relevance: float = 0.0
    expertise: float = 0.0
    participation_balance: float = 0.0
    flow: float = 0.0

    def as_dict(self) -> dict[str, float]:
        return {
            "relevance": self.relevance,
            "expertise": self.expertise,
            "participation_balance": self.participation_balance,
            "flow": self.flow,
        }


@dataclass
class TurnDecision:
    """Result of deciding who speaks next."""

    persona_id: str
    reasoning: str
    priority_score: float
    factors: TurnFactors = field(default_factory=TurnFactors)
    source: DecisionSource = "weighted"

    @property
    def is_empty(self) -> bool:
        """True when no persona was chosen (manual mode)."""
        return not self.persona_id

    @classmethod
    def manual(cls) -> "TurnDecision":
        """Create the no-op decision returned in manual mode."""
        return cls(
            persona_id="",
            reasoning="Manual mode - user will select the next speaker",
            priority_score=0.0,
            source="manual",
        )


class LoopState(Enum):
    """States of the auto-run loop."""

    IDLE = auto()
    AWAITING_DECISION = auto()
    GENERATING = auto()
    PACING = auto()
    STOPPED = auto()


class StopReason(str, Enum):
    """Why an auto-run loop stopped."""

    CANCELLED = "cancelled"
    CONVERSATION_ENDED = "conversation_ended"
    CEILING_REACHED = "ceiling_reached"
    MANUAL_MODE = "manual_mode"
    NO_PERSONAS = "no_personas"
    BUDGET_EXHAUSTED = "budget_exhausted"
    GENERATION_FAILED = "generation_failed"

    @property
    def is_failure(self) -> bool:
        return self in (StopReason.BUDGET_EXHAUSTED, StopReason.GENERATION_FAILED)


class LoopEventType(Enum):
    """Types of events emitted by the auto-run loop."""

    DECISION = auto()  # A speaker was chosen
    GENERATING = auto()  # Response generation started
    MESSAGE = auto()  # Generated message persisted
    PACING = auto()  # Waiting before the next decision
    STOPPED = auto()  # Loop reached a terminal state


@dataclass
class LoopEvent:
    """Event emitted by the auto-run loop.

    The type field determines which other fields are populated:
    - DECISION: decision
    - GENERATING: persona_id
    - MESSAGE: persona_id, message
    - PACING: delay_ms
    - STOPPED: stop_reason, error (optional)
    """

    type: LoopEventType
    conversation_id: str
    persona_id: Optional[str] = None
    decision: Optional[TurnDecision] = None
    message: Optional[Message] = None
    delay_ms: Optional[int] = None
    stop_reason: Optional[StopReason] = None
    error: Optional[LoopFailure] = None

    @classmethod
    def decided(cls, conversation_id: str, decision: TurnDecision) -> "LoopEvent":
        return cls(
            type=LoopEventType.DECISION,
            conversation_id=conversation_id,
            persona_id=decision.persona_id,
            decision=decision,
        )

    @classmethod
    def generating(cls, conversation_id: str, persona_id: str) -> "LoopEvent":
        return cls(type=LoopEventType.GENERATING, conversation_id=conversation_id, persona_id=persona_id)

    @classmethod
    def message_ready(cls, conversation_id: str, message: Message) -> "LoopEvent":
        return cls(
            type=LoopEventType.MESSAGE,
            conversation_id=conversation_id,
            persona_id=message.persona_id,
            message=message,
        )

    @classmethod
    def pacing(cls, conversation_id: str, delay_ms: int) -> "LoopEvent":
        return cls(type=LoopEventType.PACING, conversation_id=conversation_id, delay_ms=delay_ms)

    @classmethod
    def stopped(
        cls,
        conversation_id: str,
        reason: StopReason,
        error: Optional[LoopFailure] = None,
    ) -> "LoopEvent":
        return cls(
            type=LoopEventType.STOPPED,
            conversation_id=conversation_id,
            stop_reason=reason,
            error=error,
        )


@dataclass
class AutoRunResult:
    """Terminal status of one auto-run."""

    conversation_id: str
    stop_reason: StopReason
    generated: int = 0
    last_decision: Optional[TurnDecision] = None
    error: Optional[LoopFailure] = None

    @property
    def failed(self) -> bool:
        return self.stop_reason.is_failure
