"""Interfaces of the external collaborators the engine consumes.

The orchestration engine owns no persistence, billing or text generation.
The host application plugs those in by implementing these interfaces:

- ConversationSource: reads the latest conversation snapshot
- ResponseGenerator: produces and persists one persona message
- BudgetOracle: approves or denies the next turn's spend
- ReasoningBackend: answers a structured "who speaks next?" prompt
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, Optional

if TYPE_CHECKING:
    from thinktank.conversation.models import ConversationSnapshot, Message

# Sink for streamed response text
StreamCallback = Callable[[str], None]


@dataclass(frozen=True)
class BudgetCheck:
    """Answer from a Budget Oracle."""

    allowed: bool
    reason: Optional[str] = None

    @classmethod
    def allow(cls) -> "BudgetCheck":
        return cls(allowed=True)

    @classmethod
    def deny(cls, reason: str) -> "BudgetCheck":
        return cls(allowed=False, reason=reason)


class BudgetOracle(ABC):
    """Decides whether a user may spend on another generated message."""

    @abstractmethod
    async def check_budget(self, user_id: Optional[str], estimated_cost: float) -> BudgetCheck:
        """Check whether ``estimated_cost`` may be spent for ``user_id``."""
        ...


class UnlimitedBudget(BudgetOracle):
    """Budget oracle that never refuses. Used when the host supplies none."""

    async def check_budget(self, user_id: Optional[str], estimated_cost: float) -> BudgetCheck:
        return BudgetCheck.allow()


class ResponseGenerator(ABC):
    """Generates, persists and returns the next message for a persona."""

    @abstractmethod
    async def generate(
        self,
        conversation_id: str,
        persona_id: str,
        on_stream_chunk: Optional[StreamCallback] = None,
    ) -> Message:
        ...


class ReasoningBackend(ABC):
    """Generative service asked for a structured speaker decision."""

    @abstractmethod
    async def invoke(self, prompt: str) -> str:
        """Return the raw text answer for ``prompt``."""
        ...


class ConversationSource(ABC):
    """Read access to the live state of a conversation."""

    @abstractmethod
    async def load(self, conversation_id: str) -> ConversationSnapshot:
        ...
