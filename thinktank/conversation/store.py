"""In-memory conversation store.

Implements the ConversationSource interface over plain dictionaries. Real
deployments keep conversations in their own database; this store backs the
CLI simulator and the test-suite.
"""

import logging
from typing import Optional

from thinktank.collaborators import ConversationSource
from thinktank.errors import UnknownConversationError

from .models import (
    ControlMode,
    ConversationMode,
    ConversationSnapshot,
    Message,
    Persona,
    TurnStrategy,
)

logger = logging.getLogger(__name__)


class InMemoryConversationStore(ConversationSource):
    """Keeps conversations, their rosters and message logs in memory."""

    def __init__(self) -> None:
        self._conversations: dict[str, ConversationSnapshot] = {}

    def create(
        self,
        conversation_id: str,
        personas: list[Persona],
        mode: ConversationMode = "discussion",
        control: ControlMode = "auto",
        strategy: TurnStrategy = "intelligent",
        speed: int = 5,
        user_id: Optional[str] = None,
        messages: Optional[list[Message]] = None,
    ) -> ConversationSnapshot:
        """Register a new conversation.

        Returns:
            The stored snapshot
        """
        snapshot = ConversationSnapshot(
            conversation_id=conversation_id,
            user_id=user_id,
            personas=list(personas),
            messages=list(messages or []),
            mode=mode,
            control=control,
            strategy=strategy,
            speed=speed,
        )
        self._conversations[conversation_id] = snapshot
        logger.debug(f"Created conversation {conversation_id} with {len(personas)} personas")
        return snapshot

    def _get(self, conversation_id: str) -> ConversationSnapshot:
        try:
            return self._conversations[conversation_id]
        except KeyError:
            raise UnknownConversationError(conversation_id) from None

    def __contains__(self, conversation_id: str) -> bool:
        return conversation_id in self._conversations

    async def load(self, conversation_id: str) -> ConversationSnapshot:
        # Callers get a copy so the live log stays append-only
        return self._get(conversation_id).model_copy(deep=True)

    def add_message(self, conversation_id: str, message: Message) -> Message:
        """Append a message to a conversation's log."""
        self._get(conversation_id).messages.append(message)
        return message

    def messages(self, conversation_id: str) -> list[Message]:
        return list(self._get(conversation_id).messages)

    def set_control(self, conversation_id: str, control: ControlMode) -> None:
        self._get(conversation_id).control = control

    def set_speed(self, conversation_id: str, speed: int) -> None:
        self._get(conversation_id).speed = speed

    def deactivate_persona(self, conversation_id: str, persona_id: str) -> None:
        """Soft-deactivate a persona; its history stays in the log."""
        for persona in self._get(conversation_id).personas:
            if persona.id == persona_id:
                persona.is_active = False

    def end(self, conversation_id: str) -> None:
        """Mark a conversation as ended."""
        self._get(conversation_id).is_active = False

    def delete(self, conversation_id: str) -> None:
        self._conversations.pop(conversation_id, None)
