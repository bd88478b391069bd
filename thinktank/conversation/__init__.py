"""Conversation entities for ThinkTank."""

from .models import (
    ControlMode,
    ConversationMode,
    ConversationSnapshot,
    ExperienceLevel,
    Message,
    MessageRole,
    Persona,
    TurnStrategy,
)
from .store import InMemoryConversationStore

__all__ = [
    "ControlMode",
    "ConversationMode",
    "ConversationSnapshot",
    "ExperienceLevel",
    "InMemoryConversationStore",
    "Message",
    "MessageRole",
    "Persona",
    "TurnStrategy",
]
