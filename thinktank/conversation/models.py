"""Data models for conversation entities."""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Type aliases for the tagged conversation settings
ConversationMode = Literal["debate", "ideation", "refinement", "planning", "discussion"]
ControlMode = Literal["auto", "manual"]
TurnStrategy = Literal["intelligent", "round-robin", "random"]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MessageRole(str, Enum):
    """Role of a message sender."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ExperienceLevel(str, Enum):
    """How experienced a persona is in its role."""

    MASTERY = "Mastery"
    SENIOR = "Senior"
    ENTRY = "Entry"
    LIMITED = "Limited"
    NONE = "None"


class Persona(BaseModel):
    """A configured AI participant in a conversation.

    ``provider`` and ``model`` are carried through for the Response Generator;
    the orchestration engine never inspects them.
    """

    id: str
    name: str
    role: str = ""
    background: str = ""
    personality: str = ""
    experience_level: Optional[ExperienceLevel] = None
    attitude: str = ""
    expertise: list[str] = Field(default_factory=list)
    provider: Optional[str] = None
    model: Optional[str] = None
    is_active: bool = True
    # Usage counters maintained by the host application
    total_messages: int = 0
    total_tokens: int = 0

    @field_validator("id", "name")
    @classmethod
    def validate_not_empty(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("must not be empty")
        return v

    @property
    def display_role(self) -> str:
        """Role label for prompts, with a neutral default."""
        return self.role or "Participant"


class Message(BaseModel):
    """A message in a conversation."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    role: MessageRole
    content: str
    persona_id: Optional[str] = None  # Author persona for assistant messages
    created_at: datetime = Field(default_factory=_utcnow)

    @classmethod
    def user(cls, content: str) -> "Message":
        """Create a user message."""
        return cls(role=MessageRole.USER, content=content)

    @classmethod
    def assistant(cls, content: str, persona_id: Optional[str] = None) -> "Message":
        """Create an assistant message authored by a persona."""
        return cls(role=MessageRole.ASSISTANT, content=content, persona_id=persona_id)

    @classmethod
    def system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role=MessageRole.SYSTEM, content=content)

    @property
    def is_user_message(self) -> bool:
        """Check if this is a user message."""
        return self.role == MessageRole.USER

    @property
    def is_persona_message(self) -> bool:
        """Check if this is an assistant message attributed to a persona."""
        return self.role == MessageRole.ASSISTANT and bool(self.persona_id)


class ConversationSnapshot(BaseModel):
    """Everything the auto-run loop needs to know before one decision."""

    conversation_id: str
    user_id: Optional[str] = None
    personas: list[Persona] = Field(default_factory=list)
    messages: list[Message] = Field(default_factory=list)
    mode: ConversationMode = "discussion"
    control: ControlMode = "auto"
    strategy: TurnStrategy = "intelligent"
    speed: int = Field(default=5, ge=1, le=10)
    is_active: bool = True

    @property
    def active_personas(self) -> list[Persona]:
        """Personas that can currently be chosen to speak."""
        return [p for p in self.personas if p.is_active]

    @property
    def message_count(self) -> int:
        return len(self.messages)
