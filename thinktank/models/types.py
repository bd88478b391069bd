"""Provider-neutral request and response types for model clients."""

from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class Usage:
    """Token usage information."""

    prompt_tokens: int = 0
    completion_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens


@dataclass
class ModelResponse:
    """Response from an AI model."""

    content: str
    model: str
    usage: Optional[Usage] = None
    raw_response: Optional[Any] = None  # Original provider response for debugging

    @property
    def is_empty(self) -> bool:
        return not self.content.strip()
