"""Abstract base class for model clients."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Optional

from thinktank.errors import AuthenticationError, ModelError

from .types import ModelResponse

logger = logging.getLogger(__name__)


class ModelClient(ABC):
    """Abstract base class for AI model clients.

    Clients answer a single prompt with a single completion; they are used
    for short structured decisions, not for persona conversation turns.
    Subclasses provide the SDK call, response parsing and error mapping;
    ``generate`` ties them together.
    """

    # Class attributes - must be set by subclasses
    name: str  # 'claude', 'gpt'
    display_name: str
    api_key_env: str

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: Optional[str] = None,
        max_tokens: int = 300,
        temperature: float = 0.3,
    ):
        """Initialize the model client.

        Args:
            api_key: API key for the provider (falls back to the provider's env var)
            model_id: Model identifier to use
            max_tokens: Maximum tokens in response
            temperature: Temperature for generation
        """
        self.api_key = api_key or os.environ.get(self.api_key_env)
        self.model_id = model_id or self._default_model_id()
        self.max_tokens = max_tokens
        self.temperature = temperature
        # SDK client, created on first use
        self._client: Any = None

    @abstractmethod
    def _default_model_id(self) -> str:
        """Return the default model ID for this provider."""
        ...

    @abstractmethod
    def _create_sdk_client(self) -> Any:
        """Import the provider SDK and build its async client."""
        ...

    @abstractmethod
    async def _request(
        self,
        client: Any,
        prompt: str,
        system: Optional[str],
        max_tokens: int,
        temperature: float,
    ) -> Any:
        """Send one completion request with the provider SDK."""
        ...

    @abstractmethod
    def _parse_response(self, response: Any) -> ModelResponse:
        """Convert the provider response to a ModelResponse."""
        ...

    @abstractmethod
    def _translate_error(self, error: Exception) -> ModelError:
        """Map a provider SDK exception to a ModelError."""
        ...

    @property
    def is_available(self) -> bool:
        """Check if the model can be called (API key configured)."""
        return self.api_key is not None

    def _get_client(self) -> Any:
        if self._client is None:
            self._client = self._create_sdk_client()
        return self._client

    async def generate(
        self,
        prompt: str,
        system: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> ModelResponse:
        """Generate a completion for ``prompt``.

        Args:
            prompt: The user-turn prompt text
            system: System prompt
            max_tokens: Override default max tokens
            temperature: Override default temperature

        Returns:
            ModelResponse with the generated content

        Raises:
            AuthenticationError: If no API key is configured or it is rejected
            RateLimitError: If the provider rate-limits the request
            APIError: For any other provider failure
        """
        if not self.is_available:
            raise AuthenticationError(self.model_id, f"{self.display_name} API key not configured")

        try:
            response = await self._request(
                self._get_client(),
                prompt,
                system,
                max_tokens or self.max_tokens,
                self.temperature if temperature is None else temperature,
            )
        except Exception as e:
            raise self._translate_error(e) from e

        parsed = self._parse_response(response)
        logger.debug(f"{self.display_name} answered {len(parsed.content)} chars")
        return parsed

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model_id={self.model_id!r})"
