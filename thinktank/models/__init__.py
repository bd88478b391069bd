"""Model clients used as reasoning backends."""

from typing import Optional, Type

from thinktank.config import Settings, get_settings
from thinktank.errors import MissingAPIKeyError

from .base import ModelClient
from .claude import ClaudeClient
from .gpt import GPTClient
from .types import ModelResponse, Usage

# Registry mapping provider names to client classes
MODEL_CLIENTS: dict[str, Type[ModelClient]] = {
    "claude": ClaudeClient,
    "gpt": GPTClient,
}


def get_client(
    name: str,
    api_key: Optional[str] = None,
    model_id: Optional[str] = None,
    max_tokens: Optional[int] = None,
    temperature: Optional[float] = None,
) -> ModelClient:
    """Create a model client by name.

    Args:
        name: Provider name ('claude', 'gpt')
        api_key: Optional API key (falls back to environment variable)
        model_id: Optional model ID (uses default if not provided)
        max_tokens: Optional max tokens
        temperature: Optional temperature

    Returns:
        Initialized ModelClient instance

    Raises:
        ValueError: If the provider name is not recognized
    """
    if name not in MODEL_CLIENTS:
        raise ValueError(
            f"Unknown model: {name}. Available models: {list(MODEL_CLIENTS.keys())}"
        )

    kwargs = {}
    if api_key is not None:
        kwargs["api_key"] = api_key
    if model_id is not None:
        kwargs["model_id"] = model_id
    if max_tokens is not None:
        kwargs["max_tokens"] = max_tokens
    if temperature is not None:
        kwargs["temperature"] = temperature

    return MODEL_CLIENTS[name](**kwargs)


def get_reasoning_client(settings: Optional[Settings] = None) -> ModelClient:
    """Create the client configured for delegated speaker decisions.

    Raises:
        MissingAPIKeyError: If the configured provider has no API key
    """
    if settings is None:
        settings = get_settings()

    reasoning = settings.reasoning
    api_key = settings.api_key_for(reasoning.provider)
    if api_key is None:
        raise MissingAPIKeyError(reasoning.provider)

    return get_client(
        name=reasoning.provider,
        api_key=api_key,
        model_id=reasoning.model_id,
        max_tokens=reasoning.max_tokens,
        temperature=reasoning.temperature,
    )


__all__ = [
    "ClaudeClient",
    "GPTClient",
    "MODEL_CLIENTS",
    "ModelClient",
    "ModelResponse",
    "Usage",
    "get_client",
    "get_reasoning_client",
]
