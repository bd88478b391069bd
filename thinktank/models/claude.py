"""Claude (Anthropic) model client implementation."""

from typing import Any, Optional

from thinktank.errors import APIError, AuthenticationError, ModelError, RateLimitError

from .base import ModelClient
from .types import ModelResponse, Usage


class ClaudeClient(ModelClient):
    """Client for Anthropic's Claude models."""

    name = "claude"
    display_name = "Claude"
    api_key_env = "ANTHROPIC_API_KEY"

    def _default_model_id(self) -> str:
        return "claude-3-5-haiku-20241022"

    def _create_sdk_client(self) -> Any:
        import anthropic

        return anthropic.AsyncAnthropic(api_key=self.api_key)

    async def _request(
        self,
        client: Any,
        prompt: str,
        system: Optional[str],
        max_tokens: int,
        temperature: float,
    ) -> Any:
        kwargs: dict[str, Any] = {
            "model": self.model_id,
            "max_tokens": max_tokens,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": temperature,
        }
        # Anthropic takes the system prompt as a top-level field
        if system:
            kwargs["system"] = system
        return await client.messages.create(**kwargs)

    def _parse_response(self, response: Any) -> ModelResponse:
        text = "\n".join(block.text for block in response.content if block.type == "text")
        return ModelResponse(
            content=text,
            model=self.model_id,
            usage=Usage(
                prompt_tokens=response.usage.input_tokens,
                completion_tokens=response.usage.output_tokens,
            ),
            raw_response=response,
        )

    def _translate_error(self, error: Exception) -> ModelError:
        import anthropic

        if isinstance(error, anthropic.RateLimitError):
            return RateLimitError(self.model_id)
        if isinstance(error, anthropic.AuthenticationError):
            return AuthenticationError(self.model_id, str(error))
        return APIError(str(error), self.model_id, getattr(error, "status_code", None))
