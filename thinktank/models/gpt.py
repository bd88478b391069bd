"""GPT (OpenAI) model client implementation."""

from typing import Any, Optional

from thinktank.errors import APIError, AuthenticationError, ModelError, RateLimitError

from .base import ModelClient
from .types import ModelResponse, Usage


class GPTClient(ModelClient):
    """Client for OpenAI's GPT models.

    JSON mode is always requested since every caller expects a JSON object back.
    """

    name = "gpt"
    display_name = "GPT"
    api_key_env = "OPENAI_API_KEY"

    def _default_model_id(self) -> str:
        return "gpt-4o-mini"

    def _create_sdk_client(self) -> Any:
        import openai

        return openai.AsyncOpenAI(api_key=self.api_key)

    async def _request(
        self,
        client: Any,
        prompt: str,
        system: Optional[str],
        max_tokens: int,
        temperature: float,
    ) -> Any:
        messages = [{"role": "user", "content": prompt}]
        if system:
            messages.insert(0, {"role": "system", "content": system})

        return await client.chat.completions.create(
            model=self.model_id,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
        )

    def _parse_response(self, response: Any) -> ModelResponse:
        usage = None
        if response.usage:
            usage = Usage(
                prompt_tokens=response.usage.prompt_tokens,
                completion_tokens=response.usage.completion_tokens,
            )
        return ModelResponse(
            content=response.choices[0].message.content or "",
            model=self.model_id,
            usage=usage,
            raw_response=response,
        )

    def _translate_error(self, error: Exception) -> ModelError:
        import openai

        if isinstance(error, openai.RateLimitError):
            return RateLimitError(self.model_id)
        if isinstance(error, openai.AuthenticationError):
            return AuthenticationError(self.model_id, str(error))
        return APIError(str(error), self.model_id, getattr(error, "status_code", None))
