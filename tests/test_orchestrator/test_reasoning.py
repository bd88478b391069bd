"""Tests for delegated speaker decisions."""

import asyncio
import json
import logging
from typing import Optional

import pytest

from thinktank.config import ReasoningConfig, Settings
from thinktank.conversation import Message, Persona
from thinktank.errors import NoPersonasError, ReasoningParseError
from thinktank.models.types import ModelResponse
from thinktank.orchestrator.modes import get_mode_policy
from thinktank.orchestrator.participation import compute_stats
from thinktank.orchestrator.prompts import REASONING_SYSTEM_PROMPT, format_turn_decision_prompt
from thinktank.orchestrator.reasoning import (
    ModelReasoningBackend,
    ReasoningAdapter,
    create_reasoning_backend,
    extract_json,
    parse_answer,
)
from thinktank.utils.logging import LogCapture


def answer(persona_id: str, **overrides) -> str:
    data = {
        "next_persona_id": persona_id,
        "reasoning": "Carol can weigh the business impact",
        "priority_score": 0.82,
        "factors": {
            "relevance": 0.9,
            "expertise": 0.8,
            "participation_balance": 0.7,
            "conversation_flow": 0.6,
        },
    }
    data.update(overrides)
    return json.dumps(data)


class MockBackend:
    """Mock reasoning backend for testing."""

    def __init__(
        self,
        response: str = "",
        delay: float = 0.0,
        error: Optional[Exception] = None,
    ):
        self.response = response
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []

    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        return self.response


class MockModelClient:
    """Mock model client for testing."""

    name = "mock"

    def __init__(self, content: str):
        self.content = content
        self.calls: list[dict] = []

    async def generate(self, prompt, system=None, max_tokens=None, temperature=None) -> ModelResponse:
        self.calls.append({"prompt": prompt, "system": system})
        return ModelResponse(content=self.content, model="mock")


def conversation() -> list[Message]:
    return [
        Message.user("Should we spend the budget on ads or on onboarding?"),
        Message.assistant("Onboarding; ads just fill a leaky bucket.", "alice"),
    ]


async def decide(adapter: ReasoningAdapter, personas: list[Persona], mode: str = "discussion"):
    messages = conversation()
    return await adapter.decide(
        "conv-1",
        personas,
        messages,
        mode,
        compute_stats(messages, personas),
        current_speaker_id="alice",
    )


class TestExtractJson:
    """Tests for tolerant JSON extraction."""

    def test_plain_json(self) -> None:
        assert extract_json(answer("bob"))["next_persona_id"] == "bob"

    def test_code_fence(self) -> None:
        content = f"Here you go:\n```json\n{answer('bob')}\n```"
        assert extract_json(content)["next_persona_id"] == "bob"

    def test_embedded_in_prose_with_nested_factors(self) -> None:
        content = f"I think {answer('carol')} is the right call."
        data = extract_json(content)
        assert data["next_persona_id"] == "carol"
        assert data["factors"]["relevance"] == 0.9

    def test_garbage(self) -> None:
        assert extract_json("Bob should talk next.") is None
        assert extract_json("[1, 2, 3]") is None


class TestParseAnswer:
    """Tests for schema validation."""

    def test_valid(self) -> None:
        parsed = parse_answer(answer("carol"))
        assert parsed.next_persona_id == "carol"
        assert parsed.factors.to_turn_factors().flow == 0.6

    def test_missing_factors_default(self) -> None:
        parsed = parse_answer('{"next_persona_id": "bob"}')
        assert parsed.priority_score == 0.5
        assert parsed.factors.relevance == 0.5

    def test_out_of_range_score(self) -> None:
        with pytest.raises(ReasoningParseError):
            parse_answer(answer("bob", priority_score=1.5))

    def test_not_json(self) -> None:
        with pytest.raises(ReasoningParseError):
            parse_answer("no idea")


class TestReasoningAdapter:
    """Tests for ReasoningAdapter.decide."""

    @pytest.mark.asyncio
    async def test_valid_answer_used(self, personas: list[Persona]) -> None:
        adapter = ReasoningAdapter(MockBackend(answer("carol")))

        decision = await decide(adapter, personas)

        assert decision.persona_id == "carol"
        assert decision.source == "reasoning"
        assert decision.priority_score == 0.82
        assert decision.factors.flow == 0.6
        assert decision.reasoning == "Carol can weigh the business impact"

    @pytest.mark.asyncio
    async def test_unknown_persona_falls_back_without_retry(self, personas: list[Persona]) -> None:
        backend = MockBackend(answer("mallory"))
        adapter = ReasoningAdapter(backend)

        with LogCapture() as logs:
            decision = await decide(adapter, personas)

        assert decision.persona_id in {p.id for p in personas}
        assert decision.source == "fallback"
        assert len(backend.prompts) == 1
        assert logs.has_message("Delegated decision failed", level=logging.WARNING)

    @pytest.mark.asyncio
    async def test_parse_failure_falls_back(self, personas: list[Persona]) -> None:
        adapter = ReasoningAdapter(MockBackend("I would pick Bob."))

        decision = await decide(adapter, personas)

        # Alice spoke last, Bob comes first among the never-spoken
        assert decision.persona_id == "bob"
        assert decision.source == "fallback"
        assert "reasoning_parse_error" in decision.reasoning
        assert 0.0 <= decision.priority_score <= 1.0

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, personas: list[Persona]) -> None:
        backend = MockBackend(answer("carol"), delay=1.0)
        adapter = ReasoningAdapter(backend, config=ReasoningConfig(timeout_seconds=0.05))

        decision = await decide(adapter, personas)

        assert decision.source == "fallback"
        assert "reasoning_timeout" in decision.reasoning
        assert decision.persona_id != "alice"

    @pytest.mark.asyncio
    async def test_backend_error_falls_back(self, personas: list[Persona]) -> None:
        adapter = ReasoningAdapter(MockBackend(error=ConnectionError("unreachable")))

        decision = await decide(adapter, personas)

        assert decision.source == "fallback"
        assert "reasoning_backend_error" in decision.reasoning

    @pytest.mark.asyncio
    async def test_slow_answer_logged_but_used(self, personas: list[Persona]) -> None:
        backend = MockBackend(answer("carol"), delay=0.02)
        adapter = ReasoningAdapter(backend, config=ReasoningConfig(latency_target_ms=1))

        with LogCapture() as logs:
            decision = await decide(adapter, personas)

        assert decision.persona_id == "carol"
        assert decision.source == "reasoning"
        assert logs.has_message("target 1ms", level=logging.WARNING)

    @pytest.mark.asyncio
    async def test_single_persona_backend_unreachable(self, bob: Persona) -> None:
        adapter = ReasoningAdapter(MockBackend(error=ConnectionError("unreachable")))
        messages = [Message.user("Anyone?"), Message.assistant("Me again.", "bob")]

        decision = await adapter.decide(
            "conv-1", [bob], messages, "discussion", compute_stats(messages, [bob]), "bob"
        )

        assert decision.persona_id == "bob"
        assert decision.source == "fallback"

    @pytest.mark.asyncio
    async def test_debate_fallback_prefers_quiet_persona(self, personas: list[Persona]) -> None:
        messages = [Message.assistant(f"point {i}", "alice") for i in range(4)]
        messages += [Message.assistant("counterpoint", "carol"), Message.assistant("rebuttal", "alice")]
        adapter = ReasoningAdapter(MockBackend("???"))

        decision = await adapter.decide(
            "conv-1", personas, messages, "debate", compute_stats(messages, personas), "alice"
        )

        assert decision.persona_id == "bob"

    @pytest.mark.asyncio
    async def test_no_personas(self) -> None:
        adapter = ReasoningAdapter(MockBackend(answer("bob")))
        with pytest.raises(NoPersonasError):
            await adapter.decide("conv-1", [], [], "discussion", {}, None)

    @pytest.mark.asyncio
    async def test_prompt_contents(self, personas: list[Persona]) -> None:
        backend = MockBackend(answer("carol"))
        adapter = ReasoningAdapter(backend, config=ReasoningConfig(history_window=1))

        await decide(adapter, personas, mode="planning")

        prompt = backend.prompts[0]
        assert "PLANNING MODE" in prompt
        assert "Available persona IDs: alice, bob, carol" in prompt
        assert "CURRENT SPEAKER: Alice (ID: alice)" in prompt
        assert "Alice: Onboarding; ads just fill a leaky bucket." in prompt
        # History window of one message drops the user question
        assert "leaky bucket" in prompt and "spend the budget" not in prompt


class TestPrompts:
    """Tests for prompt formatting."""

    def test_persona_participation_lines(self, personas: list[Persona]) -> None:
        messages = conversation()
        prompt = format_turn_decision_prompt(
            personas, messages, compute_stats(messages, personas), get_mode_policy("debate")
        )
        assert "- Alice (ID: alice): UX designer; Entry experience; expertise: accessibility" in prompt
        assert "1 messages (100%), last spoke 0 messages ago" in prompt
        assert "Participation: has not spoken yet" in prompt
        assert "CURRENT SPEAKER: None" in prompt

    def test_long_messages_truncated(self, personas: list[Persona]) -> None:
        messages = [Message.user("x" * 1000)]
        prompt = format_turn_decision_prompt(personas, messages, {}, get_mode_policy("discussion"))
        assert "x" * 300 + "..." in prompt
        assert "x" * 301 not in prompt

    def test_empty_history(self, personas: list[Persona]) -> None:
        prompt = format_turn_decision_prompt(personas, [], {}, get_mode_policy("discussion"))
        assert "(No messages yet)" in prompt


class TestModelReasoningBackend:
    """Tests for the model-client backed Reasoning Backend."""

    @pytest.mark.asyncio
    async def test_invoke_uses_system_prompt(self) -> None:
        client = MockModelClient(answer("bob"))
        backend = ModelReasoningBackend(client)

        raw = await backend.invoke("who next?")

        assert json.loads(raw)["next_persona_id"] == "bob"
        assert client.calls == [{"prompt": "who next?", "system": REASONING_SYSTEM_PROMPT}]

    @pytest.mark.asyncio
    async def test_empty_reply_is_backend_error(self, personas: list[Persona]) -> None:
        adapter = ReasoningAdapter(ModelReasoningBackend(MockModelClient("  ")))

        decision = await decide(adapter, personas)

        assert decision.source == "fallback"
        assert "reasoning_backend_error" in decision.reasoning

    def test_create_disabled(self) -> None:
        assert create_reasoning_backend(Settings(openai_api_key="key")) is None

    def test_create_without_key(self, clean_env: None) -> None:
        settings = Settings(reasoning={"enabled": True, "provider": "gpt"})
        assert create_reasoning_backend(settings) is None

    def test_create_enabled(self) -> None:
        settings = Settings(openai_api_key="key", reasoning={"enabled": True, "provider": "gpt"})
        backend = create_reasoning_backend(settings)
        assert isinstance(backend, ModelReasoningBackend)
        assert backend.client.name == "gpt"
