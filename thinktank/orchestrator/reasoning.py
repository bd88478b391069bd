"""Delegated speaker decisions through a Reasoning Backend.

The adapter asks the backend for a structured answer, validates it and falls
back to the deterministic selector on any failure:
1. Build the decision prompt (roster, participation, history, mode)
2. Invoke the backend under a hard timeout
3. Extract and validate the JSON answer
4. On timeout, parse failure, schema violation or unknown persona id, use
   select_fallback without retrying the backend
"""

import asyncio
import json
import logging
import re
import time
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field, ValidationError

from thinktank.collaborators import ReasoningBackend
from thinktank.config import ReasoningConfig, ScoringConfig, Settings
from thinktank.conversation.models import Message, Persona
from thinktank.errors import (
    DelegationFailure,
    InvalidPersonaChoiceError,
    ModelError,
    NoPersonasError,
    ReasoningBackendError,
    ReasoningParseError,
    ReasoningTimeoutError,
)
from thinktank.models import ModelClient, get_reasoning_client

from .events import TurnDecision, TurnFactors
from .factors import FactorScorer
from .fallback import select_fallback
from .modes import get_mode_policy
from .participation import ParticipationStat
from .prompts import REASONING_SYSTEM_PROMPT, format_turn_decision_prompt

logger = logging.getLogger(__name__)


class ReasoningFactors(BaseModel):
    """Factor breakdown reported by the Reasoning Backend."""

    relevance: float = Field(default=0.5, ge=0.0, le=1.0)
    expertise: float = Field(default=0.5, ge=0.0, le=1.0)
    participation_balance: float = Field(default=0.5, ge=0.0, le=1.0)
    conversation_flow: float = Field(default=0.5, ge=0.0, le=1.0)

    def to_turn_factors(self) -> TurnFactors:
        return TurnFactors(
            relevance=self.relevance,
            expertise=self.expertise,
            participation_balance=self.participation_balance,
            flow=self.conversation_flow,
        )


class ReasoningAnswer(BaseModel):
    """Structured answer expected from the Reasoning Backend."""

    next_persona_id: str = Field(min_length=1)
    reasoning: str = ""
    priority_score: float = Field(default=0.5, ge=0.0, le=1.0)
    factors: ReasoningFactors = Field(default_factory=ReasoningFactors)


def extract_json(content: str) -> Optional[dict[str, Any]]:
    """Extract a JSON object from a backend answer.

    Handles bare JSON, markdown code blocks and JSON embedded in prose.

    Args:
        content: Raw answer text

    Returns:
        Parsed dict or None if no object could be found
    """
    content = content.strip()

    try:
        data = json.loads(content)
        return data if isinstance(data, dict) else None
    except json.JSONDecodeError:
        pass

    # Markdown code block
    match = re.search(r"```(?:json)?\s*(\{.*?\})\s*```", content, re.DOTALL)
    if match:
        try:
            return json.loads(match.group(1))
        except json.JSONDecodeError:
            pass

    # Object containing the persona id somewhere in the text; the factors
    # object may be nested one level deep
    match = re.search(
        r"\{(?:[^{}]|\{[^{}]*\})*\"next_persona_id\"(?:[^{}]|\{[^{}]*\})*\}",
        content,
        re.DOTALL,
    )
    if match:
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError:
            pass

    return None


def parse_answer(raw: str) -> ReasoningAnswer:
    """Parse and validate a backend answer.

    Raises:
        ReasoningParseError: If the answer is not JSON or violates the schema
    """
    data = extract_json(raw)
    if data is None:
        raise ReasoningParseError("answer is not a JSON object", raw=raw)

    try:
        return ReasoningAnswer.model_validate(data)
    except ValidationError as e:
        raise ReasoningParseError(f"answer does not match schema: {e.error_count()} errors", raw=raw) from e


class ModelReasoningBackend(ReasoningBackend):
    """Reasoning Backend backed by a provider model client."""

    def __init__(self, client: ModelClient, system_prompt: str = REASONING_SYSTEM_PROMPT):
        self.client = client
        self.system_prompt = system_prompt

    async def invoke(self, prompt: str) -> str:
        response = await self.client.generate(prompt, system=self.system_prompt)
        if response.is_empty:
            raise ReasoningBackendError(f"{self.client.name} returned an empty reply")
        return response.content

    def __repr__(self) -> str:
        return f"ModelReasoningBackend(client={self.client!r})"


def create_reasoning_backend(settings: Settings) -> Optional[ReasoningBackend]:
    """Build the configured Reasoning Backend.

    Returns:
        A backend, or None when delegation is disabled or has no API key
    """
    if not settings.reasoning.enabled:
        return None

    if not settings.reasoning_available:
        logger.warning(
            f"Delegated decisions enabled but no API key for '{settings.reasoning.provider}'; "
            "using local scoring"
        )
        return None

    return ModelReasoningBackend(get_reasoning_client(settings))


class ReasoningAdapter:
    """Turns Reasoning Backend answers into validated TurnDecisions.

    The adapter never raises a DelegationFailure to its caller and never
    touches orchestration state.
    """

    def __init__(
        self,
        backend: ReasoningBackend,
        scorer: Optional[FactorScorer] = None,
        config: Optional[ReasoningConfig] = None,
        scoring: Optional[ScoringConfig] = None,
    ):
        """Initialize the adapter.

        Args:
            backend: Reasoning Backend to delegate to
            scorer: Factor scorer used for fallback factors
            config: Timeouts and history window
            scoring: Scoring configuration (fallback gap threshold)
        """
        self.backend = backend
        self.config = config or ReasoningConfig()
        self.scoring = scoring or ScoringConfig()
        self.scorer = scorer or FactorScorer(self.scoring)

    async def decide(
        self,
        conversation_id: str,
        personas: Sequence[Persona],
        recent_messages: Sequence[Message],
        mode: str,
        stats: dict[str, ParticipationStat],
        current_speaker_id: Optional[str] = None,
    ) -> TurnDecision:
        """Decide the next speaker, delegating to the backend.

        Args:
            conversation_id: Conversation being decided (for logging)
            personas: Active personas, in roster order
            recent_messages: Conversation log, oldest first
            mode: Conversation mode
            stats: Participation stats keyed by persona id
            current_speaker_id: Persona that spoke last, if any

        Returns:
            A decision naming a member of ``personas``

        Raises:
            NoPersonasError: If personas is empty
        """
        if not personas:
            raise NoPersonasError(conversation_id)

        available_ids = [p.id for p in personas]

        try:
            answer = await self._ask(conversation_id, personas, recent_messages, mode, stats, current_speaker_id)
            if answer.next_persona_id not in available_ids:
                raise InvalidPersonaChoiceError(answer.next_persona_id, available_ids)
        except DelegationFailure as e:
            logger.warning(f"Delegated decision failed for {conversation_id}: {e}")
            return self._fallback(e, personas, recent_messages, mode, stats, current_speaker_id)

        return TurnDecision(
            persona_id=answer.next_persona_id,
            reasoning=answer.reasoning or "Selected by the reasoning backend",
            priority_score=answer.priority_score,
            factors=answer.factors.to_turn_factors(),
            source="reasoning",
        )

    async def _ask(
        self,
        conversation_id: str,
        personas: Sequence[Persona],
        messages: Sequence[Message],
        mode: str,
        stats: dict[str, ParticipationStat],
        current_speaker_id: Optional[str],
    ) -> ReasoningAnswer:
        prompt = format_turn_decision_prompt(
            personas=personas,
            messages=list(messages[-self.config.history_window:]),
            stats=stats,
            policy=get_mode_policy(mode),
            current_speaker_id=current_speaker_id,
        )

        started = time.perf_counter()
        try:
            raw = await asyncio.wait_for(
                self.backend.invoke(prompt),
                timeout=self.config.timeout_seconds,
            )
        except asyncio.TimeoutError:
            raise ReasoningTimeoutError(self.config.timeout_seconds) from None
        except DelegationFailure:
            raise
        except ModelError as e:
            raise ReasoningBackendError(e.message, original_error=e) from e
        except Exception as e:
            raise ReasoningBackendError(str(e) or type(e).__name__, original_error=e) from e

        elapsed_ms = (time.perf_counter() - started) * 1000
        if elapsed_ms > self.config.latency_target_ms:
            logger.warning(
                f"Reasoning backend took {elapsed_ms:.0f}ms for {conversation_id} "
                f"(target {self.config.latency_target_ms}ms)"
            )

        return parse_answer(raw)

    def _fallback(
        self,
        failure: DelegationFailure,
        personas: Sequence[Persona],
        messages: Sequence[Message],
        mode: str,
        stats: dict[str, ParticipationStat],
        current_speaker_id: Optional[str],
    ) -> TurnDecision:
        persona_id = select_fallback(
            stats,
            current_speaker_id,
            [p.id for p in personas],
            mode=mode,
            gap_points=self.scoring.participation_gap_points,
        )
        persona = next(p for p in personas if p.id == persona_id)
        factors = self.scorer.score_messages(persona, messages, stats, personas)
        cause = (failure.code or type(failure).__name__).lower()

        return TurnDecision(
            persona_id=persona_id,
            reasoning=f"Fallback selection ({cause}): {persona.name} chosen by participation and recency",
            priority_score=self.scorer.combine(factors),
            factors=factors,
            source="fallback",
        )
