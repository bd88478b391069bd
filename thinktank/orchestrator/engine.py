"""Main orchestration service for ThinkTank.

The OrchestrationService answers "who speaks next?" for a conversation:
1. Manual mode short-circuits to an empty decision
2. Participation stats are recomputed from the message log
3. The requested strategy picks a persona (round-robin, random or
   intelligent, which delegates to a Reasoning Backend when one is configured)
4. The accepted decision is recorded in the conversation's state
"""

import logging
import random
from typing import Optional, Sequence, get_args

from thinktank.collaborators import ReasoningBackend
from thinktank.config import ReasoningConfig, ScoringConfig, Settings, get_settings
from thinktank.conversation.models import ControlMode, Message, Persona, TurnStrategy
from thinktank.errors import InvalidStrategyError, NoPersonasError

from .events import TurnDecision
from .factors import FactorScorer
from .participation import ParticipationStat, compute_stats, last_persona_speaker
from .reasoning import ReasoningAdapter, create_reasoning_backend
from .state import ConversationOrchestrationState, StateRegistry
from .turns import PersonaScore, random_select, rank_personas, round_robin, weighted_select

logger = logging.getLogger(__name__)

TURN_STRATEGIES: tuple[str, ...] = get_args(TurnStrategy)


class OrchestrationService:
    """Decides the next speaker for any number of conversations.

    Each conversation gets its own state and lock; decisions for one
    conversation are strictly sequential while different conversations are
    independent.
    """

    def __init__(
        self,
        scoring: Optional[ScoringConfig] = None,
        reasoning_backend: Optional[ReasoningBackend] = None,
        reasoning: Optional[ReasoningConfig] = None,
        rng: Optional[random.Random] = None,
        default_strategy: str = "intelligent",
    ):
        """Initialize the service.

        Args:
            scoring: Factor weights and thresholds
            reasoning_backend: Backend for delegated intelligent decisions;
                without one the intelligent strategy scores locally
            reasoning: Timeouts and history window for the backend
            rng: Random source for the random strategy
            default_strategy: Strategy used when a caller does not name one
        """
        self.scoring = scoring or ScoringConfig()
        self.scorer = FactorScorer(self.scoring)
        self.rng = rng or random.Random()
        self.default_strategy = default_strategy
        self.states = StateRegistry()

        self.adapter: Optional[ReasoningAdapter] = None
        if reasoning_backend is not None:
            self.adapter = ReasoningAdapter(
                backend=reasoning_backend,
                scorer=self.scorer,
                config=reasoning,
                scoring=self.scoring,
            )

    @property
    def delegates(self) -> bool:
        """Whether intelligent decisions go to a Reasoning Backend."""
        return self.adapter is not None

    def attach(self, conversation_id: str) -> ConversationOrchestrationState:
        """Start tracking a conversation (no-op if already attached)."""
        return self.states.attach(conversation_id)

    def get_state(self, conversation_id: str) -> ConversationOrchestrationState:
        """Get the state of an attached conversation.

        Raises:
            UnknownConversationError: If the conversation is not attached
        """
        return self.states.get(conversation_id)

    def reset(self, conversation_id: str) -> None:
        """Forget a conversation and stop its auto-run, if any."""
        state = self.states.detach(conversation_id)
        if state is None:
            return
        state.request_cancel()
        logger.info(f"Reset orchestration state for {conversation_id}")

    def reset_all(self) -> None:
        """Forget every conversation and stop all auto-runs."""
        states = self.states.clear()
        for state in states:
            state.request_cancel()
        if states:
            logger.info(f"Reset orchestration state for {len(states)} conversations")

    def rank_personas(
        self,
        personas: Sequence[Persona],
        messages: Sequence[Message],
    ) -> list[PersonaScore]:
        """Score every active persona against the current log."""
        stats = compute_stats(messages, personas)
        return rank_personas(self.scorer, personas, messages, stats)

    async def determine_speaker(
        self,
        conversation_id: str,
        personas: Sequence[Persona],
        messages: Sequence[Message],
        mode: str = "discussion",
        strategy: Optional[str] = None,
        control: ControlMode = "auto",
    ) -> TurnDecision:
        """Decide which persona speaks next.

        Args:
            conversation_id: Conversation to decide for (attached on first use)
            personas: Conversation roster; inactive personas are ignored
            messages: Full message log, oldest first
            mode: Conversation mode
            strategy: 'intelligent', 'round-robin' or 'random'
                (defaults to the service's default strategy)
            control: 'manual' returns an empty decision without deciding

        Returns:
            The accepted TurnDecision

        Raises:
            NoPersonasError: If no active persona is available
            InvalidStrategyError: If the strategy is unknown
        """
        if control == "manual":
            return TurnDecision.manual()

        strategy = strategy or self.default_strategy
        if strategy not in TURN_STRATEGIES:
            raise InvalidStrategyError(strategy)

        active = [p for p in personas if p.is_active]
        if not active:
            raise NoPersonasError(conversation_id)

        state = self.states.attach(conversation_id)
        async with state.lock:
            stats = compute_stats(messages, active)
            current_speaker_id = last_persona_speaker(messages) or state.last_speaker_id

            decision = await self._decide(
                conversation_id, active, messages, mode, strategy, stats, current_speaker_id
            )
            state.record(decision)

        logger.debug(
            f"{conversation_id}: {strategy} chose {decision.persona_id} "
            f"({decision.source}, score {decision.priority_score:.2f})"
        )
        return decision

    async def _decide(
        self,
        conversation_id: str,
        personas: list[Persona],
        messages: Sequence[Message],
        mode: str,
        strategy: str,
        stats: dict[str, ParticipationStat],
        current_speaker_id: Optional[str],
    ) -> TurnDecision:
        available_ids = [p.id for p in personas]

        if strategy == "round-robin":
            persona_id = round_robin(available_ids, current_speaker_id)
            return self._simple_decision(
                persona_id, personas, messages, stats, "round-robin", "next in rotation"
            )

        if strategy == "random":
            persona_id = random_select(available_ids, current_speaker_id, self.rng)
            return self._simple_decision(
                persona_id, personas, messages, stats, "random", "picked at random"
            )

        if self.adapter is not None:
            return await self.adapter.decide(
                conversation_id, personas, messages, mode, stats, current_speaker_id
            )

        return weighted_select(rank_personas(self.scorer, personas, messages, stats))

    def _simple_decision(
        self,
        persona_id: str,
        personas: list[Persona],
        messages: Sequence[Message],
        stats: dict[str, ParticipationStat],
        source: str,
        why: str,
    ) -> TurnDecision:
        persona = next(p for p in personas if p.id == persona_id)
        factors = self.scorer.score_messages(persona, messages, stats, personas)
        return TurnDecision(
            persona_id=persona_id,
            reasoning=f"{persona.name} {why}",
            priority_score=self.scorer.combine(factors),
            factors=factors,
            source=source,  # type: ignore[arg-type]
        )


def create_orchestration_service(settings: Optional[Settings] = None) -> OrchestrationService:
    """Factory function to create an orchestration service.

    Args:
        settings: Application settings (defaults to the loaded settings)

    Returns:
        Configured OrchestrationService instance
    """
    if settings is None:
        settings = get_settings()

    return OrchestrationService(
        scoring=settings.scoring,
        reasoning_backend=create_reasoning_backend(settings),
        reasoning=settings.reasoning,
        default_strategy=settings.autorun.default_strategy,
    )
