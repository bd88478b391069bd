"""Turn orchestration engine for ThinkTank multi-persona conversations.

Main components:
- OrchestrationService: decides which persona speaks next
- AutoRunLoop: keeps auto-mode conversations going
- FactorScorer: scores personas on relevance, expertise, balance and flow
- ReasoningAdapter: delegates decisions to a Reasoning Backend with fallback
- select_fallback: deterministic selection when delegation fails
"""

from .autorun import AutoRunLoop, pacing_delay_ms
from .engine import TURN_STRATEGIES, OrchestrationService, create_orchestration_service
from .events import (
    AutoRunResult,
    DecisionSource,
    LoopEvent,
    LoopEventType,
    LoopState,
    StopReason,
    TurnDecision,
    TurnFactors,
)
from .factors import (
    FactorScorer,
    combined_score,
    score_expertise,
    score_flow,
    score_participation_balance,
    score_relevance,
)
from .fallback import select_fallback
from .modes import DEFAULT_MODE, MODE_POLICIES, ModePolicy, get_mode_policy
from .participation import (
    NEVER_SPOKEN_OFFSET,
    ParticipationStat,
    compute_stats,
    last_persona_speaker,
)
from .prompts import REASONING_SYSTEM_PROMPT, format_turn_decision_prompt
from .reasoning import (
    ModelReasoningBackend,
    ReasoningAdapter,
    ReasoningAnswer,
    create_reasoning_backend,
    extract_json,
    parse_answer,
)
from .state import ConversationOrchestrationState, StateRegistry
from .turns import (
    PersonaScore,
    generate_reasoning,
    random_select,
    rank_personas,
    round_robin,
    weighted_select,
)

__all__ = [
    # Service
    "OrchestrationService",
    "create_orchestration_service",
    "TURN_STRATEGIES",
    # Auto-run
    "AutoRunLoop",
    "pacing_delay_ms",
    # Events
    "AutoRunResult",
    "DecisionSource",
    "LoopEvent",
    "LoopEventType",
    "LoopState",
    "StopReason",
    "TurnDecision",
    "TurnFactors",
    # Factors
    "FactorScorer",
    "combined_score",
    "score_expertise",
    "score_flow",
    "score_participation_balance",
    "score_relevance",
    # Selection
    "PersonaScore",
    "generate_reasoning",
    "random_select",
    "rank_personas",
    "round_robin",
    "select_fallback",
    "weighted_select",
    # Modes
    "DEFAULT_MODE",
    "MODE_POLICIES",
    "ModePolicy",
    "get_mode_policy",
    # Participation
    "NEVER_SPOKEN_OFFSET",
    "ParticipationStat",
    "compute_stats",
    "last_persona_speaker",
    # Reasoning
    "REASONING_SYSTEM_PROMPT",
    "ModelReasoningBackend",
    "ReasoningAdapter",
    "ReasoningAnswer",
    "create_reasoning_backend",
    "extract_json",
    "format_turn_decision_prompt",
    "parse_answer",
    # State
    "ConversationOrchestrationState",
    "StateRegistry",
]
