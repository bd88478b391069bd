"""Turn selection strategies for the orchestrator.

Handles:
- round-robin: advance through the roster from the current speaker
- random: pick uniformly among everyone except the current speaker
- weighted: local "intelligent" argmax over the combined factor score
"""

import random
from dataclasses import dataclass
from typing import Optional, Sequence

from thinktank.conversation.models import Message, Persona
from thinktank.errors import NoPersonasError

from .events import TurnDecision, TurnFactors
from .factors import FactorScorer
from .participation import ParticipationStat

# Factor level above which a factor is named in the reasoning text
STRONG_FACTOR = 0.7


def exclude_current(available_ids: Sequence[str], current_speaker_id: Optional[str]) -> list[str]:
    """Drop the current speaker unless that would leave nobody."""
    candidates = [pid for pid in available_ids if pid != current_speaker_id]
    return candidates or list(available_ids)


def round_robin(available_ids: Sequence[str], current_speaker_id: Optional[str]) -> str:
    """Pick the persona after the current speaker in roster order.

    An unknown or missing current speaker starts the rotation at the first
    persona. With more than one persona the current speaker is never returned.
    """
    if not available_ids:
        raise NoPersonasError()

    try:
        next_index = (list(available_ids).index(current_speaker_id) + 1) % len(available_ids)
    except ValueError:
        next_index = 0
    return available_ids[next_index]


def random_select(
    available_ids: Sequence[str],
    current_speaker_id: Optional[str],
    rng: Optional[random.Random] = None,
) -> str:
    """Pick a random persona, avoiding the current speaker when possible."""
    if not available_ids:
        raise NoPersonasError()
    return (rng or random).choice(exclude_current(available_ids, current_speaker_id))


@dataclass
class PersonaScore:
    """A persona's factors and combined score for one decision."""

    persona: Persona
    factors: TurnFactors
    total: float


def rank_personas(
    scorer: FactorScorer,
    personas: Sequence[Persona],
    messages: Sequence[Message],
    stats: dict[str, ParticipationStat],
) -> list[PersonaScore]:
    """Score every active persona, keeping roster order."""
    ranking = []
    for persona in personas:
        if not persona.is_active:
            continue
        factors = scorer.score_messages(persona, messages, stats, personas)
        ranking.append(PersonaScore(persona=persona, factors=factors, total=scorer.combine(factors)))
    return ranking


def generate_reasoning(persona: Persona, factors: TurnFactors) -> str:
    """Explain a weighted decision from its strong factors."""
    reasons = []
    if factors.relevance > STRONG_FACTOR:
        reasons.append(f"{persona.name} is highly relevant to the current topic")
    if factors.expertise > STRONG_FACTOR:
        reasons.append(f"{persona.name} has strong expertise in this area")
    if factors.participation_balance > STRONG_FACTOR:
        reasons.append(f"{persona.name} hasn't participated much yet")
    if factors.flow > STRONG_FACTOR:
        reasons.append(f"It's natural for {persona.name} to speak next")

    return "; ".join(reasons) or f"{persona.name} is the best choice based on overall factors"


def weighted_select(ranking: Sequence[PersonaScore]) -> TurnDecision:
    """Pick the highest combined score; the first listed persona wins ties."""
    if not ranking:
        raise NoPersonasError()

    winner = ranking[0]
    for candidate in ranking[1:]:
        if candidate.total > winner.total:
            winner = candidate

    return TurnDecision(
        persona_id=winner.persona.id,
        reasoning=generate_reasoning(winner.persona, winner.factors),
        priority_score=winner.total,
        factors=winner.factors,
        source="weighted",
    )
