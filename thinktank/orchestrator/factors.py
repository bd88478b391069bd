"""Factor scoring for speaker selection.

Each persona is scored on four independent factors in [0, 1]:

- relevance: is the persona addressed by, or on topic for, the last message?
- expertise: how senior is the persona and does the content need its role?
- participation_balance: has the persona spoken more or less than average?
- flow: natural turn-taking (no immediate repeats, break monopolies)

Every factor is a plain function of its inputs so it can be tested alone.
"""

from typing import Optional, Sequence

from thinktank.config import FactorWeights, ScoringConfig
from thinktank.conversation.models import ExperienceLevel, Message, Persona

from .events import TurnFactors
from .participation import ParticipationStat, average_message_count, last_persona_speaker

# Keyword hints per role category; the first category found in the role wins
ROLE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "engineer": ("code", "technical", "architecture", "implementation", "performance"),
    "designer": ("user", "experience", "ux", "interface", "design", "visual"),
    "manager": ("business", "strategy", "roi", "budget", "timeline", "priority"),
    "security": ("security", "vulnerability", "encryption", "authentication", "compliance"),
    "user": ("confused", "help", "easy", "simple", "understand"),
}

# Content categories that reward a matching role with extra expertise
TECHNICAL_KEYWORDS = ("api", "code", "function", "database", "algorithm", "performance", "architecture")
DESIGN_KEYWORDS = ("user", "ux", "ui", "design", "interface", "experience", "usability")
BUSINESS_KEYWORDS = ("cost", "roi", "business", "strategy", "market", "customer", "revenue")
SECURITY_KEYWORDS = ("security", "auth", "encrypt", "vulnerability", "threat", "compliance")

# (role fragment, content keywords)
EXPERTISE_DOMAINS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("engineer", TECHNICAL_KEYWORDS),
    ("design", DESIGN_KEYWORDS),
    ("manager", BUSINESS_KEYWORDS),
    ("security", SECURITY_KEYWORDS),
)

EXPERIENCE_SCORES: dict[ExperienceLevel, float] = {
    ExperienceLevel.MASTERY: 1.0,
    ExperienceLevel.SENIOR: 0.8,
    ExperienceLevel.ENTRY: 0.5,
    ExperienceLevel.LIMITED: 0.3,
    ExperienceLevel.NONE: 0.1,
}

NEUTRAL_SCORE = 0.5

# Participation balance outcomes
OVER_PARTICIPATION_SCORE = 0.3
BALANCED_SCORE = 0.6
UNDER_PARTICIPATION_SCORE = 0.9

# Flow outcomes
REPEAT_SPEAKER_FLOW = 0.1
MONOPOLY_BREAKER_FLOW = 0.9


def _contains_any(content: str, keywords: Sequence[str]) -> bool:
    return any(keyword in content for keyword in keywords)


def is_role_relevant(role: str, content: str) -> bool:
    """Check whether content matches the keyword table of the persona's role."""
    role_lower = role.lower()
    content_lower = content.lower()
    for category, keywords in ROLE_KEYWORDS.items():
        if category in role_lower:
            return _contains_any(content_lower, keywords)
    return False


def score_relevance(persona: Persona, last_message: Optional[Message]) -> float:
    """Score how relevant the persona is to the last message."""
    if last_message is None:
        return NEUTRAL_SCORE

    content = last_message.content.lower()
    score = NEUTRAL_SCORE

    if persona.name.lower() in content:
        score += 0.3

    if any(area.lower() in content for area in persona.expertise if area.strip()):
        score += 0.2

    if is_role_relevant(persona.role, content):
        score += 0.2

    return min(score, 1.0)


def score_expertise(persona: Persona, last_message: Optional[Message]) -> float:
    """Score the persona's expertise for the last message."""
    if last_message is None:
        return NEUTRAL_SCORE

    score = EXPERIENCE_SCORES.get(persona.experience_level, NEUTRAL_SCORE)

    role = persona.role.lower()
    content = last_message.content.lower()
    for role_fragment, keywords in EXPERTISE_DOMAINS:
        if role_fragment in role and _contains_any(content, keywords):
            score += 0.2

    return min(score, 1.0)


def score_participation_balance(
    persona: Persona,
    stats: dict[str, ParticipationStat],
    over_ratio: float = 1.5,
    under_ratio: float = 0.5,
) -> float:
    """Score the persona's share of the conversation against the average."""
    stat = stats.get(persona.id)
    count = stat.message_count if stat else 0

    # Nobody has spoken yet: compare against one message
    average = average_message_count(stats) or 1.0

    if count > average * over_ratio:
        return OVER_PARTICIPATION_SCORE
    if count < average * under_ratio:
        return UNDER_PARTICIPATION_SCORE
    return BALANCED_SCORE


def score_flow(
    persona: Persona,
    recent_messages: Sequence[Message],
    stats: dict[str, ParticipationStat],
    monopoly_window: int = 3,
) -> float:
    """Score how natural it would be for the persona to speak next."""
    last_speaker = last_persona_speaker(recent_messages)
    if last_speaker is None:
        spoken = [(s.last_spoken_offset, pid) for pid, s in stats.items() if s.has_spoken]
        if spoken:
            last_speaker = min(spoken)[1]

    if last_speaker == persona.id:
        return REPEAT_SPEAKER_FLOW

    if len(recent_messages) < 2:
        return NEUTRAL_SCORE

    speakers = [m.persona_id for m in recent_messages if m.is_persona_message][-monopoly_window:]
    if speakers and len(set(speakers)) == 1 and persona.id not in speakers:
        return MONOPOLY_BREAKER_FLOW

    return NEUTRAL_SCORE


def combined_score(factors: TurnFactors, weights: Optional[FactorWeights] = None) -> float:
    """Weighted sum of the four factors, in [0, 1]."""
    weights = weights or FactorWeights()
    total = (
        factors.relevance * weights.relevance
        + factors.expertise * weights.expertise
        + factors.participation_balance * weights.participation_balance
        + factors.flow * weights.flow
    )
    return max(0.0, min(1.0, total))


class FactorScorer:
    """Scores personas using a scoring configuration."""

    def __init__(self, config: Optional[ScoringConfig] = None):
        self.config = config or ScoringConfig()

    def recent_window(self, messages: Sequence[Message]) -> list[Message]:
        """The slice of the log the scorer looks at."""
        return list(messages[-self.config.lookback_messages:])

    def score(
        self,
        persona: Persona,
        last_message: Optional[Message],
        recent_messages: Sequence[Message],
        stats: dict[str, ParticipationStat],
        all_personas: Sequence[Persona],
    ) -> TurnFactors:
        """Compute all four factors for one persona.

        Args:
            persona: Persona to score
            last_message: Newest message in the conversation, if any
            recent_messages: Recent window of the log, oldest first
            stats: Fresh participation stats
            all_personas: Full roster; the balance average covers its active members

        Returns:
            TurnFactors for the persona
        """
        active_ids = {p.id for p in all_personas if p.is_active}
        roster_stats = {pid: s for pid, s in stats.items() if pid in active_ids}

        return TurnFactors(
            relevance=score_relevance(persona, last_message),
            expertise=score_expertise(persona, last_message),
            participation_balance=score_participation_balance(
                persona,
                roster_stats,
                over_ratio=self.config.over_participation_ratio,
                under_ratio=self.config.under_participation_ratio,
            ),
            flow=score_flow(
                persona,
                recent_messages,
                roster_stats,
                monopoly_window=self.config.monopoly_window,
            ),
        )

    def score_messages(
        self,
        persona: Persona,
        messages: Sequence[Message],
        stats: dict[str, ParticipationStat],
        all_personas: Sequence[Persona],
    ) -> TurnFactors:
        """Score a persona straight from the full log."""
        return self.score(
            persona,
            messages[-1] if messages else None,
            self.recent_window(messages),
            stats,
            all_personas,
        )

    def combine(self, factors: TurnFactors) -> float:
        return combined_score(factors, self.config.weights)
