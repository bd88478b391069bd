"""Participation bookkeeping for the orchestrator.

Stats are derived from the message log on every decision and never patched
incrementally, so two decisions can never disagree about who said what.
"""

from dataclasses import dataclass
from typing import Optional, Sequence

from thinktank.conversation.models import Message, Persona

# Offset reported for personas that have not spoken yet
NEVER_SPOKEN_OFFSET = 1_000_000


@dataclass(frozen=True)
class ParticipationStat:
    """How much and how recently one persona has spoken.

    Attributes:
        message_count: Assistant messages authored by the persona
        last_spoken_offset: Messages since the persona last spoke (0 when it
            wrote the newest message, NEVER_SPOKEN_OFFSET if never)
        participation_rate: Share of persona-authored messages, in percent
    """

    message_count: int = 0
    last_spoken_offset: int = NEVER_SPOKEN_OFFSET
    participation_rate: float = 0.0

    @property
    def has_spoken(self) -> bool:
        return self.last_spoken_offset != NEVER_SPOKEN_OFFSET


def compute_stats(
    messages: Sequence[Message],
    personas: Sequence[Persona],
) -> dict[str, ParticipationStat]:
    """Compute participation stats for every active persona.

    Args:
        messages: Full conversation log, oldest first
        personas: Conversation roster; inactive personas are skipped

    Returns:
        Mapping of persona id to stat, in roster order
    """
    counts: dict[str, int] = {}
    last_index: dict[str, int] = {}
    total = 0

    for index, message in enumerate(messages):
        if not message.is_persona_message:
            continue
        total += 1
        counts[message.persona_id] = counts.get(message.persona_id, 0) + 1
        last_index[message.persona_id] = index

    newest = len(messages) - 1
    stats: dict[str, ParticipationStat] = {}
    for persona in personas:
        if not persona.is_active:
            continue
        count = counts.get(persona.id, 0)
        index = last_index.get(persona.id)
        stats[persona.id] = ParticipationStat(
            message_count=count,
            last_spoken_offset=NEVER_SPOKEN_OFFSET if index is None else newest - index,
            participation_rate=(count / total * 100.0) if total else 0.0,
        )

    return stats


def last_persona_speaker(messages: Sequence[Message]) -> Optional[str]:
    """Return the persona id of the most recent persona-authored message."""
    for message in reversed(messages):
        if message.is_persona_message:
            return message.persona_id
    return None


def average_message_count(stats: dict[str, ParticipationStat]) -> float:
    """Average message count across the personas in ``stats``."""
    if not stats:
        return 0.0
    return sum(s.message_count for s in stats.values()) / len(stats)
