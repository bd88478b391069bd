"""Deterministic speaker selection used when delegation fails.

The fallback never calls out to anything: given the same stats it always
returns the same persona, and it always returns a roster member.
"""

from typing import Optional, Sequence

from thinktank.errors import NoPersonasError

from .modes import get_mode_policy
from .participation import ParticipationStat
from .turns import exclude_current

DEFAULT_GAP_POINTS = 5.0


def select_fallback(
    stats: dict[str, ParticipationStat],
    current_speaker_id: Optional[str],
    available_ids: Sequence[str],
    mode: str = "discussion",
    gap_points: float = DEFAULT_GAP_POINTS,
) -> str:
    """Pick the next speaker without the Reasoning Backend.

    Candidates are everyone but the current speaker (unless they are the only
    one). The persona that has waited longest goes first. In modes that care
    about participation gaps (debate, ideation), personas whose participation
    rate trails the leader by at least ``gap_points`` come before the rest.
    Remaining ties go to roster order.

    Args:
        stats: Participation stats keyed by persona id
        current_speaker_id: Persona that spoke last, if any
        available_ids: Active roster, in roster order
        mode: Conversation mode
        gap_points: Rate difference, in percentage points, that counts as a gap

    Returns:
        The chosen persona id

    Raises:
        NoPersonasError: If available_ids is empty
    """
    if not available_ids:
        raise NoPersonasError()

    candidates = exclude_current(available_ids, current_speaker_id)
    roster_index = {pid: index for index, pid in enumerate(available_ids)}

    def stat_for(pid: str) -> ParticipationStat:
        return stats.get(pid) or ParticipationStat()

    def recency_key(pid: str) -> tuple[int, int]:
        return (-stat_for(pid).last_spoken_offset, roster_index[pid])

    policy = get_mode_policy(mode)
    if policy.prefer_participation_gap and len(candidates) > 1:
        rates = [stat_for(pid).participation_rate for pid in candidates]
        lowest = min(rates)
        if max(rates) - lowest >= gap_points:

            def gap_key(pid: str) -> tuple[int, int, int]:
                trailing = stat_for(pid).participation_rate - lowest < gap_points
                return (0 if trailing else 1, *recency_key(pid))

            return min(candidates, key=gap_key)

    return min(candidates, key=recency_key)

