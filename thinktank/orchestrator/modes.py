"""Conversation mode policies.

A mode shapes two things: the guidance handed to the Reasoning Backend and
the tie-break rule of the fallback selector.
"""

from dataclasses import dataclass

DEFAULT_MODE = "discussion"


@dataclass(frozen=True)
class ModePolicy:
    """Policy attached to one conversation mode."""

    mode: str
    label: str
    description: str
    guidance: str
    # Fallback ranks under-participating personas first when rates differ enough
    prefer_participation_gap: bool = False


MODE_POLICIES: dict[str, ModePolicy] = {
    "debate": ModePolicy(
        mode="debate",
        label="Debate",
        description="Critical discussion and analysis",
        guidance=(
            "This is a debate. Prefer a persona who can challenge or rebut the "
            "last point, alternate between opposing viewpoints and make sure "
            "quieter participants get to argue their position."
        ),
        prefer_participation_gap=True,
    ),
    "ideation": ModePolicy(
        mode="ideation",
        label="Ideation",
        description="Creative brainstorming and ideas",
        guidance=(
            "This is an ideation session. Prefer a persona likely to add a new, "
            "different idea rather than refine the previous one, and spread "
            "turns widely so every perspective contributes."
        ),
        prefer_participation_gap=True,
    ),
    "refinement": ModePolicy(
        mode="refinement",
        label="Refinement",
        description="Polish and improve concepts",
        guidance=(
            "This is a refinement session. Prefer the persona with the most "
            "relevant expertise to improve, correct or extend the idea currently "
            "on the table."
        ),
    ),
    "planning": ModePolicy(
        mode="planning",
        label="Planning",
        description="Structured planning and strategy",
        guidance=(
            "This is a planning session. Prefer a persona who can move the plan "
            "forward: fill in missing steps, owners, risks or timelines, "
            "according to their role."
        ),
    ),
    "discussion": ModePolicy(
        mode="discussion",
        label="Discussion",
        description="Open, balanced conversation",
        guidance=(
            "This is an open discussion. Prefer the persona who would contribute "
            "most meaningfully to the current topic while keeping participation "
            "balanced and the conversation flowing naturally."
        ),
    ),
}


def get_mode_policy(mode: str) -> ModePolicy:
    """Get the policy for a mode; unknown modes get the discussion policy."""
    return MODE_POLICIES.get(mode, MODE_POLICIES[DEFAULT_MODE])
