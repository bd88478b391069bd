"""Prompt templates for delegated speaker decisions.

The Reasoning Backend receives one prompt describing the roster, each
persona's participation so far, the recent history and the mode policy, and
must answer with a single JSON object.
"""

from typing import Optional, Sequence

from thinktank.conversation.models import Message, Persona

from .modes import ModePolicy
from .participation import ParticipationStat

# Per-message cap when rendering history
MAX_MESSAGE_CHARS = 300

REASONING_SYSTEM_PROMPT = """You are a conversation orchestrator. Your job is to decide which AI persona should speak next in a multi-persona conversation.

Answer with ONLY valid JSON (no markdown, no explanation)."""

TURN_DECISION_PROMPT = """{mode_label} MODE: {mode_guidance}

AVAILABLE PERSONAS:
{persona_descriptions}

RECENT CONVERSATION:
{conversation_history}

CURRENT SPEAKER: {current_speaker}

Select the next speaker based on:
1. Who would contribute most meaningfully to the conversation
2. Balanced participation
3. Matching persona expertise to the topic
4. Natural conversation flow

Avoid selecting the same speaker twice in a row unless necessary.

Available persona IDs: {available_ids}

Respond with ONLY this JSON object:
{{"next_persona_id": "<one of the available ids>", "reasoning": "brief 1-sentence explanation", "priority_score": 0.0-1.0, "factors": {{"relevance": 0.0-1.0, "expertise": 0.0-1.0, "participation_balance": 0.0-1.0, "conversation_flow": 0.0-1.0}}}}"""


def _truncate(content: str, limit: int = MAX_MESSAGE_CHARS) -> str:
    return content[:limit] + "..." if len(content) > limit else content


def format_persona_description(persona: Persona, stat: Optional[ParticipationStat]) -> str:
    """Render one roster line with profile and participation."""
    details = [persona.display_role]
    if persona.experience_level is not None:
        details.append(f"{persona.experience_level.value} experience")
    if persona.expertise:
        details.append("expertise: " + ", ".join(persona.expertise))

    line = f"- {persona.name} (ID: {persona.id}): {'; '.join(details)}"
    if persona.background:
        line += f"\n  Background: {_truncate(persona.background, 200)}"
    if persona.personality:
        line += f"\n  Personality: {_truncate(persona.personality, 200)}"

    if stat is None or not stat.has_spoken:
        line += "\n  Participation: has not spoken yet"
    else:
        line += (
            f"\n  Participation: {stat.message_count} messages "
            f"({stat.participation_rate:.0f}%), last spoke {stat.last_spoken_offset} messages ago"
        )
    return line


def format_conversation_history(messages: Sequence[Message], personas: Sequence[Persona]) -> str:
    """Render messages as ``SPEAKER: content`` lines."""
    if not messages:
        return "(No messages yet)"

    names = {p.id: p.name for p in personas}
    lines = []
    for message in messages:
        if message.is_persona_message:
            speaker = names.get(message.persona_id, "Unknown")
        else:
            speaker = message.role.value.upper()
        lines.append(f"{speaker}: {_truncate(message.content)}")
    return "\n".join(lines)


def format_turn_decision_prompt(
    personas: Sequence[Persona],
    messages: Sequence[Message],
    stats: dict[str, ParticipationStat],
    policy: ModePolicy,
    current_speaker_id: Optional[str] = None,
) -> str:
    """Build the speaker decision prompt.

    Args:
        personas: Candidate personas, in roster order
        messages: Recent history window, oldest first
        stats: Participation stats keyed by persona id
        policy: Policy of the conversation mode
        current_speaker_id: Persona that spoke last, if any

    Returns:
        Formatted prompt string
    """
    current = next((p for p in personas if p.id == current_speaker_id), None)

    return TURN_DECISION_PROMPT.format(
        mode_label=policy.label.upper(),
        mode_guidance=policy.guidance,
        persona_descriptions="\n".join(
            format_persona_description(p, stats.get(p.id)) for p in personas
        ),
        conversation_history=format_conversation_history(messages, personas),
        current_speaker=f"{current.name} (ID: {current.id})" if current else "None",
        available_ids=", ".join(p.id for p in personas),
    )
