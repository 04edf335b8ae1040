from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

from loguru import logger

from .preferences import UserProfile
from .scenarios import Scenario, get_scenario


_DEFAULT_THERAPIST_PROMPT = (
    "You are Bloom, a virtual AI therapist. Your primary goal is to help the user navigate their feelings and"
    " challenges using principles of Cognitive Behavioral Therapy (CBT). Be empathetic, ask guiding questions, and"
    " provide supportive, actionable advice. Avoid giving definitive medical advice. Start by warmly introducing"
    " yourself and asking what's on the user's mind."
)

_DEFAULT_COMPANION_PROMPT = (
    "You are Sparky, an open-ended, friendly AI companion. Your goal is to have a pleasant and supportive"
    " conversation with the user about anything they want to talk about. Be curious and kind."
)


def load_prompt(name: str, default: str) -> str:
    # Allow override via PROMPTS_DIR; else use local prompts/<name>.md
    base_dir = os.getenv("PROMPTS_DIR")
    if base_dir:
        path = Path(base_dir) / f"{name}.md"
    else:
        path = Path(__file__).resolve().parents[1] / "prompts" / f"{name}.md"
    try:
        text = path.read_text(encoding="utf-8").strip()
    except OSError as e:
        logger.warning(f"Falling back to default prompt for {name}: {e}")
        return default
    return text or default


@dataclass(frozen=True)
class Persona:
    id: str
    name: str
    subtitle: str
    instruction: str
    avatar: str
    # personas that greet the user before the user has typed anything
    auto_start: bool = False


PERSONAS: Dict[str, Persona] = {
    "bloom": Persona(
        id="bloom",
        name="AI Therapist",
        subtitle="A safe space to talk with Bloom",
        instruction=load_prompt("therapist_prompt", _DEFAULT_THERAPIST_PROMPT),
        avatar="🌸",
        auto_start=True,
    ),
    "sparky": Persona(
        id="sparky",
        name="Open Chat",
        subtitle="Talk about anything with Sparky!",
        instruction=load_prompt("companion_prompt", _DEFAULT_COMPANION_PROMPT),
        avatar="💡",
    ),
}

PRACTICE_AVATAR = "🎭"


def practice_persona(scenario: Scenario) -> Persona:
    return Persona(
        id=scenario.persona_id,
        name=scenario.category,
        subtitle=scenario.subtitle,
        instruction=scenario.instruction,
        avatar=PRACTICE_AVATAR,
        auto_start=True,
    )


def get_persona(persona_id: str) -> Persona:
    """Resolve a fixed persona id or a ``practice:<category>:<level>`` id."""
    if persona_id in PERSONAS:
        return PERSONAS[persona_id]
    if persona_id.startswith("practice:"):
        _, category, level = persona_id.split(":", 2)
        return practice_persona(get_scenario(category, int(level)))
    raise KeyError(persona_id)


def personalize_instruction(base_instruction: str, profile: Optional[UserProfile]) -> str:
    if profile is None:
        return base_instruction
    lines = []
    if profile.username:
        lines.append(f"- Their name is {profile.username}.")
    if profile.age:
        lines.append(f"- They are {profile.age} years old.")
    if profile.gender and profile.gender != "prefer_not_to_say":
        lines.append(f"- They identify as {profile.gender}.")
    if profile.status:
        lines.append(f"- They are a {profile.status}.")
    if profile.hobby:
        lines.append(f"- Their hobby is {profile.hobby}.")
    if profile.purpose:
        lines.append(f"- They are using this app to '{profile.purpose}'.")
    if not lines:
        return base_instruction
    header = (
        "Here is some information about the user you are talking to, please use it to make the conversation"
        " more personal and relevant:"
    )
    return base_instruction + "\n\n" + header + "\n" + "\n".join(lines) + "\n"
