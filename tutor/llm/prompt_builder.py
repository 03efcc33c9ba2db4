from __future__ import annotations

"""Prompt construction helpers for the language tutor.

All LLM-facing messages should be assembled via this module so we maintain
one single source of truth for the tutor persona and reply format.

Templates live in ``tutor/prompts/`` and use Jinja2 for simple variable
substitution.  Anything more complex than loops / conditionals should be
implemented in Python and passed into the template context as plain data.
"""

from pathlib import Path
from typing import Iterable, List, Dict, Sequence

import jinja2

import config
from tutor.memory.schemas import Message

# ---------------------------------------------------------------------------
# Paths & Jinja environment
# ---------------------------------------------------------------------------

BASE_DIR = Path(__file__).resolve().parent.parent  # tutor/
PROMPTS_DIR = BASE_DIR / "prompts"

# Lazy-initialised Jinja environment so we only pay the cost once.
_ENV: jinja2.Environment | None = None

LANGUAGE_NAMES: Dict[str, str] = {
    "spanish": "Spanish",
    "french": "French",
    "german": "German",
    "italian": "Italian",
    "portuguese": "Portuguese",
    "russian": "Russian",
    "japanese": "Japanese",
    "korean": "Korean",
    "chinese": "Chinese",
    "arabic": "Arabic",
    "english": "English",
}

TOPIC_CONTEXT: Dict[str, str] = {
    "introductions": "introductions, meeting new people, personal information, greetings, and basic conversation starters",
    "restaurant": "restaurant dining, ordering food, asking about menu items, making reservations, and food-related vocabulary",
    "travel": "traveling, asking for directions, booking accommodations, transportation, and travel-related situations",
    "business": "professional communication, meetings, presentations, workplace etiquette, and business terminology",
}

LEVEL_INSTRUCTIONS: Dict[str, str] = {
    "beginner": "Use simple vocabulary, basic grammar structures, and provide clear explanations. Be patient and encouraging.",
    "intermediate": "Use more complex vocabulary and grammar. Introduce idiomatic expressions and cultural context.",
    "advanced": "Use sophisticated vocabulary, complex grammar structures, and discuss nuanced topics. Challenge the learner appropriately.",
}


def _get_env() -> jinja2.Environment:
    global _ENV
    if _ENV is None:
        _ENV = jinja2.Environment(
            loader=jinja2.FileSystemLoader(str(PROMPTS_DIR)),
            autoescape=False,  # we do not render HTML
            trim_blocks=True,
            lstrip_blocks=True,
            undefined=jinja2.StrictUndefined,
        )
    return _ENV


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------

def generate_context_summary(messages: Sequence[Message], max_messages: int = config.CONTEXT_SUMMARY_MAX_MESSAGES) -> str:
    """Render retrieved messages as a plain-text transcript ("" when empty)."""
    if not messages:
        return ""
    lines = "\n".join(f"{m.role}: {m.content}" for m in list(messages)[-max_messages:])
    return f"Previous conversation context:\n{lines}\n\n"


def _history_turns(messages: Iterable[Message]) -> List[Dict[str, str]]:
    return [{"role": m.role, "content": m.content} for m in messages]


# ---------------------------------------------------------------------------
# Public API – build the messages list
# ---------------------------------------------------------------------------

def build_messages(
    message: str,
    *,
    language: str = "spanish",
    user_language: str = "english",
    topic: str | None = None,
    level: str = "beginner",
    context_messages: Sequence[Message] | None = None,
) -> List[Dict[str, str]]:
    """Return a list of ChatCompletion-style messages for one tutor turn.

    Parameters
    ----------
    message
        The student's latest message.
    language, user_language
        Keys of ``LANGUAGE_NAMES``; unknown values fall back to Spanish
        (target) and English (native).
    topic
        Key of ``TOPIC_CONTEXT``; anything else means general conversation.
    level
        beginner / intermediate / advanced.
    context_messages
        Retrieved history, oldest first.  Injected as prior chat turns.
    """
    env = _get_env()

    tmpl_kwargs = {
        "target_language": LANGUAGE_NAMES.get(language, "Spanish"),
        "native_language": LANGUAGE_NAMES.get(user_language or "english", "English"),
        "topic_context": TOPIC_CONTEXT.get(topic or "", "general conversation"),
        "level": level if level in LEVEL_INSTRUCTIONS else "beginner",
        "level_instructions": LEVEL_INSTRUCTIONS.get(level, LEVEL_INSTRUCTIONS["beginner"]),
        "message": message,
    }

    system_prompt = env.get_template("system_prompt.jinja").render(**tmpl_kwargs)
    user_prompt = env.get_template("user_prompt.jinja").render(**tmpl_kwargs)

    messages: List[Dict[str, str]] = [
        {"role": "system", "content": system_prompt},
    ]

    # Retrieved turns go between the persona and the new question.
    if context_messages:
        messages.extend(_history_turns(context_messages))

    messages.append({"role": "user", "content": user_prompt})
    return messages
