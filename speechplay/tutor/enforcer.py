"""
SpeechPlay v1.2: Response Validator
Every composed coach line passes through here BEFORE reaching TTS.

Pure functions, no API calls. A line that fails any check is replaced by a
safe template; the child never hears an unchecked sentence.
"""

import re

from speechplay.config import CHOICE_PROMPT, MAX_COACH_WORDS
from speechplay.state.types import (
    ComposedResponse, EventType, Level, ResponseConstraints, ResponseValidation,
)

# ─── Judgmental Phrasing ─────────────────────────────────────────────────────

JUDGMENTAL_PATTERNS = [
    re.compile(r"\byou (should|must|need to)\b", re.IGNORECASE),
    re.compile(r"\bthat'?s wrong\b", re.IGNORECASE),
    re.compile(r"\btry harder\b", re.IGNORECASE),
    re.compile(r"\bwhy did you\b", re.IGNORECASE),
]

# ─── Safe Templates ──────────────────────────────────────────────────────────

CORRECT_TEMPLATE = "Great job! You got it!"
INACTIVE_TEMPLATE = "Are you still there? Take your time!"
INCORRECT_TEMPLATE = "I heard you! Let's try again!"
INCORRECT_CHOICES_TEMPLATE = f"I heard you! Good try! {CHOICE_PROMPT}"


def safe_template(event_type: EventType, correct: bool, level: Level) -> str:
    """Pre-written line for when the composer is skipped, fails or is rejected."""
    if event_type == EventType.CHILD_INACTIVE:
        if level >= Level.YELLOW:
            return f"{INACTIVE_TEMPLATE} {CHOICE_PROMPT}"
        return INACTIVE_TEMPLATE
    if correct:
        return CORRECT_TEMPLATE
    if level >= Level.YELLOW:
        return INCORRECT_CHOICES_TEMPLATE
    return INCORRECT_TEMPLATE


def max_sentences_for(level: Level) -> int:
    return 2 if level == Level.GREEN else 3


# ─── Checks ──────────────────────────────────────────────────────────────────

def count_words(text: str) -> int:
    return len(text.split())


def count_sentences(text: str) -> int:
    return len([s for s in re.split(r"[.!?]+", text) if s.strip()])


def find_forbidden(text: str, forbidden_words) -> list[str]:
    """Whole-word, case-insensitive. "no" matches "No!" but not "know"."""
    found = []
    for word in forbidden_words:
        pattern = r"\b" + r"\s+".join(re.escape(w) for w in word.split()) + r"\b"
        if re.search(pattern, text, re.IGNORECASE):
            found.append(word)
    return found


def is_non_judgmental(text: str) -> bool:
    return not any(p.search(text) for p in JUDGMENTAL_PATTERNS)


def validate(response: ComposedResponse, constraints: ResponseConstraints) -> ResponseValidation:
    text = (response.coach_line or "").strip()
    full = f"{text} {response.choice_presentation or ''}".strip()

    checks = {
        "not_empty": bool(text),
        "length_appropriate": count_words(text) <= MAX_COACH_WORDS,
        "no_forbidden_words": not find_forbidden(full, constraints.forbidden_words),
        "choices_included": (
            not constraints.must_offer_choices
            or CHOICE_PROMPT.lower() in full.lower()
        ),
        "non_judgmental": is_non_judgmental(full),
        "sentences_within_limit": count_sentences(text) <= constraints.max_sentences,
    }
    failed = [name for name, ok in checks.items() if not ok]
    return ResponseValidation(
        valid=not failed,
        checks=checks,
        reason=", ".join(failed) if failed else None,
    )


def ensure_choice_prompt(text: str) -> str:
    """Append the choice prompt unless the line already ends with it."""
    stripped = (text or "").strip()
    if stripped.lower().endswith(CHOICE_PROMPT.lower()):
        return stripped
    base = stripped.rstrip(".!? ")
    if not base:
        return CHOICE_PROMPT
    return f"{base}! {CHOICE_PROMPT}"
