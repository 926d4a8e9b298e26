"""
SpeechPlay v1.2: Intent Classifier (LLM-Based, keyword fallback)

Turns what the child said into intent signals. Most of what a child says
during the game is an ANSWER ("sad", "slow", "angry"), not a feeling, so the
classifier is conservative: default is no signal.

Intents:
    WANTS_BREAK  : asks to rest or stop for now
    WANTS_QUIT   : wants to stop playing altogether
    FRUSTRATION  : annoyed at the game ("ugh this is too hard")
    DISTRESS     : clearly upset (crying, screaming, "no no no")

No client → keyword fallback. LLM error or timeout → keyword fallback.
"""

import asyncio
import logging
import re
from typing import Optional

from speechplay.config import CLASSIFIER_MODEL, CLASSIFIER_TIMEOUT_SECONDS
from speechplay.state.types import Signal
from speechplay.tutor.llm import LLMProvider

logger = logging.getLogger("speechplay.tutor.input_classifier")

NO_INTENTS: frozenset = frozenset()

# Synthetic markers the session puts in place of real speech
SYNTHETIC_MARKERS = {"[task_timeout]", "[inactive]", "[silence]"}

# ─── Keyword Fallback ────────────────────────────────────────────────────────

BREAK_WORDS = ("break", "stop", "tired")
QUIT_WORDS = ("done", "quit", "no more")
DISTRESS_WORDS = ("scream", "yell", "[crying]")
FRUSTRATION_WORDS = ("ugh", "argh")

_AAH = re.compile(r"a{2,}h+", re.IGNORECASE)

# ─── LLM Classifier System Prompt ────────────────────────────────────────────

CLASSIFIER_SYSTEM = """You are a child speech analysis system for a speech therapy card game.

CRITICAL CONTEXT: The child is ANSWERING QUESTIONS in a game. Their speech is
most likely an ANSWER to a question, NOT an expression of their own feelings.

NORMAL ANSWERS (do NOT flag):
- "Sad" → probably answering "What's the opposite of happy?"
- "Angry" → probably answering a question about emotions
- "Very small" → probably answering a size question

Return JSON with these boolean fields:
- break_request: child DIRECTLY asks to stop or rest ("I want a break")
- quit_request: child DIRECTLY wants to quit ("I don't want to play anymore")
- frustration: child is frustrated at the game ("ugh this is too hard")
- distress: child is in CLEAR distress (crying sounds, "AHHH", "no no no I don't want to")
- confidence: 0-1

BE CONSERVATIVE: default to all false unless you are very confident."""

_FIELD_TO_SIGNAL = {
    "break_request": Signal.WANTS_BREAK,
    "quit_request": Signal.WANTS_QUIT,
    "frustration": Signal.FRUSTRATION,
    "distress": Signal.DISTRESS,
}


def classify_keywords(text: str) -> frozenset:
    """Deterministic intent detection. Used without an LLM or when it fails."""
    lowered = (text or "").strip().lower()
    if not lowered:
        return NO_INTENTS
    normalized = re.sub(r"\s+", " ", re.sub(r"[,!?.]", " ", lowered)).strip()

    found = set()
    if any(w in lowered for w in BREAK_WORDS):
        found.add(Signal.WANTS_BREAK)
    if any(w in lowered for w in QUIT_WORDS):
        found.add(Signal.WANTS_QUIT)

    distress = (
        "no no no" in normalized
        or any(w in lowered for w in DISTRESS_WORDS)
        or bool(_AAH.search(lowered))
    )
    if distress:
        found.add(Signal.DISTRESS)
    elif any(w in lowered for w in FRUSTRATION_WORDS):
        found.add(Signal.FRUSTRATION)

    return frozenset(found)


class IntentClassifier:
    def __init__(
        self,
        llm: Optional[LLMProvider] = None,
        model: str = CLASSIFIER_MODEL,
        timeout_seconds: float = CLASSIFIER_TIMEOUT_SECONDS,
    ):
        self._llm = llm
        self._model = model
        self._timeout = timeout_seconds

    async def classify(self, text: Optional[str]) -> frozenset:
        """Classify child speech into intent signals. Never raises."""
        stripped = (text or "").strip()
        if not stripped or stripped.lower() in SYNTHETIC_MARKERS:
            return NO_INTENTS

        if self._llm is None:
            return classify_keywords(stripped)

        try:
            result = await asyncio.wait_for(
                self._llm.complete_json(
                    [
                        {"role": "system", "content": CLASSIFIER_SYSTEM},
                        {"role": "user", "content": f'Child said: "{stripped}"'},
                    ],
                    model=self._model,
                    max_tokens=100,
                    temperature=0,
                ),
                timeout=self._timeout,
            )
        except Exception as e:
            logger.warning(f"Intent classification failed, using keyword fallback: {e}")
            return classify_keywords(stripped)

        signals = frozenset(
            signal for key, signal in _FIELD_TO_SIGNAL.items()
            if result.data.get(key) is True
        )
        logger.debug(f"Intents for '{stripped}': {sorted(s.value for s in signals)}")
        return signals
