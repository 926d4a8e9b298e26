"""
SpeechPlay v1.2: Answer Checker
Decides whether a child's transcribed answer matches the card.

Fast path is DETERMINISTIC PYTHON. No LLM. Handles:
  - Exact match: "cold" == "Cold "
  - Embedded answer: "it's cold!" contains "cold"
  - Partial answer: "col" is NOT enough, "the cold" matches "cold"
  - ASR mis-hearings: "called" for "cold", "thirty" for "dirty"

Semantic categories (antonym/synonym families) get one more chance through
the similarity service. That call is bounded and never blocks the turn.
"""

import asyncio
import logging
from typing import Optional, Protocol, Sequence

from speechplay.config import CATEGORY_POLICIES, SIMILARITY_TIMEOUT_SECONDS
from speechplay.state.types import CardContext

logger = logging.getLogger("speechplay.tutor.answer_checker")

POLICY_EXACT = "exact"
POLICY_SEMANTIC = "semantic"


# ─── ASR Mis-hearings ────────────────────────────────────────────────────────
# target word → what speech recognition commonly returns instead

PHONETIC_VARIATIONS = {
    "cold": ["called", "coal"],
    "hot": ["hat", "hut"],
    "big": ["beg", "bag"],
    "small": ["smell", "mall"],
    "fast": ["fist", "fest"],
    "slow": ["slew"],
    "sad": ["said", "sat"],
    "tall": ["toll", "tale"],
    "short": ["shirt", "shot"],
    "light": ["lite", "lit"],
    "dark": ["dock", "dork"],
    "hard": ["heart"],
    "soft": ["sought"],
    "clean": ["clene"],
    "dirty": ["thirty"],
    "new": ["knew", "nu"],
    "old": ["owed"],
    "wet": ["what"],
    "dry": ["dri", "try"],
    "full": ["fool"],
    "empty": ["empti"],
    "loud": ["allowed"],
    "quiet": ["quite"],
    "heavy": ["heave"],
    "open": ["opened"],
    "closed": ["close"],
    "down": ["downed"],
    "good": ["could", "wood"],
    "bad": ["bed", "bat"],
}


class SimilarityChecker(Protocol):
    async def check_similarity(
        self, child_response: str, target_answer: str, context: dict,
    ) -> bool: ...


def _normalize(text: str) -> str:
    return (text or "").strip().lower()


def get_category_policy(category: Optional[str]) -> str:
    """Look up how a card category is judged. Unlisted categories are exact."""
    if not category:
        return POLICY_EXACT
    return CATEGORY_POLICIES.get(category, POLICY_EXACT)


def get_phonetic_variations(word: str) -> list[str]:
    """The word itself plus its known mis-hearings."""
    return [word] + PHONETIC_VARIATIONS.get(word, [])


def match_answer(transcription: str, target_answers: Sequence[str]) -> bool:
    """
    Deterministic match. First rule that hits wins:
    1. exact, 2. containment either way, 3. phonetic variation.
    """
    normalized = _normalize(transcription)
    if not normalized:
        return False

    for target in target_answers:
        normalized_target = _normalize(target)
        if not normalized_target:
            continue

        if normalized == normalized_target:
            return True

        # "it's cold!" → "cold"
        if normalized_target in normalized:
            return True

        # "the cold" → "cold", but "co" is too short to count
        if len(normalized) >= 3 and normalized in normalized_target:
            return True

        if any(v in normalized for v in get_phonetic_variations(normalized_target)):
            return True

    return False


class AnswerEvaluator:
    """
    Sync match first, semantic similarity second (policy permitting).

    evaluate() never raises. A failed or slow similarity call means
    "incorrect", which the pipeline already handles gently.
    """

    def __init__(
        self,
        similarity: Optional[SimilarityChecker] = None,
        timeout_seconds: float = SIMILARITY_TIMEOUT_SECONDS,
    ):
        self._similarity = similarity
        self._timeout = timeout_seconds

    async def evaluate(
        self,
        transcription: str,
        target_answers: Sequence[str],
        context: Optional[dict] = None,
    ) -> bool:
        try:
            if match_answer(transcription, target_answers):
                return True
        except Exception as e:
            logger.error(f"Sync answer match failed: {e}")
            return False

        category = (context or {}).get("category")
        if get_category_policy(category) != POLICY_SEMANTIC:
            return False
        if self._similarity is None or not target_answers:
            return False

        logger.debug(f"Sync match failed for '{transcription}', trying similarity ({category})")
        try:
            similar = await asyncio.wait_for(
                self._similarity.check_similarity(
                    transcription, target_answers[0], context or {},
                ),
                timeout=self._timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Similarity check timed out after {self._timeout}s, marking incorrect")
            return False
        except Exception as e:
            logger.warning(f"Similarity check failed, marking incorrect: {e}")
            return False

        if similar:
            logger.info(f"Similarity accepted '{transcription}' for '{target_answers[0]}'")
        return bool(similar)

    async def evaluate_card(self, transcription: str, card: CardContext) -> bool:
        return await self.evaluate(
            transcription,
            card.target_answers,
            {"category": card.category, "question": card.question},
        )
