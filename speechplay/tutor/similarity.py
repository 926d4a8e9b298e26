"""
SpeechPlay v1.2: Semantic Similarity Check
Asks a small model whether the child's word describes the same quality as
the target ("freezing" for "cold"). Used only for semantic card categories.

Results are cached per word pair for the life of the service.
Errors propagate: the AnswerEvaluator owns the timeout and fallback.
"""

import logging
from typing import Optional

from speechplay.config import SIMILARITY_MODEL
from speechplay.tutor.llm import LLMProvider, get_llm

logger = logging.getLogger("speechplay.tutor.similarity")

SIMILARITY_PROMPT = """This is a speech therapy exercise for children learning adjectives.
Card category: {category}
Question: {question}

Expected answer: "{target}"
Child said: "{child}"

Be LENIENT. Accept any word that describes the SAME QUALITY or DIRECTION.

ACCEPT (respond {{"similar": true}}):
- Same meaning: cold = freezing = chilly = frosty = icy
- Same meaning: big = large = huge = giant = enormous
- Same meaning: small = little = tiny = teeny
- Degree variations of the same quality (freezing is extreme cold)
- Child-friendly versions (teeny tiny = small)

REJECT (respond {{"similar": false}}):
- OPPOSITES: hot vs cold, big vs small
- DIFFERENT PROPERTIES: big vs hot
- UNRELATED: big vs apple

Respond JSON only: {{"similar": true}} or {{"similar": false}}"""


class SimilarityService:
    def __init__(self, llm: Optional[LLMProvider] = None, model: str = SIMILARITY_MODEL):
        self._llm = llm
        self._model = model
        self._cache: dict[str, bool] = {}

    @staticmethod
    def _cache_key(child_word: str, target_word: str) -> str:
        return f"{child_word}:{target_word}"

    async def check_similarity(
        self, child_response: str, target_answer: str, context: dict,
    ) -> bool:
        child = (child_response or "").strip().lower()
        target = (target_answer or "").strip().lower()
        if not child or not target:
            return False

        key = self._cache_key(child, target)
        if key in self._cache:
            logger.debug(f"Similarity cache hit: '{child}' vs '{target}' = {self._cache[key]}")
            return self._cache[key]

        llm = self._llm or get_llm()
        prompt = SIMILARITY_PROMPT.format(
            category=context.get("category", ""),
            question=context.get("question", ""),
            target=target,
            child=child,
        )
        result = await llm.complete_json(
            [{"role": "user", "content": prompt}],
            model=self._model,
            max_tokens=20,
            temperature=0.1,
        )
        similar = result.data.get("similar") is True
        self._cache[key] = similar
        logger.debug(f"Similarity: '{child}' vs '{target}' = {similar} ({result.latency_ms}ms)")
        return similar

    def clear_cache(self) -> None:
        self._cache.clear()

    @property
    def cache_size(self) -> int:
        return len(self._cache)
