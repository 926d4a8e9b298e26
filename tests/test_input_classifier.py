"""
Tests for intent classification (keyword fallback and LLM path) and the
semantic similarity service.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest

from speechplay.state.types import Signal
from speechplay.tutor.input_classifier import IntentClassifier, classify_keywords
from speechplay.tutor.llm import LLMResult
from speechplay.tutor.similarity import SimilarityService


def llm_returning(data):
    llm = AsyncMock()
    llm.complete_json.return_value = LLMResult(data=data, latency_ms=12, model="test", usage={})
    return llm


# ─── Keyword Fallback ────────────────────────────────────────────────────────

class TestKeywordIntents:
    def test_plain_answer_has_no_intent(self):
        assert classify_keywords("sad") == frozenset()
        assert classify_keywords("very small") == frozenset()

    def test_break(self):
        assert classify_keywords("I want a break") == {Signal.WANTS_BREAK}
        assert classify_keywords("I'm tired") == {Signal.WANTS_BREAK}

    def test_quit(self):
        assert Signal.WANTS_QUIT in classify_keywords("I'm done")
        assert Signal.WANTS_QUIT in classify_keywords("no more!")

    def test_distress(self):
        assert Signal.DISTRESS in classify_keywords("no, no, no!")
        assert Signal.DISTRESS in classify_keywords("AAAHHH")
        assert Signal.DISTRESS in classify_keywords("[crying]")

    def test_frustration(self):
        assert classify_keywords("ugh this is hard") == {Signal.FRUSTRATION}

    def test_distress_wins_over_frustration(self):
        signals = classify_keywords("ugh no no no")
        assert Signal.DISTRESS in signals
        assert Signal.FRUSTRATION not in signals

    def test_empty(self):
        assert classify_keywords("") == frozenset()
        assert classify_keywords(None) == frozenset()


@pytest.mark.asyncio
class TestIntentClassifier:
    async def test_without_llm_uses_keywords(self):
        assert await IntentClassifier().classify("I need a break") == {Signal.WANTS_BREAK}

    async def test_synthetic_markers_skipped(self):
        llm = llm_returning({"distress": True})
        classifier = IntentClassifier(llm=llm)
        assert await classifier.classify("[TASK_TIMEOUT]") == frozenset()
        assert await classifier.classify("   ") == frozenset()
        llm.complete_json.assert_not_called()

    async def test_llm_fields_map_to_signals(self):
        llm = llm_returning({
            "break_request": True, "quit_request": False,
            "frustration": True, "distress": False, "confidence": 0.9,
        })
        signals = await IntentClassifier(llm=llm).classify("ugh can we stop")
        assert signals == {Signal.WANTS_BREAK, Signal.FRUSTRATION}

    async def test_llm_answer_word_not_flagged(self):
        llm = llm_returning({"break_request": False, "distress": False})
        assert await IntentClassifier(llm=llm).classify("angry") == frozenset()

    async def test_llm_failure_falls_back_to_keywords(self):
        llm = AsyncMock()
        llm.complete_json.side_effect = RuntimeError("rate limited")
        signals = await IntentClassifier(llm=llm).classify("I want to quit")
        assert signals == {Signal.WANTS_QUIT}

    async def test_llm_timeout_falls_back_to_keywords(self):
        async def slow(*args, **kwargs):
            await asyncio.sleep(1)

        llm = AsyncMock()
        llm.complete_json.side_effect = slow
        classifier = IntentClassifier(llm=llm, timeout_seconds=0.01)
        assert await classifier.classify("I'm tired") == {Signal.WANTS_BREAK}


# ─── Similarity Service ──────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestSimilarityService:
    async def test_similar(self):
        service = SimilarityService(llm=llm_returning({"similar": True}))
        assert await service.check_similarity("Freezing", "cold", {"category": "Synonyms Level 1"})

    async def test_not_similar(self):
        service = SimilarityService(llm=llm_returning({"similar": False}))
        assert not await service.check_similarity("hot", "cold", {})

    async def test_results_cached(self):
        llm = llm_returning({"similar": True})
        service = SimilarityService(llm=llm)
        await service.check_similarity("freezing", "cold", {})
        await service.check_similarity("FREEZING ", "cold", {})
        assert llm.complete_json.await_count == 1
        assert service.cache_size == 1
        service.clear_cache()
        assert service.cache_size == 0

    async def test_empty_input_never_calls_llm(self):
        llm = llm_returning({"similar": True})
        service = SimilarityService(llm=llm)
        assert not await service.check_similarity("", "cold", {})
        llm.complete_json.assert_not_called()

    async def test_errors_propagate(self):
        llm = AsyncMock()
        llm.complete_json.side_effect = RuntimeError("boom")
        with pytest.raises(RuntimeError):
            await SimilarityService(llm=llm).check_similarity("icy", "cold", {})
