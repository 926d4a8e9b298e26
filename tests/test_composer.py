"""
Tests for the response validator, safe templates and both composers.
"""

from unittest.mock import AsyncMock

import pytest

from speechplay.config import CHOICE_PROMPT, FORBIDDEN_WORDS
from speechplay.gate.orchestrator import build_constraints
from speechplay.gate.config_adapter import adapt
from speechplay.state.types import (
    ComposedResponse, Event, EventType, Intervention, Level, TaskContext,
)
from speechplay.tutor.composer import (
    LLMResponseComposer, TemplateComposer, build_composer_messages,
)
from speechplay.tutor.enforcer import (
    count_sentences, ensure_choice_prompt, find_forbidden, safe_template, validate,
)
from speechplay.tutor.llm import LLMResult

TASK = TaskContext(
    card_type="single-answer", category="Antonyms",
    question="What is the opposite of hot?", target_answer="cold",
)
YELLOW_MENU = (Intervention.RETRY_CARD, Intervention.SKIP_CARD)


def constraints(level):
    return build_constraints(adapt(level), level)


def wrong(text="banana"):
    return Event(type=EventType.CHILD_RESPONSE, correct=False, response=text)


# ─── Validator ───────────────────────────────────────────────────────────────

class TestValidator:
    def test_good_green_line(self):
        result = validate(ComposedResponse("I heard banana! Let's try again!", ""), constraints(Level.GREEN))
        assert result.valid
        assert result.reason is None

    def test_too_long(self):
        line = " ".join(["fun"] * 31)
        result = validate(ComposedResponse(line, ""), constraints(Level.GREEN))
        assert not result.checks["length_appropriate"]

    def test_forbidden_whole_words_only(self):
        assert find_forbidden("No, that one is hot.", FORBIDDEN_WORDS) == ["no"]
        assert find_forbidden("I know you can do it", FORBIDDEN_WORDS) == []
        assert find_forbidden("Not quite, try  harder!", FORBIDDEN_WORDS) == ["try harder"]

    def test_judgmental(self):
        result = validate(ComposedResponse("You should listen.", ""), constraints(Level.GREEN))
        assert not result.checks["non_judgmental"]
        assert "non_judgmental" in result.reason

    def test_choices_required_at_yellow(self):
        result = validate(ComposedResponse("Good try!", ""), constraints(Level.YELLOW))
        assert not result.checks["choices_included"]

    def test_choice_presentation_counts(self):
        result = validate(ComposedResponse("Good try!", CHOICE_PROMPT), constraints(Level.YELLOW))
        assert result.valid

    def test_sentence_limit_by_level(self):
        line = "I heard you. Good try. Nice work."
        assert not validate(ComposedResponse(line, ""), constraints(Level.GREEN)).valid
        assert validate(ComposedResponse(line, CHOICE_PROMPT), constraints(Level.YELLOW)).valid

    def test_empty_line(self):
        assert not validate(ComposedResponse("  ", ""), constraints(Level.GREEN)).valid

    def test_count_sentences(self):
        assert count_sentences("Great job! You got it!") == 2
        assert count_sentences("Are you still there?") == 1


# ─── Templates ───────────────────────────────────────────────────────────────

class TestTemplates:
    def test_correct(self):
        assert safe_template(EventType.CHILD_RESPONSE, True, Level.ORANGE) == "Great job! You got it!"

    def test_incorrect_green(self):
        assert safe_template(EventType.CHILD_RESPONSE, False, Level.GREEN) == "I heard you! Let's try again!"

    def test_incorrect_yellow(self):
        text = safe_template(EventType.CHILD_RESPONSE, False, Level.YELLOW)
        assert text == "I heard you! Good try! What would you like to do?"

    def test_inactive(self):
        assert safe_template(EventType.CHILD_INACTIVE, False, Level.GREEN) == "Are you still there? Take your time!"
        assert safe_template(EventType.CHILD_INACTIVE, False, Level.RED).endswith(CHOICE_PROMPT)

    @pytest.mark.parametrize("level", list(Level))
    def test_templates_pass_validation(self, level):
        for event_type, correct in [
            (EventType.CHILD_RESPONSE, True),
            (EventType.CHILD_RESPONSE, False),
            (EventType.CHILD_INACTIVE, False),
        ]:
            line = safe_template(event_type, correct, level)
            choices = CHOICE_PROMPT if level >= Level.YELLOW else ""
            assert validate(ComposedResponse(line, choices), constraints(level)).valid, line


class TestEnsureChoicePrompt:
    def test_appends(self):
        assert ensure_choice_prompt("Nice try.") == "Nice try! What would you like to do?"

    def test_strips_trailing_punctuation(self):
        assert ensure_choice_prompt("Almost there!?! ") == "Almost there! What would you like to do?"

    def test_already_present(self):
        text = "Good try! what would you like to do?"
        assert ensure_choice_prompt(text) == text

    def test_empty(self):
        assert ensure_choice_prompt("") == CHOICE_PROMPT


# ─── Composers ───────────────────────────────────────────────────────────────

@pytest.mark.asyncio
class TestComposers:
    async def test_template_composer(self):
        composed = await TemplateComposer().compose(
            Level.YELLOW, frozenset(), YELLOW_MENU, TASK, wrong(), constraints(Level.YELLOW),
        )
        assert composed.coach_line == "I heard you! Good try! What would you like to do?"
        assert composed.choice_presentation == CHOICE_PROMPT

    async def test_template_composer_no_choices_at_green(self):
        composed = await TemplateComposer().compose(
            Level.GREEN, frozenset(), (), TASK, wrong(), constraints(Level.GREEN),
        )
        assert composed.choice_presentation == ""

    async def test_llm_composer(self):
        llm = AsyncMock()
        llm.complete_json.return_value = LLMResult(
            data={"coach_line": " I heard banana! Let's try again! "},
            latency_ms=300, model="gpt-4o", usage={},
        )
        composed = await LLMResponseComposer(llm=llm).compose(
            Level.GREEN, frozenset(), (), TASK, wrong(), constraints(Level.GREEN),
        )
        assert composed.coach_line == "I heard banana! Let's try again!"
        assert llm.complete_json.await_args.kwargs["model"] == "gpt-4o"

    async def test_llm_composer_missing_line_raises(self):
        llm = AsyncMock()
        llm.complete_json.return_value = LLMResult(data={}, latency_ms=1, model="gpt-4o", usage={})
        with pytest.raises(ValueError):
            await LLMResponseComposer(llm=llm).compose(
                Level.GREEN, frozenset(), (), TASK, wrong(), constraints(Level.GREEN),
            )

    async def test_llm_composer_skips_inactive(self):
        llm = AsyncMock()
        event = Event(type=EventType.CHILD_INACTIVE, correct=False)
        composed = await LLMResponseComposer(llm=llm).compose(
            Level.GREEN, frozenset(), (), TASK, event, constraints(Level.GREEN),
        )
        assert composed.coach_line == "Are you still there? Take your time!"
        llm.complete_json.assert_not_called()


class TestComposerPrompt:
    def test_prompt_carries_rules_and_card(self):
        messages = build_composer_messages(
            Level.ORANGE, frozenset(), YELLOW_MENU, TASK, wrong(), constraints(Level.ORANGE),
        )
        system, user = messages[0]["content"], messages[1]["content"]
        assert "try harder" in system
        assert CHOICE_PROMPT in system
        assert "acknowledging how the child feels" in system
        assert "opposite of hot" in user
        assert '"banana"' in user
        assert "RETRY_CARD" in user
