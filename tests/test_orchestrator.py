"""
Tests for the orchestrator: one full pipeline pass per event, composer
fallbacks, and the state it carries between events.
"""

import asyncio
import logging
from unittest.mock import AsyncMock

import pytest

from speechplay.gate.orchestrator import Orchestrator, determine_decision
from speechplay.state.types import (
    AudioSignals, ComposedResponse, Event, EventType, Intervention, Level,
    Signal, State, TaskContext,
)
from speechplay.tutor.composer import TemplateComposer
from speechplay.tutor.input_classifier import IntentClassifier

pytestmark = pytest.mark.asyncio

TASK = TaskContext(
    card_type="single-answer", category="Antonyms",
    question="What is the opposite of hot?", target_answer="cold",
)


def make_orchestrator(composer=None, state=None, **kwargs):
    return Orchestrator(
        composer=composer or TemplateComposer(),
        classifier=IntentClassifier(),
        state=state,
        **kwargs,
    )


def composer_returning(line, choices=""):
    composer = AsyncMock()
    composer.compose.return_value = ComposedResponse(line, choices)
    return composer


def answer(correct, text="banana", **kwargs):
    return Event(type=EventType.CHILD_RESPONSE, correct=correct, response=text, **kwargs)


class TestPipelinePass:
    async def test_correct_answer_green(self):
        orchestrator = make_orchestrator()
        ui = await orchestrator.process_event(answer(True, "cold"), TASK)
        assert ui.overlay.safety_level == Level.GREEN
        assert ui.speech_text == "Great job! You got it!"
        assert ui.interventions == ()
        assert ui.decision == "CONTINUE_NORMAL"
        assert ui.session_config.inactivity_timeout == 30
        assert not ui.used_fallback

    async def test_state_carries_between_events(self):
        orchestrator = make_orchestrator()
        await orchestrator.process_event(answer(False, "dog"), TASK)
        await orchestrator.process_event(answer(False, "cat"), TASK)
        assert orchestrator.state.consecutive_errors == 2
        assert orchestrator.state.engagement_level == 6.0

    async def test_third_error_escalates_to_yellow(self):
        orchestrator = make_orchestrator(state=State(consecutive_errors=2))
        ui = await orchestrator.process_event(answer(False), TASK)
        assert ui.overlay.safety_level == Level.YELLOW
        assert Signal.CONSECUTIVE_ERRORS in ui.overlay.signals
        assert ui.interventions[0] == Intervention.RETRY_CARD
        assert ui.decision == "TRIGGER_REGULATION_WITH_CHOICES"
        assert ui.session_config.inactivity_timeout == 25
        assert ui.speech_text.endswith("What would you like to do?")

    async def test_break_request_from_text(self):
        orchestrator = make_orchestrator()
        ui = await orchestrator.process_event(answer(False, "I want a break"), TASK)
        assert Signal.WANTS_BREAK in ui.overlay.signals
        assert ui.overlay.safety_level == Level.YELLOW
        assert orchestrator.state.fatigue_level == pytest.approx(3.1, abs=0.01)

    async def test_repeated_wrong_answer_is_orange(self):
        orchestrator = make_orchestrator()
        await orchestrator.process_event(answer(False, "hot"), TASK)
        await orchestrator.process_event(answer(False, "hot", previous_response="hot"), TASK)
        ui = await orchestrator.process_event(
            answer(False, "hot", previous_response="hot", previous_previous_response="hot"), TASK,
        )
        assert Signal.REPETITIVE_RESPONSE in ui.overlay.signals
        assert ui.overlay.safety_level == Level.ORANGE
        assert Intervention.RETRY_CARD not in ui.interventions

    async def test_screaming_calls_grownup_first(self):
        orchestrator = make_orchestrator()
        event = answer(False, signals=AudioSignals(screaming=True))
        ui = await orchestrator.process_event(event, TASK)
        assert ui.overlay.safety_level == Level.ORANGE
        assert ui.interventions[0] == Intervention.CALL_GROWNUP
        assert ui.session_config.enable_audio_support

    async def test_distress_with_high_dysregulation_is_red(self):
        orchestrator = make_orchestrator(state=State(dysregulation_level=5.0))
        event = answer(False, signals=AudioSignals(crying=True))
        ui = await orchestrator.process_event(event, TASK)
        assert ui.overlay.safety_level == Level.RED
        assert ui.decision == "CALL_GROWNUP_IMMEDIATELY"

    async def test_works_without_task_context(self):
        ui = await make_orchestrator().process_event(answer(True, "hello"))
        assert ui.speech_text == "Great job! You got it!"

    async def test_logs_pipeline_flow(self, caplog):
        with caplog.at_level(logging.INFO, logger="speechplay.gate.orchestrator"):
            await make_orchestrator().process_event(answer(True, "cold"), TASK)
        assert any("Pipeline flow" in r.getMessage() for r in caplog.records)


class TestComposerFallback:
    async def test_inactive_skips_composer(self):
        composer = AsyncMock()
        orchestrator = make_orchestrator(composer=composer)
        ui = await orchestrator.process_event(Event(type=EventType.CHILD_INACTIVE, correct=False), TASK)
        composer.compose.assert_not_called()
        assert ui.used_fallback
        assert ui.speech_text == "Are you still there? Take your time!"
        assert orchestrator.state.engagement_level == 6.5

    async def test_valid_composed_line_used(self):
        orchestrator = make_orchestrator(composer=composer_returning("I heard banana! Let's try again!"))
        ui = await orchestrator.process_event(answer(False), TASK)
        assert ui.speech_text == "I heard banana! Let's try again!"
        assert not ui.used_fallback

    async def test_invalid_line_replaced(self):
        orchestrator = make_orchestrator(composer=composer_returning("That's wrong. Try harder."))
        ui = await orchestrator.process_event(answer(False), TASK)
        assert ui.used_fallback
        assert ui.speech_text == "I heard you! Let's try again!"

    async def test_composer_error_replaced(self):
        composer = AsyncMock()
        composer.compose.side_effect = RuntimeError("openai down")
        ui = await make_orchestrator(composer=composer).process_event(answer(True, "cold"), TASK)
        assert ui.used_fallback
        assert ui.speech_text == "Great job! You got it!"

    async def test_composer_timeout_replaced(self):
        async def slow(*args):
            await asyncio.sleep(1)

        composer = AsyncMock()
        composer.compose.side_effect = slow
        orchestrator = make_orchestrator(composer=composer, composer_timeout=0.01)
        ui = await orchestrator.process_event(answer(False), TASK)
        assert ui.used_fallback
        assert ui.speech_text == "I heard you! Let's try again!"


class TestBreaks:
    async def test_reset_for_break(self):
        orchestrator = make_orchestrator(state=State(dysregulation_level=6.0, fatigue_level=7.0))
        state = orchestrator.reset_for_break()
        assert state.dysregulation_level == 4.0
        assert state.fatigue_level == 4.0
        assert orchestrator.state is state

    async def test_reset(self):
        orchestrator = make_orchestrator(state=State(consecutive_errors=4))
        orchestrator.reset()
        assert orchestrator.state.consecutive_errors == 0
        assert orchestrator.state.engagement_level == 8.0


class TestDecision:
    async def test_decisions(self):
        assert determine_decision(Level.GREEN, ()) == "CONTINUE_NORMAL"
        assert determine_decision(Level.YELLOW, (Intervention.RETRY_CARD,)) == "ADAPT_AND_CONTINUE"
        assert determine_decision(Level.ORANGE, (Intervention.START_BREAK,)) == "START_BREAK_NOW"
        assert determine_decision(Level.RED, ()) == "CALL_GROWNUP_IMMEDIATELY"
