"""
SpeechPlay v1.2: Safety Gate Orchestrator
One full pipeline pass per event:

    Event → Intents → Signals → State → Level → Interventions → Config
          → Composer → Validator → UIPackage

One Orchestrator per session: it owns that session's State (through the
StateUpdater) and nothing else. Never raises to the caller; every external
failure ends in a safe template.
"""

import asyncio
import json
import logging
from typing import Optional

from speechplay.config import (
    COMPOSER_TIMEOUT_SECONDS, ENABLE_LLM_INTENTS, FORBIDDEN_WORDS,
)
from speechplay.gate import config_adapter, interventions, level_assessor, signal_detector
from speechplay.gate.state_updater import StateUpdater, initial_state
from speechplay.state.types import (
    ComposedResponse, Event, EventType, Intervention, Level, Overlay,
    ResponseConstraints, SessionConfig, State, TaskContext, UIPackage,
)
from speechplay.tutor.composer import ResponseComposer, choice_presentation, get_composer
from speechplay.tutor.enforcer import max_sentences_for, safe_template, validate
from speechplay.tutor.input_classifier import IntentClassifier
from speechplay.tutor.llm import get_llm, llm_available

logger = logging.getLogger("speechplay.gate.orchestrator")

EMPTY_TASK = TaskContext(
    card_type="single-answer", category="", question="", target_answer="",
)


def determine_decision(level: Level, selected: tuple[Intervention, ...]) -> str:
    if level == Level.RED:
        return "CALL_GROWNUP_IMMEDIATELY"
    if Intervention.BUBBLE_BREATHING in selected:
        return "TRIGGER_REGULATION_WITH_CHOICES"
    if Intervention.START_BREAK in selected:
        return "START_BREAK_NOW"
    if level >= Level.YELLOW:
        return "ADAPT_AND_CONTINUE"
    return "CONTINUE_NORMAL"


def build_constraints(config: SessionConfig, level: Level) -> ResponseConstraints:
    return ResponseConstraints(
        must_use_tone=config.avatar_tone,
        must_offer_choices=level >= Level.YELLOW,
        must_validate_feelings=level >= Level.ORANGE,
        max_sentences=max_sentences_for(level),
        forbidden_words=tuple(FORBIDDEN_WORDS),
    )


def _default_classifier() -> IntentClassifier:
    if ENABLE_LLM_INTENTS and llm_available():
        return IntentClassifier(llm=get_llm())
    return IntentClassifier()


class Orchestrator:
    def __init__(
        self,
        composer: Optional[ResponseComposer] = None,
        classifier: Optional[IntentClassifier] = None,
        state: Optional[State] = None,
        composer_timeout: float = COMPOSER_TIMEOUT_SECONDS,
    ):
        self.composer = composer or get_composer()
        self.classifier = classifier or _default_classifier()
        self.updater = StateUpdater()
        self._state = state or initial_state()
        self._composer_timeout = composer_timeout
        self._task_context: Optional[TaskContext] = None

    @property
    def state(self) -> State:
        return self._state

    def set_task_context(self, task_context: Optional[TaskContext]) -> None:
        self._task_context = task_context

    def reset_for_break(self) -> State:
        self._state = self.updater.reset_for_break(self._state)
        logger.info(
            f"Break taken: dys={self._state.dysregulation_level:.1f} "
            f"fat={self._state.fatigue_level:.1f}"
        )
        return self._state

    def reset(self) -> None:
        """Fresh child state. Only for an explicit session reset, never a new card."""
        self.updater.reset()
        self._state = initial_state()

    async def process_event(
        self, event: Event, task_context: Optional[TaskContext] = None,
    ) -> UIPackage:
        if task_context is not None:
            self._task_context = task_context
        task = self._task_context or EMPTY_TASK

        flow = {
            "event": {
                "type": event.type.value,
                "correct": event.correct,
                "response": event.response,
            },
            "task": {"category": task.category, "target": task.target_answer},
        }

        # 1. Intents → event signals → state → full signal set
        intents = frozenset()
        if event.type == EventType.CHILD_RESPONSE:
            intents = await self.classifier.classify(event.response)
        event_signals = signal_detector.detect_event_signals(event, intents)
        self._state = self.updater.update(self._state, event, event_signals)
        signals = signal_detector.detect(event, self._state, intents)
        flow["signals"] = sorted(s.value for s in signals)
        flow["state"] = self._state.to_dict()

        # 2. Level → interventions → config
        level = level_assessor.assess(self._state, signals)
        selected = interventions.select(level, signals)
        config = config_adapter.adapt(level)
        constraints = build_constraints(config, level)
        decision = determine_decision(level, selected)
        flow["level"] = level.name
        flow["interventions"] = [i.value for i in selected]
        flow["decision"] = decision

        # 3. Compose and validate
        composed, used_fallback = await self._compose(
            level, signals, selected, task, event, constraints, flow,
        )
        flow["used_fallback"] = used_fallback
        flow["speech_text"] = composed.coach_line

        logger.info(f"Pipeline flow: {json.dumps(flow, default=str)}")

        return UIPackage(
            overlay=Overlay(signals=signals, state=self._state, safety_level=level),
            interventions=selected,
            session_config=config,
            speech_text=composed.coach_line,
            choice_message=composed.choice_presentation,
            decision=decision,
            used_fallback=used_fallback,
        )

    async def _compose(
        self,
        level: Level,
        signals: frozenset,
        selected: tuple[Intervention, ...],
        task: TaskContext,
        event: Event,
        constraints: ResponseConstraints,
        flow: dict,
    ) -> tuple[ComposedResponse, bool]:
        fallback = ComposedResponse(
            coach_line=safe_template(event.type, bool(event.correct), level),
            choice_presentation=choice_presentation(selected),
        )

        if event.type == EventType.CHILD_INACTIVE:
            flow["composer_skipped"] = "CHILD_INACTIVE"
            return fallback, True

        try:
            composed = await asyncio.wait_for(
                self.composer.compose(level, signals, selected, task, event, constraints),
                timeout=self._composer_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(f"Composer timed out after {self._composer_timeout}s, using template")
            flow["composer_error"] = "timeout"
            return fallback, True
        except Exception as e:
            logger.error(f"Composer failed, using template: {e}")
            flow["composer_error"] = str(e)
            return fallback, True

        validation = validate(composed, constraints)
        flow["validation"] = {"valid": validation.valid, "reason": validation.reason}
        if not validation.valid:
            logger.warning(f"Composed line rejected ({validation.reason}): {composed.coach_line!r}")
            return fallback, True
        return composed, False
