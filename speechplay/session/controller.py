"""
SpeechPlay v1.2: Session Controller
One per play session. Owns the current card, attempt history, the two timers
and the Orchestrator, and runs one pipeline pass per child response or timer
fire.

Status flow:
    IDLE → WAITING_FOR_RESPONSE → EVALUATING →
        WAITING_FOR_RESPONSE   (incorrect, GREEN)
        CHOICES_SHOWN          (incorrect, YELLOW+)
        IDLE                   (correct)
    CHOICES_SHOWN → WAITING_FOR_RESPONSE only via RETRY_CARD
    break / breathing / grown-up → PAUSED until resume or a new card
    end() → ENDED

Concurrency rules:
- One pipeline pass at a time per session (asyncio.Lock).
- Timer fires carry (generation, card id) and re-check both after the lock
  is acquired. Stale fires are dropped.
- Callbacks run outside the lock. Their exceptions are logged, never raised.
"""

import asyncio
import inspect
import logging
import time
import uuid
from dataclasses import replace
from enum import Enum
from typing import Awaitable, Callable, Optional, Union

from speechplay.config import (
    DEFAULT_INACTIVITY_TIMEOUT_SECONDS, DEFAULT_TASK_TIMEOUT_SECONDS,
    TASK_TIMEOUT_MARKER, TASK_TIMEOUT_MESSAGE,
)
from speechplay.gate.orchestrator import Orchestrator
from speechplay.session.timers import InterruptGate, SimpleInterruptGate, Timer
from speechplay.state.types import (
    AudioSignals, CardContext, Event, EventType, Intervention, Level,
    SafetyGateResult, TaskContext, UIPackage,
)
from speechplay.tutor.answer_checker import AnswerEvaluator
from speechplay.tutor.enforcer import ensure_choice_prompt
from speechplay.tutor.llm import llm_available
from speechplay.tutor.similarity import SimilarityService

logger = logging.getLogger("speechplay.session.controller")

ResultCallback = Callable[[SafetyGateResult], Union[None, Awaitable[None]]]


class SessionStatus(str, Enum):
    IDLE = "IDLE"
    WAITING_FOR_RESPONSE = "WAITING_FOR_RESPONSE"
    EVALUATING = "EVALUATING"
    CHOICES_SHOWN = "CHOICES_SHOWN"
    PAUSED = "PAUSED"
    ENDED = "ENDED"


def _default_evaluator() -> AnswerEvaluator:
    return AnswerEvaluator(similarity=SimilarityService() if llm_available() else None)


class Session:
    def __init__(
        self,
        session_id: Optional[str] = None,
        orchestrator: Optional[Orchestrator] = None,
        evaluator: Optional[AnswerEvaluator] = None,
        interrupt_gate: Optional[InterruptGate] = None,
        inactivity_timeout_seconds: float = DEFAULT_INACTIVITY_TIMEOUT_SECONDS,
        task_timeout_seconds: float = DEFAULT_TASK_TIMEOUT_SECONDS,
    ):
        self.session_id = session_id or uuid.uuid4().hex
        self.orchestrator = orchestrator or Orchestrator()
        self.evaluator = evaluator or _default_evaluator()
        self.interrupt_gate = interrupt_gate or SimpleInterruptGate()

        self.status = SessionStatus.IDLE
        self.current_card: Optional[CardContext] = None
        self.attempt_count = 0
        self.response_history: list[str] = []
        self.session_start_time = time.monotonic()
        self.card_start_time: Optional[float] = None
        self.last_level = Level.GREEN

        self.inactivity_timeout_ms = int(inactivity_timeout_seconds * 1000)
        self.task_timeout_seconds = task_timeout_seconds

        self._card_id = 0
        self._is_waiting = False
        self._lock = asyncio.Lock()
        self._inactivity_timer = Timer("inactivity")
        self._task_timer = Timer("task")
        self._pending: set[asyncio.Task] = set()
        self._on_inactivity: Optional[ResultCallback] = None
        self._on_task_timeout: Optional[ResultCallback] = None

    # ─── Card Lifecycle ──────────────────────────────────────────────────────

    def set_current_card(self, card: CardContext) -> None:
        """Show a new card. Attempts and history carry over; timers start fresh."""
        self._stop_timers()
        self._card_id += 1
        self.current_card = card
        self.card_start_time = time.monotonic()
        self.orchestrator.set_task_context(TaskContext.from_card(card))
        self._start_task_timer()
        self.start_inactivity_timer()
        self.status = SessionStatus.WAITING_FOR_RESPONSE
        logger.info(f"[{self.session_id}] Card set: '{card.question}' (card {self._card_id})")

    def reset_for_new_card(self) -> None:
        self._stop_timers()
        self.current_card = None
        self.card_start_time = None
        self.attempt_count = 0
        self.response_history = []
        self.orchestrator.set_task_context(None)
        self.status = SessionStatus.IDLE

    def end(self) -> None:
        self.reset_for_new_card()
        for task in self._pending:
            task.cancel()
        self._pending.clear()
        self.status = SessionStatus.ENDED
        logger.info(f"[{self.session_id}] Session ended after {self.get_session_duration()}s")

    # ─── Child Response ──────────────────────────────────────────────────────

    async def process_child_response(
        self,
        transcription: str,
        audio_signals: Optional[AudioSignals] = None,
    ) -> SafetyGateResult:
        async with self._lock:
            if self._is_waiting:
                self.start_inactivity_timer()

            if self.current_card is None:
                logger.warning(f"[{self.session_id}] No card set, using default processing")
                return await self._default_result(transcription, audio_signals)

            card = self.current_card
            self.status = SessionStatus.EVALUATING
            self.attempt_count += 1
            self.response_history.append(transcription)

            is_correct = await self.evaluator.evaluate_card(transcription, card)
            event = Event(
                type=EventType.CHILD_RESPONSE,
                correct=is_correct,
                response=transcription,
                previous_response=self._history_item(-2),
                previous_previous_response=self._history_item(-3),
                signals=audio_signals,
            )
            ui = await self.orchestrator.process_event(event, TaskContext.from_card(card))
            level = self._absorb(ui)

            feedback = ui.speech_text
            if is_correct:
                self._stop_timers()
                self.status = SessionStatus.IDLE
            elif level >= Level.YELLOW:
                feedback = ensure_choice_prompt(feedback)
                self._stop_timers()
                self.status = SessionStatus.CHOICES_SHOWN
            else:
                # Answering from PAUSED puts the card back on the clock
                if not self._task_timer.active:
                    self._start_task_timer()
                self.start_inactivity_timer()
                self.status = SessionStatus.WAITING_FOR_RESPONSE

            self._log_turn(transcription, is_correct, ui, feedback)
            return self._build_result(ui, is_correct, feedback, child_said=transcription)

    async def _default_result(
        self, transcription: str, audio_signals: Optional[AudioSignals],
    ) -> SafetyGateResult:
        event = Event(
            type=EventType.CHILD_RESPONSE,
            correct=True,
            response=transcription,
            signals=audio_signals,
        )
        ui = await self.orchestrator.process_event(event)
        self._absorb(ui)
        return SafetyGateResult(
            ui_package=ui,
            is_correct=True,
            feedback_text=ui.speech_text,
            choice_message=ui.choice_message,
            child_said=transcription,
        )

    # ─── Choices ─────────────────────────────────────────────────────────────

    def handle_choice_selection(self, action: Union[str, Intervention]) -> None:
        try:
            choice = Intervention(action)
        except ValueError:
            logger.warning(f"[{self.session_id}] Unknown choice '{action}', timers stopped")
            self._stop_timers()
            self.status = SessionStatus.PAUSED
            return

        logger.info(f"[{self.session_id}] Choice selected: {choice.value}")
        if choice == Intervention.RETRY_CARD:
            if self.current_card is None:
                logger.warning(f"[{self.session_id}] RETRY_CARD with no card, nothing to retry")
                self._stop_timers()
                self.status = SessionStatus.IDLE
                return
            self._start_task_timer()
            self.start_inactivity_timer()
            self.status = SessionStatus.WAITING_FOR_RESPONSE
        elif choice in (Intervention.START_BREAK, Intervention.BUBBLE_BREATHING):
            self._stop_timers()
            self.orchestrator.reset_for_break()
            self.status = SessionStatus.PAUSED
        elif choice == Intervention.SKIP_CARD:
            self._stop_timers()
            self.current_card = None
            self.card_start_time = None
            self.status = SessionStatus.IDLE
        elif choice == Intervention.CALL_GROWNUP:
            self._stop_timers()
            self.status = SessionStatus.PAUSED

    def resume_session(self) -> None:
        """Back from a break, breathing or a grown-up."""
        if self.current_card is None:
            logger.info(f"[{self.session_id}] Resumed with no active card")
            self.status = SessionStatus.IDLE
            return
        self._start_task_timer()
        self.start_inactivity_timer()
        self.status = SessionStatus.WAITING_FOR_RESPONSE
        logger.info(f"[{self.session_id}] Resumed, waiting on current card")

    # ─── Inactivity Timer ────────────────────────────────────────────────────

    def start_inactivity_timer(self) -> None:
        card_id = self._card_id
        self._inactivity_timer.start(
            self.inactivity_timeout_ms / 1000,
            lambda generation: self._spawn(self._handle_inactivity(generation, card_id)),
        )
        self._is_waiting = True

    def stop_inactivity_timer(self) -> None:
        self._inactivity_timer.cancel()
        self._is_waiting = False

    async def _handle_inactivity(self, generation: int, card_id: int) -> None:
        async with self._lock:
            if (
                not self._inactivity_timer.is_current(generation)
                or card_id != self._card_id
                or not self._is_waiting
            ):
                logger.debug(f"[{self.session_id}] Stale inactivity fire ignored (gen {generation})")
                return

            if self.interrupt_gate.is_locked():
                logger.debug(f"[{self.session_id}] Inactivity while speaking, re-arming")
                self.start_inactivity_timer()
                return

            logger.info(
                f"[{self.session_id}] Inactivity after {self.inactivity_timeout_ms / 1000}s, "
                f"firing {EventType.CHILD_INACTIVE.value}"
            )
            event = Event(
                type=EventType.CHILD_INACTIVE,
                correct=False,
                previous_response=self._history_item(-1),
                previous_previous_response=self._history_item(-2),
            )
            task = TaskContext.from_card(self.current_card) if self.current_card else None
            ui = await self.orchestrator.process_event(event, task)
            level = self._absorb(ui)

            if level >= Level.YELLOW:
                self.stop_inactivity_timer()
                self.status = SessionStatus.CHOICES_SHOWN
            else:
                self.start_inactivity_timer()

            result = self._build_result(ui, False, ui.speech_text, child_said="[INACTIVE]")

        await self._deliver(self._on_inactivity, result, "inactivity")

    # ─── Task Timer ──────────────────────────────────────────────────────────

    def _start_task_timer(self) -> None:
        card_id = self._card_id
        self._task_timer.start(
            self.task_timeout_seconds,
            lambda generation: self._spawn(self._handle_task_timeout(generation, card_id)),
        )

    async def _handle_task_timeout(self, generation: int, card_id: int) -> None:
        async with self._lock:
            if not self._task_timer.is_current(generation) or card_id != self._card_id:
                logger.debug(f"[{self.session_id}] Stale task timeout ignored (gen {generation})")
                return

            logger.info(f"[{self.session_id}] Task timeout after {self.task_timeout_seconds}s")
            self.stop_inactivity_timer()

            event = Event(
                type=EventType.CHILD_RESPONSE,
                correct=False,
                response=TASK_TIMEOUT_MARKER,
                previous_response=self._history_item(-1),
                previous_previous_response=self._history_item(-2),
            )
            task = TaskContext.from_card(self.current_card) if self.current_card else None
            ui = await self.orchestrator.process_event(event, task)
            self._absorb(ui)
            ui = replace(ui, speech_text=TASK_TIMEOUT_MESSAGE)

            result = self._build_result(
                ui, False, TASK_TIMEOUT_MESSAGE,
                child_said=TASK_TIMEOUT_MARKER, task_time_exceeded=True,
            )
            # Force-skipped: the caller moves on to the next card
            self.current_card = None
            self.card_start_time = None
            self.status = SessionStatus.IDLE

        await self._deliver(self._on_task_timeout, result, "task timeout")

    # ─── Callbacks ───────────────────────────────────────────────────────────

    def set_inactivity_callback(self, callback: Optional[ResultCallback]) -> None:
        self._on_inactivity = callback

    def set_task_timeout_callback(self, callback: Optional[ResultCallback]) -> None:
        self._on_task_timeout = callback

    def set_inactivity_timeout(self, ms: int) -> None:
        self.inactivity_timeout_ms = ms

    async def _deliver(
        self, callback: Optional[ResultCallback], result: SafetyGateResult, kind: str,
    ) -> None:
        if callback is None:
            logger.debug(f"[{self.session_id}] No {kind} callback registered")
            return
        try:
            outcome = callback(result)
            if inspect.isawaitable(outcome):
                await outcome
        except Exception as e:
            logger.error(f"[{self.session_id}] {kind} callback failed: {e}", exc_info=True)

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    # ─── Accessors ───────────────────────────────────────────────────────────

    def get_attempt_count(self) -> int:
        return self.attempt_count

    def get_response_history(self) -> list[str]:
        return list(self.response_history)

    def get_card_elapsed_time(self) -> int:
        if self.card_start_time is None:
            return 0
        return int(time.monotonic() - self.card_start_time)

    def get_session_duration(self) -> int:
        return int(time.monotonic() - self.session_start_time)

    def get_current_card(self) -> Optional[CardContext]:
        return self.current_card

    def has_active_card(self) -> bool:
        return self.current_card is not None

    def is_waiting_for_child_response(self) -> bool:
        return self._is_waiting

    @property
    def task_timer_active(self) -> bool:
        return self._task_timer.active

    @property
    def inactivity_timer_active(self) -> bool:
        return self._inactivity_timer.active

    def snapshot(self) -> dict:
        return {
            "session_id": self.session_id,
            "status": self.status.value,
            "current_card": self.current_card.question if self.current_card else None,
            "attempt_count": self.attempt_count,
            "response_history": self.get_response_history(),
            "card_elapsed_seconds": self.get_card_elapsed_time(),
            "session_duration_seconds": self.get_session_duration(),
            "is_waiting_for_response": self._is_waiting,
            "inactivity_timeout_ms": self.inactivity_timeout_ms,
            "safety_level": self.last_level.name,
            "state": self.orchestrator.state.to_dict(),
        }

    # ─── Helpers ─────────────────────────────────────────────────────────────

    def _stop_timers(self) -> None:
        self.stop_inactivity_timer()
        self._task_timer.cancel()

    def _history_item(self, index: int) -> Optional[str]:
        if len(self.response_history) >= -index:
            return self.response_history[index]
        return None

    def _absorb(self, ui: UIPackage) -> Level:
        """Take the adapted timing from a pipeline pass."""
        self.inactivity_timeout_ms = ui.session_config.inactivity_timeout * 1000
        self.last_level = ui.overlay.safety_level
        return self.last_level

    def _build_result(
        self,
        ui: UIPackage,
        is_correct: bool,
        feedback: str,
        child_said: Optional[str],
        task_time_exceeded: bool = False,
    ) -> SafetyGateResult:
        targets = self.current_card.target_answers if self.current_card else ()
        history = tuple(self.response_history)
        ui = replace(
            ui,
            speech_text=feedback,
            child_said=child_said,
            target_answers=targets,
            attempt_number=self.attempt_count,
            response_history=history,
        )
        return SafetyGateResult(
            ui_package=ui,
            is_correct=is_correct,
            feedback_text=feedback,
            choice_message=ui.choice_message,
            task_time_exceeded=task_time_exceeded,
            child_said=child_said,
            target_answers=targets,
            attempt_number=self.attempt_count,
            response_history=history,
        )

    def _log_turn(self, said: str, is_correct: bool, ui: UIPackage, feedback: str) -> None:
        state = ui.overlay.state
        logger.info(
            f"[{self.session_id}] said='{said}' correct={is_correct} "
            f"level={ui.overlay.safety_level.name} "
            f"signals={sorted(s.value for s in ui.overlay.signals)} "
            f"eng={state.engagement_level:.1f} dys={state.dysregulation_level:.1f} "
            f"fat={state.fatigue_level:.1f} errors={state.consecutive_errors} "
            f"attempt={self.attempt_count} feedback='{feedback}'"
        )
