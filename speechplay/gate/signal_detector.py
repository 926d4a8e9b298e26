"""
SpeechPlay v1.2: Signal Detector
Event + State (+ classified intents) → set of discrete Signals.

Pure and read-only. Signals compose: several can fire on one event and no
signal takes precedence at this stage. The Level Assessor decides what they
mean together.
"""

import logging
from typing import Iterable

from speechplay.state.types import (
    Event, EventType, INTENT_SIGNALS, Signal, State,
)

logger = logging.getLogger("speechplay.gate.signal_detector")

CONSECUTIVE_ERRORS_THRESHOLD = 3
ENGAGEMENT_DROP_THRESHOLD = 3
FATIGUE_HIGH_THRESHOLD = 6
DYSREGULATION_THRESHOLD = 5


def detect_audio_signals(event: Event) -> set:
    found = set()
    if event.signals is None:
        return found
    if event.signals.screaming:
        found.add(Signal.SCREAMING)
    if event.signals.crying:
        found.add(Signal.CRYING)
    if event.signals.prolonged_silence:
        found.add(Signal.PROLONGED_SILENCE)
    return found


def detect_pattern_signals(event: Event) -> set:
    """Same answer as last time."""
    if (
        event.type == EventType.CHILD_RESPONSE
        and event.response
        and event.response == event.previous_response
    ):
        return {Signal.REPETITIVE_RESPONSE}
    return set()


def detect_state_signals(state: State) -> set:
    found = set()
    if state.consecutive_errors >= CONSECUTIVE_ERRORS_THRESHOLD:
        found.add(Signal.CONSECUTIVE_ERRORS)
    if state.engagement_level <= ENGAGEMENT_DROP_THRESHOLD:
        found.add(Signal.ENGAGEMENT_DROP)
    if state.fatigue_level >= FATIGUE_HIGH_THRESHOLD:
        found.add(Signal.FATIGUE_HIGH)
    if state.dysregulation_level >= DYSREGULATION_THRESHOLD:
        found.add(Signal.DYSREGULATION_DETECTED)
    return found


def detect_event_signals(event: Event, intents: Iterable[Signal] = ()) -> frozenset:
    """Audio, pattern and intent signals only. No State needed."""
    found = detect_audio_signals(event) | detect_pattern_signals(event)
    found |= {s for s in intents if s in INTENT_SIGNALS}
    return frozenset(found)


def detect(event: Event, state: State, intents: Iterable[Signal] = ()) -> frozenset:
    """All signals for this event against the given state."""
    signals = detect_event_signals(event, intents) | detect_state_signals(state)
    if signals:
        logger.debug(f"Signals: {sorted(s.value for s in signals)}")
    return frozenset(signals)
