"""
SpeechPlay v1.2: Level Assessor
(State, Signals) → Level. Pure and total.

Every rule proposes a minimum level; the result is the highest proposal.
Rules never add up: three YELLOW conditions are still YELLOW.
"""

import logging

from speechplay.config import LEVEL_THRESHOLDS
from speechplay.state.types import DISTRESS_SIGNALS, Level, Signal, State

logger = logging.getLogger("speechplay.gate.level_assessor")

# Asking for a break or grumbling is worth adapting to, not alarming
YELLOW_SIGNALS = frozenset({
    Signal.WANTS_BREAK,
    Signal.WANTS_QUIT,
    Signal.FRUSTRATION,
    Signal.PROLONGED_SILENCE,
})

# Giving the same wrong answer again means the child is stuck
ORANGE_SIGNALS = frozenset({
    Signal.REPETITIVE_RESPONSE,
})


def _state_level(state: State) -> Level:
    red = LEVEL_THRESHOLDS["red"]
    orange = LEVEL_THRESHOLDS["orange"]
    yellow = LEVEL_THRESHOLDS["yellow"]

    if state.dysregulation_level >= red["dysregulation"]:
        return Level.RED
    if (
        state.dysregulation_level >= orange["dysregulation"]
        or state.consecutive_errors >= orange["consecutive_errors"]
        or state.fatigue_level >= orange["fatigue"]
    ):
        return Level.ORANGE
    if (
        state.dysregulation_level >= yellow["dysregulation"]
        or state.consecutive_errors >= yellow["consecutive_errors"]
        or state.fatigue_level >= yellow["fatigue"]
        or state.engagement_level <= yellow["engagement"]
    ):
        return Level.YELLOW
    return Level.GREEN


def _signal_level(state: State, signals: frozenset) -> Level:
    if signals & DISTRESS_SIGNALS:
        if state.dysregulation_level >= LEVEL_THRESHOLDS["red"]["dysregulation_with_distress"]:
            return Level.RED
        return Level.ORANGE
    if signals & ORANGE_SIGNALS:
        return Level.ORANGE
    if signals & YELLOW_SIGNALS:
        return Level.YELLOW
    return Level.GREEN


def assess(state: State, signals: frozenset) -> Level:
    level = max(_state_level(state), _signal_level(state, signals))
    if level > Level.GREEN:
        logger.debug(
            f"Level {level.name}: eng={state.engagement_level:.1f} "
            f"dys={state.dysregulation_level:.1f} fat={state.fatigue_level:.1f} "
            f"errors={state.consecutive_errors}"
        )
    return level
