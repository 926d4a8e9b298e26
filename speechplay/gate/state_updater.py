"""
SpeechPlay v1.2: State Updater
The only code that produces a new State. Pure: (state, event, signals) → state'.

Rules:
- engagement, dysregulation, fatigue are clamped to [0, 10] after every update.
- consecutive_errors resets on a correct answer, +1 on an incorrect one.
- time_in_session / time_since_break advance with wall-clock time.
- time_since_break resets only through reset_for_break().
- fatigue is rebuilt every update from minutes in session and dysregulation,
  plus this event's signal bonus, so it comes back down once the child settles.
- A card change never touches State.

Error timestamps for the rolling error_frequency are the one piece of
history; StateUpdater keeps them per session.
"""

import logging
from collections import deque
from dataclasses import replace
from datetime import datetime, timedelta
from typing import Optional

from speechplay.config import (
    BREAK_MODIFIERS, CALM_DECAY_FLOOR, CALM_DECAY_RATE,
    ERROR_FREQUENCY_WINDOW_SECONDS, INITIAL_DYSREGULATION, INITIAL_ENGAGEMENT,
    INITIAL_FATIGUE, RESPONSE_MODIFIERS, SIGNAL_MODIFIERS, STATE_BOUNDS,
)
from speechplay.state.types import Event, EventType, Signal, State, utc_now

logger = logging.getLogger("speechplay.gate.state_updater")

# Present on an event → no calm decay this turn
_AGITATION_SIGNALS = frozenset({
    Signal.SCREAMING, Signal.CRYING, Signal.DISTRESS, Signal.FRUSTRATION,
})

# Applied in this order so logs read the same every time
_SIGNAL_ORDER = [
    Signal.SCREAMING, Signal.CRYING, Signal.DISTRESS, Signal.FRUSTRATION,
    Signal.WANTS_QUIT, Signal.WANTS_BREAK, Signal.REPETITIVE_RESPONSE,
]


def clamp(value: float) -> float:
    low, high = STATE_BOUNDS
    return max(low, min(high, value))


def initial_state(now: Optional[datetime] = None) -> State:
    return State(
        engagement_level=INITIAL_ENGAGEMENT,
        dysregulation_level=INITIAL_DYSREGULATION,
        fatigue_level=INITIAL_FATIGUE,
        last_activity_timestamp=now or utc_now(),
    )


class StateUpdater:
    def __init__(self):
        self._error_times: deque = deque()

    def update(
        self,
        state: State,
        event: Event,
        signals: frozenset,
        now: Optional[datetime] = None,
    ) -> State:
        now = now or utc_now()
        delta = max(0.0, (now - state.last_activity_timestamp).total_seconds())

        engagement = state.engagement_level
        dysregulation = state.dysregulation_level
        errors = state.consecutive_errors

        # 1. Event effects
        if event.type == EventType.CHILD_RESPONSE:
            if event.correct:
                mods = RESPONSE_MODIFIERS["correct"]
                errors = 0
                engagement += mods["engagement"]
                dysregulation += mods["dysregulation"]
            else:
                errors += 1
                self._error_times.append(now)
                engagement += RESPONSE_MODIFIERS["incorrect"]["engagement"]
                if (
                    event.response is not None
                    and event.response == event.previous_response
                    and event.previous_response == event.previous_previous_response
                ):
                    dysregulation += RESPONSE_MODIFIERS["triple_repetition"]["dysregulation"]
        elif event.type == EventType.CHILD_INACTIVE:
            engagement += RESPONSE_MODIFIERS["inactive"]["engagement"]

        engagement = clamp(engagement)
        dysregulation = clamp(dysregulation)
        fatigue_bonus = 0.0

        # 2. Signal effects
        for signal in _SIGNAL_ORDER:
            if signal not in signals:
                continue
            mods = SIGNAL_MODIFIERS.get(signal.value, {})
            engagement = clamp(engagement + mods.get("engagement", 0.0))
            dysregulation = clamp(dysregulation + mods.get("dysregulation", 0.0))
            fatigue_bonus += mods.get("fatigue", 0.0)
            logger.debug(
                f"{signal.value} → eng={engagement:.1f} dys={dysregulation:.1f} fat+={fatigue_bonus:.1f}"
            )

        # 3. Calm decay: a child answering without agitation is regulating
        if (
            event.type == EventType.CHILD_RESPONSE
            and not (signals & _AGITATION_SIGNALS)
            and dysregulation > CALM_DECAY_FLOOR
        ):
            dysregulation = max(CALM_DECAY_FLOOR, dysregulation - CALM_DECAY_RATE)

        # 4. Fatigue is recomputed from time on task; signals only lift this turn
        time_in_session = state.time_in_session + delta
        baseline = min(STATE_BOUNDS[1], (time_in_session / 60) / 2)
        fatigue = clamp(baseline + dysregulation * 0.1 + fatigue_bonus)

        return replace(
            state,
            engagement_level=engagement,
            dysregulation_level=dysregulation,
            fatigue_level=fatigue,
            consecutive_errors=errors,
            error_frequency=float(self._recent_error_count(now)),
            time_in_session=time_in_session,
            time_since_break=state.time_since_break + delta,
            last_activity_timestamp=now,
        )

    def reset_for_break(self, state: State) -> State:
        """Break or bubble breathing actually taken."""
        return replace(
            state,
            time_since_break=0.0,
            dysregulation_level=clamp(state.dysregulation_level + BREAK_MODIFIERS["dysregulation"]),
            fatigue_level=clamp(state.fatigue_level + BREAK_MODIFIERS["fatigue"]),
        )

    def reset(self) -> None:
        self._error_times.clear()

    def _recent_error_count(self, now: datetime) -> int:
        cutoff = now - timedelta(seconds=ERROR_FREQUENCY_WINDOW_SECONDS)
        while self._error_times and self._error_times[0] <= cutoff:
            self._error_times.popleft()
        return len(self._error_times)
