"""
SpeechPlay v1.2: Intervention Selector
(Level, Signals) → ordered choices offered to the child.

Order matters: the UI shows the first option most prominently.
"""

from speechplay.state.types import DISTRESS_SIGNALS, Intervention, Level

LEVEL_INTERVENTIONS = {
    Level.GREEN: (),
    Level.YELLOW: (
        Intervention.RETRY_CARD,
        Intervention.SKIP_CARD,
        Intervention.START_BREAK,
        Intervention.BUBBLE_BREATHING,
    ),
    Level.ORANGE: (
        Intervention.BUBBLE_BREATHING,
        Intervention.START_BREAK,
        Intervention.SKIP_CARD,
    ),
    Level.RED: (
        Intervention.CALL_GROWNUP,
        Intervention.BUBBLE_BREATHING,
        Intervention.START_BREAK,
    ),
}


def select(level: Level, signals: frozenset) -> tuple[Intervention, ...]:
    options = LEVEL_INTERVENTIONS[level]
    # A crying or screaming child gets a grown-up first, whatever the level
    if signals & DISTRESS_SIGNALS:
        options = (Intervention.CALL_GROWNUP,) + tuple(
            i for i in options if i != Intervention.CALL_GROWNUP
        )
    return options
