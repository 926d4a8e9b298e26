"""
SpeechPlay v1.2: Safety Gate Types

Every pipeline stage reads and returns these. Ordered by flow:
Event → Signals → State → Level → Interventions → Config → Composer → Output

Rules:
- Event, State, SessionConfig, UIPackage and SafetyGateResult are frozen.
  A stage that needs a changed copy uses dataclasses.replace().
- Level is an IntEnum so levels compare with < and >=.
- Signals are always carried as a frozenset.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


# ─── 1. Input: Events and Context ────────────────────────────────────────────

class EventType(str, Enum):
    CHILD_RESPONSE = "CHILD_RESPONSE"
    CHILD_INACTIVE = "CHILD_INACTIVE"


@dataclass(frozen=True)
class AudioSignals:
    """Pre-detected by the voice layer before transcription arrives."""
    screaming: bool = False
    crying: bool = False
    prolonged_silence: bool = False

    def any(self) -> bool:
        return self.screaming or self.crying or self.prolonged_silence


@dataclass(frozen=True)
class Event:
    type: EventType
    correct: Optional[bool] = None
    response: Optional[str] = None
    previous_response: Optional[str] = None
    previous_previous_response: Optional[str] = None
    signals: Optional[AudioSignals] = None


@dataclass(frozen=True)
class CardImage:
    image: str
    label: str


@dataclass(frozen=True)
class CardContext:
    """The active question. Owned by the caller, read-only here."""
    category: str
    question: str
    target_answers: tuple[str, ...]
    images: tuple[CardImage, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "CardContext":
        return cls(
            category=data.get("category", ""),
            question=data.get("question", ""),
            target_answers=tuple(data.get("target_answers", ())),
            images=tuple(
                CardImage(image=img.get("image", ""), label=img.get("label", ""))
                for img in data.get("images", ())
            ),
        )


@dataclass(frozen=True)
class TaskContext:
    """Flattened card view handed to the orchestrator and composer."""
    card_type: str
    category: str
    question: str
    target_answer: str
    image_labels: tuple[str, ...] = ()

    @classmethod
    def from_card(cls, card: CardContext) -> "TaskContext":
        return cls(
            card_type="single-answer",
            category=card.category,
            question=card.question,
            target_answer=", ".join(card.target_answers),
            image_labels=tuple(img.label for img in card.images),
        )


# ─── 2. Signals ──────────────────────────────────────────────────────────────

class Signal(str, Enum):
    # State-derived (thresholds on State)
    CONSECUTIVE_ERRORS = "CONSECUTIVE_ERRORS"
    ENGAGEMENT_DROP = "ENGAGEMENT_DROP"
    FATIGUE_HIGH = "FATIGUE_HIGH"
    DYSREGULATION_DETECTED = "DYSREGULATION_DETECTED"

    # Event pattern
    REPETITIVE_RESPONSE = "REPETITIVE_RESPONSE"

    # Text intent (from the intent classifier)
    WANTS_BREAK = "WANTS_BREAK"
    WANTS_QUIT = "WANTS_QUIT"
    FRUSTRATION = "FRUSTRATION"
    DISTRESS = "DISTRESS"

    # Audio passthrough (from the voice layer)
    SCREAMING = "SCREAMING"
    CRYING = "CRYING"
    PROLONGED_SILENCE = "PROLONGED_SILENCE"


INTENT_SIGNALS = frozenset({
    Signal.WANTS_BREAK, Signal.WANTS_QUIT, Signal.FRUSTRATION, Signal.DISTRESS,
})

# Any of these means the child is upset right now, not just struggling.
DISTRESS_SIGNALS = frozenset({Signal.DISTRESS, Signal.SCREAMING, Signal.CRYING})


# ─── 3. State ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class State:
    engagement_level: float = 8.0        # 0-10, start optimistic
    dysregulation_level: float = 1.0     # 0-10, start calm
    fatigue_level: float = 1.0           # 0-10, start fresh
    consecutive_errors: int = 0
    error_frequency: float = 0.0         # errors in the last minute
    time_in_session: float = 0.0         # seconds
    time_since_break: float = 0.0        # seconds
    last_activity_timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["last_activity_timestamp"] = self.last_activity_timestamp.isoformat()
        return data


# ─── 4. Level ────────────────────────────────────────────────────────────────

class Level(IntEnum):
    GREEN = 0    # Normal operation
    YELLOW = 1   # Minor adaptation
    ORANGE = 2   # Significant adaptation
    RED = 3      # Grown-up needed


# ─── 5. Interventions ────────────────────────────────────────────────────────

class Intervention(str, Enum):
    RETRY_CARD = "RETRY_CARD"
    SKIP_CARD = "SKIP_CARD"
    START_BREAK = "START_BREAK"
    BUBBLE_BREATHING = "BUBBLE_BREATHING"
    CALL_GROWNUP = "CALL_GROWNUP"


# ─── 6. Session Config ───────────────────────────────────────────────────────

@dataclass(frozen=True)
class SessionConfig:
    prompt_intensity: int         # 0-3
    avatar_tone: str              # "warm" | "calm" | "neutral"
    inactivity_timeout: int       # seconds before "are you there?"
    max_task_time: int            # seconds on one card
    show_visual_cues: bool = True
    enable_audio_support: bool = False

    def to_dict(self) -> dict:
        return asdict(self)


# ─── 7. Composer ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ResponseConstraints:
    must_use_tone: str
    must_offer_choices: bool
    must_validate_feelings: bool
    max_sentences: int
    forbidden_words: tuple[str, ...]


@dataclass(frozen=True)
class ComposedResponse:
    coach_line: str
    choice_presentation: str


@dataclass(frozen=True)
class ResponseValidation:
    valid: bool
    checks: dict
    reason: Optional[str] = None


# ─── 8. Output ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Overlay:
    """Debug overlay for the admin view."""
    signals: frozenset
    state: State
    safety_level: Level

    def to_dict(self) -> dict:
        return {
            "signals": sorted(s.value for s in self.signals),
            "state": self.state.to_dict(),
            "safety_level": self.safety_level.name,
        }


@dataclass(frozen=True)
class UIPackage:
    overlay: Overlay
    interventions: tuple[Intervention, ...]
    session_config: SessionConfig
    speech_text: str
    choice_message: str
    decision: str = "CONTINUE_NORMAL"
    used_fallback: bool = False
    # Per-turn logging fields, filled in by the Session
    child_said: Optional[str] = None
    target_answers: tuple[str, ...] = ()
    attempt_number: int = 0
    response_history: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "overlay": self.overlay.to_dict(),
            "interventions": [i.value for i in self.interventions],
            "session_config": self.session_config.to_dict(),
            "speech_text": self.speech_text,
            "choice_message": self.choice_message,
            "decision": self.decision,
            "used_fallback": self.used_fallback,
            "child_said": self.child_said,
            "target_answers": list(self.target_answers),
            "attempt_number": self.attempt_number,
            "response_history": list(self.response_history),
        }


@dataclass(frozen=True)
class SafetyGateResult:
    ui_package: UIPackage
    is_correct: bool
    feedback_text: str
    choice_message: str
    should_speak: bool = True
    task_time_exceeded: bool = False
    child_said: Optional[str] = None
    target_answers: tuple[str, ...] = ()
    attempt_number: int = 0
    response_history: tuple[str, ...] = ()

    @property
    def safety_level(self) -> Level:
        return self.ui_package.overlay.safety_level

    @property
    def intervention_required(self) -> bool:
        return len(self.ui_package.interventions) > 0

    def to_dict(self) -> dict:
        return {
            "ui_package": self.ui_package.to_dict(),
            "is_correct": self.is_correct,
            "should_speak": self.should_speak,
            "task_time_exceeded": self.task_time_exceeded,
            "intervention_required": self.intervention_required,
            "feedback_text": self.feedback_text,
            "choice_message": self.choice_message,
            "child_said": self.child_said,
            "target_answers": list(self.target_answers),
            "attempt_number": self.attempt_number,
            "response_history": list(self.response_history),
        }
