"""
SpeechPlay v1.2: Configuration
All environment variables and constants. Single source of truth.
No other file reads os.environ directly.
"""

import os
from pathlib import Path

# Load .env file if present
_env_path = Path(__file__).resolve().parent.parent / ".env"
if _env_path.exists():
    with open(_env_path) as f:
        for line in f:
            line = line.strip()
            if line and not line.startswith("#") and "=" in line:
                key, _, value = line.partition("=")
                os.environ.setdefault(key.strip(), value.strip())

# ─── Paths ───────────────────────────────────────────────────────────────────
BASE_DIR = Path(__file__).resolve().parent.parent

# ─── API Keys ────────────────────────────────────────────────────────────────
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")

# ─── LLM Settings ────────────────────────────────────────────────────────────
# Composer writes the coach line; classifier and similarity are cheap yes/no calls
COMPOSER_MODEL = os.getenv("COMPOSER_MODEL", "gpt-4o")
COMPOSER_MAX_TOKENS = int(os.getenv("COMPOSER_MAX_TOKENS", "300"))
CLASSIFIER_MODEL = os.getenv("CLASSIFIER_MODEL", "gpt-4o-mini")
SIMILARITY_MODEL = os.getenv("SIMILARITY_MODEL", "gpt-4o-mini")

# ─── External Call Timeouts (seconds) ────────────────────────────────────────
SIMILARITY_TIMEOUT_SECONDS = float(os.getenv("SIMILARITY_TIMEOUT_SECONDS", "8"))
COMPOSER_TIMEOUT_SECONDS = float(os.getenv("COMPOSER_TIMEOUT_SECONDS", "6"))
CLASSIFIER_TIMEOUT_SECONDS = float(os.getenv("CLASSIFIER_TIMEOUT_SECONDS", "4"))

# ─── Session Settings ────────────────────────────────────────────────────────
DEFAULT_INACTIVITY_TIMEOUT_SECONDS = int(os.getenv("DEFAULT_INACTIVITY_TIMEOUT_SECONDS", "30"))
DEFAULT_TASK_TIMEOUT_SECONDS = int(os.getenv("DEFAULT_TASK_TIMEOUT_SECONDS", "60"))
SESSION_IDLE_TIMEOUT_MINUTES = int(os.getenv("SESSION_IDLE_TIMEOUT_MINUTES", "30"))
CHOICE_PROMPT = "What would you like to do?"
TASK_TIMEOUT_MARKER = "[TASK_TIMEOUT]"
TASK_TIMEOUT_MESSAGE = "Let's try a different one!"

# ─── Level Thresholds ────────────────────────────────────────────────────────
# Higher threshold wins. engagement is a ceiling, the rest are floors.
LEVEL_THRESHOLDS = {
    "yellow": {
        "engagement": 3,
        "dysregulation": 5,
        "consecutive_errors": 3,
        "fatigue": 6,
    },
    "orange": {
        "dysregulation": 7,
        "consecutive_errors": 5,
        "fatigue": 8,
    },
    "red": {
        "dysregulation": 9,
        "dysregulation_with_distress": 7,
    },
}

# ─── State Modifiers ─────────────────────────────────────────────────────────
STATE_BOUNDS = (0.0, 10.0)
INITIAL_ENGAGEMENT = 8.0
INITIAL_DYSREGULATION = 1.0
INITIAL_FATIGUE = 1.0

RESPONSE_MODIFIERS = {
    "correct": {"engagement": 1.0, "dysregulation": -0.5},
    "incorrect": {"engagement": -1.0},
    "triple_repetition": {"dysregulation": 2.0},
    "inactive": {"engagement": -1.5},
}

SIGNAL_MODIFIERS = {
    "SCREAMING": {"dysregulation": 3.0},
    "CRYING": {"dysregulation": 3.0},
    "DISTRESS": {"dysregulation": 3.0},
    "FRUSTRATION": {"dysregulation": 1.5},
    "WANTS_QUIT": {"engagement": -3.0},
    "WANTS_BREAK": {"fatigue": 3.0},
    "REPETITIVE_RESPONSE": {"engagement": -0.5},
}

BREAK_MODIFIERS = {"dysregulation": -2.0, "fatigue": -3.0}
CALM_DECAY_RATE = 0.5
CALM_DECAY_FLOOR = 1.0
ERROR_FREQUENCY_WINDOW_SECONDS = 60

# ─── Answer Evaluation ───────────────────────────────────────────────────────
# category -> policy. "semantic" categories fall back to the similarity check
# when deterministic matching fails; anything unlisted is "exact".
CATEGORY_POLICIES = {
    "Adjectives - Opposites": "semantic",
    "Descriptive Words - Opposites": "semantic",
    "Antonyms": "semantic",
    "Antonym Name One - Middle": "semantic",
    "Synonym Name One - Elementary": "semantic",
    "Synonym-Name One - Middle": "semantic",
    "Synonyms Level 1": "semantic",
}

# ─── Response Validator Limits ───────────────────────────────────────────────
MAX_COACH_WORDS = 30
FORBIDDEN_WORDS = ["wrong", "incorrect", "bad", "no", "try harder", "focus"]

# ─── CORS ────────────────────────────────────────────────────────────────────
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*").split(",")

# ─── Logging ─────────────────────────────────────────────────────────────────
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ─── Feature Flags ───────────────────────────────────────────────────────────
# Without an API key both fall back to the deterministic paths.
ENABLE_LLM_COMPOSER = os.getenv("ENABLE_LLM_COMPOSER", "true").lower() == "true"
ENABLE_LLM_INTENTS = os.getenv("ENABLE_LLM_INTENTS", "true").lower() == "true"
