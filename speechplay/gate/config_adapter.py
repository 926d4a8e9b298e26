"""
SpeechPlay v1.2: Session Config Adapter
Level → SessionConfig. As the child struggles the game gets quieter,
slower to prompt and quicker to check in.
"""

from speechplay.state.types import Level, SessionConfig

LEVEL_CONFIGS = {
    Level.GREEN: SessionConfig(
        prompt_intensity=2, avatar_tone="warm",
        inactivity_timeout=30, max_task_time=60,
    ),
    Level.YELLOW: SessionConfig(
        prompt_intensity=1, avatar_tone="calm",
        inactivity_timeout=25, max_task_time=45,
    ),
    Level.ORANGE: SessionConfig(
        prompt_intensity=0, avatar_tone="calm",
        inactivity_timeout=20, max_task_time=30,
        enable_audio_support=True,
    ),
    Level.RED: SessionConfig(
        prompt_intensity=0, avatar_tone="calm",
        inactivity_timeout=15, max_task_time=30,
        enable_audio_support=True,
    ),
}


def adapt(level: Level) -> SessionConfig:
    return LEVEL_CONFIGS[level]
