"""
SpeechPlay v1.2: Response Composer
Writes what the coach avatar says after each turn.

Two implementations behind one interface:
    LLMResponseComposer: gpt-4o in JSON mode, level-aware system prompt
    TemplateComposer: deterministic safe templates, no network

The orchestrator owns the timeout, validation and fallback. A composer is
allowed to raise; the orchestrator turns any failure into a template.
"""

import logging
from typing import Optional, Protocol

from speechplay.config import (
    CHOICE_PROMPT, COMPOSER_MAX_TOKENS, COMPOSER_MODEL, ENABLE_LLM_COMPOSER,
)
from speechplay.state.types import (
    ComposedResponse, Event, EventType, Intervention, Level,
    ResponseConstraints, TaskContext,
)
from speechplay.tutor.enforcer import safe_template
from speechplay.tutor.llm import LLMProvider, get_llm, llm_available

logger = logging.getLogger("speechplay.tutor.composer")


class ResponseComposer(Protocol):
    async def compose(
        self,
        level: Level,
        signals: frozenset,
        interventions: tuple[Intervention, ...],
        task_context: TaskContext,
        event: Event,
        constraints: ResponseConstraints,
    ) -> ComposedResponse: ...


def choice_presentation(interventions: tuple[Intervention, ...]) -> str:
    return CHOICE_PROMPT if interventions else ""


# ─── Templates ───────────────────────────────────────────────────────────────

class TemplateComposer:
    async def compose(
        self,
        level: Level,
        signals: frozenset,
        interventions: tuple[Intervention, ...],
        task_context: TaskContext,
        event: Event,
        constraints: ResponseConstraints,
    ) -> ComposedResponse:
        return ComposedResponse(
            coach_line=safe_template(event.type, bool(event.correct), level),
            choice_presentation=choice_presentation(interventions),
        )


# ─── LLM ─────────────────────────────────────────────────────────────────────

COMPOSER_SYSTEM = """You are Coach, a friendly avatar in a speech therapy card game for young children.
After each answer you say ONE short line out loud.

RULES:
- Use very simple words a 5-year-old understands.
- Never say the answer was wrong. Never judge, lecture or rush the child.
- Never use these words: {forbidden}
- At most {max_sentences} sentences and 30 words.
- Tone: {tone}.
{level_rules}
Respond JSON only: {{"coach_line": "..."}}"""

LEVEL_RULES = {
    Level.GREEN: "- The child is doing fine. Be warm and playful.",
    Level.YELLOW: (
        "- The child is starting to struggle. Slow down, praise the effort,\n"
        f'- and END with exactly: "{CHOICE_PROMPT}"'
    ),
    Level.ORANGE: (
        "- The child is upset. Be very calm and gentle. Name the feeling kindly,\n"
        f'- then END with exactly: "{CHOICE_PROMPT}"'
    ),
    Level.RED: (
        "- The child is very upset. Be very calm. Say a grown-up can come help,\n"
        f'- then END with exactly: "{CHOICE_PROMPT}"'
    ),
}


def build_composer_messages(
    level: Level,
    signals: frozenset,
    interventions: tuple[Intervention, ...],
    task_context: TaskContext,
    event: Event,
    constraints: ResponseConstraints,
) -> list[dict]:
    system = COMPOSER_SYSTEM.format(
        forbidden=", ".join(constraints.forbidden_words),
        max_sentences=constraints.max_sentences,
        tone=constraints.must_use_tone,
        level_rules=LEVEL_RULES[level],
    )
    if constraints.must_validate_feelings:
        system += "\n- Start by gently acknowledging how the child feels."

    outcome = "correct" if event.correct else "not the expected answer"
    lines = [
        f"Card type: {task_context.card_type}",
        f"Category: {task_context.category}",
        f"Question: {task_context.question}",
        f"Expected answer: {task_context.target_answer}",
        f'Child said: "{event.response or ""}" ({outcome})',
    ]
    if signals:
        lines.append(f"Signals: {', '.join(sorted(s.value for s in signals))}")
    if interventions:
        lines.append(f"Choices on screen: {', '.join(i.value for i in interventions)}")
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": "\n".join(lines)},
    ]


class LLMResponseComposer:
    def __init__(self, llm: Optional[LLMProvider] = None, model: str = COMPOSER_MODEL):
        self._llm = llm
        self._model = model

    async def compose(
        self,
        level: Level,
        signals: frozenset,
        interventions: tuple[Intervention, ...],
        task_context: TaskContext,
        event: Event,
        constraints: ResponseConstraints,
    ) -> ComposedResponse:
        if event.type == EventType.CHILD_INACTIVE:
            return await TemplateComposer().compose(
                level, signals, interventions, task_context, event, constraints,
            )

        llm = self._llm or get_llm()
        messages = build_composer_messages(
            level, signals, interventions, task_context, event, constraints,
        )
        result = await llm.complete_json(
            messages,
            model=self._model,
            max_tokens=COMPOSER_MAX_TOKENS,
            temperature=0.7,
        )
        line = result.data.get("coach_line")
        if not isinstance(line, str) or not line.strip():
            raise ValueError("composer returned no coach_line")
        logger.debug(f"Composed ({result.latency_ms}ms): {line}")
        return ComposedResponse(
            coach_line=line.strip(),
            choice_presentation=choice_presentation(interventions),
        )


def get_composer() -> ResponseComposer:
    if ENABLE_LLM_COMPOSER and llm_available():
        return LLMResponseComposer()
    logger.info("LLM composer disabled, using templates")
    return TemplateComposer()
