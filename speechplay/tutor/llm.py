"""
SpeechPlay v1.2: LLM Abstraction Layer
One async JSON-mode call shared by the composer, intent classifier and
similarity check. Callers own their timeouts and fallbacks.
"""

import json
import logging
import time
from dataclasses import dataclass
from typing import Optional, Protocol

from openai import AsyncOpenAI

from speechplay.config import OPENAI_API_KEY

logger = logging.getLogger(__name__)


@dataclass
class LLMResult:
    data: dict
    latency_ms: int
    model: str
    usage: dict


class LLMProvider(Protocol):
    async def complete_json(self, messages: list[dict], model: str, **kwargs) -> LLMResult: ...


class LLMResponseError(Exception):
    """The model answered, but not with a usable JSON object."""


# ─── OpenAI ──────────────────────────────────────────────────────────────────

class OpenAIJSON:
    def __init__(self, client: Optional[AsyncOpenAI] = None):
        self._client = client or AsyncOpenAI(api_key=OPENAI_API_KEY)

    async def complete_json(
        self,
        messages: list[dict],
        model: str,
        max_tokens: int = 100,
        temperature: float = 0.0,
    ) -> LLMResult:
        """Chat completion in JSON mode. Raises on transport or parse errors."""
        start = time.perf_counter()
        try:
            response = await self._client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
                response_format={"type": "json_object"},
            )
        except Exception as e:
            elapsed = int((time.perf_counter() - start) * 1000)
            logger.error(f"LLM error after {elapsed}ms ({model}): {e}")
            raise

        elapsed = int((time.perf_counter() - start) * 1000)
        content = (response.choices[0].message.content or "").strip()
        if not content:
            raise LLMResponseError(f"{model} returned an empty response")
        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMResponseError(f"{model} returned invalid JSON: {content[:120]}") from e
        if not isinstance(data, dict):
            raise LLMResponseError(f"{model} returned {type(data).__name__}, expected object")

        usage = {}
        if getattr(response, "usage", None) is not None:
            usage = {
                "prompt_tokens": response.usage.prompt_tokens,
                "completion_tokens": response.usage.completion_tokens,
                "total_tokens": response.usage.total_tokens,
            }
        logger.debug(f"LLM response: {elapsed}ms ({model})")
        return LLMResult(data=data, latency_ms=elapsed, model=model, usage=usage)


# ─── Provider Factory ────────────────────────────────────────────────────────

_instance: Optional[OpenAIJSON] = None


def llm_available() -> bool:
    return bool(OPENAI_API_KEY)


def get_llm() -> OpenAIJSON:
    """Get the shared LLM provider (singleton)."""
    global _instance
    if _instance is None:
        _instance = OpenAIJSON()
    return _instance
