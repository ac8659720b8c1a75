"""
Judge model access and judge-output parsing.

The judge is any async callable that takes a system prompt and a user
prompt and returns free text. Scorers ask for a JSON object, but judges
routinely wrap it in prose or code fences, or run out of tokens halfway
through. extract_json_object() is the single place that turns that text
into a dict (or None); every scorer builds its own strict parse_*()
on top of it and applies its fallback score when that returns None.

Usage:
    from rageval.evaluation.judge import AnthropicJudge, BoundedJudge

    judge = BoundedJudge(AnthropicJudge(), limit=3)
    raw = await judge.complete(SYSTEM_PROMPT, user_prompt)
    data = extract_json_object(raw)
"""

import asyncio
import json
import re
from typing import Any, Protocol

from anthropic import APIError, AsyncAnthropic

from rageval.config import settings
from rageval.evaluation.exceptions import ModelCallError
from rageval.llm import create_anthropic_client, response_text
from rageval.logging import get_logger

logger = get_logger(__name__, component="judge")

_CODE_FENCE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


class JudgeClient(Protocol):
    """Anything that can answer a grading prompt with text."""

    model: str

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        ...


class AnthropicJudge:
    """
    Judge backed by the Anthropic Messages API.

    Uses the fast model by default: grading prompts are short and a run
    makes several judge calls per item. The SDK handles retries.

    Example:
        judge = AnthropicJudge()
        raw = await judge.complete("You grade answers.", "Question: ...")
    """

    def __init__(self, model: str | None = None, client: AsyncAnthropic | None = None):
        self.client = client or create_anthropic_client()
        self.model = model or settings.llm_model_fast

        logger.info("judge_initialized", model=self.model)

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        try:
            response = await self.client.messages.create(
                model=self.model,
                max_tokens=max_tokens or settings.judge_max_tokens,
                temperature=settings.judge_temperature if temperature is None else temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            )
        except APIError as e:
            logger.warning("judge_call_failed", model=self.model, error=str(e))
            raise ModelCallError(f"Judge call failed: {e}") from e

        text = response_text(response)
        if not text:
            raise ModelCallError("Judge returned an empty response")
        return text


class BoundedJudge:
    """
    Caps how many judge calls run at once.

    Claim verification and chunk classification fan out per claim/chunk;
    the semaphore keeps that fan-out within the provider's rate limits.
    """

    def __init__(self, judge: JudgeClient, limit: int):
        self._judge = judge
        self._semaphore = asyncio.Semaphore(max(1, limit))
        self.model = judge.model

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> str:
        async with self._semaphore:
            return await self._judge.complete(
                system_prompt,
                user_prompt,
                temperature=temperature,
                max_tokens=max_tokens,
            )


def extract_json_object(raw: str | None) -> dict[str, Any] | None:
    """
    Pull the first JSON object out of free-form judge output.

    Code-fenced blocks are tried first, then the whole text. Within each
    candidate every "{" is tried as a start position, so prose before or
    after the object is ignored.

    Returns:
        The decoded object, or None if no complete object is present
        (missing, truncated, or only arrays/scalars)
    """
    if not raw:
        return None

    decoder = json.JSONDecoder()
    candidates = [match.group(1) for match in _CODE_FENCE.finditer(raw)]
    candidates.append(raw)

    for text in candidates:
        start = text.find("{")
        while start != -1:
            try:
                obj, _ = decoder.raw_decode(text, start)
            except json.JSONDecodeError:
                obj = None
            if isinstance(obj, dict):
                return obj
            start = text.find("{", start + 1)

    return None


def as_string_list(value: Any) -> list[str] | None:
    """Coerce a judge-provided list to strings; None if it is not a list."""
    if not isinstance(value, list):
        return None
    return [str(v).strip() for v in value if str(v).strip()]
