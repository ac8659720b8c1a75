"""
Shared pieces for the metric scorers.
"""

import math
from dataclasses import dataclass

from rageval.config import settings
from rageval.evaluation.exceptions import MetricEvaluationFailure
from rageval.evaluation.judge import JudgeClient
from rageval.evaluation.models import RetrievedChunk

CONTEXT_SEPARATOR = "\n\n---\n\n"


@dataclass(frozen=True)
class FallbackPolicy:
    """
    Scores recorded when a metric's judge output is unusable.

    Relevancy and heuristic recall default to 0.5 ("unknown") while
    faithfulness defaults to 0.0. The values come from settings so a run
    can opt into a single policy without code changes.
    """
    faithfulness: float = 0.0
    answer_relevancy: float = 0.5
    context_recall: float = 0.5

    @classmethod
    def from_settings(cls) -> "FallbackPolicy":
        return cls(
            faithfulness=settings.fallback_faithfulness,
            answer_relevancy=settings.fallback_answer_relevancy,
            context_recall=settings.fallback_context_recall,
        )


DEFAULT_FALLBACK = FallbackPolicy()


def format_context(chunks: list[RetrievedChunk]) -> str:
    """Join chunk contents in rank order, the way the generator sees them."""
    return CONTEXT_SEPARATOR.join(chunk.content for chunk in chunks)


def clamp_score(value: float) -> float:
    """Clamp to [0, 1]. NaN and infinities are not scores and raise ValueError."""
    if not math.isfinite(value):
        raise ValueError(f"score is not a finite number: {value!r}")
    return max(0.0, min(1.0, value))


async def call_judge(
    judge: JudgeClient,
    metric: str,
    system_prompt: str,
    user_prompt: str,
    max_tokens: int = 500,
) -> str:
    """
    Run one judge call for a metric.

    Raises:
        MetricEvaluationFailure: If the judge call itself fails
    """
    try:
        return await judge.complete(system_prompt, user_prompt, max_tokens=max_tokens)
    except Exception as e:
        raise MetricEvaluationFailure(metric, f"judge call failed: {e}") from e
