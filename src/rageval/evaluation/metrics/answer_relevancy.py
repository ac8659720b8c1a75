"""
Answer relevancy: does the answer address the question that was asked?

Grounding is not considered here (that is faithfulness). A single judge
call grades the question/answer pair against a four-part rubric and
reports whether the question was addressed at all.
"""

import math

from rageval.evaluation.exceptions import MetricEvaluationFailure
from rageval.evaluation.judge import JudgeClient, as_string_list, extract_json_object
from rageval.evaluation.metrics.base import (
    DEFAULT_FALLBACK,
    FallbackPolicy,
    call_judge,
    clamp_score,
)
from rageval.evaluation.models import AnswerRelevancyAnalysis, MetricName, MetricResult
from rageval.logging import get_logger

logger = get_logger(__name__, component="answer_relevancy")

METRIC = MetricName.ANSWER_RELEVANCY.value

RELEVANCY_PROMPT = """You are an expert at judging whether an answer addresses a question.

## Task
Score how well the answer addresses the question, from 0.0 to 1.0.

## Rubric
1. Directness: does it answer what was asked, without drifting?
2. Completeness: are all parts of the question covered?
3. Form: is the answer in the form the question expects (steps, comparison, yes/no, ...)?
4. Concision: is it free of unnecessary padding?

Do not judge factual accuracy against outside knowledge.

## Output format
Respond with JSON only:
{"score": 0.0-1.0, "reasoning": "short explanation", "addressesQuestion": true|false, "partiallyAddressed": ["sub-question covered only partly", ...]}"""


def parse_relevancy(raw: str | None) -> MetricResult | None:
    """Score and analysis from judge output, or None if there is no usable score."""
    data = extract_json_object(raw)
    if data is None:
        return None

    score = data.get("score")
    if isinstance(score, bool):
        return None
    try:
        score = float(score)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(score):
        return None

    score = clamp_score(score)
    addresses = data.get("addressesQuestion")

    return MetricResult(
        score=score,
        analysis=AnswerRelevancyAnalysis(
            relevance_reasoning=str(data.get("reasoning") or ""),
            addresses_question=addresses if isinstance(addresses, bool) else score > 0,
            partially_addressed=as_string_list(data.get("partiallyAddressed")) or [],
        ),
    )


async def evaluate_answer_relevancy(
    judge: JudgeClient,
    question: str,
    answer: str,
    fallback: FallbackPolicy = DEFAULT_FALLBACK,
) -> MetricResult:
    """
    Score how directly and completely the answer addresses the question.

    Args:
        judge: Judge model client
        question: The original (not rewritten) question
        answer: The generated answer
        fallback: Score to use when the judge output is unusable

    Returns:
        MetricResult with an AnswerRelevancyAnalysis
    """
    user_prompt = f"## Question\n{question}\n\n## Answer\n{answer}\n\n## Evaluation (JSON)"

    try:
        raw = await call_judge(judge, METRIC, RELEVANCY_PROMPT, user_prompt, max_tokens=400)
        result = parse_relevancy(raw)
        if result is None:
            logger.warning("relevancy_unparsable", response=raw[:200])
            raise MetricEvaluationFailure(METRIC, "could not parse score from judge output")
    except MetricEvaluationFailure as e:
        logger.warning("answer_relevancy_fallback", reason=e.reason, score=fallback.answer_relevancy)
        return MetricResult(
            score=fallback.answer_relevancy,
            analysis=AnswerRelevancyAnalysis(
                relevance_reasoning=f"Judge output unusable: {e.reason}",
                fallback_used=True,
            ),
        )

    return result
