"""
Context recall: did retrieval bring back what the reference answer needs?

Two modes, picked by select_recall_mode():

EXACT      The item lists its ground-truth chunk ids and the retrieved
           chunks carry ids. Score = |retrieved ∩ ground truth| / |ground truth|.
           Deterministic, no judge call.

HEURISTIC  Otherwise. The judge breaks the reference answer into the pieces
           of information it needs and says which ones the context contains.
           Score = |found| / max(1, |required|), capped at 1.0.
"""

from rageval.evaluation.exceptions import MetricEvaluationFailure
from rageval.evaluation.judge import JudgeClient, as_string_list, extract_json_object
from rageval.evaluation.metrics.base import (
    DEFAULT_FALLBACK,
    FallbackPolicy,
    call_judge,
    clamp_score,
)
from rageval.evaluation.models import (
    ContextRecallAnalysis,
    MetricName,
    MetricResult,
    RecallMode,
)
from rageval.logging import get_logger

logger = get_logger(__name__, component="context_recall")

METRIC = MetricName.CONTEXT_RECALL.value

RECALL_PROMPT = """You are an expert at checking whether retrieved context contains the information an answer needs.

## Task
1. Break the reference answer into the individual pieces of information needed to give it
2. For each piece, decide whether the context contains it

## Output format
Respond with JSON only:
{"requiredInfo": ["piece 1", "piece 2", ...], "foundInfo": ["pieces present in the context"], "missingInfo": ["pieces absent from the context"]}"""


def select_recall_mode(
    ground_truth_chunks: list[str] | None,
    retrieved_chunk_ids: list[str] | None,
) -> RecallMode:
    if ground_truth_chunks and retrieved_chunk_ids is not None:
        return RecallMode.EXACT
    return RecallMode.HEURISTIC


def exact_recall(ground_truth_chunks: list[str], retrieved_chunk_ids: list[str]) -> MetricResult:
    """Overlap of retrieved ids with the expected chunk ids."""
    required = list(dict.fromkeys(ground_truth_chunks))
    retrieved = set(retrieved_chunk_ids)

    found = [chunk_id for chunk_id in required if chunk_id in retrieved]
    missing = [chunk_id for chunk_id in required if chunk_id not in retrieved]

    return MetricResult(
        score=len(found) / len(required),
        analysis=ContextRecallAnalysis(
            mode=RecallMode.EXACT,
            required_info=required,
            found_info=found,
            missing_info=missing,
        ),
    )


def parse_recall(raw: str | None) -> ContextRecallAnalysis | None:
    data = extract_json_object(raw)
    if data is None:
        return None

    required = as_string_list(data.get("requiredInfo"))
    found = as_string_list(data.get("foundInfo"))
    if required is None or found is None:
        return None

    missing = as_string_list(data.get("missingInfo"))
    if missing is None:
        missing = [info for info in required if info not in found]

    return ContextRecallAnalysis(
        mode=RecallMode.HEURISTIC,
        required_info=required,
        found_info=found,
        missing_info=missing,
    )


async def heuristic_recall(
    judge: JudgeClient,
    ground_truth: str,
    context: str,
    fallback: FallbackPolicy = DEFAULT_FALLBACK,
) -> MetricResult:
    """Judge-based recall against the reference answer text."""
    user_prompt = (
        f"## Reference answer\n{ground_truth}\n\n"
        f"## Context\n{context}\n\n"
        f"## Analysis (JSON)"
    )

    try:
        raw = await call_judge(judge, METRIC, RECALL_PROMPT, user_prompt, max_tokens=500)
        analysis = parse_recall(raw)
        if analysis is None:
            logger.warning("recall_unparsable", response=raw[:200])
            raise MetricEvaluationFailure(METRIC, "could not parse recall analysis from judge output")
    except MetricEvaluationFailure as e:
        logger.warning("context_recall_fallback", reason=e.reason, score=fallback.context_recall)
        return MetricResult(
            score=fallback.context_recall,
            analysis=ContextRecallAnalysis(mode=RecallMode.HEURISTIC, fallback_used=True),
        )

    score = clamp_score(len(analysis.found_info) / max(1, len(analysis.required_info)))
    return MetricResult(score=score, analysis=analysis)


async def evaluate_context_recall(
    judge: JudgeClient,
    ground_truth: str,
    context: str,
    ground_truth_chunks: list[str] | None = None,
    retrieved_chunk_ids: list[str] | None = None,
    fallback: FallbackPolicy = DEFAULT_FALLBACK,
) -> MetricResult:
    """
    Score how much of the needed information was retrieved.

    Args:
        judge: Judge model client (unused in exact mode)
        ground_truth: Reference answer text
        context: Retrieved chunk contents, joined
        ground_truth_chunks: Expected chunk ids for the item, if known
        retrieved_chunk_ids: Ids of the retrieved chunks
        fallback: Score to use when the judge output is unusable

    Returns:
        MetricResult with a ContextRecallAnalysis recording the mode used
    """
    mode = select_recall_mode(ground_truth_chunks, retrieved_chunk_ids)
    logger.debug("context_recall_mode", mode=mode.value)

    if mode == RecallMode.EXACT:
        return exact_recall(ground_truth_chunks, retrieved_chunk_ids)
    return await heuristic_recall(judge, ground_truth, context, fallback)
