"""
Context precision: are the top-ranked chunks the relevant ones?

Each retrieved chunk is classified by the judge as relevant, partial or
irrelevant to the question (concurrently). Only "relevant" counts.
Precision@K is the relevant fraction of the top K chunks (or of all
chunks when fewer than K came back), and the final score weights the
top of the ranking most:

    score = 0.5 * P@1 + 0.3 * P@3 + 0.2 * P@5
"""

import asyncio

from rageval.evaluation.exceptions import MetricEvaluationFailure
from rageval.evaluation.judge import JudgeClient, extract_json_object
from rageval.evaluation.metrics.base import call_judge, clamp_score
from rageval.evaluation.models import (
    ChunkRelevance,
    ContextPrecisionAnalysis,
    MetricName,
    MetricResult,
    RankedChunk,
    RetrievedChunk,
)
from rageval.logging import get_logger

logger = get_logger(__name__, component="context_precision")

METRIC = MetricName.CONTEXT_PRECISION.value

# K -> weight; weights sum to 1
PRECISION_WEIGHTS: dict[int, float] = {1: 0.5, 3: 0.3, 5: 0.2}

CHUNK_RELEVANCE_PROMPT = """You are an expert at judging search results.

## Task
Decide whether the document chunk is relevant to answering the question.

## Labels
- "relevant": contains information that directly helps answer the question
- "partial": related to the topic but does not help answer it
- "irrelevant": unrelated to the question

## Output format
Respond with JSON only:
{"relevance": "relevant|partial|irrelevant", "reason": "short explanation"}"""


def parse_chunk_relevance(raw: str | None) -> tuple[ChunkRelevance, str | None] | None:
    data = extract_json_object(raw)
    if data is None:
        return None

    try:
        relevance = ChunkRelevance(str(data.get("relevance", "")).strip().lower())
    except ValueError:
        return None

    reason = data.get("reason")
    return relevance, str(reason) if reason else None


async def classify_chunk(
    judge: JudgeClient,
    question: str,
    chunk: RetrievedChunk,
    rank: int,
) -> RankedChunk:
    """Label one chunk. Failures and unparsable output count as irrelevant."""
    user_prompt = (
        f"## Question\n{question}\n\n"
        f"## Document chunk\n{chunk.content}\n\n"
        f"## Judgement (JSON)"
    )

    try:
        raw = await call_judge(judge, METRIC, CHUNK_RELEVANCE_PROMPT, user_prompt, max_tokens=200)
    except MetricEvaluationFailure as e:
        logger.warning("chunk_classification_failed", chunk_id=chunk.chunk_id, error=e.reason)
        return RankedChunk(chunk_id=chunk.chunk_id, rank=rank, verdict=ChunkRelevance.IRRELEVANT)

    parsed = parse_chunk_relevance(raw)
    if parsed is None:
        logger.warning("chunk_relevance_unparsable", chunk_id=chunk.chunk_id, response=raw[:200])
        return RankedChunk(chunk_id=chunk.chunk_id, rank=rank, verdict=ChunkRelevance.IRRELEVANT)

    relevance, reason = parsed
    return RankedChunk(chunk_id=chunk.chunk_id, rank=rank, verdict=relevance, relevance_reason=reason)


def precision_at_k(ranked: list[RankedChunk], k: int) -> float:
    """Relevant fraction of the top k; 0.0 when there are no chunks."""
    top = ranked[:k]
    if not top:
        return 0.0
    return sum(1 for chunk in top if chunk.is_relevant) / len(top)


def weighted_precision(precisions: dict[int, float]) -> float:
    return clamp_score(sum(weight * precisions[k] for k, weight in PRECISION_WEIGHTS.items()))


async def evaluate_context_precision(
    judge: JudgeClient,
    question: str,
    chunks: list[RetrievedChunk],
) -> MetricResult:
    """
    Score the ranking quality of the retrieved chunks.

    Args:
        judge: Judge model client
        question: The original question
        chunks: Retrieved chunks in retrieval rank order

    Returns:
        MetricResult with a ContextPrecisionAnalysis
    """
    if not chunks:
        return MetricResult(
            score=0.0,
            analysis=ContextPrecisionAnalysis(precision_at_k={k: 0.0 for k in PRECISION_WEIGHTS}),
        )

    ranked = await asyncio.gather(
        *(classify_chunk(judge, question, chunk, rank) for rank, chunk in enumerate(chunks, 1))
    )
    ranked = list(ranked)

    precisions = {k: precision_at_k(ranked, k) for k in PRECISION_WEIGHTS}
    score = weighted_precision(precisions)

    logger.debug(
        "context_precision_scored",
        chunks=len(ranked),
        relevant=sum(1 for chunk in ranked if chunk.is_relevant),
        score=score,
    )

    return MetricResult(
        score=score,
        analysis=ContextPrecisionAnalysis(ranked_chunks=ranked, precision_at_k=precisions),
    )
