"""
Fold per-item results into dataset-level statistics and the final report.
"""

from datetime import datetime, timezone

from rageval.evaluation.models import (
    EvaluationDataset,
    EvaluationReport,
    EvaluationSummary,
    ExecutionMetadata,
    ItemEvaluationResult,
    MetricName,
    MetricScores,
    QueryRewritingImpact,
    QuestionType,
    QuestionTypeStats,
)


def _mean(values: list[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def average_scores(results: list[ItemEvaluationResult]) -> MetricScores:
    """
    Mean of each metric over the results.

    Context recall is averaged only over results that have it; it is
    None when no result has it.
    """
    recall_values = [
        r.scores.context_recall for r in results if r.scores.context_recall is not None
    ]

    return MetricScores(
        faithfulness=_mean([r.scores.faithfulness for r in results]),
        answer_relevancy=_mean([r.scores.answer_relevancy for r in results]),
        context_precision=_mean([r.scores.context_precision for r in results]),
        context_recall=_mean(recall_values) if recall_values else None,
    )


def stats_by_question_type(
    results: list[ItemEvaluationResult],
) -> dict[QuestionType, QuestionTypeStats]:
    """Averages and counts per question type, in order of first appearance."""
    grouped: dict[QuestionType, list[ItemEvaluationResult]] = {}
    for result in results:
        grouped.setdefault(result.question_type, []).append(result)

    stats = {}
    for question_type, group in grouped.items():
        averages = average_scores(group)
        stats[question_type] = QuestionTypeStats(
            count=len(group),
            avg_faithfulness=averages.faithfulness,
            avg_answer_relevancy=averages.answer_relevancy,
            avg_context_precision=averages.context_precision,
            avg_context_recall=averages.context_recall,
        )
    return stats


def query_rewriting_impact(results: list[ItemEvaluationResult]) -> QueryRewritingImpact | None:
    """
    Compare answer relevancy of follow-up items against everything else.

    The delta is 0.0 when either group is empty. None only when there
    are no results at all.
    """
    if not results:
        return None

    followup = [
        r.scores.answer_relevancy for r in results
        if r.question_type == QuestionType.FOLLOWUP
    ]
    other = [
        r.scores.answer_relevancy for r in results
        if r.question_type != QuestionType.FOLLOWUP
    ]

    delta = _mean(followup) - _mean(other) if followup and other else 0.0

    return QueryRewritingImpact(
        items_with_rewriting=sum(1 for r in results if r.was_rewritten),
        avg_score_improvement=delta,
    )


def aggregate_results(results: list[ItemEvaluationResult]) -> EvaluationSummary:
    averages = average_scores(results)

    return EvaluationSummary(
        total_items=len(results),
        avg_faithfulness=averages.faithfulness,
        avg_answer_relevancy=averages.answer_relevancy,
        avg_context_precision=averages.context_precision,
        avg_context_recall=averages.context_recall,
        failed_items=sum(1 for r in results if r.failed),
        by_question_type=stats_by_question_type(results),
        query_rewriting_impact=query_rewriting_impact(results),
    )


def build_report(
    dataset: EvaluationDataset,
    results: list[ItemEvaluationResult],
    total_duration: float,
    evaluation_model: str,
    max_chunks: int,
    metrics: list[MetricName],
    generation_model: str | None = None,
) -> EvaluationReport:
    """
    Assemble the report for a finished run.

    Args:
        dataset: The evaluated dataset
        results: One result per dataset item, in dataset order
        total_duration: Wall-clock run time in milliseconds
        evaluation_model: Judge model id
        max_chunks: Retrieval depth used
        metrics: Metrics that were requested
        generation_model: Answer model id, if known
    """
    return EvaluationReport(
        dataset_name=dataset.name,
        dataset_version=dataset.version,
        tenant_id=dataset.tenant_id,
        evaluated_at=datetime.now(timezone.utc).isoformat(),
        summary=aggregate_results(results),
        results=list(results),
        execution_metadata=ExecutionMetadata(
            total_duration=total_duration,
            evaluation_model=evaluation_model,
            generation_model=generation_model,
            max_chunks=max_chunks,
            metrics=list(metrics),
        ),
    )
