"""Tests for result aggregation."""

import pytest

from rageval.evaluation.aggregate import (
    aggregate_results,
    average_scores,
    build_report,
    query_rewriting_impact,
    stats_by_question_type,
)
from rageval.evaluation.evaluator import failed_result
from rageval.evaluation.models import (
    ALL_METRICS,
    ItemEvaluationResult,
    MetricAnalysis,
    MetricScores,
    QuestionType,
)


@pytest.fixture
def make_result(make_item):
    def _make_result(
        item_id="q-001",
        question_type=QuestionType.FACTUAL,
        faithfulness=1.0,
        answer_relevancy=1.0,
        context_precision=1.0,
        context_recall=None,
        rewritten_query=None,
    ) -> ItemEvaluationResult:
        item = make_item(item_id=item_id, question_type=question_type)
        return ItemEvaluationResult(
            item_id=item.id,
            question=item.question,
            question_type=item.question_type,
            rewritten_query=rewritten_query,
            retrieved_chunks=[],
            generated_answer="answer",
            scores=MetricScores(
                faithfulness=faithfulness,
                answer_relevancy=answer_relevancy,
                context_precision=context_precision,
                context_recall=context_recall,
            ),
            analysis=MetricAnalysis(),
            execution_time=12.0,
        )

    return _make_result


def test_average_scores(make_result):
    results = [
        make_result(faithfulness=1.0, answer_relevancy=0.5, context_precision=0.2),
        make_result(faithfulness=0.5, answer_relevancy=0.7, context_precision=0.4),
    ]

    averages = average_scores(results)

    assert averages.faithfulness == pytest.approx(0.75)
    assert averages.answer_relevancy == pytest.approx(0.6)
    assert averages.context_precision == pytest.approx(0.3)
    assert averages.context_recall is None


def test_recall_averaged_only_where_computed(make_result):
    results = [
        make_result(context_recall=1.0),
        make_result(context_recall=0.5),
        make_result(context_recall=None),
        make_result(context_recall=None),
    ]

    averages = average_scores(results)

    assert averages.context_recall == pytest.approx(0.75)


def test_average_of_nothing_is_zero():
    averages = average_scores([])

    assert averages.faithfulness == 0.0
    assert averages.context_recall is None


def test_stats_by_question_type_counts(make_result):
    results = [
        make_result(item_id="f1", question_type=QuestionType.FACTUAL, faithfulness=1.0),
        make_result(item_id="u1", question_type=QuestionType.FOLLOWUP, faithfulness=0.0),
        make_result(item_id="f2", question_type=QuestionType.FACTUAL, faithfulness=0.5),
        make_result(item_id="u2", question_type=QuestionType.FOLLOWUP, faithfulness=0.3),
        make_result(item_id="u3", question_type=QuestionType.FOLLOWUP, faithfulness=0.6),
    ]

    stats = stats_by_question_type(results)

    assert list(stats) == [QuestionType.FACTUAL, QuestionType.FOLLOWUP]
    assert stats[QuestionType.FACTUAL].count == 2
    assert stats[QuestionType.FOLLOWUP].count == 3
    assert stats[QuestionType.FACTUAL].avg_faithfulness == pytest.approx(0.75)
    assert stats[QuestionType.FOLLOWUP].avg_faithfulness == pytest.approx(0.3)


class TestQueryRewritingImpact:
    """Tests for the follow-up vs. other relevancy delta."""

    def test_delta_and_rewrite_count(self, make_result):
        results = [
            make_result(question_type=QuestionType.FACTUAL, answer_relevancy=0.9),
            make_result(question_type=QuestionType.REASONING, answer_relevancy=0.7),
            make_result(
                question_type=QuestionType.FOLLOWUP,
                answer_relevancy=0.6,
                rewritten_query="Standalone question?",
            ),
            make_result(
                question_type=QuestionType.FOLLOWUP,
                answer_relevancy=0.6,
                rewritten_query="What are the business hours?",  # same as the question
            ),
        ]

        impact = query_rewriting_impact(results)

        assert impact.avg_score_improvement == pytest.approx(-0.2)
        assert impact.items_with_rewriting == 1

    def test_zero_delta_when_a_group_is_empty(self, make_result):
        impact = query_rewriting_impact([make_result(answer_relevancy=0.4)])

        assert impact is not None
        assert impact.avg_score_improvement == 0.0
        assert impact.items_with_rewriting == 0

    def test_none_without_results(self):
        assert query_rewriting_impact([]) is None


def test_aggregate_results_counts_failures(make_result, make_item):
    results = [
        make_result(item_id="q-1", context_recall=1.0),
        failed_result(make_item(item_id="q-2"), "RuntimeError: boom"),
    ]

    summary = aggregate_results(results)

    assert summary.total_items == 2
    assert summary.failed_items == 1
    assert summary.avg_faithfulness == pytest.approx(0.5)
    assert summary.avg_context_recall == pytest.approx(0.5)


def test_build_report(make_result, make_dataset, make_item):
    dataset = make_dataset([make_item()], name="support-faq", version="2.0")

    report = build_report(
        dataset,
        [make_result()],
        total_duration=1234.0,
        evaluation_model="judge-model",
        max_chunks=5,
        metrics=list(ALL_METRICS),
        generation_model="gen-model",
    )

    assert report.dataset_name == "support-faq"
    assert report.dataset_version == "2.0"
    assert report.tenant_id == "tenant-123"
    assert report.evaluated_at
    assert report.summary.total_items == 1
    assert report.execution_metadata.total_duration == 1234.0
    assert report.execution_metadata.evaluation_model == "judge-model"
    assert report.execution_metadata.generation_model == "gen-model"
