"""
RAG evaluation engine.

Runs every dataset item through the same pipeline the application uses
and grades the output:

1. Query rewriting: follow-up questions only (optional)
2. Retrieval: hybrid search, bounded to max_chunks
3. Generation: answer from the retrieved chunks
4. Scoring: the requested metrics, concurrently

Items are processed one at a time so the judge and generation providers
are not flooded; the only concurrency is inside an item (metrics, and
claims/chunks within a metric). A failing item never stops the run: it
is recorded as a failed result with zero scores.

Usage:
    from rageval.evaluation import RagEvaluator, EvaluationOptions

    evaluator = RagEvaluator(judge, retriever, generator, rewriter)
    report = await evaluator.evaluate(dataset)
"""

import asyncio
import time
from dataclasses import dataclass
from typing import Awaitable, Callable, Protocol

from rageval.config import settings
from rageval.evaluation.aggregate import build_report
from rageval.evaluation.exceptions import ItemPipelineError
from rageval.evaluation.judge import BoundedJudge, JudgeClient
from rageval.evaluation.metrics import (
    DEFAULT_FALLBACK,
    FallbackPolicy,
    evaluate_answer_relevancy,
    evaluate_context_precision,
    evaluate_context_recall,
    evaluate_faithfulness,
    format_context,
)
from rageval.evaluation.metrics.base import clamp_score
from rageval.evaluation.models import (
    ALL_METRICS,
    ConversationTurn,
    EvaluationDataset,
    EvaluationItem,
    EvaluationReport,
    ItemEvaluationResult,
    ItemStatus,
    MetricAnalysis,
    MetricName,
    MetricResult,
    MetricScores,
    RetrievedChunk,
)
from rageval.logging import get_logger

logger = get_logger(__name__, component="evaluator")

ProgressCallback = Callable[[int, int, EvaluationItem], None]


class QueryRewriterProtocol(Protocol):
    async def rewrite(self, question: str, history: list[ConversationTurn]) -> str:
        ...


class RetrieverProtocol(Protocol):
    async def retrieve(
        self,
        tenant_id: str,
        query: str,
        limit: int,
        dataset_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        ...


class GeneratorProtocol(Protocol):
    async def generate(
        self,
        question: str,
        chunks: list[RetrievedChunk],
        *,
        temperature: float = 0.3,
    ) -> str:
        ...


@dataclass
class EvaluationOptions:
    """
    Run options.

    evaluation_model defaults to the judge's own model id.
    concurrency caps concurrent judge calls within one item.
    """
    evaluation_model: str | None = None
    max_chunks: int = 5
    metrics: tuple[MetricName, ...] = ALL_METRICS
    on_progress: ProgressCallback | None = None
    temperature: float = 0.3
    history_turns: int = 4
    concurrency: int = 3
    fallback: FallbackPolicy = DEFAULT_FALLBACK

    @classmethod
    def from_settings(cls, **overrides) -> "EvaluationOptions":
        """Options from settings, with explicit overrides (None values ignored)."""
        values = {
            "max_chunks": settings.eval_max_chunks,
            "temperature": settings.eval_temperature,
            "history_turns": settings.eval_history_turns,
            "concurrency": settings.eval_concurrency,
            "fallback": FallbackPolicy.from_settings(),
        }
        values.update({key: value for key, value in overrides.items() if value is not None})
        return cls(**values)


def failed_result(item: EvaluationItem, error: str, include_recall: bool = True) -> ItemEvaluationResult:
    """Placeholder for an item whose pipeline raised."""
    return ItemEvaluationResult(
        item_id=item.id,
        question=item.question,
        question_type=item.question_type,
        retrieved_chunks=[],
        generated_answer="",
        scores=MetricScores(
            faithfulness=0.0,
            answer_relevancy=0.0,
            context_precision=0.0,
            context_recall=0.0 if include_recall else None,
        ),
        analysis=MetricAnalysis(),
        execution_time=0.0,
        status=ItemStatus.FAILED,
        error=error,
    )


class RagEvaluator:
    """
    Drives the RAG pipeline over a dataset and scores each item.

    Collaborators are injected so the same engine runs against the real
    services (see run_evaluation) or against fakes in tests.

    Example:
        evaluator = RagEvaluator(
            judge=AnthropicJudge(),
            retriever=SearchApiRetriever(),
            generator=AnswerGenerator(),
            rewriter=QueryRewriter(),
            options=EvaluationOptions(metrics=(MetricName.FAITHFULNESS,)),
        )
        report = await evaluator.evaluate(dataset)
    """

    def __init__(
        self,
        judge: JudgeClient,
        retriever: RetrieverProtocol,
        generator: GeneratorProtocol,
        rewriter: QueryRewriterProtocol | None = None,
        options: EvaluationOptions | None = None,
    ):
        self.options = options or EvaluationOptions()
        self.judge = BoundedJudge(judge, self.options.concurrency)
        self.retriever = retriever
        self.generator = generator
        self.rewriter = rewriter

    @property
    def evaluation_model(self) -> str:
        return self.options.evaluation_model or self.judge.model

    async def evaluate(self, dataset: EvaluationDataset) -> EvaluationReport:
        """
        Evaluate every item, in order, and build the report.

        Never raises for item-level problems; each item yields exactly
        one result and the progress callback fires after each.
        """
        start = time.perf_counter()
        total = len(dataset.items)
        results: list[ItemEvaluationResult] = []

        logger.info(
            "evaluation_start",
            dataset=dataset.name,
            total_items=total,
            metrics=[metric.value for metric in self.options.metrics],
            judge_model=self.evaluation_model,
        )

        for index, item in enumerate(dataset.items, 1):
            try:
                result = await self.evaluate_item(item, dataset.tenant_id, dataset.dataset_ids)
                logger.debug("item_evaluated", item_id=item.id, scores=result.scores.to_dict())
            except Exception as e:
                error = ItemPipelineError(item.id, e)
                logger.error("item_evaluation_failed", item_id=item.id, error=str(error), exc_info=True)
                result = failed_result(
                    item,
                    str(error),
                    include_recall=MetricName.CONTEXT_RECALL in self.options.metrics,
                )

            results.append(result)

            if self.options.on_progress:
                self.options.on_progress(index, total, item)

        duration_ms = (time.perf_counter() - start) * 1000

        logger.info(
            "evaluation_complete",
            dataset=dataset.name,
            total_items=total,
            failed_items=sum(1 for r in results if r.failed),
            duration_ms=round(duration_ms),
        )

        return build_report(
            dataset,
            results,
            total_duration=duration_ms,
            evaluation_model=self.evaluation_model,
            max_chunks=self.options.max_chunks,
            metrics=list(self.options.metrics),
            generation_model=getattr(self.generator, "model", None),
        )

    async def evaluate_item(
        self,
        item: EvaluationItem,
        tenant_id: str,
        dataset_ids: list[str] | None = None,
    ) -> ItemEvaluationResult:
        """
        Run one item through rewrite -> retrieve -> generate -> score.

        Raises:
            Exception: Whatever retrieval or generation raises; evaluate()
                turns it into a failed result
        """
        start = time.perf_counter()

        # ===== Step 1: Query Rewriting =====
        search_query, rewritten_query = await self._rewrite(item)

        # ===== Step 2: Retrieval =====
        chunks = await self.retriever.retrieve(
            tenant_id,
            search_query,
            self.options.max_chunks,
            dataset_ids or None,
        )
        chunks = list(chunks)[:self.options.max_chunks]

        if not chunks:
            # Expected for some unanswerable questions
            logger.warning(
                "empty_retrieval",
                item_id=item.id,
                tenant_id=tenant_id,
                query=search_query[:80],
                dataset_ids=dataset_ids,
            )

        # ===== Step 3: Generation =====
        answer = await self.generator.generate(
            search_query,
            chunks,
            temperature=self.options.temperature,
        )

        # ===== Step 4: Scoring =====
        scores, analysis = await self.evaluate_metrics(item, answer, chunks)

        return ItemEvaluationResult(
            item_id=item.id,
            question=item.question,
            question_type=item.question_type,
            rewritten_query=rewritten_query,
            retrieved_chunks=chunks,
            generated_answer=answer,
            scores=scores,
            analysis=analysis,
            execution_time=(time.perf_counter() - start) * 1000,
        )

    async def _rewrite(self, item: EvaluationItem) -> tuple[str, str | None]:
        """
        Returns (search query, rewritten query or None).

        Rewriting failures fall back to the original question.
        """
        turns = self.options.history_turns
        if not item.conversation_history or self.rewriter is None or turns <= 0:
            return item.question, None

        history = item.conversation_history[-turns:]

        try:
            rewritten = await self.rewriter.rewrite(item.question, history)
        except Exception as e:
            logger.warning("query_rewrite_failed", item_id=item.id, error=str(e))
            return item.question, None

        if rewritten and rewritten != item.question:
            logger.debug("query_rewritten", item_id=item.id, rewritten=rewritten[:80])
            return rewritten, rewritten
        return item.question, rewritten or None

    async def evaluate_metrics(
        self,
        item: EvaluationItem,
        answer: str,
        chunks: list[RetrievedChunk],
    ) -> tuple[MetricScores, MetricAnalysis]:
        """
        Run the requested scorers concurrently.

        A scorer that raises is logged and left out: its score stays 0.0
        (or None for context recall) and it gets no analysis.
        """
        context = format_context(chunks)
        fallback = self.options.fallback

        scorers: dict[MetricName, Callable[[], Awaitable[MetricResult]]] = {
            MetricName.FAITHFULNESS: lambda: evaluate_faithfulness(
                self.judge, answer, context, fallback
            ),
            MetricName.ANSWER_RELEVANCY: lambda: evaluate_answer_relevancy(
                self.judge, item.question, answer, fallback
            ),
            MetricName.CONTEXT_PRECISION: lambda: evaluate_context_precision(
                self.judge, item.question, chunks
            ),
            MetricName.CONTEXT_RECALL: lambda: evaluate_context_recall(
                self.judge,
                item.ground_truth,
                context,
                ground_truth_chunks=item.ground_truth_chunks,
                retrieved_chunk_ids=[chunk.chunk_id for chunk in chunks],
                fallback=fallback,
            ),
        }

        selected = [metric for metric in ALL_METRICS if metric in self.options.metrics]
        outcomes = await asyncio.gather(
            *(self._safe_evaluate(item, metric, scorers[metric]) for metric in selected)
        )
        computed = {
            metric: outcome for metric, outcome in zip(selected, outcomes) if outcome is not None
        }

        def score(metric: MetricName) -> float | None:
            return clamp_score(computed[metric].score) if metric in computed else None

        def analysis(metric: MetricName):
            return computed[metric].analysis if metric in computed else None

        scores = MetricScores(
            faithfulness=score(MetricName.FAITHFULNESS) or 0.0,
            answer_relevancy=score(MetricName.ANSWER_RELEVANCY) or 0.0,
            context_precision=score(MetricName.CONTEXT_PRECISION) or 0.0,
            context_recall=score(MetricName.CONTEXT_RECALL),
        )
        return scores, MetricAnalysis(
            faithfulness=analysis(MetricName.FAITHFULNESS),
            answer_relevancy=analysis(MetricName.ANSWER_RELEVANCY),
            context_precision=analysis(MetricName.CONTEXT_PRECISION),
            context_recall=analysis(MetricName.CONTEXT_RECALL),
        )

    async def _safe_evaluate(
        self,
        item: EvaluationItem,
        metric: MetricName,
        scorer: Callable[[], Awaitable[MetricResult]],
    ) -> MetricResult | None:
        try:
            return await scorer()
        except Exception as e:
            logger.error(
                "metric_evaluation_failed",
                item_id=item.id,
                metric=metric.value,
                error=str(e),
                exc_info=True,
            )
            return None


async def evaluate_dataset(
    dataset: EvaluationDataset,
    judge: JudgeClient,
    retriever: RetrieverProtocol,
    generator: GeneratorProtocol,
    rewriter: QueryRewriterProtocol | None = None,
    options: EvaluationOptions | None = None,
) -> EvaluationReport:
    """Convenience wrapper: build an evaluator and run it once."""
    evaluator = RagEvaluator(judge, retriever, generator, rewriter, options)
    return await evaluator.evaluate(dataset)


async def _run_with_default_collaborators(
    dataset: EvaluationDataset,
    options: EvaluationOptions,
) -> EvaluationReport:
    from rageval.evaluation.judge import AnthropicJudge
    from rageval.generation.answer import AnswerGenerator
    from rageval.llm import create_anthropic_client
    from rageval.retrieval.query import QueryRewriter
    from rageval.retrieval.search import SearchApiRetriever

    client = create_anthropic_client()
    judge = AnthropicJudge(model=options.evaluation_model, client=client)

    async with SearchApiRetriever() as retriever:
        return await evaluate_dataset(
            dataset,
            judge=judge,
            retriever=retriever,
            generator=AnswerGenerator(client=client),
            rewriter=QueryRewriter(client=client),
            options=options,
        )


def run_evaluation(
    dataset: EvaluationDataset,
    options: EvaluationOptions | None = None,
) -> EvaluationReport:
    """
    Synchronous entry point using the Anthropic and search-service clients.

    Used by the CLI.
    """
    return asyncio.run(_run_with_default_collaborators(dataset, options or EvaluationOptions()))
