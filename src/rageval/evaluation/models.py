"""
Data model for evaluation datasets, per-item results and reports.

Attributes are snake_case; the JSON documents (dataset files and saved
reports) use camelCase.

Dataset classes are pydantic models: dataset files are untrusted input,
and model_validate() checks them against the camelCase aliases.

Results and reports are frozen dataclasses built by the evaluator and
the aggregator. Each has a to_dict()/from_dict() pair, and optional
fields that are None are left out of the JSON rather than written as null.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel
from pydantic_core import PydanticCustomError


class QuestionType(str, Enum):
    """Kind of question in the evaluation set."""
    FACTUAL = "factual"
    FOLLOWUP = "followup"          # needs conversation history (query rewriting)
    COMPARISON = "comparison"
    PROCEDURAL = "procedural"
    REASONING = "reasoning"
    UNANSWERABLE = "unanswerable"  # hallucination probe, may retrieve nothing


class MetricName(str, Enum):
    FAITHFULNESS = "faithfulness"
    ANSWER_RELEVANCY = "answerRelevancy"
    CONTEXT_PRECISION = "contextPrecision"
    CONTEXT_RECALL = "contextRecall"


ALL_METRICS: tuple[MetricName, ...] = tuple(MetricName)


class ItemStatus(str, Enum):
    OK = "ok"
    FAILED = "failed"


class ClaimVerdict(str, Enum):
    SUPPORTED = "supported"
    NOT_SUPPORTED = "not_supported"
    CONTRADICTED = "contradicted"


class ChunkRelevance(str, Enum):
    RELEVANT = "relevant"
    PARTIAL = "partial"
    IRRELEVANT = "irrelevant"


class RecallMode(str, Enum):
    """
    How context recall was computed.

    EXACT compares chunk ids against the item's ground-truth chunks.
    HEURISTIC asks the judge which ground-truth facts the context covers.
    """
    EXACT = "exact"
    HEURISTIC = "heuristic"


def _drop_none(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if value is not None}


# ============================================================================
# Dataset
# ============================================================================

def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class ConversationTurn(BaseModel):
    """One prior message in a follow-up conversation."""
    model_config = ConfigDict(frozen=True)

    role: Literal["user", "assistant"]
    content: str


class EvaluationItem(BaseModel):
    """
    A single question in the evaluation set.

    ground_truth_chunks, when given, lists the chunk ids that should be
    retrieved for this question and enables exact context recall.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    question: str
    question_type: QuestionType
    ground_truth: str
    ground_truth_chunks: list[str] | None = None
    conversation_history: list[ConversationTurn] = Field(default_factory=list)
    metadata: dict[str, Any] | None = None

    @field_validator("conversation_history", mode="before")
    @classmethod
    def _null_history_is_empty(cls, value: Any) -> Any:
        return [] if value is None else value


class EvaluationDataset(BaseModel):
    """An evaluation set for one tenant. Item ids are unique."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    version: str
    name: str
    tenant_id: str
    items: list[EvaluationItem]
    description: str | None = None
    dataset_ids: list[str] | None = None  # restricts retrieval scope
    created_at: str = Field(default_factory=_now)
    updated_at: str = Field(default_factory=_now)

    @model_validator(mode="after")
    def _check_unique_ids(self) -> "EvaluationDataset":
        seen: dict[str, int] = {}
        for index, item in enumerate(self.items):
            if item.id in seen:
                raise PydanticCustomError(
                    "duplicate_id",
                    'duplicate "id" {item_id} (first used at index {first_index})',
                    {"item_id": item.id, "index": index, "first_index": seen[item.id]},
                )
            seen[item.id] = index
        return self

    def __len__(self) -> int:
        return len(self.items)


# ============================================================================
# Pipeline outputs
# ============================================================================

@dataclass(frozen=True)
class RetrievedChunk:
    """A chunk returned by the retrieval service, in rank order."""
    chunk_id: str
    content: str
    score: float  # retrieval score, not interpreted here

    def to_dict(self) -> dict[str, Any]:
        return {"chunkId": self.chunk_id, "content": self.content, "score": self.score}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RetrievedChunk":
        return cls(
            chunk_id=str(data["chunkId"]),
            content=data.get("content", ""),
            score=float(data.get("score", 0.0)),
        )


# ============================================================================
# Scores and analyses
# ============================================================================

@dataclass(frozen=True)
class MetricScores:
    """Scores in [0, 1]. context_recall is None when it was not computed."""
    faithfulness: float = 0.0
    answer_relevancy: float = 0.0
    context_precision: float = 0.0
    context_recall: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "faithfulness": self.faithfulness,
            "answerRelevancy": self.answer_relevancy,
            "contextPrecision": self.context_precision,
            "contextRecall": self.context_recall,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricScores":
        recall = data.get("contextRecall")
        return cls(
            faithfulness=float(data.get("faithfulness", 0.0)),
            answer_relevancy=float(data.get("answerRelevancy", 0.0)),
            context_precision=float(data.get("contextPrecision", 0.0)),
            context_recall=float(recall) if recall is not None else None,
        )


@dataclass(frozen=True)
class ClaimVerification:
    claim: str
    verdict: ClaimVerdict
    evidence: str | None = None

    @property
    def supported_by_context(self) -> bool:
        return self.verdict == ClaimVerdict.SUPPORTED

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "claim": self.claim,
            "verdict": self.verdict.value,
            "supportedByContext": self.supported_by_context,
            "evidence": self.evidence,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ClaimVerification":
        return cls(
            claim=data["claim"],
            verdict=ClaimVerdict(data.get("verdict", ClaimVerdict.NOT_SUPPORTED.value)),
            evidence=data.get("evidence"),
        )


@dataclass(frozen=True)
class FaithfulnessAnalysis:
    claims: list[ClaimVerification] = field(default_factory=list)
    unsupported_claims: list[str] = field(default_factory=list)
    fallback_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "claims": [claim.to_dict() for claim in self.claims],
            "unsupportedClaims": list(self.unsupported_claims),
            "fallbackUsed": self.fallback_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FaithfulnessAnalysis":
        return cls(
            claims=[ClaimVerification.from_dict(c) for c in data.get("claims", [])],
            unsupported_claims=list(data.get("unsupportedClaims", [])),
            fallback_used=bool(data.get("fallbackUsed", False)),
        )


@dataclass(frozen=True)
class AnswerRelevancyAnalysis:
    relevance_reasoning: str = ""
    addresses_question: bool = False
    partially_addressed: list[str] = field(default_factory=list)
    fallback_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "relevanceReasoning": self.relevance_reasoning,
            "addressesQuestion": self.addresses_question,
            "partiallyAddressed": list(self.partially_addressed),
            "fallbackUsed": self.fallback_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "AnswerRelevancyAnalysis":
        return cls(
            relevance_reasoning=data.get("relevanceReasoning", ""),
            addresses_question=bool(data.get("addressesQuestion", False)),
            partially_addressed=list(data.get("partiallyAddressed", [])),
            fallback_used=bool(data.get("fallbackUsed", False)),
        )


@dataclass(frozen=True)
class RankedChunk:
    chunk_id: str
    rank: int  # 1-based retrieval rank
    verdict: ChunkRelevance
    relevance_reason: str | None = None

    @property
    def is_relevant(self) -> bool:
        # "partial" does not count
        return self.verdict == ChunkRelevance.RELEVANT

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "chunkId": self.chunk_id,
            "rank": self.rank,
            "verdict": self.verdict.value,
            "isRelevant": self.is_relevant,
            "relevanceReason": self.relevance_reason,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "RankedChunk":
        return cls(
            chunk_id=data["chunkId"],
            rank=int(data["rank"]),
            verdict=ChunkRelevance(data.get("verdict", ChunkRelevance.IRRELEVANT.value)),
            relevance_reason=data.get("relevanceReason"),
        )


@dataclass(frozen=True)
class ContextPrecisionAnalysis:
    ranked_chunks: list[RankedChunk] = field(default_factory=list)
    precision_at_k: dict[int, float] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rankedChunks": [chunk.to_dict() for chunk in self.ranked_chunks],
            "precisionAtK": {str(k): v for k, v in self.precision_at_k.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContextPrecisionAnalysis":
        return cls(
            ranked_chunks=[RankedChunk.from_dict(c) for c in data.get("rankedChunks", [])],
            precision_at_k={int(k): float(v) for k, v in data.get("precisionAtK", {}).items()},
        )


@dataclass(frozen=True)
class ContextRecallAnalysis:
    mode: RecallMode
    required_info: list[str] = field(default_factory=list)
    found_info: list[str] = field(default_factory=list)
    missing_info: list[str] = field(default_factory=list)
    fallback_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "mode": self.mode.value,
            "requiredInfo": list(self.required_info),
            "foundInfo": list(self.found_info),
            "missingInfo": list(self.missing_info),
            "fallbackUsed": self.fallback_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ContextRecallAnalysis":
        return cls(
            mode=RecallMode(data.get("mode", RecallMode.HEURISTIC.value)),
            required_info=list(data.get("requiredInfo", [])),
            found_info=list(data.get("foundInfo", [])),
            missing_info=list(data.get("missingInfo", [])),
            fallback_used=bool(data.get("fallbackUsed", False)),
        )


@dataclass(frozen=True)
class MetricAnalysis:
    """Judge explanations kept for auditing. Never used to compute anything."""
    faithfulness: FaithfulnessAnalysis | None = None
    answer_relevancy: AnswerRelevancyAnalysis | None = None
    context_precision: ContextPrecisionAnalysis | None = None
    context_recall: ContextRecallAnalysis | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "faithfulness": self.faithfulness.to_dict() if self.faithfulness else None,
            "answerRelevancy": self.answer_relevancy.to_dict() if self.answer_relevancy else None,
            "contextPrecision": self.context_precision.to_dict() if self.context_precision else None,
            "contextRecall": self.context_recall.to_dict() if self.context_recall else None,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MetricAnalysis":
        return cls(
            faithfulness=(
                FaithfulnessAnalysis.from_dict(data["faithfulness"])
                if "faithfulness" in data else None
            ),
            answer_relevancy=(
                AnswerRelevancyAnalysis.from_dict(data["answerRelevancy"])
                if "answerRelevancy" in data else None
            ),
            context_precision=(
                ContextPrecisionAnalysis.from_dict(data["contextPrecision"])
                if "contextPrecision" in data else None
            ),
            context_recall=(
                ContextRecallAnalysis.from_dict(data["contextRecall"])
                if "contextRecall" in data else None
            ),
        )


@dataclass(frozen=True)
class MetricResult:
    """What every scorer returns."""
    score: float
    analysis: Any


# ============================================================================
# Per-item result
# ============================================================================

@dataclass(frozen=True)
class ItemEvaluationResult:
    """
    Outcome of running one dataset item through the pipeline.

    A failed item keeps status=FAILED and the error message in `error`;
    its scores are all zero and it has no chunks or answer.
    """
    item_id: str
    question: str
    question_type: QuestionType
    retrieved_chunks: list[RetrievedChunk]
    generated_answer: str
    scores: MetricScores
    analysis: MetricAnalysis
    execution_time: float  # milliseconds
    rewritten_query: str | None = None
    status: ItemStatus = ItemStatus.OK
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.status == ItemStatus.FAILED

    @property
    def was_rewritten(self) -> bool:
        return bool(self.rewritten_query) and self.rewritten_query != self.question

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "itemId": self.item_id,
            "question": self.question,
            "questionType": self.question_type.value,
            "rewrittenQuery": self.rewritten_query,
            "retrievedChunks": [chunk.to_dict() for chunk in self.retrieved_chunks],
            "generatedAnswer": self.generated_answer,
            "scores": self.scores.to_dict(),
            "analysis": self.analysis.to_dict(),
            "executionTime": self.execution_time,
            "status": self.status.value,
            "error": self.error,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ItemEvaluationResult":
        return cls(
            item_id=data["itemId"],
            question=data["question"],
            question_type=QuestionType(data["questionType"]),
            retrieved_chunks=[RetrievedChunk.from_dict(c) for c in data.get("retrievedChunks", [])],
            generated_answer=data.get("generatedAnswer", ""),
            scores=MetricScores.from_dict(data.get("scores", {})),
            analysis=MetricAnalysis.from_dict(data.get("analysis", {})),
            execution_time=float(data.get("executionTime", 0.0)),
            rewritten_query=data.get("rewrittenQuery"),
            status=ItemStatus(data.get("status", ItemStatus.OK.value)),
            error=data.get("error"),
        )


# ============================================================================
# Report
# ============================================================================

@dataclass(frozen=True)
class QuestionTypeStats:
    count: int
    avg_faithfulness: float
    avg_answer_relevancy: float
    avg_context_precision: float
    avg_context_recall: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "count": self.count,
            "avgFaithfulness": self.avg_faithfulness,
            "avgAnswerRelevancy": self.avg_answer_relevancy,
            "avgContextPrecision": self.avg_context_precision,
            "avgContextRecall": self.avg_context_recall,
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QuestionTypeStats":
        return cls(
            count=int(data["count"]),
            avg_faithfulness=float(data["avgFaithfulness"]),
            avg_answer_relevancy=float(data["avgAnswerRelevancy"]),
            avg_context_precision=float(data["avgContextPrecision"]),
            avg_context_recall=data.get("avgContextRecall"),
        )


@dataclass(frozen=True)
class QueryRewritingImpact:
    """
    Rough signal for how follow-up questions fare.

    avg_score_improvement is mean answer relevancy of followup items minus
    the mean of all other items; positive means follow-ups hold up.
    """
    items_with_rewriting: int
    avg_score_improvement: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "itemsWithRewriting": self.items_with_rewriting,
            "avgScoreImprovement": self.avg_score_improvement,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "QueryRewritingImpact":
        return cls(
            items_with_rewriting=int(data["itemsWithRewriting"]),
            avg_score_improvement=float(data["avgScoreImprovement"]),
        )


@dataclass(frozen=True)
class EvaluationSummary:
    total_items: int
    avg_faithfulness: float
    avg_answer_relevancy: float
    avg_context_precision: float
    avg_context_recall: float | None = None
    failed_items: int = 0
    by_question_type: dict[QuestionType, QuestionTypeStats] = field(default_factory=dict)
    query_rewriting_impact: QueryRewritingImpact | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "totalItems": self.total_items,
            "failedItems": self.failed_items,
            "avgFaithfulness": self.avg_faithfulness,
            "avgAnswerRelevancy": self.avg_answer_relevancy,
            "avgContextPrecision": self.avg_context_precision,
            "avgContextRecall": self.avg_context_recall,
            "byQuestionType": {
                question_type.value: stats.to_dict()
                for question_type, stats in self.by_question_type.items()
            },
            "queryRewritingImpact": (
                self.query_rewriting_impact.to_dict() if self.query_rewriting_impact else None
            ),
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EvaluationSummary":
        impact = data.get("queryRewritingImpact")
        return cls(
            total_items=int(data["totalItems"]),
            avg_faithfulness=float(data["avgFaithfulness"]),
            avg_answer_relevancy=float(data["avgAnswerRelevancy"]),
            avg_context_precision=float(data["avgContextPrecision"]),
            avg_context_recall=data.get("avgContextRecall"),
            failed_items=int(data.get("failedItems", 0)),
            by_question_type={
                QuestionType(key): QuestionTypeStats.from_dict(value)
                for key, value in data.get("byQuestionType", {}).items()
            },
            query_rewriting_impact=QueryRewritingImpact.from_dict(impact) if impact else None,
        )


@dataclass(frozen=True)
class ExecutionMetadata:
    total_duration: float  # milliseconds
    evaluation_model: str
    max_chunks: int
    metrics: list[MetricName] = field(default_factory=lambda: list(ALL_METRICS))
    generation_model: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return _drop_none({
            "totalDuration": self.total_duration,
            "evaluationModel": self.evaluation_model,
            "generationModel": self.generation_model,
            "maxChunks": self.max_chunks,
            "metrics": [metric.value for metric in self.metrics],
        })

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ExecutionMetadata":
        return cls(
            total_duration=float(data["totalDuration"]),
            evaluation_model=data["evaluationModel"],
            max_chunks=int(data.get("maxChunks", 0)),
            metrics=[MetricName(m) for m in data.get("metrics", [m.value for m in ALL_METRICS])],
            generation_model=data.get("generationModel"),
        )


@dataclass(frozen=True)
class EvaluationReport:
    dataset_name: str
    dataset_version: str
    tenant_id: str
    evaluated_at: str  # ISO-8601
    summary: EvaluationSummary
    results: list[ItemEvaluationResult]
    execution_metadata: ExecutionMetadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "datasetName": self.dataset_name,
            "datasetVersion": self.dataset_version,
            "tenantId": self.tenant_id,
            "evaluatedAt": self.evaluated_at,
            "summary": self.summary.to_dict(),
            "results": [result.to_dict() for result in self.results],
            "executionMetadata": self.execution_metadata.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "EvaluationReport":
        return cls(
            dataset_name=data["datasetName"],
            dataset_version=data["datasetVersion"],
            tenant_id=data.get("tenantId", ""),
            evaluated_at=data["evaluatedAt"],
            summary=EvaluationSummary.from_dict(data["summary"]),
            results=[ItemEvaluationResult.from_dict(r) for r in data.get("results", [])],
            execution_metadata=ExecutionMetadata.from_dict(data["executionMetadata"]),
        )
