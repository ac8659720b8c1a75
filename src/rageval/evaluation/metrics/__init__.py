"""
Judge-based metric scorers.

Each scorer returns a MetricResult (score in [0, 1] plus an analysis)
and never raises on bad judge output; it falls back to its default.
"""

from rageval.evaluation.metrics.answer_relevancy import evaluate_answer_relevancy
from rageval.evaluation.metrics.base import (
    DEFAULT_FALLBACK,
    FallbackPolicy,
    format_context,
)
from rageval.evaluation.metrics.context_precision import (
    PRECISION_WEIGHTS,
    evaluate_context_precision,
    precision_at_k,
)
from rageval.evaluation.metrics.context_recall import (
    evaluate_context_recall,
    select_recall_mode,
)
from rageval.evaluation.metrics.faithfulness import evaluate_faithfulness

__all__ = [
    "evaluate_faithfulness",
    "evaluate_answer_relevancy",
    "evaluate_context_precision",
    "evaluate_context_recall",
    "select_recall_mode",
    "precision_at_k",
    "PRECISION_WEIGHTS",
    "FallbackPolicy",
    "DEFAULT_FALLBACK",
    "format_context",
]
