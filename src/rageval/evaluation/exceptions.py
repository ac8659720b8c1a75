"""
Error taxonomy for evaluation runs.

Only DatasetValidationError is fatal to a run. Everything else is
absorbed into the report: a failing item becomes a failed result,
a failing metric falls back to its default score.
"""

from typing import Any


class RagEvalError(Exception):
    """Base class for all rageval errors."""


class DatasetValidationError(RagEvalError):
    """
    The evaluation dataset is structurally invalid.

    Attributes:
        field: Name of the offending field (JSON name, e.g. "questionType")
        index: 0-based item index for per-item errors, None for top-level errors
        value: The offending value, when there is one worth reporting
    """

    def __init__(
        self,
        message: str,
        field: str | None = None,
        index: int | None = None,
        value: Any = None,
    ):
        super().__init__(message)
        self.field = field
        self.index = index
        self.value = value


class ModelCallError(RagEvalError):
    """A judge, generation or rewriting model call failed."""


class MetricEvaluationFailure(RagEvalError):
    """A scorer could not use the judge output for one metric."""

    def __init__(self, metric: str, reason: str):
        super().__init__(f"{metric}: {reason}")
        self.metric = metric
        self.reason = reason


class ItemPipelineError(RagEvalError):
    """Rewriting, retrieval, generation or scoring failed for one item."""

    def __init__(self, item_id: str, cause: BaseException):
        super().__init__(f"{type(cause).__name__}: {cause}")
        self.item_id = item_id
        self.cause = cause
