"""
Evaluation dataset loading and validation.

Datasets are JSON files:

    {
      "version": "1.0",
      "name": "support-faq",
      "tenantId": "tenant-123",
      "datasetIds": ["ds-1"],              # optional, restricts retrieval
      "items": [
        {
          "id": "q-001",
          "question": "How do I reset my password?",
          "questionType": "procedural",
          "groundTruth": "Use the 'Forgot password' link ...",
          "groundTruthChunks": ["chunk-17"],  # optional, enables exact recall
          "conversationHistory": [            # optional, for follow-ups
            {"role": "user", "content": "..."},
            {"role": "assistant", "content": "..."}
          ]
        }
      ]
    }

Validation is fail-fast: the document is checked by the pydantic models
in rageval.evaluation.models, and the first problem is raised as a
DatasetValidationError naming the field (and item index).

Usage:
    from rageval.evaluation.dataset import load_dataset, get_dataset_stats

    dataset = load_dataset("data/evaluation/sample-dataset.json")
    stats = get_dataset_stats(dataset)
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from rageval.evaluation.exceptions import DatasetValidationError
from rageval.evaluation.models import EvaluationDataset, QuestionType
from rageval.logging import get_logger

logger = get_logger(__name__, component="dataset")

# pydantic error types for "wrong JSON container"
_OBJECT_ERRORS = ("model_type", "model_attributes_type", "dict_type")


@dataclass
class DatasetStats:
    """Counts shown before a run starts."""
    total_items: int
    by_question_type: dict[QuestionType, int] = field(default_factory=dict)
    with_conversation_history: int = 0
    with_ground_truth_chunks: int = 0


def load_dataset(path: str | Path) -> EvaluationDataset:
    """
    Load and validate an evaluation dataset from a JSON file.

    Args:
        path: Path to the dataset file (relative paths resolve from the cwd)

    Returns:
        The validated dataset

    Raises:
        DatasetValidationError: If the file is missing, unreadable, not JSON, or invalid
    """
    dataset_path = Path(path)

    if not dataset_path.exists():
        raise DatasetValidationError(f"Dataset file not found: {dataset_path}", field="path")

    try:
        text = dataset_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise DatasetValidationError(
            f"Invalid dataset: {dataset_path} is not UTF-8 text", field="path"
        ) from e
    except OSError as e:
        raise DatasetValidationError(
            f"Dataset file could not be read: {dataset_path} ({e.strerror or e})", field="path"
        ) from e

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise DatasetValidationError(
            f"Invalid dataset: not valid JSON (line {e.lineno}, column {e.colno}): {e.msg}",
        ) from e

    dataset = validate_dataset(data)

    logger.info(
        "dataset_loaded",
        path=str(dataset_path),
        name=dataset.name,
        items=len(dataset.items),
    )
    return dataset


def validate_dataset(data: Any) -> EvaluationDataset:
    """
    Validate a parsed JSON document and build the dataset.

    Raises:
        DatasetValidationError: On the first structural problem found
    """
    try:
        return EvaluationDataset.model_validate(data)
    except ValidationError as e:
        raise _dataset_error(e) from e


def _dataset_error(error: ValidationError) -> DatasetValidationError:
    """
    Turn the first pydantic error into a DatasetValidationError.

    Locations look like ("items", 2, "questionType") or
    ("items", 1, "conversationHistory", 0, "role").
    """
    first = error.errors()[0]
    loc = first["loc"]
    ctx = first.get("ctx", {})

    if first["type"] == "duplicate_id":
        index = ctx["index"]
        return DatasetValidationError(
            f"Invalid item at index {index}: {first['msg']}",
            field="id",
            index=index,
            value=ctx["item_id"],
        )

    reason = "must be an object" if first["type"] in _OBJECT_ERRORS else first["msg"]
    value = None if first["type"] == "missing" else first.get("input")

    if len(loc) < 2 or loc[0] != "items" or not isinstance(loc[1], int):
        field_name = ".".join(part for part in loc if isinstance(part, str)) or None
        where = f'"{field_name}"' if field_name else "document"
        return DatasetValidationError(
            f"Invalid dataset: {where} {reason}",
            field=field_name,
            value=value,
        )

    index, rest = loc[1], loc[2:]
    field_name = ".".join(part for part in rest if isinstance(part, str)) or None

    if len(rest) >= 2 and rest[0] == "conversationHistory" and isinstance(rest[1], int):
        message = f"Invalid conversation message at item {index}, message {rest[1]}: {reason}"
    elif field_name:
        message = f'Invalid item at index {index}: "{field_name}" {reason}'
    else:
        message = f"Invalid item at index {index}: {reason}"

    if value is not None and not isinstance(value, (dict, list)):
        message += f" (got {value!r})"

    return DatasetValidationError(message, field=field_name, index=index, value=value)


def get_dataset_stats(dataset: EvaluationDataset) -> DatasetStats:
    """Count items by question type, follow-ups, and items with ground-truth chunks."""
    stats = DatasetStats(total_items=len(dataset.items))

    for item in dataset.items:
        stats.by_question_type[item.question_type] = (
            stats.by_question_type.get(item.question_type, 0) + 1
        )
        if item.conversation_history:
            stats.with_conversation_history += 1
        if item.ground_truth_chunks:
            stats.with_ground_truth_chunks += 1

    return stats
