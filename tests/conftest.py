"""Pytest configuration and shared fixtures."""

import asyncio
import json

import pytest

from rageval.evaluation.metrics.answer_relevancy import RELEVANCY_PROMPT
from rageval.evaluation.metrics.context_precision import CHUNK_RELEVANCE_PROMPT
from rageval.evaluation.metrics.context_recall import RECALL_PROMPT
from rageval.evaluation.metrics.faithfulness import EXTRACT_CLAIMS_PROMPT, VERIFY_CLAIM_PROMPT
from rageval.evaluation.models import (
    ConversationTurn,
    EvaluationDataset,
    EvaluationItem,
    QuestionType,
    RetrievedChunk,
)

DEFAULT_JUDGE_RESPONSES = {
    EXTRACT_CLAIMS_PROMPT: json.dumps({
        "claims": ["The office opens at 9am.", "The office closes at 6pm."],
    }),
    VERIFY_CLAIM_PROMPT: json.dumps({"verdict": "supported", "evidence": "Open 9am-6pm."}),
    RELEVANCY_PROMPT: json.dumps({
        "score": 0.9,
        "reasoning": "Answers the question directly.",
        "addressesQuestion": True,
        "partiallyAddressed": [],
    }),
    CHUNK_RELEVANCE_PROMPT: json.dumps({"relevance": "relevant", "reason": "On topic."}),
    RECALL_PROMPT: json.dumps({
        "requiredInfo": ["opening time", "closing time"],
        "foundInfo": ["opening time", "closing time"],
        "missingInfo": [],
    }),
}


class FakeJudge:
    """
    Judge that answers by system prompt.

    A response can be a string, a callable taking the user prompt, or an
    exception instance to raise.
    """

    def __init__(self, responses=None, model="fake-judge", delay=0.0):
        self.model = model
        self.responses = {**DEFAULT_JUDGE_RESPONSES, **(responses or {})}
        self.delay = delay
        self.calls: list[tuple[str, str]] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def complete(self, system_prompt, user_prompt, *, temperature=None, max_tokens=None):
        self.calls.append((system_prompt, user_prompt))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            response = self.responses[system_prompt]
            if isinstance(response, Exception):
                raise response
            if callable(response):
                return response(user_prompt)
            return response
        finally:
            self.in_flight -= 1

    def calls_for(self, system_prompt: str) -> list[str]:
        return [user for system, user in self.calls if system == system_prompt]


class FakeRetriever:
    """Returns the same chunks for every query unless told otherwise."""

    def __init__(self, chunks=None, by_query=None, fail_for=None):
        self.chunks = chunks if chunks is not None else []
        self.by_query = by_query or {}
        self.fail_for = set(fail_for or [])
        self.calls: list[dict] = []

    async def retrieve(self, tenant_id, query, limit, dataset_ids=None):
        self.calls.append({
            "tenant_id": tenant_id,
            "query": query,
            "limit": limit,
            "dataset_ids": dataset_ids,
        })
        if query in self.fail_for:
            raise ConnectionError(f"search unavailable for {query!r}")
        return list(self.by_query.get(query, self.chunks))


class FakeGenerator:
    def __init__(self, answer="The office is open from 9am to 6pm.", fail_for=None, model="fake-generator"):
        self.answer = answer
        self.fail_for = set(fail_for or [])
        self.model = model
        self.calls: list[dict] = []

    async def generate(self, question, chunks, *, temperature=0.3):
        self.calls.append({"question": question, "chunks": list(chunks), "temperature": temperature})
        if question in self.fail_for:
            raise RuntimeError("generation backend exploded")
        return self.answer


class FakeRewriter:
    def __init__(self, rewritten=None, error=None):
        self.rewritten = rewritten
        self.error = error
        self.calls: list[tuple[str, list[ConversationTurn]]] = []

    async def rewrite(self, question, history):
        self.calls.append((question, list(history)))
        if self.error is not None:
            raise self.error
        return self.rewritten if self.rewritten is not None else question


@pytest.fixture
def judge_factory():
    return FakeJudge


@pytest.fixture
def retriever_factory():
    return FakeRetriever


@pytest.fixture
def generator_factory():
    return FakeGenerator


@pytest.fixture
def rewriter_factory():
    return FakeRewriter


@pytest.fixture
def fake_judge() -> FakeJudge:
    return FakeJudge()


@pytest.fixture
def sample_chunks() -> list[RetrievedChunk]:
    """Three ranked chunks about office hours."""
    return [
        RetrievedChunk(chunk_id="chunk-a", content="The office opens at 9am.", score=0.91),
        RetrievedChunk(chunk_id="chunk-b", content="Parking is free for visitors.", score=0.74),
        RetrievedChunk(chunk_id="chunk-c", content="The office closes at 6pm.", score=0.68),
    ]


@pytest.fixture
def make_item():
    """Factory for evaluation items with sensible defaults."""

    def _make_item(
        item_id="q-001",
        question="What are the business hours?",
        question_type=QuestionType.FACTUAL,
        ground_truth="The office is open from 9am to 6pm.",
        **kwargs,
    ) -> EvaluationItem:
        return EvaluationItem(
            id=item_id,
            question=question,
            question_type=question_type,
            ground_truth=ground_truth,
            **kwargs,
        )

    return _make_item


@pytest.fixture
def make_dataset():
    """Factory for datasets around a list of items."""

    def _make_dataset(items, **kwargs) -> EvaluationDataset:
        defaults = {
            "version": "1.0.0",
            "name": "test-dataset",
            "tenant_id": "tenant-123",
            "created_at": "2026-01-01T00:00:00+00:00",
            "updated_at": "2026-01-01T00:00:00+00:00",
        }
        defaults.update(kwargs)
        return EvaluationDataset(items=list(items), **defaults)

    return _make_dataset


@pytest.fixture
def sample_dataset_dict() -> dict:
    """A valid dataset document as it appears on disk."""
    return {
        "version": "1.0.0",
        "name": "support-faq",
        "description": "Support questions",
        "tenantId": "tenant-123",
        "datasetIds": ["ds-1", "ds-2"],
        "items": [
            {
                "id": "q-001",
                "question": "What are the business hours?",
                "questionType": "factual",
                "groundTruth": "The office is open from 9am to 6pm.",
                "groundTruthChunks": ["chunk-a", "chunk-c"],
            },
            {
                "id": "q-002",
                "question": "And on weekends?",
                "questionType": "followup",
                "groundTruth": "The office is closed on weekends.",
                "conversationHistory": [
                    {"role": "user", "content": "What are the business hours?"},
                    {"role": "assistant", "content": "9am to 6pm on weekdays."},
                ],
            },
            {
                "id": "q-003",
                "question": "What is the CEO's home address?",
                "questionType": "unanswerable",
                "groundTruth": "This information is not available.",
                "metadata": {"category": "hallucination-probe"},
            },
        ],
    }


@pytest.fixture
def write_json(tmp_path):
    """Write a JSON document to a temp file and return its path."""

    def _write_json(data, name="dataset.json"):
        path = tmp_path / name
        path.write_text(json.dumps(data), encoding="utf-8")
        return path

    return _write_json
