"""Tests for the search, generation and rewriting adapters."""

import json
from types import SimpleNamespace

import httpx
import pytest

from rageval.evaluation.exceptions import ModelCallError
from rageval.evaluation.models import ConversationTurn, RetrievedChunk
from rageval.generation.answer import NO_CONTEXT_NOTE, SYSTEM_PROMPT, AnswerGenerator, build_user_prompt
from rageval.retrieval.query import QueryRewriter, format_history
from rageval.retrieval.search import SearchApiRetriever


def _fake_anthropic(text):
    calls = []

    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(content=[SimpleNamespace(type="text", text=text)])

    return SimpleNamespace(messages=SimpleNamespace(create=create)), calls


class TestSearchApiRetriever:
    """Tests for the HTTP search client."""

    @pytest.mark.asyncio
    async def test_posts_query_and_parses_chunks(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"chunks": [
                {"chunkId": "chunk-a", "content": "Open 9-6.", "score": 0.9},
                {"chunkId": "chunk-b", "content": "Closed Sundays.", "score": 0.7},
                {"chunkId": "chunk-c", "content": "Parking.", "score": 0.2},
            ]})

        async with SearchApiRetriever(
            base_url="http://search.test/api/rag/",
            api_key="secret",
            transport=httpx.MockTransport(handler),
        ) as retriever:
            chunks = await retriever.retrieve("tenant-123", "business hours", limit=2)

        assert chunks == [
            RetrievedChunk(chunk_id="chunk-a", content="Open 9-6.", score=0.9),
            RetrievedChunk(chunk_id="chunk-b", content="Closed Sundays.", score=0.7),
        ]
        request = requests[0]
        assert request.method == "POST"
        assert str(request.url) == "http://search.test/api/rag/search"
        assert request.headers["Authorization"] == "Bearer secret"
        assert json.loads(request.content) == {
            "tenantId": "tenant-123",
            "query": "business hours",
            "limit": 2,
        }

    @pytest.mark.asyncio
    async def test_dataset_ids_sent_for_multi_dataset_search(self):
        payloads = []

        def handler(request: httpx.Request) -> httpx.Response:
            payloads.append(json.loads(request.content))
            return httpx.Response(200, json={"chunks": []})

        async with SearchApiRetriever(
            base_url="http://search.test", transport=httpx.MockTransport(handler)
        ) as retriever:
            chunks = await retriever.retrieve("tenant-123", "hours", 5, dataset_ids=["ds-1"])

        assert chunks == []
        assert payloads[0]["datasetIds"] == ["ds-1"]

    @pytest.mark.asyncio
    async def test_http_errors_raise(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(503))

        async with SearchApiRetriever(base_url="http://search.test", transport=transport) as retriever:
            with pytest.raises(httpx.HTTPStatusError):
                await retriever.retrieve("tenant-123", "hours", 5)


class TestAnswerGenerator:
    """Tests for answer generation."""

    @pytest.mark.asyncio
    async def test_generate(self, sample_chunks):
        client, calls = _fake_anthropic("  Open 9am to 6pm.  ")
        generator = AnswerGenerator(model="gen-model", client=client)

        answer = await generator.generate("Hours?", sample_chunks, temperature=0.2)

        assert answer == "Open 9am to 6pm."
        assert calls[0]["model"] == "gen-model"
        assert calls[0]["system"] == SYSTEM_PROMPT
        assert calls[0]["temperature"] == 0.2
        assert "[1] The office opens at 9am." in calls[0]["messages"][0]["content"]

    @pytest.mark.asyncio
    async def test_empty_answer_raises(self):
        client, _ = _fake_anthropic("")
        generator = AnswerGenerator(model="gen-model", client=client)

        with pytest.raises(ModelCallError):
            await generator.generate("Hours?", [])

    def test_prompt_without_context(self):
        prompt = build_user_prompt("Hours?", [])

        assert NO_CONTEXT_NOTE in prompt
        assert prompt.endswith("## Question\nHours?")


class TestQueryRewriter:
    """Tests for follow-up rewriting."""

    HISTORY = [
        ConversationTurn(role="user", content="Tell me about the Berlin office."),
        ConversationTurn(role="assistant", content="It is on Unter den Linden."),
    ]

    @pytest.mark.asyncio
    async def test_rewrite(self):
        client, calls = _fake_anthropic('"What are the Berlin office hours?"')
        rewriter = QueryRewriter(model="fast-model", client=client)

        rewritten = await rewriter.rewrite("What are its hours?", self.HISTORY)

        assert rewritten == "What are the Berlin office hours?"
        prompt = calls[0]["messages"][0]["content"]
        assert "user: Tell me about the Berlin office." in prompt
        assert "What are its hours?" in prompt

    @pytest.mark.asyncio
    async def test_no_history_returns_question(self):
        client, calls = _fake_anthropic("unused")
        rewriter = QueryRewriter(model="fast-model", client=client)

        assert await rewriter.rewrite("Hours?", []) == "Hours?"
        assert calls == []

    @pytest.mark.asyncio
    async def test_empty_response_returns_question(self):
        client, _ = _fake_anthropic("   ")
        rewriter = QueryRewriter(model="fast-model", client=client)

        assert await rewriter.rewrite("What are its hours?", self.HISTORY) == "What are its hours?"

    def test_format_history(self):
        assert format_history(self.HISTORY) == (
            "user: Tell me about the Berlin office.\n"
            "assistant: It is on Unter den Linden."
        )


def test_client_requires_api_key(monkeypatch):
    from rageval import llm

    monkeypatch.setattr(llm.settings, "anthropic_api_key", None)

    with pytest.raises(ModelCallError, match="ANTHROPIC_API_KEY"):
        llm.create_anthropic_client()
