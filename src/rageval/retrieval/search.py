"""
Client for the hybrid search service that the RAG application uses.

The search engine itself (lexical + vector fusion, tenant isolation)
lives in the application; evaluation calls it over HTTP so that the
chunks being graded are exactly what production would retrieve.

Wire format:
    POST {search_api_url}/search
    {"tenantId": "...", "query": "...", "limit": 5, "datasetIds": ["..."]}

    200 {"chunks": [{"chunkId": "...", "content": "...", "score": 0.82}, ...]}

datasetIds is only sent for multi-dataset search.

Usage:
    from rageval.retrieval.search import SearchApiRetriever

    async with SearchApiRetriever() as retriever:
        chunks = await retriever.retrieve("tenant-123", "How do I reset my password?", 5)
"""

import httpx

from rageval.config import settings
from rageval.evaluation.models import RetrievedChunk
from rageval.logging import get_logger

logger = get_logger(__name__, component="search")


class SearchApiRetriever:
    """
    Retrieval over the application's search endpoint.

    Results come back in rank order. HTTP errors are raised, not
    swallowed: a retrieval failure fails the item being evaluated.

    Example:
        retriever = SearchApiRetriever(base_url="http://localhost:3000/api/rag")
        chunks = await retriever.retrieve("tenant-123", "refund policy", limit=5)
        await retriever.close()
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        """
        Initialize the retriever.

        Args:
            base_url: Search service URL. Defaults to settings.search_api_url
            api_key: Bearer token. Defaults to settings.search_api_key
            timeout: Request timeout in seconds
            transport: Custom httpx transport (used by tests)
        """
        self.base_url = (base_url or settings.search_api_url).rstrip("/")

        if api_key is None and settings.search_api_key is not None:
            api_key = settings.search_api_key.get_secret_value()

        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}

        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=headers,
            timeout=timeout or settings.search_timeout_seconds,
            transport=transport,
        )

        logger.info("search_retriever_initialized", base_url=self.base_url)

    async def retrieve(
        self,
        tenant_id: str,
        query: str,
        limit: int,
        dataset_ids: list[str] | None = None,
    ) -> list[RetrievedChunk]:
        """
        Search one tenant's documents.

        Args:
            tenant_id: Tenant whose documents are searched
            query: Search query (already rewritten if it was a follow-up)
            limit: Maximum number of chunks
            dataset_ids: Restrict the search to these datasets

        Returns:
            Chunks in rank order, possibly empty

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
        """
        payload: dict = {"tenantId": tenant_id, "query": query, "limit": limit}
        if dataset_ids:
            payload["datasetIds"] = dataset_ids

        logger.debug(
            "search_start",
            query=query[:50],
            limit=limit,
            multi_dataset=bool(dataset_ids),
        )

        response = await self.client.post("/search", json=payload)
        response.raise_for_status()

        chunks = [RetrievedChunk.from_dict(c) for c in response.json().get("chunks", [])]

        logger.debug("search_complete", query=query[:50], count=len(chunks))
        return chunks[:limit]

    async def close(self) -> None:
        """Close the HTTP connection pool."""
        await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
