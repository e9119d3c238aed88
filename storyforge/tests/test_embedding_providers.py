"""
Unit tests for the embedding provider and rerank client.

Tests cover:
- Embedding request shape and response ordering
- Rerank request shape, sorting and HTTP failures
"""

import json
from types import SimpleNamespace

import httpx
import pytest

from storyforge.services.embedding_providers import (
    EmbeddingProviderType,
    OpenAICompatibleEmbeddingProvider,
    RerankClient,
)


class FakeEmbeddings:
    def __init__(self):
        self.requests = []

    async def create(self, **kwargs):
        self.requests.append(kwargs)
        count = len(kwargs["input"])
        # Reverse order on purpose
        data = [
            SimpleNamespace(index=i, embedding=[float(i), 1.0])
            for i in reversed(range(count))
        ]
        return SimpleNamespace(data=data)


class TestOpenAICompatibleEmbeddingProvider:
    """Tests for OpenAICompatibleEmbeddingProvider."""

    @pytest.mark.asyncio
    async def test_embed_sorts_by_index(self):
        embeddings = FakeEmbeddings()
        provider = OpenAICompatibleEmbeddingProvider(
            api_key="test-key",
            model="BAAI/bge-m3",
            dimension=2,
            client=SimpleNamespace(embeddings=embeddings),
        )

        vectors = await provider.embed(["a", "b", "c"])

        assert vectors == [[0.0, 1.0], [1.0, 1.0], [2.0, 1.0]]
        assert embeddings.requests[0] == {"model": "BAAI/bge-m3", "input": ["a", "b", "c"], "dimensions": 2}

    @pytest.mark.asyncio
    async def test_embed_empty_skips_request(self):
        embeddings = FakeEmbeddings()
        provider = OpenAICompatibleEmbeddingProvider(
            api_key="test-key", client=SimpleNamespace(embeddings=embeddings)
        )

        assert await provider.embed([]) == []
        assert embeddings.requests == []

    @pytest.mark.asyncio
    async def test_embed_single(self):
        provider = OpenAICompatibleEmbeddingProvider(
            api_key="test-key", dimension=2, client=SimpleNamespace(embeddings=FakeEmbeddings())
        )

        assert await provider.embed_single("a") == [0.0, 1.0]

    def test_info(self):
        provider = OpenAICompatibleEmbeddingProvider(api_key="test-key", model="m", dimension=8)

        assert provider.info.provider_type == EmbeddingProviderType.OPENAI_COMPATIBLE
        assert provider.dimension == 8


class TestRerankClient:
    """Tests for RerankClient."""

    @pytest.mark.asyncio
    async def test_rerank_request_and_sorting(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(200, json={"results": [
                {"index": 0, "relevance_score": 0.2},
                {"index": 2, "relevance_score": 0.9},
            ]})

        async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as http_client:
            client = RerankClient(
                api_key="test-key",
                base_url="https://rerank.test/v1/",
                model="reranker",
                http_client=http_client,
            )
            results = await client.rerank("storm", ["a", "b", "c"], top_n=2)

        assert [(r.index, r.relevance_score) for r in results] == [(2, 0.9), (0, 0.2)]
        request = requests[0]
        assert str(request.url) == "https://rerank.test/v1/rerank"
        assert request.headers["Authorization"] == "Bearer test-key"
        body = json.loads(request.content)
        assert body == {
            "model": "reranker",
            "query": "storm",
            "documents": ["a", "b", "c"],
            "top_n": 2,
            "return_documents": False,
        }

    @pytest.mark.asyncio
    async def test_rerank_http_error_raises(self):
        transport = httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "down"}))

        async with httpx.AsyncClient(transport=transport) as http_client:
            client = RerankClient(api_key="test-key", base_url="https://rerank.test", http_client=http_client)
            with pytest.raises(httpx.HTTPStatusError):
                await client.rerank("storm", ["a"], top_n=1)

    @pytest.mark.asyncio
    async def test_rerank_no_documents(self):
        client = RerankClient(api_key="test-key")

        assert await client.rerank("storm", [], top_n=3) == []
