"""
Embedding and Rerank Providers for storyforge
OpenAI-compatible embeddings (SiliconFlow by default) and a Jina-style rerank
endpoint served by the same host.
"""

import logging
from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, List, Optional

import httpx
from openai import AsyncOpenAI
from pydantic import BaseModel

logger = logging.getLogger(__name__)


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""
    OPENAI_COMPATIBLE = "openai_compatible"


class EmbeddingProviderInfo(BaseModel):
    """Metadata about an embedding provider."""
    provider_type: EmbeddingProviderType
    model_name: str
    dimension: int


class EmbeddingProvider(ABC):
    """Abstract base class for embedding providers."""

    @property
    @abstractmethod
    def info(self) -> EmbeddingProviderInfo:
        """Get provider metadata including dimension."""
        pass

    @property
    def dimension(self) -> int:
        """Get the embedding dimension."""
        return self.info.dimension

    @property
    def provider_id(self) -> str:
        """Get a unique identifier for this provider configuration."""
        info = self.info
        return f"{info.provider_type.value}__{info.model_name}__{info.dimension}"

    @abstractmethod
    async def embed(self, texts: List[str]) -> List[List[float]]:
        """Generate embeddings for a list of texts.

        Args:
            texts: List of texts to embed

        Returns:
            List of embedding vectors, in input order
        """
        pass

    async def embed_single(self, text: str) -> List[float]:
        """Generate embedding for a single text."""
        embeddings = await self.embed([text])
        return embeddings[0]


class OpenAICompatibleEmbeddingProvider(EmbeddingProvider):
    """Embeddings over any `/embeddings` endpoint speaking the OpenAI format."""

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.siliconflow.cn/v1",
        model: str = "BAAI/bge-m3",
        dimension: int = 1024,
        client: Optional[AsyncOpenAI] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url
        self._model = model
        self._dimension = dimension
        self._client = client

    @property
    def info(self) -> EmbeddingProviderInfo:
        return EmbeddingProviderInfo(
            provider_type=EmbeddingProviderType.OPENAI_COMPATIBLE,
            model_name=self._model,
            dimension=self._dimension,
        )

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    async def embed(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []
        client = self._get_client()
        response = await client.embeddings.create(
            model=self._model,
            input=texts,
            dimensions=self._dimension,
        )
        # The service may return items out of order
        items = sorted(response.data, key=lambda item: item.index)
        return [item.embedding for item in items]


class RerankResult(BaseModel):
    """One reranked document."""
    index: int
    relevance_score: float


class RerankClient:
    """
    Client for `POST {base_url}/rerank`.

    Request: {model, query, documents, top_n, return_documents: false}
    Response: {results: [{index, relevance_score}]}
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.siliconflow.cn/v1",
        model: str = "BAAI/bge-reranker-v2-m3",
        timeout: float = 30.0,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._http_client = http_client

    async def rerank(self, query: str, documents: List[str], top_n: int) -> List[RerankResult]:
        """
        Score documents against the query.

        Returns:
            Results sorted by relevance descending

        Raises:
            httpx.HTTPError: on transport or HTTP status failure
        """
        if not documents:
            return []

        payload: Dict[str, Any] = {
            "model": self.model,
            "query": query,
            "documents": documents,
            "top_n": top_n,
            "return_documents": False,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        if self._http_client is not None:
            response = await self._http_client.post(
                f"{self.base_url}/rerank", json=payload, headers=headers, timeout=self.timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(f"{self.base_url}/rerank", json=payload, headers=headers)
        response.raise_for_status()

        results = [RerankResult(**item) for item in response.json().get("results", [])]
        results.sort(key=lambda r: r.relevance_score, reverse=True)
        return results
