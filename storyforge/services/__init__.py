"""
storyforge Services Module
Clients for the generation, embedding, rerank and archive endpoints, the
in-process memory store and Langfuse tracing.
"""

from .archive_sink import HttpArchiveSink
from .embedding_providers import (
    EmbeddingProvider,
    EmbeddingProviderInfo,
    EmbeddingProviderType,
    OpenAICompatibleEmbeddingProvider,
    RerankClient,
    RerankResult,
)
from .generation_client import (
    ContentDelta,
    GenerationCancelled,
    GenerationClient,
    GenerationError,
    GenerationResult,
    StructuredOutputError,
    ThinkingDelta,
    ToolCallRequested,
    ToolLoopLimitExceeded,
    parse_structured,
    strip_code_fences,
)
from .memory_store import (
    MemorySegment,
    MemoryStore,
    MemoryType,
    SearchHit,
    SegmentMetadata,
    chunk_text,
    cosine_similarity,
    cosine_similarity_batch,
)
from .tracing import TracingService

__all__ = [
    "HttpArchiveSink",
    "EmbeddingProvider",
    "EmbeddingProviderInfo",
    "EmbeddingProviderType",
    "OpenAICompatibleEmbeddingProvider",
    "RerankClient",
    "RerankResult",
    "ContentDelta",
    "ThinkingDelta",
    "ToolCallRequested",
    "GenerationClient",
    "GenerationResult",
    "GenerationError",
    "GenerationCancelled",
    "StructuredOutputError",
    "ToolLoopLimitExceeded",
    "parse_structured",
    "strip_code_fences",
    "MemoryStore",
    "MemorySegment",
    "MemoryType",
    "SearchHit",
    "SegmentMetadata",
    "chunk_text",
    "cosine_similarity",
    "cosine_similarity_batch",
    "TracingService",
]
