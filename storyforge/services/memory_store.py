"""
In-process Vector Memory for storyforge
Stores embedded chunks of everything the novel has established (chapters,
worldview, outlines, character and task documents) and retrieves them by
cosine similarity, optionally reordered by a rerank service.

Entity documents (character_profile, story_task) carry an entity_id and are
kept as exactly one segment per entity.
"""

import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
from uuid import uuid4

import numpy as np

from .embedding_providers import EmbeddingProvider, RerankClient

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_CHARS = 500

# Sentence = run ending in Latin or CJK terminators, or a trailing remainder
_SENTENCE_RE = re.compile(r"[^.!?。！？]*[.!?。！？]+|[^.!?。！？]+$")
_PARAGRAPH_RE = re.compile(r"\n+")


class MemoryType(str, Enum):
    """Kinds of documents kept in memory."""
    NARRATIVE = "narrative"
    SUMMARY = "summary"
    CHARACTER_PROFILE = "character_profile"
    WORLDVIEW = "worldview"
    OUTLINE = "outline"
    STORY_TASK = "story_task"


UNCHUNKED_TYPES = {MemoryType.CHARACTER_PROFILE, MemoryType.STORY_TASK}


@dataclass
class SegmentMetadata:
    round: int
    type: MemoryType
    timestamp: float = field(default_factory=time.time)
    entity_id: Optional[str] = None


@dataclass
class MemorySegment:
    id: str
    text: str
    vector: np.ndarray
    metadata: SegmentMetadata


@dataclass
class SearchHit:
    segment: MemorySegment
    score: float

    @property
    def text(self) -> str:
        return self.segment.text


# ============================================================================
# Pure helpers
# ============================================================================

def chunk_text(text: str, max_chars: int = DEFAULT_CHUNK_CHARS) -> List[str]:
    """
    Split text into retrieval chunks of at most max_chars where possible.

    Paragraphs are coalesced with newlines; an over-long paragraph is split
    into sentences and regrouped. A single sentence longer than max_chars is
    kept whole.
    """
    chunks: List[str] = []
    current = ""

    for raw in _PARAGRAPH_RE.split(text):
        paragraph = raw.strip()
        if not paragraph:
            continue

        if len(paragraph) > max_chars:
            if current:
                chunks.append(current)
                current = ""

            sentences = _SENTENCE_RE.findall(paragraph) or [paragraph]
            sub_chunk = ""
            for sentence in sentences:
                if sub_chunk and len(sub_chunk + sentence) > max_chars:
                    chunks.append(sub_chunk.strip())
                    sub_chunk = ""
                sub_chunk += sentence
            if sub_chunk.strip():
                chunks.append(sub_chunk.strip())
        else:
            if current and len(current) + 1 + len(paragraph) > max_chars:
                chunks.append(current)
                current = ""
            current = f"{current}\n{paragraph}" if current else paragraph

    if current:
        chunks.append(current)

    return chunks


def cosine_similarity(vec1: np.ndarray, vec2: np.ndarray) -> float:
    """Cosine similarity; 0.0 when either vector has zero norm."""
    vec1 = np.asarray(vec1, dtype=np.float32)
    vec2 = np.asarray(vec2, dtype=np.float32)
    norm1 = np.linalg.norm(vec1)
    norm2 = np.linalg.norm(vec2)
    if norm1 == 0 or norm2 == 0:
        return 0.0
    return float(np.dot(vec1, vec2) / (norm1 * norm2))


def cosine_similarity_batch(query_vec: np.ndarray, vectors: np.ndarray) -> np.ndarray:
    """
    Cosine similarity between one query and many vectors.

    Args:
        query_vec: shape (dim,)
        vectors: shape (n, dim)

    Returns:
        shape (n,), zero-norm rows (or a zero query) score 0.0
    """
    if len(vectors) == 0:
        return np.zeros(0, dtype=np.float32)

    query_norm = np.linalg.norm(query_vec)
    if query_norm == 0:
        return np.zeros(len(vectors), dtype=np.float32)
    query_normalized = query_vec / query_norm

    norms = np.linalg.norm(vectors, axis=1, keepdims=True)
    zero_rows = (norms == 0).ravel()
    norms[norms == 0] = 1
    similarities = np.dot(vectors / norms, query_normalized)
    similarities[zero_rows] = 0.0
    return similarities


# ============================================================================
# Memory Store
# ============================================================================

class MemoryStore:
    """Append-only segment store with entity-scoped replacement."""

    def __init__(
        self,
        embedding_provider: EmbeddingProvider,
        reranker: Optional[RerankClient] = None,
        chunk_chars: int = DEFAULT_CHUNK_CHARS,
    ):
        self.embedding_provider = embedding_provider
        self.reranker = reranker
        self.chunk_chars = chunk_chars
        self._segments: List[MemorySegment] = []

    @property
    def segments(self) -> List[MemorySegment]:
        """Snapshot of all segments in insertion order."""
        return list(self._segments)

    def __len__(self) -> int:
        return len(self._segments)

    @staticmethod
    def _build_metadata(metadata: Dict[str, Any]) -> SegmentMetadata:
        return SegmentMetadata(
            round=int(metadata.get("round", 0)),
            type=MemoryType(metadata["type"]),
            entity_id=metadata.get("entity_id"),
        )

    async def add(self, text: str, metadata: Dict[str, Any]) -> List[str]:
        """
        Chunk, embed and append a document.

        Args:
            text: Document text
            metadata: {"round": int, "type": MemoryType | str, "entity_id": optional str}

        Returns:
            IDs of the new segments

        Raises:
            Exception: embedding failures propagate to the caller
        """
        meta = self._build_metadata(metadata)
        if meta.type in UNCHUNKED_TYPES:
            chunks = [text.strip()] if text.strip() else []
        else:
            chunks = chunk_text(text, self.chunk_chars)
        if not chunks:
            return []

        vectors = await self.embedding_provider.embed(chunks)
        ids = []
        for chunk, vector in zip(chunks, vectors):
            segment = MemorySegment(
                id=str(uuid4()),
                text=chunk,
                vector=np.asarray(vector, dtype=np.float32),
                metadata=SegmentMetadata(
                    round=meta.round,
                    type=meta.type,
                    entity_id=meta.entity_id,
                ),
            )
            self._segments.append(segment)
            ids.append(segment.id)

        logger.info(f"[add] Added {len(ids)} {meta.type.value} segment(s) for round {meta.round}")
        return ids

    async def replace_entity(self, entity_id: str, text: str, metadata: Dict[str, Any]) -> str:
        """
        Make `text` the single authoritative document for an entity.

        The embedding is computed before any segment is removed, so a failed
        embedding leaves the previous document in place.
        """
        meta = self._build_metadata({**metadata, "entity_id": entity_id})
        vector = await self.embedding_provider.embed_single(text)

        segment = MemorySegment(
            id=str(uuid4()),
            text=text,
            vector=np.asarray(vector, dtype=np.float32),
            metadata=meta,
        )
        # Remove and insert with no await in between
        self._segments = [
            s for s in self._segments if s.metadata.entity_id != entity_id
        ] + [segment]

        logger.debug(f"[replace_entity] {meta.type.value} {entity_id} replaced")
        return segment.id

    def get_entity_text(self, entity_id: str) -> Optional[str]:
        for segment in self._segments:
            if segment.metadata.entity_id == entity_id:
                return segment.text
        return None

    async def search(
        self,
        query: str,
        limit: int = 3,
        use_rerank: bool = False,
        types: Optional[Iterable[Any]] = None,
    ) -> List[SearchHit]:
        """
        Rank stored segments against the query.

        Args:
            query: Search text
            limit: Maximum hits returned
            use_rerank: Re-sort cosine candidates with the rerank service
            types: Only consider these segment types

        Returns:
            Hits, best first
        """
        segments = self._segments
        if types is not None:
            wanted = {MemoryType(t) for t in types}
            segments = [s for s in segments if s.metadata.type in wanted]
        if not segments or limit <= 0:
            return []

        query_vector = np.asarray(
            await self.embedding_provider.embed_single(query), dtype=np.float32
        )
        matrix = np.vstack([s.vector for s in segments])
        scores = cosine_similarity_batch(query_vector, matrix)

        reranking = use_rerank and self.reranker is not None
        candidate_limit = max(5 * limit, 10) if reranking else limit
        order = np.argsort(-scores, kind="stable")[:candidate_limit]
        candidates = [SearchHit(segment=segments[i], score=float(scores[i])) for i in order]

        if not reranking or len(candidates) <= 1:
            return candidates[:limit]

        try:
            results = await self.reranker.rerank(
                query, [hit.text for hit in candidates], top_n=limit
            )
        except Exception as e:
            logger.warning(f"[search] Rerank failed, using cosine order: {e}")
            return candidates[:limit]

        reranked = [
            SearchHit(segment=candidates[r.index].segment, score=r.relevance_score)
            for r in results
            if 0 <= r.index < len(candidates)
        ]
        return reranked[:limit]

    def clear(self) -> None:
        self._segments = []
        logger.info("[clear] Memory cleared")
