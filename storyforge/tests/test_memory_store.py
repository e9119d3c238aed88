"""
Unit tests for the in-process memory store.

Tests cover:
- Chunking of paragraphs and over-long paragraphs
- Cosine similarity edge cases
- Adding, searching and type filtering
- Entity replacement
- Rerank candidate sizing and fallback
"""

import re

import numpy as np
import pytest

from storyforge.services.embedding_providers import RerankResult
from storyforge.services.memory_store import (
    MemoryStore,
    MemoryType,
    chunk_text,
    cosine_similarity,
    cosine_similarity_batch,
)


def _squash(text: str) -> str:
    return re.sub(r"\s+", "", text)


class RecordingReranker:
    """Reverses the candidate order and records what it was sent."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.requests = []

    async def rerank(self, query, documents, top_n):
        self.requests.append({"query": query, "documents": list(documents), "top_n": top_n})
        if self.fail:
            raise RuntimeError("rerank service down")
        count = len(documents)
        return [
            RerankResult(index=count - 1 - i, relevance_score=1.0 - i * 0.1)
            for i in range(min(top_n, count))
        ]


class TestChunkText:
    """Tests for chunk_text."""

    def test_short_paragraphs_are_coalesced(self):
        chunks = chunk_text("First paragraph.\n\nSecond paragraph.", max_chars=500)

        assert chunks == ["First paragraph.\nSecond paragraph."]

    def test_paragraph_boundary_starts_new_chunk_when_full(self):
        first = "a" * 300
        second = "b" * 300

        chunks = chunk_text(f"{first}\n{second}", max_chars=500)

        assert chunks == [first, second]

    def test_long_paragraph_is_split_into_sentence_groups(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(40))

        chunks = chunk_text(text, max_chars=500)

        assert len(chunks) > 1
        assert all(len(chunk) <= 500 for chunk in chunks)
        assert _squash("".join(chunks)) == _squash(text)

    def test_single_oversized_sentence_is_kept_whole(self):
        sentence = "x" * 800 + "."

        chunks = chunk_text(sentence, max_chars=500)

        assert chunks == [sentence]

    def test_cjk_terminators_split_sentences(self):
        chunks = chunk_text("第一句话。第二句话！", max_chars=6)

        assert chunks == ["第一句话。", "第二句话！"]

    def test_concatenation_preserves_text(self):
        text = (
            "The storm broke at dawn.\n\n"
            + " ".join("Waves hammered the hull again and again." for _ in range(30))
            + "\n\nMira held on."
        )

        chunks = chunk_text(text, max_chars=200)

        assert _squash("".join(chunks)) == _squash(text)

    def test_empty_text(self):
        assert chunk_text("   \n\n  ") == []


class TestCosineSimilarity:
    """Tests for cosine helpers."""

    def test_identical_vectors(self):
        assert cosine_similarity(np.array([1.0, 2.0]), np.array([1.0, 2.0])) == pytest.approx(1.0)

    def test_zero_vector_scores_zero(self):
        assert cosine_similarity(np.zeros(3), np.array([1.0, 0.0, 0.0])) == 0.0
        assert cosine_similarity(np.array([1.0, 0.0, 0.0]), np.zeros(3)) == 0.0

    def test_batch_with_zero_rows(self):
        matrix = np.array([[1.0, 0.0], [0.0, 0.0], [0.0, 1.0]])

        scores = cosine_similarity_batch(np.array([1.0, 0.0]), matrix)

        assert scores.tolist() == pytest.approx([1.0, 0.0, 0.0])

    def test_batch_with_zero_query(self):
        scores = cosine_similarity_batch(np.zeros(2), np.array([[1.0, 0.0], [0.0, 1.0]]))

        assert scores.tolist() == [0.0, 0.0]


class TestMemoryStore:
    """Tests for MemoryStore add/search/replace."""

    @pytest.mark.asyncio
    async def test_add_chunks_narrative(self, memory_store):
        text = " ".join(f"Sentence number {i} is here." for i in range(40))

        ids = await memory_store.add(text, {"round": 2, "type": MemoryType.NARRATIVE})

        assert len(ids) == len(memory_store) > 1
        assert all(s.metadata.round == 2 for s in memory_store.segments)
        assert all(s.metadata.type == MemoryType.NARRATIVE for s in memory_store.segments)

    @pytest.mark.asyncio
    async def test_entity_documents_are_not_chunked(self, memory_store):
        text = "Character: Mira\n" + "Description: brave. " * 60

        await memory_store.add(text, {"round": 1, "type": "character_profile", "entity_id": "c1"})

        assert len(memory_store) == 1

    @pytest.mark.asyncio
    async def test_search_ranks_by_similarity(self, memory_store):
        await memory_store.add("The dragon guards the castle.", {"round": 1, "type": MemoryType.NARRATIVE})
        await memory_store.add("A ship sails across the ocean.", {"round": 2, "type": MemoryType.NARRATIVE})

        hits = await memory_store.search("dragon castle", limit=1)

        assert len(hits) == 1
        assert "dragon" in hits[0].text

    @pytest.mark.asyncio
    async def test_search_empty_store(self, memory_store, embedding_provider):
        hits = await memory_store.search("anything")

        assert hits == []
        assert embedding_provider.calls == []

    @pytest.mark.asyncio
    async def test_search_type_filter(self, memory_store):
        await memory_store.add("Mira the sailor.", {"round": 1, "type": MemoryType.NARRATIVE})
        await memory_store.replace_entity("c1", "Character: Mira the sailor.", {"round": 1, "type": MemoryType.CHARACTER_PROFILE})

        hits = await memory_store.search("Mira sailor", limit=5, types=[MemoryType.CHARACTER_PROFILE])

        assert [hit.segment.metadata.entity_id for hit in hits] == ["c1"]

    @pytest.mark.asyncio
    async def test_add_propagates_embedding_failure(self, memory_store, embedding_provider):
        embedding_provider.fail = True

        with pytest.raises(RuntimeError):
            await memory_store.add("Some text.", {"round": 1, "type": MemoryType.NARRATIVE})
        assert len(memory_store) == 0

    @pytest.mark.asyncio
    async def test_replace_entity_twice_leaves_one_segment(self, memory_store):
        meta = {"round": 1, "type": MemoryType.CHARACTER_PROFILE}

        await memory_store.replace_entity("c1", "Character: Mira (old)", meta)
        await memory_store.replace_entity("c1", "Character: Mira (new)", meta)

        segments = [s for s in memory_store.segments if s.metadata.entity_id == "c1"]
        assert len(segments) == 1
        assert segments[0].text == "Character: Mira (new)"
        assert memory_store.get_entity_text("c1") == "Character: Mira (new)"

    @pytest.mark.asyncio
    async def test_replace_entity_keeps_old_document_on_embedding_failure(self, memory_store, embedding_provider):
        meta = {"round": 1, "type": MemoryType.CHARACTER_PROFILE}
        await memory_store.replace_entity("c1", "Character: Mira (old)", meta)
        embedding_provider.fail = True

        with pytest.raises(RuntimeError):
            await memory_store.replace_entity("c1", "Character: Mira (new)", meta)

        assert memory_store.get_entity_text("c1") == "Character: Mira (old)"

    @pytest.mark.asyncio
    async def test_clear(self, memory_store):
        await memory_store.add("Text.", {"round": 1, "type": MemoryType.NARRATIVE})

        memory_store.clear()

        assert len(memory_store) == 0


class TestRerank:
    """Tests for rerank-backed search."""

    async def _filled_store(self, embedding_provider, reranker, count=30):
        store = MemoryStore(embedding_provider, reranker=reranker)
        for i in range(count):
            await store.add(f"Storm log entry {i}.", {"round": i, "type": MemoryType.NARRATIVE})
        return store

    @pytest.mark.asyncio
    async def test_candidate_limit_is_five_times_limit(self, embedding_provider):
        reranker = RecordingReranker()
        store = await self._filled_store(embedding_provider, reranker)

        hits = await store.search("storm log", limit=3, use_rerank=True)

        assert len(reranker.requests[0]["documents"]) == 15
        assert reranker.requests[0]["top_n"] == 3
        assert len(hits) == 3

    @pytest.mark.asyncio
    async def test_candidate_limit_has_floor_of_ten(self, embedding_provider):
        reranker = RecordingReranker()
        store = await self._filled_store(embedding_provider, reranker)

        await store.search("storm log", limit=1, use_rerank=True)

        assert len(reranker.requests[0]["documents"]) == 10

    @pytest.mark.asyncio
    async def test_reranked_order_and_scores(self, embedding_provider):
        reranker = RecordingReranker()
        store = await self._filled_store(embedding_provider, reranker, count=4)

        hits = await store.search("storm log", limit=2, use_rerank=True)
        documents = reranker.requests[0]["documents"]

        assert [hit.text for hit in hits] == [documents[-1], documents[-2]]
        assert [hit.score for hit in hits] == pytest.approx([1.0, 0.9])

    @pytest.mark.asyncio
    async def test_rerank_failure_falls_back_to_cosine(self, embedding_provider):
        store = await self._filled_store(embedding_provider, RecordingReranker(fail=True), count=12)
        expected = await store.search("storm log", limit=3)

        hits = await store.search("storm log", limit=3, use_rerank=True)

        assert [hit.segment.id for hit in hits] == [hit.segment.id for hit in expected]

    @pytest.mark.asyncio
    async def test_rerank_not_used_without_flag(self, embedding_provider):
        reranker = RecordingReranker()
        store = await self._filled_store(embedding_provider, reranker, count=5)

        await store.search("storm log", limit=2)

        assert reranker.requests == []
