"""
Unit tests for context compaction.

Tests cover:
- Token estimation
- One summarization step per call above the threshold
- Summarizer failure fallback and cancellation
- Context assembly from summaries and the raw tail
"""

import pytest
from unittest.mock import AsyncMock

from storyforge.core.context_compactor import (
    ContextCompactor,
    estimate_tokens,
    should_summarize,
)
from storyforge.core.reducer import ContextCompacted, reduce
from storyforge.core.session import SummaryKind
from storyforge.services.generation_client import GenerationCancelled

from conftest import make_session


class TestTokenEstimate:
    """Tests for estimate_tokens / should_summarize."""

    def test_estimate_rounds_up(self):
        assert estimate_tokens("") == 0
        assert estimate_tokens("abc") == 2
        assert estimate_tokens("abcd") == 3

    def test_should_summarize(self):
        assert should_summarize("x" * 1000) is False
        assert should_summarize("x" * 88_500) is True


class TestCompact:
    """Tests for ContextCompactor.compact."""

    @pytest.mark.asyncio
    async def test_below_threshold_does_nothing(self):
        summarizer = AsyncMock()
        summarizer.summarize.return_value = "summary"
        compactor = ContextCompactor(summarizer)

        event = await compactor.compact(make_session(compiled_story="x" * 20_000))

        assert event is None
        summarizer.summarize.assert_not_called()

    @pytest.mark.asyncio
    async def test_one_chunk_per_call(self):
        summarizer = AsyncMock()
        summarizer.summarize.return_value = "The first ten thousand characters."
        compactor = ContextCompactor(summarizer)
        session = make_session(compiled_story="a" * 10_000 + "b" * 15_000, current_round=4)

        event = await compactor.compact(session)

        assert isinstance(event, ContextCompacted)
        assert event.chunk_length == 10_000
        assert event.round == 4
        summarizer.summarize.assert_awaited_once()
        assert summarizer.summarize.await_args.args[0] == "a" * 10_000

        session = reduce(session, event)
        assert session.summarized_length == 10_000
        assert session.context_summaries == ["The first ten thousand characters."]
        archives = [s for s in session.summaries if s.kind == SummaryKind.ARCHIVE]
        assert len(archives) == 1

        # 15k left unsummarized: under the threshold
        assert await compactor.compact(session) is None

    @pytest.mark.asyncio
    async def test_summarizer_failure_keeps_chunk_tail(self):
        summarizer = AsyncMock()
        summarizer.summarize.side_effect = RuntimeError("service down")
        compactor = ContextCompactor(summarizer)
        chunk = "a" * 8_000 + "z" * 2_000

        event = await compactor.compact(make_session(compiled_story=chunk + "b" * 15_000))

        assert event.summary == "z" * 2_000
        assert event.chunk_length == 10_000

    @pytest.mark.asyncio
    async def test_empty_summary_keeps_chunk_tail(self):
        summarizer = AsyncMock()
        summarizer.summarize.return_value = "   "
        compactor = ContextCompactor(summarizer)

        event = await compactor.compact(make_session(compiled_story="q" * 25_000))

        assert event.summary == "q" * 2_000

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        summarizer = AsyncMock()
        summarizer.summarize.side_effect = GenerationCancelled("stopped")
        compactor = ContextCompactor(summarizer)

        with pytest.raises(GenerationCancelled):
            await compactor.compact(make_session(compiled_story="q" * 25_000))

    @pytest.mark.asyncio
    async def test_custom_threshold_and_chunk(self):
        summarizer = AsyncMock()
        summarizer.summarize.return_value = "short"
        compactor = ContextCompactor(summarizer, archive_threshold=100, chunk_size=40)

        event = await compactor.compact(make_session(compiled_story="x" * 101))

        assert event.chunk_length == 40


class TestBuildContext:
    """Tests for ContextCompactor.build_context."""

    def test_no_summaries_returns_story(self):
        session = make_session(compiled_story="Once upon a time.")

        assert ContextCompactor.build_context(session) == "Once upon a time."

    def test_summaries_then_tail(self):
        session = make_session(
            compiled_story="OLD PART. Recent part.",
            context_summaries=["First summary", "Second summary"],
            summarized_length=len("OLD PART. "),
        )

        context = ContextCompactor.build_context(session)

        assert context == (
            "[Summary 1]: First summary\n\n"
            "[Summary 2]: Second summary\n\n"
            "[Recent story]:\nRecent part."
        )
        assert "OLD PART" not in context
