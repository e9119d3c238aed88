"""
Context Compaction for storyforge

Keeps the writer's prompt bounded as the compiled story grows:
- Old text is folded, one fixed-size chunk at a time, into summaries
- The prompt context is the numbered summaries plus the raw unsummarized tail
- Token estimates use a fixed characters-per-token ratio

Key concepts:
- ContextCompactor.compact: at most one summarization step per call
- ContextCompactor.build_context: the text handed to the writer
"""

import logging
import math
from typing import Any, Optional

from ..services.generation_client import GenerationCancelled
from .reducer import ContextCompacted
from .session import NovelSession

logger = logging.getLogger(__name__)

ARCHIVE_THRESHOLD = 20000  # unsummarized chars before a chunk is folded
CHUNK_SIZE = 10000  # chars folded per step
CHARS_PER_TOKEN = 1.5
MAX_CONTEXT_TOKENS = 60000
SUMMARY_FALLBACK_CHARS = 2000


def estimate_tokens(text: str) -> int:
    """Rough token count for mixed CJK/Latin prose."""
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def should_summarize(context: str, new_content_estimate: int = 2000) -> bool:
    return estimate_tokens(context) + new_content_estimate > MAX_CONTEXT_TOKENS


class ContextCompactor:
    """
    Rolling summarizer over NovelSession.compiled_story.

    The summarizer is any object with
    ``async summarize(text, cancel_event=None) -> str`` (the story-summarizer
    agent in production).
    """

    def __init__(
        self,
        summarizer: Any,
        archive_threshold: int = ARCHIVE_THRESHOLD,
        chunk_size: int = CHUNK_SIZE,
    ):
        self.summarizer = summarizer
        self.archive_threshold = archive_threshold
        self.chunk_size = chunk_size

    async def compact(
        self,
        session: NovelSession,
        cancel_event: Any = None,
    ) -> Optional[ContextCompacted]:
        """
        Fold the oldest unsummarized chunk into a summary if the tail is too long.

        Returns:
            ContextCompacted event to dispatch, or None when nothing to do

        Raises:
            GenerationCancelled: if the run was stopped mid-summary
        """
        tail = session.unsummarized_story
        if len(tail) <= self.archive_threshold:
            return None

        chunk = tail[: self.chunk_size]
        logger.info(
            f"[compact] Summarizing {len(chunk)} chars "
            f"(offset {session.summarized_length}, tail {len(tail)})"
        )

        try:
            summary = await self.summarizer.summarize(chunk, cancel_event=cancel_event)
        except GenerationCancelled:
            raise
        except Exception as e:
            logger.warning(f"[compact] Summarizer failed, keeping chunk tail instead: {e}")
            summary = chunk[-SUMMARY_FALLBACK_CHARS:]

        if not summary or not summary.strip():
            logger.warning("[compact] Summarizer returned empty text, keeping chunk tail instead")
            summary = chunk[-SUMMARY_FALLBACK_CHARS:]

        return ContextCompacted(
            summary=summary.strip(),
            chunk_length=len(chunk),
            round=session.current_round,
        )

    @staticmethod
    def build_context(session: NovelSession) -> str:
        """Summaries followed by the unsummarized tail."""
        if not session.context_summaries:
            return session.compiled_story

        blocks = [
            f"[Summary {i}]: {summary}"
            for i, summary in enumerate(session.context_summaries, start=1)
        ]
        blocks.append("[Recent story]:\n" + session.unsummarized_story)
        return "\n\n".join(blocks)
