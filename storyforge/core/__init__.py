"""
storyforge Core Module
Session state, the reducer, run context, tools and context compaction.
"""

from .context_compactor import (
    ARCHIVE_THRESHOLD,
    CHARS_PER_TOKEN,
    CHUNK_SIZE,
    MAX_CONTEXT_TOKENS,
    ContextCompactor,
    estimate_tokens,
    should_summarize,
)
from .reducer import READER_CHOICE_MARKER, SessionEvent, reduce
from .run_context import RunContext
from .session import (
    Critique,
    DiscussionMessage,
    Draft,
    NovelSession,
    Outline,
    RoundSummary,
    SummaryKind,
    WorkflowPhase,
    create_moderator,
    new_session_id,
    outline_range_label,
)
from .tools import (
    NO_RESULTS_TEXT,
    SEARCH_NOVEL_MEMORY,
    Tool,
    ToolRegistry,
    ToolResult,
    ToolSpec,
    create_memory_tools,
)

__all__ = [
    "ARCHIVE_THRESHOLD",
    "CHUNK_SIZE",
    "CHARS_PER_TOKEN",
    "MAX_CONTEXT_TOKENS",
    "ContextCompactor",
    "estimate_tokens",
    "should_summarize",
    "READER_CHOICE_MARKER",
    "SessionEvent",
    "reduce",
    "RunContext",
    "NovelSession",
    "Outline",
    "DiscussionMessage",
    "Draft",
    "Critique",
    "RoundSummary",
    "SummaryKind",
    "WorkflowPhase",
    "create_moderator",
    "new_session_id",
    "outline_range_label",
    "SEARCH_NOVEL_MEMORY",
    "NO_RESULTS_TEXT",
    "Tool",
    "ToolSpec",
    "ToolResult",
    "ToolRegistry",
    "create_memory_tools",
]
