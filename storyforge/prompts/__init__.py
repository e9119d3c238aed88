"""
storyforge Prompt Templates
System prompts are static text or str.format templates over an expert's
persona; user prompt templates are filled per call.
"""

from .architect import (
    EXPERT_RECRUITER_SYSTEM_PROMPT,
    EXPERT_RECRUITER_USER_PROMPT_TEMPLATE,
    WORLDVIEW_ARCHITECT_SYSTEM_PROMPT,
    WORLDVIEW_ARCHITECT_USER_PROMPT_TEMPLATE,
)
from .critic import (
    CRITIQUE_SUMMARIZER_SYSTEM_PROMPT,
    CRITIQUE_SUMMARIZER_USER_PROMPT_TEMPLATE,
    EXPERT_CRITIQUE_SYSTEM_PROMPT,
    EXPERT_CRITIQUE_USER_PROMPT_TEMPLATE,
    VOTE_MARKER,
)
from .outline import (
    OUTLINE_CONTRIBUTOR_SYSTEM_PROMPT,
    OUTLINE_CONTRIBUTOR_USER_PROMPT_TEMPLATE,
    OUTLINE_SUMMARIZER_SYSTEM_PROMPT,
    OUTLINE_SUMMARIZER_USER_PROMPT_TEMPLATE,
)
from .recorder import (
    CHARACTER_RECORDER_SYSTEM_PROMPT,
    CHARACTER_RECORDER_USER_PROMPT_TEMPLATE,
    TASK_RECORDER_SYSTEM_PROMPT,
    TASK_RECORDER_USER_PROMPT_TEMPLATE,
)
from .writer import (
    NOVEL_REWRITER_SYSTEM_PROMPT,
    NOVEL_REWRITER_USER_PROMPT_TEMPLATE,
    NOVEL_WRITER_SYSTEM_PROMPT,
    NOVEL_WRITER_USER_PROMPT_TEMPLATE,
    OPTION_GENERATOR_SYSTEM_PROMPT,
    OPTION_GENERATOR_USER_PROMPT_TEMPLATE,
    STORY_SUMMARIZER_SYSTEM_PROMPT,
    STORY_SUMMARIZER_USER_PROMPT_TEMPLATE,
)

__all__ = [
    "WORLDVIEW_ARCHITECT_SYSTEM_PROMPT",
    "WORLDVIEW_ARCHITECT_USER_PROMPT_TEMPLATE",
    "EXPERT_RECRUITER_SYSTEM_PROMPT",
    "EXPERT_RECRUITER_USER_PROMPT_TEMPLATE",
    "VOTE_MARKER",
    "EXPERT_CRITIQUE_SYSTEM_PROMPT",
    "EXPERT_CRITIQUE_USER_PROMPT_TEMPLATE",
    "CRITIQUE_SUMMARIZER_SYSTEM_PROMPT",
    "CRITIQUE_SUMMARIZER_USER_PROMPT_TEMPLATE",
    "OUTLINE_CONTRIBUTOR_SYSTEM_PROMPT",
    "OUTLINE_CONTRIBUTOR_USER_PROMPT_TEMPLATE",
    "OUTLINE_SUMMARIZER_SYSTEM_PROMPT",
    "OUTLINE_SUMMARIZER_USER_PROMPT_TEMPLATE",
    "CHARACTER_RECORDER_SYSTEM_PROMPT",
    "CHARACTER_RECORDER_USER_PROMPT_TEMPLATE",
    "TASK_RECORDER_SYSTEM_PROMPT",
    "TASK_RECORDER_USER_PROMPT_TEMPLATE",
    "NOVEL_WRITER_SYSTEM_PROMPT",
    "NOVEL_WRITER_USER_PROMPT_TEMPLATE",
    "NOVEL_REWRITER_SYSTEM_PROMPT",
    "NOVEL_REWRITER_USER_PROMPT_TEMPLATE",
    "OPTION_GENERATOR_SYSTEM_PROMPT",
    "OPTION_GENERATOR_USER_PROMPT_TEMPLATE",
    "STORY_SUMMARIZER_SYSTEM_PROMPT",
    "STORY_SUMMARIZER_USER_PROMPT_TEMPLATE",
]
