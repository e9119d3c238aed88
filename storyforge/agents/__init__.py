"""
storyforge Agents Module
Narrative agents for every step of the novel cycle and the entity recorder.
"""

from .base import BaseAgent
from .entity_recorder import (
    EntityRecorder,
    merge_characters,
    merge_tasks,
    render_character,
    render_task,
)
from .narrative_agents import (
    CritiqueSummarizer,
    ExpertCritic,
    ExpertRecruiter,
    NovelRewriter,
    NovelWriter,
    OptionGenerator,
    OutlineContributor,
    OutlineSummarizer,
    StorySummarizer,
    WorldviewArchitect,
    has_outline_vote,
    render_protagonist_state,
)

__all__ = [
    "BaseAgent",
    "EntityRecorder",
    "merge_characters",
    "merge_tasks",
    "render_character",
    "render_task",
    "StorySummarizer",
    "NovelWriter",
    "ExpertCritic",
    "CritiqueSummarizer",
    "NovelRewriter",
    "OutlineContributor",
    "OutlineSummarizer",
    "WorldviewArchitect",
    "ExpertRecruiter",
    "OptionGenerator",
    "has_outline_vote",
    "render_protagonist_state",
]
