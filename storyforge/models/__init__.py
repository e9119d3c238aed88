"""
storyforge Data Models Module
Pydantic schemas for entities and structured generation output.
"""

from .schemas import (
    BodyPartStatus,
    CharacterProfile,
    CharacterUpdate,
    CharacterUpdateList,
    Expert,
    ExpertPanel,
    ReaderOptions,
    StoryTask,
    TaskStatus,
    TaskType,
    TaskUpdate,
    TaskUpdateList,
)

__all__ = [
    "TaskType",
    "TaskStatus",
    "Expert",
    "ExpertPanel",
    "BodyPartStatus",
    "CharacterProfile",
    "CharacterUpdate",
    "CharacterUpdateList",
    "StoryTask",
    "TaskUpdate",
    "TaskUpdateList",
    "ReaderOptions",
]
