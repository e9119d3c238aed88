"""
Pydantic data models for storyforge.
Entities tracked across rounds (characters, tasks), the expert panel, and the
structured payloads the generation service must return.
"""

from enum import Enum
from typing import Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


class TaskType(str, Enum):
    """Main storyline or side quest."""
    MAIN = "main"
    SIDE = "side"


class TaskStatus(str, Enum):
    """Task lifecycle status."""
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


# ============================================================================
# Expert Panel
# ============================================================================

class Expert(BaseModel):
    """A panel member who contributes to outlines and critiques drafts."""
    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=lambda: str(uuid4()))
    name: str = Field(..., min_length=1, description="Display name")
    field: str = Field(..., description="Area of expertise, e.g. 'military history'")
    personality: str = Field(default="", description="Voice and temperament")
    initial_stance: str = Field(default="", alias="initialStance")
    color: str = Field(default="#6366f1", description="UI accent color")


class ExpertPanel(BaseModel):
    """Structured response for expert recruitment."""
    experts: List[Expert] = Field(..., description="Recruited experts")


# ============================================================================
# Character Models
# ============================================================================

class BodyPartStatus(BaseModel):
    """Condition of one body part."""
    name: str = Field(..., description="Body part, e.g. 'left arm'")
    status: str = Field(default="", description="Free-text condition")
    severity: str = Field(default="none", description="none, minor, moderate, severe")


class CharacterProfile(BaseModel):
    """A tracked character. Identity is by id, falling back to exact name."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    name: str
    description: str = ""
    status: str = ""
    location: str = ""
    relationships: str = ""
    tags: List[str] = Field(default_factory=list)
    last_updated_round: int = Field(default=0, alias="lastUpdatedRound")
    body_status: Optional[Dict[str, BodyPartStatus]] = Field(default=None, alias="bodyStatus")
    inventory: Optional[List[str]] = None


class CharacterUpdate(BaseModel):
    """One entry of the character recorder's output. Unset fields are left untouched on merge."""
    model_config = ConfigDict(populate_by_name=True)

    id: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    status: Optional[str] = None
    location: Optional[str] = None
    relationships: Optional[str] = None
    tags: Optional[List[str]] = None
    body_status: Optional[Dict[str, BodyPartStatus]] = Field(default=None, alias="bodyStatus")
    inventory: Optional[List[str]] = None


class CharacterUpdateList(BaseModel):
    """Character recorder response envelope."""
    model_config = ConfigDict(populate_by_name=True)

    updated_characters: List[CharacterUpdate] = Field(..., alias="updatedCharacters")


# ============================================================================
# Task Models
# ============================================================================

class StoryTask(BaseModel):
    """A tracked quest. Identity is by id, falling back to exact title."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    title: str
    description: str = ""
    type: TaskType = TaskType.SIDE
    status: TaskStatus = TaskStatus.ACTIVE
    rewards: str = ""
    progress: str = ""
    last_updated_round: int = Field(default=0, alias="lastUpdatedRound")


class TaskUpdate(BaseModel):
    """One entry of the task recorder's output."""
    id: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    type: Optional[TaskType] = None
    status: Optional[TaskStatus] = None
    rewards: Optional[str] = None
    progress: Optional[str] = None


class TaskUpdateList(BaseModel):
    """Task recorder response envelope."""
    model_config = ConfigDict(populate_by_name=True)

    updated_tasks: List[TaskUpdate] = Field(..., alias="updatedTasks")


# ============================================================================
# Reader Options
# ============================================================================

class ReaderOptions(BaseModel):
    """Option generator response envelope."""
    options: List[str] = Field(..., min_length=1, description="Short actions for the protagonist")
