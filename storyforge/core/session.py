"""
Novel Session State for storyforge

The session is the single aggregate every agent reads from. It is never
mutated in place: the reducer in ``storyforge.core.reducer`` derives a new
session value for every event, so a snapshot handed to a UI callback stays
valid after the workflow moves on.

Key concepts:
- NovelSession: root aggregate for one run
- Outline / Draft / Critique / RoundSummary: append-only per-cycle records
- WorkflowPhase: the state machine's phases
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional

from ..models.schemas import CharacterProfile, Expert, StoryTask


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class WorkflowPhase(str, Enum):
    """Current phase of the novel cycle."""
    SETUP = "setup"
    OUTLINE_DISCUSSION = "outline_discussion"
    DRAFTING = "drafting"
    CRITIQUING = "critiquing"
    SUMMARIZING = "summarizing"
    REVISING = "revising"
    SELECTING_OPTION = "selecting_option"
    COMPLETED = "completed"


class SummaryKind(str, Enum):
    """What a RoundSummary records."""
    CRITIQUE = "critique"
    ARCHIVE = "archive"


@dataclass(frozen=True)
class Outline:
    """Plot plan covering rounds start_round..end_round inclusive."""
    range: str
    start_round: int
    end_round: int
    content: str
    created_at: datetime = field(default_factory=_utcnow)

    def covers(self, round_number: int) -> bool:
        return self.start_round <= round_number <= self.end_round


@dataclass(frozen=True)
class DiscussionMessage:
    """One expert contribution to an outline discussion."""
    id: str
    expert_id: str
    round: int
    discussion_round: int
    content: str = ""
    thinking: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Draft:
    """
    One version of a round's prose.

    Version 1 is the first pass; version n > 1 is revision n-1.
    """
    round: int
    version: int
    content: str = ""
    completed: bool = False
    created_at: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class Critique:
    """One expert's critique of the current draft for a revision pass."""
    id: str
    expert_id: str
    round: int
    revision: int
    content: str = ""
    thinking: Optional[str] = None
    completed: bool = False
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class RoundSummary:
    """Moderator brief (kind=critique) or auto-archive record (kind=archive)."""
    round: int
    revision: int
    content: str = ""
    kind: SummaryKind = SummaryKind.CRITIQUE
    timestamp: datetime = field(default_factory=_utcnow)


@dataclass(frozen=True)
class NovelSession:
    """
    Root aggregate for one interactive-novel run.

    Invariants:
    - summarized_length <= len(compiled_story)
    - compiled_story, drafts, critiques, summaries and outlines only grow
    - 0 <= current_revision < max_revisions
    """
    id: str
    requirements: str
    worldview: str = ""
    experts: List[Expert] = field(default_factory=list)
    moderator: Optional[Expert] = None

    outlines: List[Outline] = field(default_factory=list)
    outline_discussions: List[DiscussionMessage] = field(default_factory=list)

    compiled_story: str = ""
    context_summaries: List[str] = field(default_factory=list)
    summarized_length: int = 0

    drafts: List[Draft] = field(default_factory=list)
    critiques: List[Critique] = field(default_factory=list)
    summaries: List[RoundSummary] = field(default_factory=list)

    current_round: int = 1
    current_revision: int = 0
    max_revisions: int = 1
    status: WorkflowPhase = WorkflowPhase.SETUP
    enable_thinking: bool = False

    characters: List[CharacterProfile] = field(default_factory=list)
    tasks: List[StoryTask] = field(default_factory=list)

    current_options: List[str] = field(default_factory=list)
    user_choices: Dict[int, str] = field(default_factory=dict)
    should_update_outline: bool = False
    error: Optional[str] = None

    created_at: datetime = field(default_factory=_utcnow)
    updated_at: datetime = field(default_factory=_utcnow)

    # =========================================================================
    # Read helpers
    # =========================================================================

    def outline_for_round(self, round_number: int) -> Optional[Outline]:
        """Most recently created outline whose span covers the round."""
        for outline in reversed(self.outlines):
            if outline.covers(round_number):
                return outline
        return None

    @property
    def current_outline(self) -> Optional[Outline]:
        return self.outline_for_round(self.current_round)

    def needs_outline_discussion(self) -> bool:
        return self.should_update_outline or self.current_outline is None

    @property
    def outline_stage(self) -> int:
        """1-based position of the current round inside its outline span."""
        outline = self.current_outline
        if outline is None:
            return 1
        return self.current_round - outline.start_round + 1

    def drafts_for_round(self, round_number: int) -> List[Draft]:
        return [d for d in self.drafts if d.round == round_number]

    def latest_draft(self, round_number: Optional[int] = None) -> Optional[Draft]:
        round_number = self.current_round if round_number is None else round_number
        drafts = self.drafts_for_round(round_number)
        if not drafts:
            return None
        return max(drafts, key=lambda d: d.version)

    def latest_completed_draft(self, round_number: Optional[int] = None) -> Optional[Draft]:
        """Newest fully written version; an interrupted stream never counts."""
        round_number = self.current_round if round_number is None else round_number
        drafts = [d for d in self.drafts_for_round(round_number) if d.completed]
        if not drafts:
            return None
        return max(drafts, key=lambda d: d.version)

    def critiques_for(self, round_number: int, revision: int) -> List[Critique]:
        return [
            c for c in self.critiques
            if c.round == round_number and c.revision == revision
        ]

    def critique_summary_for(self, round_number: int, revision: int) -> Optional[RoundSummary]:
        for summary in reversed(self.summaries):
            if (
                summary.kind == SummaryKind.CRITIQUE
                and summary.round == round_number
                and summary.revision == revision
            ):
                return summary
        return None

    def get_expert(self, expert_id: str) -> Optional[Expert]:
        for expert in self.experts:
            if expert.id == expert_id:
                return expert
        if self.moderator and self.moderator.id == expert_id:
            return self.moderator
        return None

    @property
    def protagonist(self) -> Optional[CharacterProfile]:
        """First character tagged 'protagonist' (case-insensitive)."""
        for character in self.characters:
            if any(tag.lower() == "protagonist" for tag in character.tags):
                return character
        return None

    @property
    def last_user_choice(self) -> Optional[str]:
        return self.user_choices.get(self.current_round - 1)

    @property
    def unsummarized_story(self) -> str:
        return self.compiled_story[self.summarized_length:]


# ============================================================================
# Factories
# ============================================================================

def new_session_id(now: Optional[datetime] = None) -> str:
    """Timestamp-derived, filesystem-safe session id, e.g. 2024-01-01_12-00-00."""
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d_%H-%M-%S")


MODERATOR_ID = "moderator"


def create_moderator() -> Expert:
    """Moderator persona added automatically for panels of more than two experts."""
    return Expert(
        id=MODERATOR_ID,
        name="Moderator",
        field="Editorial synthesis",
        personality="Even-handed, decisive, turns disagreement into concrete edits",
        initial_stance="Keep the story moving while honoring the panel's strongest points",
        color="#64748b",
    )


def outline_range_label(start_round: int, end_round: int) -> str:
    return f"Rounds {start_round}-{end_round}"

