"""
Session reducer for storyforge

Every state change in a run is expressed as an event and applied by
``reduce(session, event)``, which returns a new NovelSession and never touches
its input. Streamed deltas from experts running concurrently are merged by the
record's key (message id, critique id, or round/version), so two streams can
interleave without clobbering each other.
"""

import re
from dataclasses import asdict, dataclass, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from ..models.schemas import CharacterProfile, StoryTask
from .session import (
    Critique,
    DiscussionMessage,
    Draft,
    NovelSession,
    Outline,
    RoundSummary,
    SummaryKind,
    WorkflowPhase,
)

READER_CHOICE_MARKER = "\n\n> Reader choice: {choice}"

_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass(frozen=True)
class SessionEvent:
    """Base class for all reducer events."""

    @property
    def event_type(self) -> str:
        """Snake-case name used for UI callbacks, e.g. 'draft_delta'."""
        return _CAMEL_RE.sub("_", type(self).__name__).lower()

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ============================================================================
# Events
# ============================================================================

@dataclass(frozen=True)
class PhaseChanged(SessionEvent):
    status: WorkflowPhase


@dataclass(frozen=True)
class OutlineMessageStarted(SessionEvent):
    message_id: str
    expert_id: str
    round: int
    discussion_round: int


@dataclass(frozen=True)
class OutlineMessageDelta(SessionEvent):
    message_id: str
    content: str = ""
    thinking: str = ""


@dataclass(frozen=True)
class OutlineMessageFinished(SessionEvent):
    message_id: str
    content: str
    thinking: Optional[str] = None


@dataclass(frozen=True)
class OutlineAdded(SessionEvent):
    """New outline; also clears the refresh vote."""
    outline: Outline


@dataclass(frozen=True)
class DraftStarted(SessionEvent):
    round: int
    version: int


@dataclass(frozen=True)
class DraftDelta(SessionEvent):
    round: int
    version: int
    content: str


@dataclass(frozen=True)
class DraftCompleted(SessionEvent):
    round: int
    version: int
    content: str


@dataclass(frozen=True)
class CritiqueStarted(SessionEvent):
    critique_id: str
    expert_id: str
    round: int
    revision: int


@dataclass(frozen=True)
class CritiqueDelta(SessionEvent):
    critique_id: str
    content: str = ""
    thinking: str = ""


@dataclass(frozen=True)
class CritiqueCompleted(SessionEvent):
    critique_id: str
    content: str
    thinking: Optional[str] = None


@dataclass(frozen=True)
class CritiquesTallied(SessionEvent):
    """Sets should_update_outline on a strict majority of votes."""
    votes: int
    expert_count: int


@dataclass(frozen=True)
class SummaryStarted(SessionEvent):
    round: int
    revision: int


@dataclass(frozen=True)
class SummaryDelta(SessionEvent):
    round: int
    revision: int
    content: str


@dataclass(frozen=True)
class SummaryCompleted(SessionEvent):
    round: int
    revision: int
    content: str


@dataclass(frozen=True)
class RevisionAdvanced(SessionEvent):
    pass


@dataclass(frozen=True)
class CycleFinalized(SessionEvent):
    """Append the round's final text to the compiled story."""
    text: str


@dataclass(frozen=True)
class EntitiesUpdated(SessionEvent):
    characters: Optional[List[CharacterProfile]] = None
    tasks: Optional[List[StoryTask]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "characters": [c.model_dump() for c in self.characters] if self.characters is not None else None,
            "tasks": [t.model_dump() for t in self.tasks] if self.tasks is not None else None,
        }


@dataclass(frozen=True)
class OptionsPresented(SessionEvent):
    options: List[str]


@dataclass(frozen=True)
class ChoiceResolved(SessionEvent):
    choice: str


@dataclass(frozen=True)
class RoundAdvanced(SessionEvent):
    """Next round without a reader choice."""
    pass


@dataclass(frozen=True)
class ContextCompacted(SessionEvent):
    summary: str
    chunk_length: int
    round: int


@dataclass(frozen=True)
class ErrorRaised(SessionEvent):
    message: str


@dataclass(frozen=True)
class ErrorCleared(SessionEvent):
    pass


# ============================================================================
# Handlers
# ============================================================================

def _replace_where(items: List[Any], match: Callable[[Any], bool], update: Callable[[Any], Any]) -> List[Any]:
    return [update(item) if match(item) else item for item in items]


def _append_thinking(current: Optional[str], delta: str) -> Optional[str]:
    if not delta:
        return current
    return (current or "") + delta


def _on_phase_changed(session: NovelSession, event: PhaseChanged) -> NovelSession:
    return replace(session, status=event.status)


def _on_outline_message_started(session: NovelSession, event: OutlineMessageStarted) -> NovelSession:
    message = DiscussionMessage(
        id=event.message_id,
        expert_id=event.expert_id,
        round=event.round,
        discussion_round=event.discussion_round,
    )
    return replace(session, outline_discussions=session.outline_discussions + [message])


def _on_outline_message_delta(session: NovelSession, event: OutlineMessageDelta) -> NovelSession:
    messages = _replace_where(
        session.outline_discussions,
        lambda m: m.id == event.message_id,
        lambda m: replace(
            m,
            content=m.content + event.content,
            thinking=_append_thinking(m.thinking, event.thinking),
        ),
    )
    return replace(session, outline_discussions=messages)


def _on_outline_message_finished(session: NovelSession, event: OutlineMessageFinished) -> NovelSession:
    messages = _replace_where(
        session.outline_discussions,
        lambda m: m.id == event.message_id,
        lambda m: replace(m, content=event.content, thinking=event.thinking or m.thinking),
    )
    return replace(session, outline_discussions=messages)


def _on_outline_added(session: NovelSession, event: OutlineAdded) -> NovelSession:
    return replace(
        session,
        outlines=session.outlines + [event.outline],
        should_update_outline=False,
    )


def _draft_key(event: Any) -> Callable[[Draft], bool]:
    return lambda d: d.round == event.round and d.version == event.version


def _on_draft_started(session: NovelSession, event: DraftStarted) -> NovelSession:
    # An interrupted version is rewritten in place.
    key = _draft_key(event)
    if any(key(d) for d in session.drafts):
        drafts = _replace_where(session.drafts, key, lambda d: replace(d, content="", completed=False))
        return replace(session, drafts=drafts)
    draft = Draft(round=event.round, version=event.version)
    return replace(session, drafts=session.drafts + [draft])


def _on_draft_delta(session: NovelSession, event: DraftDelta) -> NovelSession:
    drafts = _replace_where(
        session.drafts,
        _draft_key(event),
        lambda d: replace(d, content=d.content + event.content),
    )
    return replace(session, drafts=drafts)


def _on_draft_completed(session: NovelSession, event: DraftCompleted) -> NovelSession:
    drafts = _replace_where(
        session.drafts,
        _draft_key(event),
        lambda d: replace(d, content=event.content, completed=True),
    )
    return replace(session, drafts=drafts)


def _on_critique_started(session: NovelSession, event: CritiqueStarted) -> NovelSession:
    critique = Critique(
        id=event.critique_id,
        expert_id=event.expert_id,
        round=event.round,
        revision=event.revision,
    )
    return replace(session, critiques=session.critiques + [critique])


def _on_critique_delta(session: NovelSession, event: CritiqueDelta) -> NovelSession:
    critiques = _replace_where(
        session.critiques,
        lambda c: c.id == event.critique_id,
        lambda c: replace(
            c,
            content=c.content + event.content,
            thinking=_append_thinking(c.thinking, event.thinking),
        ),
    )
    return replace(session, critiques=critiques)


def _on_critique_completed(session: NovelSession, event: CritiqueCompleted) -> NovelSession:
    critiques = _replace_where(
        session.critiques,
        lambda c: c.id == event.critique_id,
        lambda c: replace(
            c,
            content=event.content,
            thinking=event.thinking or c.thinking,
            completed=True,
        ),
    )
    return replace(session, critiques=critiques)


def _on_critiques_tallied(session: NovelSession, event: CritiquesTallied) -> NovelSession:
    if event.expert_count > 0 and event.votes > event.expert_count / 2:
        return replace(session, should_update_outline=True)
    return session


def _summary_key(event: Any) -> Callable[[RoundSummary], bool]:
    return lambda s: (
        s.kind == SummaryKind.CRITIQUE
        and s.round == event.round
        and s.revision == event.revision
    )


def _on_summary_started(session: NovelSession, event: SummaryStarted) -> NovelSession:
    # A retried pass reuses its record.
    key = _summary_key(event)
    if any(key(s) for s in session.summaries):
        summaries = _replace_where(session.summaries, key, lambda s: replace(s, content=""))
        return replace(session, summaries=summaries)
    summary = RoundSummary(round=event.round, revision=event.revision)
    return replace(session, summaries=session.summaries + [summary])


def _on_summary_delta(session: NovelSession, event: SummaryDelta) -> NovelSession:
    summaries = _replace_where(
        session.summaries,
        _summary_key(event),
        lambda s: replace(s, content=s.content + event.content),
    )
    return replace(session, summaries=summaries)


def _on_summary_completed(session: NovelSession, event: SummaryCompleted) -> NovelSession:
    summaries = _replace_where(
        session.summaries,
        _summary_key(event),
        lambda s: replace(s, content=event.content),
    )
    return replace(session, summaries=summaries)


def _on_revision_advanced(session: NovelSession, event: RevisionAdvanced) -> NovelSession:
    return replace(session, current_revision=session.current_revision + 1)


def _on_cycle_finalized(session: NovelSession, event: CycleFinalized) -> NovelSession:
    if session.compiled_story:
        compiled = session.compiled_story + "\n\n" + event.text
    else:
        compiled = event.text
    return replace(session, compiled_story=compiled)


def _on_entities_updated(session: NovelSession, event: EntitiesUpdated) -> NovelSession:
    changes: Dict[str, Any] = {}
    if event.characters is not None:
        changes["characters"] = list(event.characters)
    if event.tasks is not None:
        changes["tasks"] = list(event.tasks)
    return replace(session, **changes) if changes else session


def _on_options_presented(session: NovelSession, event: OptionsPresented) -> NovelSession:
    return replace(
        session,
        current_options=list(event.options),
        status=WorkflowPhase.SELECTING_OPTION,
    )


def _next_round(session: NovelSession, **changes: Any) -> NovelSession:
    return replace(
        session,
        current_round=session.current_round + 1,
        current_revision=0,
        current_options=[],
        status=WorkflowPhase.DRAFTING,
        **changes,
    )


def _on_choice_resolved(session: NovelSession, event: ChoiceResolved) -> NovelSession:
    choices = dict(session.user_choices)
    choices[session.current_round] = event.choice
    return _next_round(
        session,
        compiled_story=session.compiled_story + READER_CHOICE_MARKER.format(choice=event.choice),
        user_choices=choices,
    )


def _on_round_advanced(session: NovelSession, event: RoundAdvanced) -> NovelSession:
    return _next_round(session)


def _on_context_compacted(session: NovelSession, event: ContextCompacted) -> NovelSession:
    summarized_length = min(
        session.summarized_length + event.chunk_length,
        len(session.compiled_story),
    )
    archive = RoundSummary(
        round=event.round,
        revision=session.current_revision,
        content=event.summary,
        kind=SummaryKind.ARCHIVE,
    )
    return replace(
        session,
        context_summaries=session.context_summaries + [event.summary],
        summarized_length=summarized_length,
        summaries=session.summaries + [archive],
    )


def _on_error_raised(session: NovelSession, event: ErrorRaised) -> NovelSession:
    return replace(session, error=event.message)


def _on_error_cleared(session: NovelSession, event: ErrorCleared) -> NovelSession:
    return replace(session, error=None)


_HANDLERS: Dict[type, Callable[[NovelSession, Any], NovelSession]] = {
    PhaseChanged: _on_phase_changed,
    OutlineMessageStarted: _on_outline_message_started,
    OutlineMessageDelta: _on_outline_message_delta,
    OutlineMessageFinished: _on_outline_message_finished,
    OutlineAdded: _on_outline_added,
    DraftStarted: _on_draft_started,
    DraftDelta: _on_draft_delta,
    DraftCompleted: _on_draft_completed,
    CritiqueStarted: _on_critique_started,
    CritiqueDelta: _on_critique_delta,
    CritiqueCompleted: _on_critique_completed,
    CritiquesTallied: _on_critiques_tallied,
    SummaryStarted: _on_summary_started,
    SummaryDelta: _on_summary_delta,
    SummaryCompleted: _on_summary_completed,
    RevisionAdvanced: _on_revision_advanced,
    CycleFinalized: _on_cycle_finalized,
    EntitiesUpdated: _on_entities_updated,
    OptionsPresented: _on_options_presented,
    ChoiceResolved: _on_choice_resolved,
    RoundAdvanced: _on_round_advanced,
    ContextCompacted: _on_context_compacted,
    ErrorRaised: _on_error_raised,
    ErrorCleared: _on_error_cleared,
}


def reduce(session: NovelSession, event: SessionEvent) -> NovelSession:
    """Apply one event, returning a new session. The input is left untouched."""
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Unknown session event: {type(event).__name__}")
    updated = handler(session, event)
    if updated is session:
        return session
    return replace(updated, updated_at=datetime.now(timezone.utc))
