"""
Narrative Agent Implementations for storyforge
Specialized agents for each step of the novel cycle.
"""

import asyncio
from typing import Any, Callable, List, Optional, Sequence, Tuple

from ..config import AgentSettings
from ..core.session import Draft, NovelSession
from ..models import CharacterProfile, Expert, ExpertPanel, ReaderOptions
from ..prompts import (
    CRITIQUE_SUMMARIZER_SYSTEM_PROMPT,
    CRITIQUE_SUMMARIZER_USER_PROMPT_TEMPLATE,
    EXPERT_CRITIQUE_SYSTEM_PROMPT,
    EXPERT_CRITIQUE_USER_PROMPT_TEMPLATE,
    EXPERT_RECRUITER_SYSTEM_PROMPT,
    EXPERT_RECRUITER_USER_PROMPT_TEMPLATE,
    NOVEL_REWRITER_SYSTEM_PROMPT,
    NOVEL_REWRITER_USER_PROMPT_TEMPLATE,
    NOVEL_WRITER_SYSTEM_PROMPT,
    NOVEL_WRITER_USER_PROMPT_TEMPLATE,
    OPTION_GENERATOR_SYSTEM_PROMPT,
    OPTION_GENERATOR_USER_PROMPT_TEMPLATE,
    OUTLINE_CONTRIBUTOR_SYSTEM_PROMPT,
    OUTLINE_CONTRIBUTOR_USER_PROMPT_TEMPLATE,
    OUTLINE_SUMMARIZER_SYSTEM_PROMPT,
    OUTLINE_SUMMARIZER_USER_PROMPT_TEMPLATE,
    STORY_SUMMARIZER_SYSTEM_PROMPT,
    STORY_SUMMARIZER_USER_PROMPT_TEMPLATE,
    VOTE_MARKER,
    WORLDVIEW_ARCHITECT_SYSTEM_PROMPT,
    WORLDVIEW_ARCHITECT_USER_PROMPT_TEMPLATE,
)
from ..services.generation_client import GenerationClient, GenerationResult, StreamEvent
from .base import BaseAgent

EventSink = Optional[Callable[[StreamEvent], None]]

NO_CHOICE_TEXT = "None yet. This is the opening of the story."
NO_OUTLINE_TEXT = "No outline yet."
OPTION_MAX = 3


def render_protagonist_state(protagonist: Optional[CharacterProfile]) -> str:
    """Status, injuries and inventory lines the writer must respect."""
    if protagonist is None:
        return "Unknown."

    lines = [f"Name: {protagonist.name}"]
    if protagonist.status:
        lines.append(f"Status: {protagonist.status}")
    if protagonist.location:
        lines.append(f"Location: {protagonist.location}")
    if protagonist.body_status:
        injuries = [
            f"{part.name}: {part.status} ({part.severity})"
            for part in protagonist.body_status.values()
            if part.severity and part.severity != "none"
        ]
        if injuries:
            lines.append("Body: " + "; ".join(injuries))
    if protagonist.inventory is not None:
        lines.append("Inventory: " + (", ".join(protagonist.inventory) or "empty"))
    return "\n".join(lines)


def _outline_fields(session: NovelSession) -> Tuple[str, str]:
    outline = session.current_outline
    if outline is None:
        return "no outline", NO_OUTLINE_TEXT
    return outline.range, outline.content


def persona_prompt(template: str, expert: Expert, **extra: Any) -> str:
    return template.format(
        name=expert.name,
        field=expert.field,
        personality=expert.personality or "balanced",
        **extra,
    )


class StorySummarizer(BaseAgent):
    """
    Story Summarizer - Context Compaction
    Folds an old stretch of the compiled story into a summary.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="StorySummarizer",
            client=client,
            settings=settings,
            system_prompt=STORY_SUMMARIZER_SYSTEM_PROMPT,
        )

    async def summarize(self, text: str, cancel_event: Optional[asyncio.Event] = None) -> str:
        user_prompt = STORY_SUMMARIZER_USER_PROMPT_TEMPLATE.format(text=text)
        return await self.generate_text(user_prompt, cancel_event=cancel_event)


class NovelWriter(BaseAgent):
    """
    Novel Writer - Drafting Phase
    Writes the round's continuation from the compacted context.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings, outline_span: int = 5):
        super().__init__(
            name="NovelWriter",
            client=client,
            settings=settings,
            system_prompt=NOVEL_WRITER_SYSTEM_PROMPT,
        )
        self.outline_span = outline_span

    def build_prompt(self, session: NovelSession, context: str) -> str:
        outline_range, outline = _outline_fields(session)
        return NOVEL_WRITER_USER_PROMPT_TEMPLATE.format(
            requirements=session.requirements,
            worldview=session.worldview,
            outline_range=outline_range,
            outline_stage=session.outline_stage,
            outline_span=self.outline_span,
            outline=outline,
            context=context or "(The story has not begun yet.)",
            user_choice=session.last_user_choice or NO_CHOICE_TEXT,
            protagonist_state=render_protagonist_state(session.protagonist),
            round_number=session.current_round,
        )

    async def write(
        self,
        session: NovelSession,
        context: str,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: EventSink = None,
    ) -> GenerationResult:
        return await self.stream_with_logging(
            self.build_prompt(session, context),
            enable_thinking=session.enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )


class ExpertCritic(BaseAgent):
    """
    Expert Critic - Critiquing Phase
    One panel member reviewing the draft from their field, with memory search.
    """

    def __init__(
        self,
        expert: Expert,
        client: GenerationClient,
        settings: AgentSettings,
        tools: Any = None,
    ):
        super().__init__(
            name=f"Critic:{expert.name}",
            client=client,
            settings=settings,
            system_prompt=persona_prompt(
                EXPERT_CRITIQUE_SYSTEM_PROMPT, expert, vote_marker=VOTE_MARKER
            ),
        )
        self.expert = expert
        self.tools = tools

    async def critique(
        self,
        session: NovelSession,
        draft: Draft,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: EventSink = None,
    ) -> GenerationResult:
        outline_range, outline = _outline_fields(session)
        user_prompt = EXPERT_CRITIQUE_USER_PROMPT_TEMPLATE.format(
            worldview=session.worldview,
            outline_range=outline_range,
            outline_stage=session.outline_stage,
            outline=outline,
            user_choice=session.last_user_choice or NO_CHOICE_TEXT,
            round_number=draft.round,
            revision=session.current_revision,
            draft=draft.content,
        )
        return await self.stream_with_logging(
            user_prompt,
            tools=self.tools,
            enable_thinking=session.enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )


def has_outline_vote(critique_text: str) -> bool:
    """True when the critique carries the outline-refresh vote marker."""
    return VOTE_MARKER in critique_text


class CritiqueSummarizer(BaseAgent):
    """
    Critique Summarizer - Summarizing Phase
    The moderator's revision guide built from every critique of this pass.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings, moderator: Optional[Expert] = None):
        system_prompt = CRITIQUE_SUMMARIZER_SYSTEM_PROMPT
        if moderator is not None:
            system_prompt = (
                f"You are {moderator.name}, the panel's moderator. "
                f"{moderator.personality}.\n\n{system_prompt}"
            )
        super().__init__(
            name="CritiqueSummarizer",
            client=client,
            settings=settings,
            system_prompt=system_prompt,
        )

    async def summarize(
        self,
        draft: Draft,
        critiques: Sequence[Tuple[str, str]],
        enable_thinking: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: EventSink = None,
    ) -> GenerationResult:
        """critiques: (expert label, critique text) pairs."""
        critique_text = "\n\n".join(f"### {label}\n{text}" for label, text in critiques)
        user_prompt = CRITIQUE_SUMMARIZER_USER_PROMPT_TEMPLATE.format(
            draft=draft.content,
            critiques=critique_text or "(no critiques)",
        )
        return await self.stream_with_logging(
            user_prompt,
            enable_thinking=enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )


class NovelRewriter(BaseAgent):
    """
    Novel Rewriter - Revising Phase
    Produces the next draft version from the revision guide.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="NovelRewriter",
            client=client,
            settings=settings,
            system_prompt=NOVEL_REWRITER_SYSTEM_PROMPT,
        )

    async def rewrite(
        self,
        session: NovelSession,
        draft: Draft,
        revision_guide: str,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: EventSink = None,
    ) -> GenerationResult:
        _, outline = _outline_fields(session)
        user_prompt = NOVEL_REWRITER_USER_PROMPT_TEMPLATE.format(
            requirements=session.requirements,
            worldview=session.worldview,
            outline=outline,
            user_choice=session.last_user_choice or NO_CHOICE_TEXT,
            draft=draft.content,
            revision_guide=revision_guide,
        )
        return await self.stream_with_logging(
            user_prompt,
            enable_thinking=session.enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )


class OutlineContributor(BaseAgent):
    """
    Outline Contributor - Outline Discussion Phase
    One expert's proposal for the next stage's tone and near-term goal.
    """

    def __init__(self, expert: Expert, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name=f"OutlineContributor:{expert.name}",
            client=client,
            settings=settings,
            system_prompt=persona_prompt(OUTLINE_CONTRIBUTOR_SYSTEM_PROMPT, expert),
        )
        self.expert = expert

    async def contribute(
        self,
        session: NovelSession,
        outline_range: str,
        discussion_round: int,
        story_summary: str,
        transcript: str,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: EventSink = None,
    ) -> GenerationResult:
        history = "\n\n".join(f"[{o.range}]\n{o.content}" for o in session.outlines)
        user_prompt = OUTLINE_CONTRIBUTOR_USER_PROMPT_TEMPLATE.format(
            worldview=session.worldview,
            history_outline=history or NO_OUTLINE_TEXT,
            story_summary=story_summary or "(The story has not begun yet.)",
            other_opinions=transcript or "(No opinions yet. You speak first.)",
            outline_range=outline_range,
            discussion_round=discussion_round,
        )
        return await self.stream_with_logging(
            user_prompt,
            enable_thinking=session.enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )


class OutlineSummarizer(BaseAgent):
    """
    Outline Summarizer - Outline Discussion Phase
    Merges the discussion into the stage outline.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="OutlineSummarizer",
            client=client,
            settings=settings,
            system_prompt=OUTLINE_SUMMARIZER_SYSTEM_PROMPT,
        )

    async def summarize(
        self,
        session: NovelSession,
        outline_range: str,
        story_summary: str,
        transcript: str,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        user_prompt = OUTLINE_SUMMARIZER_USER_PROMPT_TEMPLATE.format(
            worldview=session.worldview,
            story_summary=story_summary or "(The story has not begun yet.)",
            transcript=transcript,
            outline_range=outline_range,
        )
        return await self.generate_text(user_prompt, cancel_event=cancel_event)


class WorldviewArchitect(BaseAgent):
    """
    Worldview Architect - Setup
    Builds the world the whole novel must respect.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="WorldviewArchitect",
            client=client,
            settings=settings,
            system_prompt=WORLDVIEW_ARCHITECT_SYSTEM_PROMPT,
        )

    async def generate(self, requirements: str) -> str:
        user_prompt = WORLDVIEW_ARCHITECT_USER_PROMPT_TEMPLATE.format(requirements=requirements)
        return await self.generate_text(user_prompt)


class ExpertRecruiter(BaseAgent):
    """
    Expert Recruiter - Setup
    Proposes the review panel for the novel.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="ExpertRecruiter",
            client=client,
            settings=settings,
            system_prompt=EXPERT_RECRUITER_SYSTEM_PROMPT,
        )

    async def recruit(self, requirements: str, count: int = 5) -> List[Expert]:
        user_prompt = EXPERT_RECRUITER_USER_PROMPT_TEMPLATE.format(
            requirements=requirements,
            count=count,
        )
        panel = await self.generate_structured(user_prompt, ExpertPanel)
        return panel.experts[:count]


class OptionGenerator(BaseAgent):
    """
    Option Generator - Reader Choice
    Three distinct next actions for the protagonist.
    """

    def __init__(self, client: GenerationClient, settings: AgentSettings):
        super().__init__(
            name="OptionGenerator",
            client=client,
            settings=settings,
            system_prompt=OPTION_GENERATOR_SYSTEM_PROMPT,
        )

    async def generate(self, story_text: str, cancel_event: Optional[asyncio.Event] = None) -> List[str]:
        user_prompt = OPTION_GENERATOR_USER_PROMPT_TEMPLATE.format(story=story_text)
        result = await self.generate_structured(user_prompt, ReaderOptions, cancel_event=cancel_event)
        options = [option.strip() for option in result.options if option.strip()]
        return options[:OPTION_MAX]
