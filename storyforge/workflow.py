"""
Interactive Novel Workflow
Drives the multi-agent cycle: outline discussion, drafting, expert critique,
moderator summary, revision and reader choice, one round at a time.
"""

import asyncio
import logging
import os
import random
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
from uuid import uuid4

# Configure logging for the workflow
logger = logging.getLogger("storyforge")
logger.setLevel(getattr(logging, os.getenv("STORYFORGE_LOG_LEVEL", "INFO").upper(), logging.INFO))
if not logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))
    logger.addHandler(handler)

from .agents import (
    CritiqueSummarizer,
    EntityRecorder,
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
)
from .config import AgentRole, LLMConfiguration
from .core import ContextCompactor, RunContext, create_memory_tools
from .core.reducer import (
    ChoiceResolved,
    CritiqueCompleted,
    CritiqueDelta,
    CritiqueStarted,
    CritiquesTallied,
    CycleFinalized,
    DraftCompleted,
    DraftDelta,
    DraftStarted,
    EntitiesUpdated,
    ErrorCleared,
    ErrorRaised,
    OptionsPresented,
    OutlineAdded,
    OutlineMessageDelta,
    OutlineMessageFinished,
    OutlineMessageStarted,
    PhaseChanged,
    RevisionAdvanced,
    RoundAdvanced,
    SummaryCompleted,
    SummaryDelta,
    SummaryStarted,
)
from .core.run_context import EventCallback
from .core.session import (
    Draft,
    NovelSession,
    Outline,
    WorkflowPhase,
    create_moderator,
    new_session_id,
    outline_range_label,
)
from .models import Expert
from .services import (
    ContentDelta,
    GenerationCancelled,
    GenerationClient,
    GenerationError,
    HttpArchiveSink,
    MemoryStore,
    MemoryType,
    OpenAICompatibleEmbeddingProvider,
    RerankClient,
    ThinkingDelta,
    ToolCallRequested,
    TracingService,
)

FALLBACK_WORLDVIEW = (
    "A world shaped by the reader's requirements. Its rules, factions and "
    "history will be revealed as the story unfolds."
)
FALLBACK_OPTIONS = [
    "Press forward and confront what lies ahead.",
    "Stop, observe and gather more information.",
    "Seek help from someone nearby.",
]
TIMEOUT_FALLBACK_CHOICE = "Continue the story."

# Panels larger than this get an automatic moderator
MODERATOR_PANEL_SIZE = 2

Sleep = Callable[[float], Awaitable[Any]]


class NovelWorkflow:
    """
    Orchestrator for one interactive-novel session at a time.

    The session value lives in a RunContext and is replaced through the
    reducer on every event, so UI callbacks always observe a consistent
    snapshot. Phases run strictly one after another; inside the outline and
    critique phases the experts run concurrently.
    """

    def __init__(
        self,
        config: LLMConfiguration,
        event_callback: Optional[EventCallback] = None,
        generation_client: Optional[GenerationClient] = None,
        memory_store: Optional[MemoryStore] = None,
        tracing: Optional[TracingService] = None,
        archive_sink: Optional[HttpArchiveSink] = None,
        sleep: Sleep = asyncio.sleep,
        rng: Optional[random.Random] = None,
    ):
        self.config = config
        self.settings = config.workflow
        self.event_callback = event_callback
        self._sleep = sleep
        self._rng = rng or random.Random()

        if generation_client is None:
            generation_client = self._build_generation_client(config)
        if memory_store is None:
            memory_store = self._build_memory_store(config)
        if archive_sink is None:
            archive_sink = HttpArchiveSink(self.settings.archive_url)
        self.client = generation_client
        self.memory_store = memory_store
        self.archive_sink = archive_sink
        if tracing is None:
            tracing = TracingService()
            tracing.initialize()
        self.tracing = tracing

        self.ctx: Optional[RunContext] = None
        self._task: Optional[asyncio.Task] = None
        self._choice_timer: Optional[asyncio.Task] = None
        self._background_tasks: Set[asyncio.Task] = set()

        self._initialize_agents()

    # =========================================================================
    # Construction
    # =========================================================================

    @staticmethod
    def _build_generation_client(config: LLMConfiguration) -> GenerationClient:
        provider = config.agent_models.provider
        provider_config = config.get_provider_config(provider)
        if provider_config is None:
            raise ValueError(f"Provider {provider.value} is not configured")
        return GenerationClient(
            api_key=provider_config.api_key.get_secret_value(),
            base_url=provider_config.base_url,
            timeout=config.timeout_seconds,
            max_tool_rounds=config.workflow.max_tool_rounds,
        )

    @staticmethod
    def _build_memory_store(config: LLMConfiguration) -> MemoryStore:
        embedding = config.embedding
        if embedding is None:
            raise ValueError("Embedding service is not configured")
        api_key = embedding.api_key.get_secret_value()
        provider = OpenAICompatibleEmbeddingProvider(
            api_key=api_key,
            base_url=embedding.base_url,
            model=embedding.model,
            dimension=embedding.dimension,
        )
        reranker = None
        if embedding.rerank_enabled:
            reranker = RerankClient(
                api_key=api_key,
                base_url=embedding.base_url,
                model=embedding.rerank_model,
            )
        return MemoryStore(provider, reranker=reranker, chunk_chars=config.workflow.memory_chunk_chars)

    def _role(self, role: AgentRole):
        return self.config.agent_models.for_role(role)

    def _initialize_agents(self) -> None:
        """Create the agents that do not depend on the panel."""
        client = self.client
        self.story_summarizer = StorySummarizer(client, self._role(AgentRole.STORY_SUMMARIZER))
        self.writer = NovelWriter(
            client, self._role(AgentRole.NOVEL_WRITER), outline_span=self.settings.outline_span
        )
        self.rewriter = NovelRewriter(client, self._role(AgentRole.NOVEL_REWRITER))
        self.outline_summarizer = OutlineSummarizer(client, self._role(AgentRole.OUTLINE_SUMMARIZER))
        self.option_generator = OptionGenerator(client, self._role(AgentRole.OPTION_GENERATOR))
        self.worldview_architect = WorldviewArchitect(client, self._role(AgentRole.WORLDVIEW_ARCHITECT))
        self.expert_recruiter = ExpertRecruiter(client, self._role(AgentRole.EXPERT_RECRUITER))
        self.critique_summarizer = CritiqueSummarizer(client, self._role(AgentRole.CRITIQUE_SUMMARIZER))

        self.compactor = ContextCompactor(
            self.story_summarizer,
            archive_threshold=self.settings.archive_threshold,
            chunk_size=self.settings.context_chunk_size,
        )
        self.entity_recorder = EntityRecorder(
            client,
            self._role(AgentRole.CHARACTER_RECORDER),
            self._role(AgentRole.TASK_RECORDER),
            self.memory_store,
        )
        use_rerank = bool(self.config.embedding and self.config.embedding.rerank_enabled)
        self.tools = create_memory_tools(
            self.memory_store,
            limit=self.settings.tool_search_limit,
            use_rerank=use_rerank,
        )

    # =========================================================================
    # Setup helpers
    # =========================================================================

    async def generate_worldview(self, requirements: str) -> str:
        """Worldview draft for the requirements; a generic one if generation fails."""
        try:
            worldview = await self.worldview_architect.generate(requirements)
        except Exception as e:
            logger.error(f"[generate_worldview] Generation failed, using fallback: {e}")
            return FALLBACK_WORLDVIEW
        worldview = worldview.strip()
        if not worldview:
            logger.warning("[generate_worldview] Empty worldview, using fallback")
            return FALLBACK_WORLDVIEW
        return worldview

    async def suggest_experts(self, requirements: str, count: int = 5) -> List[Expert]:
        """Proposed panel; empty when recruitment fails."""
        try:
            experts = await self.expert_recruiter.recruit(requirements, count=count)
        except Exception as e:
            logger.error(f"[suggest_experts] Recruitment failed: {e}")
            return []
        logger.info(f"[suggest_experts] {len(experts)} expert(s) proposed")
        return experts

    async def create_session(
        self,
        requirements: str,
        worldview: str,
        experts: List[Expert],
        enable_thinking: bool = False,
        max_revisions: Optional[int] = None,
    ) -> NovelSession:
        """
        Start a fresh session. Any running session is stopped and memory is cleared.

        Panels of more than two experts get an automatic moderator.
        """
        if self.ctx is not None:
            self.stop()

        moderator = create_moderator() if len(experts) > MODERATOR_PANEL_SIZE else None
        session = NovelSession(
            id=new_session_id(),
            requirements=requirements,
            worldview=worldview,
            experts=list(experts),
            moderator=moderator,
            max_revisions=max_revisions or self.settings.max_revisions,
            enable_thinking=enable_thinking,
        )

        self.memory_store.clear()
        self.ctx = RunContext(
            state=session,
            memory_store=self.memory_store,
            generation_client=self.client,
            tracing=self.tracing,
            event_callback=self.event_callback,
        )
        self.critique_summarizer = CritiqueSummarizer(
            self.client, self._role(AgentRole.CRITIQUE_SUMMARIZER), moderator=moderator
        )

        if worldview.strip():
            try:
                await self.memory_store.add(worldview, {"round": 0, "type": MemoryType.WORLDVIEW})
            except Exception as e:
                logger.warning(f"[create_session] Worldview not stored in memory: {e}")

        self.tracing.start_trace(
            session.id,
            metadata={
                "experts": [expert.name for expert in session.experts],
                "max_revisions": session.max_revisions,
                "enable_thinking": enable_thinking,
            },
        )
        self.ctx.emit_event("session_created", {
            "session_id": session.id,
            "experts": [expert.model_dump(by_alias=True) for expert in session.experts],
            "moderator": moderator.model_dump(by_alias=True) if moderator else None,
        })
        logger.info(f"[create_session] Session {session.id} created with {len(experts)} expert(s)")
        return session

    # =========================================================================
    # Run control
    # =========================================================================

    @property
    def session(self) -> Optional[NovelSession]:
        return self.ctx.state if self.ctx else None

    @property
    def task(self) -> Optional[asyncio.Task]:
        return self._task

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def _require_context(self) -> RunContext:
        if self.ctx is None:
            raise RuntimeError("No session. Call create_session() first.")
        return self.ctx

    def start(self) -> asyncio.Task:
        """
        Run the cycle in the background until the next reader choice, an error or stop().

        From setup or drafting the entry phase is outline discussion when the
        round has no covering outline or a refresh was voted; any other
        non-terminal phase is re-entered as is.

        Raises:
            RuntimeError: no session, or the session is completed
        """
        ctx = self._require_context()
        if self.is_running:
            logger.warning("[start] Cycle already running")
            return self._task

        state = ctx.state
        if state.status == WorkflowPhase.COMPLETED:
            raise RuntimeError("Session is completed")
        if state.status in (WorkflowPhase.SETUP, WorkflowPhase.DRAFTING):
            entry = (
                WorkflowPhase.OUTLINE_DISCUSSION
                if state.needs_outline_discussion()
                else WorkflowPhase.DRAFTING
            )
            if entry != state.status:
                ctx.dispatch(PhaseChanged(entry))
        if ctx.state.error:
            ctx.dispatch(ErrorCleared())

        ctx.reset_cancellation()
        self._task = asyncio.create_task(self.run_cycle())
        return self._task

    def stop(self) -> None:
        """Signal cancellation; the session keeps its current phase so start() can resume it."""
        if self.ctx is not None:
            self.ctx.cancel_event.set()
        self._cancel_choice_timer()
        if self._task is not None and not self._task.done():
            self._task.cancel()
        logger.info("[stop] Workflow stopped")

    def complete(self) -> NovelSession:
        """Stop and mark the session completed."""
        ctx = self._require_context()
        self.stop()
        ctx.dispatch(PhaseChanged(WorkflowPhase.COMPLETED))
        state = ctx.state
        self.tracing.end_trace(state.id, output={
            "rounds": state.current_round,
            "story_length": len(state.compiled_story),
        })
        return state

    def submit_choice(self, choice: str, auto_continue: bool = True) -> Optional[asyncio.Task]:
        """
        Resolve the pending reader choice and, by default, start the next round.

        Raises:
            RuntimeError: no choice is pending
            ValueError: the choice is empty
        """
        ctx = self._require_context()
        if ctx.state.status != WorkflowPhase.SELECTING_OPTION:
            raise RuntimeError(f"No choice pending (status: {ctx.state.status.value})")
        choice = choice.strip()
        if not choice:
            raise ValueError("Choice must not be empty")

        self._cancel_choice_timer()
        ctx.dispatch(ChoiceResolved(choice))
        logger.info(f"[submit_choice] Round {ctx.state.current_round - 1}: {choice}")
        if auto_continue:
            return self.start()
        return None

    async def wait_for_background_tasks(self) -> None:
        """Wait for pending memory writes and archive posts."""
        if self._background_tasks:
            await asyncio.gather(*list(self._background_tasks), return_exceptions=True)

    # =========================================================================
    # Cycle
    # =========================================================================

    async def run_cycle(self) -> None:
        """Run phases until the session waits for the reader, completes, fails or is stopped."""
        ctx = self._require_context()
        handlers: Dict[WorkflowPhase, Callable[[], Awaitable[None]]] = {
            WorkflowPhase.OUTLINE_DISCUSSION: self.run_outline_discussion_phase,
            WorkflowPhase.DRAFTING: self.run_drafting_phase,
            WorkflowPhase.CRITIQUING: self.run_critiquing_phase,
            WorkflowPhase.SUMMARIZING: self.run_summarizing_phase,
            WorkflowPhase.REVISING: self.run_revising_phase,
        }

        while not ctx.check_cancelled():
            phase = ctx.state.status
            handler = handlers.get(phase)
            if handler is None:
                return
            if not await self._run_phase(phase, handler):
                return

    async def _run_phase(self, phase: WorkflowPhase, handler: Callable[[], Awaitable[None]]) -> bool:
        ctx = self._require_context()
        state = ctx.state
        try:
            async with self.tracing.span(
                state.id,
                f"phase_{phase.value}",
                metadata={"round": state.current_round, "revision": state.current_revision},
            ):
                await handler()
            return True
        except GenerationCancelled:
            logger.info(f"[_run_phase] {phase.value} cancelled")
            return False
        except asyncio.CancelledError:
            logger.info(f"[_run_phase] {phase.value} task cancelled")
            raise
        except Exception as e:
            message = str(e) or type(e).__name__
            logger.error(f"[_run_phase] {phase.value} failed in round {state.current_round}: {message}")
            ctx.dispatch(ErrorRaised(message))
            self.tracing.log_error(state.id, message, phase=phase.value, metadata={
                "round": state.current_round,
                "revision": state.current_revision,
            })
            return False

    def _stream_sink(
        self,
        on_content: Callable[[str], Any],
        on_thinking: Optional[Callable[[str], Any]] = None,
    ) -> Callable[[Any], None]:
        """Turn stream events into reducer deltas."""
        ctx = self._require_context()

        def on_event(event: Any) -> None:
            if isinstance(event, ContentDelta):
                ctx.dispatch(on_content(event.text))
            elif isinstance(event, ThinkingDelta):
                if on_thinking is not None:
                    ctx.dispatch(on_thinking(event.text))
            elif isinstance(event, ToolCallRequested):
                ctx.emit_event("tool_call", {"name": event.name, "arguments": event.arguments})

        return on_event

    @staticmethod
    async def _gather_all(coros: List[Awaitable[Any]]) -> List[Any]:
        """All results in order; the first failure cancels the rest and propagates."""
        tasks = [asyncio.ensure_future(coro) for coro in coros]
        try:
            return list(await asyncio.gather(*tasks))
        except BaseException:
            for task in tasks:
                if not task.done():
                    task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            raise

    # =========================================================================
    # Outline discussion
    # =========================================================================

    async def run_outline_discussion_phase(self) -> None:
        """Panel discussion over several rounds, merged into a new outline."""
        ctx = self._require_context()
        state = ctx.state
        start = state.current_round
        end = start + self.settings.outline_span - 1
        label = outline_range_label(start, end)
        story_summary = self.compactor.build_context(state)
        logger.info(f"[run_outline_discussion_phase] Planning {label} with {len(state.experts)} expert(s)")

        transcript = ""
        for discussion_round in range(1, self.settings.outline_discussion_rounds + 1):
            contributions = await self._gather_all([
                self._contribute(expert, discussion_round, label, story_summary, transcript)
                for expert in state.experts
            ])
            for expert, content in zip(state.experts, contributions):
                transcript += f"{expert.name} ({expert.field}), round {discussion_round}:\n{content}\n\n"

        content = await self.outline_summarizer.summarize(
            ctx.state, label, story_summary, transcript.strip(), cancel_event=ctx.cancel_event
        )
        content = content.strip()
        if not content:
            raise GenerationError("Outline summarizer returned an empty outline")

        ctx.dispatch(OutlineAdded(Outline(range=label, start_round=start, end_round=end, content=content)))
        try:
            await self.memory_store.add(
                f"[Outline {label}]\n{content}",
                {"round": start, "type": MemoryType.OUTLINE},
            )
        except Exception as e:
            logger.warning(f"[run_outline_discussion_phase] Outline not stored in memory: {e}")

        ctx.dispatch(PhaseChanged(WorkflowPhase.DRAFTING))

    async def _contribute(
        self,
        expert: Expert,
        discussion_round: int,
        label: str,
        story_summary: str,
        transcript: str,
    ) -> str:
        ctx = self._require_context()
        message_id = str(uuid4())
        ctx.dispatch(OutlineMessageStarted(
            message_id=message_id,
            expert_id=expert.id,
            round=ctx.state.current_round,
            discussion_round=discussion_round,
        ))

        contributor = OutlineContributor(expert, self.client, self._role(AgentRole.OUTLINE_CONTRIBUTOR))
        result = await contributor.contribute(
            ctx.state,
            label,
            discussion_round,
            story_summary,
            transcript,
            cancel_event=ctx.cancel_event,
            on_event=self._stream_sink(
                lambda text: OutlineMessageDelta(message_id, content=text),
                lambda text: OutlineMessageDelta(message_id, thinking=text),
            ),
        )
        ctx.dispatch(OutlineMessageFinished(message_id, result.content, result.thinking))
        await self._sleep(self.settings.speaker_delay_seconds)
        return result.content

    # =========================================================================
    # Drafting
    # =========================================================================

    async def run_drafting_phase(self) -> None:
        """Compact the context if needed, then write the round's first draft."""
        ctx = self._require_context()
        if ctx.state.needs_outline_discussion():
            ctx.dispatch(PhaseChanged(WorkflowPhase.OUTLINE_DISCUSSION))
            return

        compacted = await self.compactor.compact(ctx.state, cancel_event=ctx.cancel_event)
        if compacted is not None:
            ctx.dispatch(compacted)

        state = ctx.state
        round_number = state.current_round
        version = sum(1 for d in state.drafts_for_round(round_number) if d.completed) + 1
        context = self.compactor.build_context(state)
        logger.info(f"[run_drafting_phase] Round {round_number}: drafting version {version}")

        ctx.dispatch(DraftStarted(round_number, version))
        result = await self.writer.write(
            state,
            context,
            cancel_event=ctx.cancel_event,
            on_event=self._stream_sink(lambda text: DraftDelta(round_number, version, text)),
        )
        content = result.content.strip()
        if not content:
            raise GenerationError("Writer returned an empty draft")
        ctx.dispatch(DraftCompleted(round_number, version, content))
        ctx.dispatch(PhaseChanged(WorkflowPhase.CRITIQUING))

    # =========================================================================
    # Critique
    # =========================================================================

    async def run_critiquing_phase(self) -> None:
        """Every expert critiques the latest draft concurrently; votes are tallied."""
        ctx = self._require_context()
        state = ctx.state
        draft = state.latest_completed_draft()
        if draft is None:
            raise GenerationError(f"No draft to critique in round {state.current_round}")

        critiques = await self._gather_all([
            self._critique(expert, draft) for expert in state.experts
        ])
        votes = sum(1 for text in critiques if has_outline_vote(text))
        ctx.dispatch(CritiquesTallied(votes=votes, expert_count=len(state.experts)))
        logger.info(
            f"[run_critiquing_phase] Round {draft.round}: {len(critiques)} critique(s), "
            f"{votes} outline vote(s), update_outline={ctx.state.should_update_outline}"
        )
        ctx.dispatch(PhaseChanged(WorkflowPhase.SUMMARIZING))

    async def _critique(self, expert: Expert, draft: Draft) -> str:
        ctx = self._require_context()
        critique_id = str(uuid4())
        ctx.dispatch(CritiqueStarted(
            critique_id=critique_id,
            expert_id=expert.id,
            round=draft.round,
            revision=ctx.state.current_revision,
        ))

        critic = ExpertCritic(expert, self.client, self._role(AgentRole.EXPERT_CRITIQUE), tools=self.tools)
        result = await critic.critique(
            ctx.state,
            draft,
            cancel_event=ctx.cancel_event,
            on_event=self._stream_sink(
                lambda text: CritiqueDelta(critique_id, content=text),
                lambda text: CritiqueDelta(critique_id, thinking=text),
            ),
        )
        ctx.dispatch(CritiqueCompleted(critique_id, result.content, result.thinking))
        return result.content

    # =========================================================================
    # Summary and revision
    # =========================================================================

    async def run_summarizing_phase(self) -> None:
        """Moderator's revision guide from this pass's critiques."""
        ctx = self._require_context()
        state = ctx.state
        draft = state.latest_completed_draft()
        if draft is None:
            raise GenerationError(f"No draft to summarize in round {state.current_round}")

        round_number, revision = state.current_round, state.current_revision
        # A retried pass supersedes each expert's earlier critique
        latest: Dict[str, str] = {}
        for critique in state.critiques_for(round_number, revision):
            if critique.completed:
                latest[critique.expert_id] = critique.content
        critiques = []
        for expert_id, content in latest.items():
            expert = state.get_expert(expert_id)
            label = f"{expert.name} ({expert.field})" if expert else expert_id
            critiques.append((label, content))

        ctx.dispatch(SummaryStarted(round_number, revision))
        result = await self.critique_summarizer.summarize(
            draft,
            critiques,
            enable_thinking=state.enable_thinking,
            cancel_event=ctx.cancel_event,
            on_event=self._stream_sink(lambda text: SummaryDelta(round_number, revision, text)),
        )
        ctx.dispatch(SummaryCompleted(round_number, revision, result.content.strip()))
        ctx.dispatch(PhaseChanged(WorkflowPhase.REVISING))

    async def run_revising_phase(self) -> None:
        """Rewrite from the revision guide; loop to critique or finalize the round."""
        ctx = self._require_context()
        state = ctx.state
        draft = state.latest_completed_draft()
        if draft is None:
            raise GenerationError(f"No draft to revise in round {state.current_round}")

        # Pass r critiques version r+1 and produces version r+2
        if draft.version >= state.current_revision + 2:
            # Rewrite already done; only finalization was interrupted
            content = draft.content
        else:
            content = await self._rewrite(state, draft)

        if ctx.state.current_revision + 1 < ctx.state.max_revisions:
            ctx.dispatch(RevisionAdvanced())
            ctx.dispatch(PhaseChanged(WorkflowPhase.CRITIQUING))
            return

        await self._finalize_cycle(content)

    async def _rewrite(self, state: NovelSession, draft: Draft) -> str:
        ctx = self._require_context()
        summary = state.critique_summary_for(state.current_round, state.current_revision)
        guide = summary.content if summary and summary.content else "No specific revision notes."
        version = draft.version + 1

        ctx.dispatch(DraftStarted(draft.round, version))
        result = await self.rewriter.rewrite(
            state,
            draft,
            guide,
            cancel_event=ctx.cancel_event,
            on_event=self._stream_sink(lambda text: DraftDelta(draft.round, version, text)),
        )
        content = result.content.strip()
        if not content:
            raise GenerationError("Rewriter returned an empty draft")
        ctx.dispatch(DraftCompleted(draft.round, version, content))
        return content

    # =========================================================================
    # Finalization
    # =========================================================================

    async def _finalize_cycle(self, text: str) -> None:
        """
        Close the round: entity registries, reader options, memory and archive.

        Session changes are dispatched together after every awaited step, so a
        stop in the middle leaves the round in the revising phase with the
        compiled story untouched. Memory and archive writes happen only after
        that, in the background.
        """
        ctx = self._require_context()
        state = ctx.state
        round_number = state.current_round

        characters, tasks = await asyncio.gather(
            self.entity_recorder.analyze_characters(
                text, state.characters, round_number, cancel_event=ctx.cancel_event
            ),
            self.entity_recorder.analyze_tasks(
                text, state.tasks, round_number, cancel_event=ctx.cancel_event
            ),
        )

        options: List[str] = []
        if self.settings.reader_choice_enabled:
            options = await self._generate_options(text)
        if ctx.check_cancelled():
            raise GenerationCancelled(f"Round {round_number} stopped before finalization")

        ctx.dispatch(CycleFinalized(text))
        ctx.dispatch(EntitiesUpdated(characters=characters, tasks=tasks))
        self._run_in_background(self._remember_narrative(text, round_number))
        if self.archive_sink.enabled:
            self._run_in_background(self.archive_sink.archive(state.id, text, round_number))

        if self.settings.reader_choice_enabled:
            ctx.dispatch(OptionsPresented(options))
            self._arm_choice_timer()
            logger.info(f"[_finalize_cycle] Round {round_number} finalized, waiting for reader choice")
        else:
            ctx.dispatch(RoundAdvanced())
            logger.info(f"[_finalize_cycle] Round {round_number} finalized")

    async def _generate_options(self, text: str) -> List[str]:
        ctx = self._require_context()
        try:
            options = await self.option_generator.generate(text, cancel_event=ctx.cancel_event)
        except GenerationCancelled:
            raise
        except Exception as e:
            logger.warning(f"[_generate_options] Option generation failed, using fallback: {e}")
            options = []
        return options or list(FALLBACK_OPTIONS)

    async def _remember_narrative(self, text: str, round_number: int) -> None:
        try:
            await self.memory_store.add(text, {"round": round_number, "type": MemoryType.NARRATIVE})
        except Exception as e:
            logger.warning(f"[_remember_narrative] Round {round_number} not stored in memory: {e}")

    def _run_in_background(self, coro: Awaitable[Any]) -> None:
        task = asyncio.ensure_future(coro)
        self._background_tasks.add(task)
        task.add_done_callback(self._background_tasks.discard)

    # =========================================================================
    # Reader choice timeout
    # =========================================================================

    def _arm_choice_timer(self) -> None:
        self._cancel_choice_timer()
        self._choice_timer = asyncio.create_task(
            self._choice_timeout(self.settings.choice_timeout_seconds)
        )

    def _cancel_choice_timer(self) -> None:
        timer = self._choice_timer
        self._choice_timer = None
        if timer is not None and not timer.done() and timer is not asyncio.current_task():
            timer.cancel()

    async def _choice_timeout(self, timeout: float) -> None:
        await asyncio.sleep(timeout)
        ctx = self.ctx
        if ctx is None or ctx.state.status != WorkflowPhase.SELECTING_OPTION:
            return
        options = ctx.state.current_options
        choice = self._rng.choice(options) if options else TIMEOUT_FALLBACK_CHOICE
        logger.info(f"[_choice_timeout] No choice after {timeout}s, choosing: {choice}")
        self.submit_choice(choice)


def create_workflow(
    config: LLMConfiguration,
    event_callback: Optional[EventCallback] = None,
    **kwargs: Any,
) -> NovelWorkflow:
    """Build a workflow from configuration."""
    return NovelWorkflow(config, event_callback=event_callback, **kwargs)
