"""
Entity Recorder for storyforge

After each finalized round, two JSON-mode calls update the character and task
registries. Only entities likely to be concerned are described in full: the
union of a semantic search over their memory documents and an exact name or
title match in the new text. Every touched entity's memory document is then
replaced with its fresh canonical rendering.

Failures never propagate: the caller always gets a usable registry back.
"""

import asyncio
import logging
from operator import attrgetter
from typing import Callable, Dict, List, Optional, Sequence, Set, Tuple, TypeVar
from uuid import uuid4

from pydantic import BaseModel

from ..config import AgentSettings
from ..models import (
    CharacterProfile,
    CharacterUpdate,
    CharacterUpdateList,
    StoryTask,
    TaskUpdate,
    TaskUpdateList,
)
from ..prompts import (
    CHARACTER_RECORDER_SYSTEM_PROMPT,
    CHARACTER_RECORDER_USER_PROMPT_TEMPLATE,
    TASK_RECORDER_SYSTEM_PROMPT,
    TASK_RECORDER_USER_PROMPT_TEMPLATE,
)
from ..services.generation_client import GenerationCancelled, GenerationClient
from ..services.memory_store import MemoryStore, MemoryType
from .base import BaseAgent

logger = logging.getLogger(__name__)

E = TypeVar("E", bound=BaseModel)

SEARCH_QUERY_CHARS = 2000
DEFAULT_CANDIDATE_LIMIT = 5


# ============================================================================
# Canonical rendering
# ============================================================================

def render_character(character: CharacterProfile) -> str:
    """Canonical memory document for a character."""
    lines = [f"Character: {character.name} (ID: {character.id})"]
    if character.description:
        lines.append(f"Description: {character.description}")
    if character.status:
        lines.append(f"Status: {character.status}")
    if character.location:
        lines.append(f"Location: {character.location}")
    if character.relationships:
        lines.append(f"Relationships: {character.relationships}")
    if character.tags:
        lines.append(f"Tags: {', '.join(character.tags)}")
    if character.body_status:
        parts = "; ".join(
            f"{part.name}: {part.status} ({part.severity})"
            for part in character.body_status.values()
        )
        lines.append(f"Body: {parts}")
    if character.inventory is not None:
        lines.append(f"Inventory: {', '.join(character.inventory) or 'empty'}")
    lines.append(f"Last updated: round {character.last_updated_round}")
    return "\n".join(lines)


def render_task(task: StoryTask) -> str:
    """Canonical memory document for a task."""
    lines = [
        f"Task: {task.title} (ID: {task.id}) [{task.type.value}][{task.status.value}]",
    ]
    if task.description:
        lines.append(f"Description: {task.description}")
    if task.progress:
        lines.append(f"Progress: {task.progress}")
    if task.rewards:
        lines.append(f"Rewards: {task.rewards}")
    lines.append(f"Last updated: round {task.last_updated_round}")
    return "\n".join(lines)


# ============================================================================
# Pure merge
# ============================================================================

def _merge(
    existing: Sequence[E],
    updates: Sequence[BaseModel],
    round_number: int,
    model: type,
    label_field: str,
) -> Tuple[List[E], List[str]]:
    merged: List[E] = list(existing)
    touched: List[str] = []

    for update in updates:
        fields = update.model_dump(exclude_none=True)
        update_id = fields.pop("id", None) or None
        label = fields.get(label_field)

        index = None
        if update_id:
            index = next((i for i, e in enumerate(merged) if e.id == update_id), None)
        if index is None and label:
            index = next(
                (i for i, e in enumerate(merged) if getattr(e, label_field) == label),
                None,
            )

        if index is not None:
            current = merged[index]
            merged[index] = model.model_validate({
                **current.model_dump(),
                **fields,
                "last_updated_round": round_number,
            })
            entity_id = current.id
        elif label:
            entity_id = str(uuid4())
            merged.append(model.model_validate({
                **fields,
                "id": entity_id,
                "last_updated_round": round_number,
            }))
        else:
            logger.debug(f"[merge] Dropping {model.__name__} update without {label_field}: {fields}")
            continue

        if entity_id not in touched:
            touched.append(entity_id)

    return merged, touched


def merge_characters(
    existing: Sequence[CharacterProfile],
    updates: Sequence[CharacterUpdate],
    round_number: int,
) -> Tuple[List[CharacterProfile], List[str]]:
    """
    Merge recorder output into the character registry.

    Returns:
        (merged registry, ids of touched characters)
    """
    return _merge(existing, updates, round_number, CharacterProfile, "name")


def merge_tasks(
    existing: Sequence[StoryTask],
    updates: Sequence[TaskUpdate],
    round_number: int,
) -> Tuple[List[StoryTask], List[str]]:
    """
    Merge recorder output into the task registry.

    Returns:
        (merged registry, ids of touched tasks)
    """
    return _merge(existing, updates, round_number, StoryTask, "title")


# ============================================================================
# Recorder
# ============================================================================

class EntityRecorder:
    """Character and task registries kept in sync with the story and with memory."""

    def __init__(
        self,
        client: GenerationClient,
        character_settings: AgentSettings,
        task_settings: AgentSettings,
        memory_store: MemoryStore,
        candidate_limit: int = DEFAULT_CANDIDATE_LIMIT,
    ):
        self.memory_store = memory_store
        self.candidate_limit = candidate_limit
        self.character_agent = BaseAgent(
            name="CharacterRecorder",
            client=client,
            settings=character_settings,
            system_prompt=CHARACTER_RECORDER_SYSTEM_PROMPT,
        )
        self.task_agent = BaseAgent(
            name="TaskRecorder",
            client=client,
            settings=task_settings,
            system_prompt=TASK_RECORDER_SYSTEM_PROMPT,
        )

    async def _find_candidates(
        self,
        text: str,
        existing: Sequence[E],
        memory_type: MemoryType,
        label: Callable[[E], str],
    ) -> List[E]:
        """Union of semantic hits and exact label matches, in registry order."""
        ids: Set[str] = set()

        try:
            hits = await self.memory_store.search(
                text[:SEARCH_QUERY_CHARS],
                limit=self.candidate_limit,
                types=[memory_type],
            )
            ids.update(hit.segment.metadata.entity_id for hit in hits if hit.segment.metadata.entity_id)
        except Exception as e:
            logger.warning(f"[_find_candidates] {memory_type.value} search failed: {e}")

        for entity in existing:
            name = label(entity)
            if name and name in text:
                ids.add(entity.id)

        return [entity for entity in existing if entity.id in ids]

    def _describe(
        self,
        candidates: Sequence[E],
        existing: Sequence[E],
        render: Callable[[E], str],
        label: Callable[[E], str],
    ) -> Tuple[str, str]:
        described = []
        for entity in candidates:
            document = self.memory_store.get_entity_text(entity.id)
            described.append(document or render(entity))

        candidate_ids = {entity.id for entity in candidates}
        known = [
            f"- {label(entity)} (ID: {entity.id})"
            for entity in existing
            if entity.id not in candidate_ids
        ]
        return "\n\n".join(described) or "None on record.", "\n".join(known) or "None."

    async def _mirror(
        self,
        entities: Sequence[E],
        touched: Sequence[str],
        memory_type: MemoryType,
        render: Callable[[E], str],
        round_number: int,
    ) -> None:
        by_id: Dict[str, E] = {entity.id: entity for entity in entities}
        for entity_id in touched:
            entity = by_id.get(entity_id)
            if entity is None:
                continue
            try:
                await self.memory_store.replace_entity(
                    entity_id,
                    render(entity),
                    {"round": round_number, "type": memory_type},
                )
            except Exception as e:
                logger.warning(f"[_mirror] {memory_type.value} {entity_id} not stored: {e}")

    async def analyze_characters(
        self,
        text: str,
        existing: List[CharacterProfile],
        round_number: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[CharacterProfile]:
        """Update the character registry from a finalized round. Returns `existing` on any failure."""
        label = attrgetter("name")
        try:
            candidates = await self._find_candidates(text, existing, MemoryType.CHARACTER_PROFILE, label)
            described, known = self._describe(candidates, existing, render_character, label)
            user_prompt = CHARACTER_RECORDER_USER_PROMPT_TEMPLATE.format(
                existing=described,
                known=known,
                round_number=round_number,
                text=text,
            )
            result = await self.character_agent.generate_structured(
                user_prompt, CharacterUpdateList, cancel_event=cancel_event
            )
        except GenerationCancelled:
            logger.info("[analyze_characters] Cancelled, keeping existing characters")
            return existing
        except Exception as e:
            logger.error(f"[analyze_characters] Failed, keeping existing characters: {e}")
            return existing

        merged, touched = merge_characters(existing, result.updated_characters, round_number)
        logger.info(f"[analyze_characters] Round {round_number}: {len(touched)} character(s) updated")
        await self._mirror(merged, touched, MemoryType.CHARACTER_PROFILE, render_character, round_number)
        return merged

    async def analyze_tasks(
        self,
        text: str,
        existing: List[StoryTask],
        round_number: int,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> List[StoryTask]:
        """Update the task registry from a finalized round. Returns `existing` on any failure."""
        label = attrgetter("title")
        try:
            candidates = await self._find_candidates(text, existing, MemoryType.STORY_TASK, label)
            described, known = self._describe(candidates, existing, render_task, label)
            user_prompt = TASK_RECORDER_USER_PROMPT_TEMPLATE.format(
                existing=described,
                known=known,
                round_number=round_number,
                text=text,
            )
            result = await self.task_agent.generate_structured(
                user_prompt, TaskUpdateList, cancel_event=cancel_event
            )
        except GenerationCancelled:
            logger.info("[analyze_tasks] Cancelled, keeping existing tasks")
            return existing
        except Exception as e:
            logger.error(f"[analyze_tasks] Failed, keeping existing tasks: {e}")
            return existing

        merged, touched = merge_tasks(existing, result.updated_tasks, round_number)
        logger.info(f"[analyze_tasks] Round {round_number}: {len(touched)} task(s) updated")
        await self._mirror(merged, touched, MemoryType.STORY_TASK, render_task, round_number)
        return merged
