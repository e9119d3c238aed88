"""
Pytest configuration and fixtures for storyforge tests.

This module provides:
- Network blocking fixture to prevent accidental API calls in CI
- A deterministic embedding provider for the memory store
- A scripted generation client that answers by agent role
- Scripted OpenAI SDK stand-ins for streaming tests
"""

import asyncio
import json
import socket
import zlib
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional, Union
from unittest.mock import patch

import numpy as np
import pytest

from storyforge.config import LLMConfiguration, WorkflowSettings
from storyforge.core.session import NovelSession, Outline, WorkflowPhase
from storyforge.models import Expert
from storyforge.services.embedding_providers import EmbeddingProvider
from storyforge.services.generation_client import (
    ContentDelta,
    GenerationCancelled,
    GenerationClient,
    GenerationResult,
    parse_structured,
)
from storyforge.services.memory_store import MemoryStore


class NetworkBlockedError(Exception):
    """Raised when a test attempts to make a network connection."""
    pass


def _block_socket_connect(*args, **kwargs):
    """Block all socket connections to prevent accidental API calls."""
    raise NetworkBlockedError(
        "Network access is blocked in unit tests. "
        "If you need to test network functionality, use mocks. "
        "This prevents accidental generation or embedding API calls that cost money."
    )


@pytest.fixture(autouse=True)
def block_network():
    """
    Automatically block all network connections in tests.

    If a test needs to make real network calls (integration tests),
    it should be marked with @pytest.mark.integration and run separately.
    """
    with patch.object(socket.socket, 'connect', _block_socket_connect):
        with patch.object(socket, 'create_connection', _block_socket_connect):
            yield


# ============================================================================
# Embeddings
# ============================================================================

class FakeEmbeddingProvider(EmbeddingProvider):
    """Bag-of-words hashing embeddings: texts sharing words are similar."""

    def __init__(self, dimension: int = 64):
        self._dimension = dimension
        self.calls: List[List[str]] = []
        self.fail = False

    @property
    def info(self):
        return None

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def provider_id(self) -> str:
        return "fake"

    def vector(self, text: str) -> List[float]:
        vec = np.zeros(self._dimension, dtype=np.float32)
        for word in text.lower().split():
            word = word.strip(".,!?:;\"'()[]")
            if word:
                vec[zlib.crc32(word.encode("utf-8")) % self._dimension] += 1.0
        return vec.tolist()

    async def embed(self, texts: List[str]) -> List[List[float]]:
        self.calls.append(list(texts))
        if self.fail:
            raise RuntimeError("embedding service unavailable")
        return [self.vector(text) for text in texts]


@pytest.fixture
def embedding_provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def memory_store(embedding_provider):
    return MemoryStore(embedding_provider)


# ============================================================================
# Generation: role-scripted client
# ============================================================================

# Distinctive system prompt text -> role; checked in order
ROLE_MARKERS = [
    ("worldview architect", "worldview_architect"),
    ("assembling a review panel", "expert_recruiter"),
    ("find logic holes", "expert_critique"),
    ("Turn the experts' critiques", "critique_summarizer"),
    ("editor-in-chief", "outline_summarizer"),
    ("an expert in", "outline_contributor"),
    ("character files", "character_recorder"),
    ("quest log", "task_recorder"),
    ("narrator of an interactive text adventure", "novel_writer"),
    ("Rewrite the previous draft", "novel_rewriter"),
    ("design choices", "option_generator"),
    ("story summarizer", "story_summarizer"),
]

DEFAULT_RESPONSES: Dict[str, Any] = {
    "worldview_architect": "An archipelago of floating islands ruled by storm guilds.",
    "expert_recruiter": json.dumps({"experts": [
        {"name": "Ada", "field": "Naval history", "personality": "Precise"},
        {"name": "Ben", "field": "Meteorology", "personality": "Curious"},
        {"name": "Cy", "field": "Drama", "personality": "Blunt"},
    ]}),
    "outline_contributor": "The next stage should push the crew toward the storm's eye.",
    "outline_summarizer": "Stage goal: the crew reaches the Eye of the Storm.",
    "novel_writer": "Mira climbed the mast as lightning split the sky.",
    "expert_critique": "The pacing works. Keep the storm imagery consistent.",
    "critique_summarizer": "Sharpen the opening image.",
    "novel_rewriter": "Mira climbed the mast while lightning split the sky above the guild ships.",
    "option_generator": json.dumps({"options": ["Jump to the rigging", "Hide below deck", "Signal the guild"]}),
    "character_recorder": json.dumps({"updatedCharacters": [
        {"name": "Mira", "description": "A young sailor", "tags": ["protagonist"], "location": "Mast"},
    ]}),
    "task_recorder": json.dumps({"updatedTasks": [
        {"title": "Reach the Eye", "type": "main", "description": "Sail into the storm's eye"},
    ]}),
    "story_summarizer": "Earlier, Mira joined the storm guild.",
}

Response = Union[str, Exception, Callable[[List[Dict[str, Any]]], Any]]


def detect_role(system_prompt: str) -> str:
    for marker, role in ROLE_MARKERS:
        if marker in system_prompt:
            return role
    raise AssertionError(f"Unrecognised system prompt: {system_prompt[:80]}")


class ScriptedGenerationClient(GenerationClient):
    """
    GenerationClient that answers from a per-role script instead of the network.

    A response may be a string, an exception to raise, or a callable taking
    the messages (sync or async) and returning either.
    """

    def __init__(self, responses: Optional[Dict[str, Response]] = None):
        super().__init__(api_key="test-key")
        self.responses: Dict[str, Response] = {**DEFAULT_RESPONSES, **(responses or {})}
        self.calls: List[Dict[str, Any]] = []

    def calls_for(self, role: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["role"] == role]

    async def _respond(self, messages: List[Dict[str, Any]], cancel_event: Optional[asyncio.Event], **extra: Any) -> str:
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled("Generation cancelled")
        role = detect_role(messages[0]["content"])
        self.calls.append({"role": role, "messages": messages, **extra})
        await asyncio.sleep(0)

        response = self.responses[role]
        if callable(response) and not isinstance(response, Exception):
            response = response(messages)
            if asyncio.iscoroutine(response):
                response = await response
        if isinstance(response, Exception):
            raise response
        if cancel_event is not None and cancel_event.is_set():
            raise GenerationCancelled("Generation cancelled")
        return response

    async def complete(
        self,
        messages,
        settings,
        tools=None,
        enable_thinking=False,
        cancel_event=None,
        on_event=None,
    ) -> GenerationResult:
        text = await self._respond(messages, cancel_event, tools=tools, enable_thinking=enable_thinking)
        if on_event is not None:
            on_event(ContentDelta(text))
        return GenerationResult(content=text)

    async def complete_text(self, messages, settings, cancel_event=None, response_format=None) -> str:
        return await self._respond(messages, cancel_event)

    async def complete_structured(self, messages, settings, response_model, cancel_event=None):
        raw = await self._respond(messages, cancel_event)
        return parse_structured(raw, response_model)


@pytest.fixture
def scripted_client():
    return ScriptedGenerationClient()


# ============================================================================
# Generation: OpenAI SDK stand-ins for streaming
# ============================================================================

def make_chunk(
    content: Optional[str] = None,
    reasoning: Optional[str] = None,
    tool_call: Optional[Dict[str, Any]] = None,
    finish_reason: Optional[str] = None,
) -> SimpleNamespace:
    tool_calls = None
    if tool_call is not None:
        tool_calls = [SimpleNamespace(
            id=tool_call.get("id"),
            function=SimpleNamespace(
                name=tool_call.get("name"),
                arguments=tool_call.get("arguments"),
            ),
        )]
    delta = SimpleNamespace(content=content, reasoning_content=reasoning, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(delta=delta, finish_reason=finish_reason)])


def text_stream(*parts: str, reasoning: Optional[str] = None) -> List[SimpleNamespace]:
    chunks = []
    if reasoning:
        chunks.append(make_chunk(reasoning=reasoning))
    chunks.extend(make_chunk(content=part) for part in parts)
    chunks.append(make_chunk(finish_reason="stop"))
    return chunks


def tool_call_stream(name: str, arguments: str, call_id: str = "call_1") -> List[SimpleNamespace]:
    half = len(arguments) // 2
    return [
        make_chunk(tool_call={"id": call_id, "name": name, "arguments": arguments[:half]}),
        make_chunk(tool_call={"id": None, "name": None, "arguments": arguments[half:]}),
        make_chunk(finish_reason="tool_calls"),
    ]


class FakeStream:
    """Async-iterable response with the SDK stream's close()."""

    def __init__(self, chunks: List[SimpleNamespace]):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for chunk in self._chunks:
            await asyncio.sleep(0)
            yield chunk

    async def close(self) -> None:
        self.closed = True


class FakeCompletions:
    """chat.completions stand-in answering from a queue of scripted responses."""

    def __init__(self, script: List[Any]):
        self.script = list(script)
        self.requests: List[Dict[str, Any]] = []
        self.streams: List[FakeStream] = []

    async def create(self, **kwargs: Any) -> Any:
        self.requests.append(kwargs)
        if not self.script:
            raise AssertionError("No scripted response left")
        response = self.script.pop(0)
        if isinstance(response, Exception):
            raise response
        if kwargs.get("stream"):
            stream = FakeStream(response)
            self.streams.append(stream)
            return stream
        message = SimpleNamespace(content=response)
        return SimpleNamespace(choices=[SimpleNamespace(message=message, finish_reason="stop")])


def fake_openai(script: List[Any]) -> SimpleNamespace:
    return SimpleNamespace(chat=SimpleNamespace(completions=FakeCompletions(script)))


# ============================================================================
# Sessions and configuration
# ============================================================================

def make_experts(count: int) -> List[Expert]:
    names = ["Ada", "Ben", "Cy", "Dee", "Eli", "Fay"]
    return [
        Expert(id=f"expert-{i + 1}", name=names[i], field=f"Field {i + 1}", personality="Focused")
        for i in range(count)
    ]


def make_session(**overrides: Any) -> NovelSession:
    values: Dict[str, Any] = {
        "id": "2024-01-01_12-00-00",
        "requirements": "A storm-swept sea adventure",
        "worldview": "Floating islands and storm guilds.",
        "experts": make_experts(3),
        "status": WorkflowPhase.DRAFTING,
    }
    values.update(overrides)
    return NovelSession(**values)


def make_outline(start: int = 1, span: int = 5, content: str = "Reach the storm's eye.") -> Outline:
    end = start + span - 1
    return Outline(range=f"Rounds {start}-{end}", start_round=start, end_round=end, content=content)


def make_config(**workflow_overrides: Any) -> LLMConfiguration:
    workflow: Dict[str, Any] = {
        "speaker_delay_seconds": 0.0,
        "outline_discussion_rounds": 1,
    }
    workflow.update(workflow_overrides)
    return LLMConfiguration(workflow=WorkflowSettings(**workflow))
