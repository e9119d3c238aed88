"""
Base Agent Implementation for storyforge
Provides common functionality for all narrative agents.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar

from pydantic import BaseModel

from ..config import AgentSettings
from ..services.generation_client import GenerationClient, GenerationResult, StreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class BaseAgent:
    """Base class for all storyforge agents: one role, one model setting, one system prompt."""

    def __init__(
        self,
        name: str,
        client: GenerationClient,
        settings: AgentSettings,
        system_prompt: str,
    ):
        self.name = name
        self.client = client
        self.settings = settings
        self.system_prompt = system_prompt

    def build_messages(self, user_prompt: str, system_prompt: Optional[str] = None) -> List[Dict[str, Any]]:
        return [
            {"role": "system", "content": system_prompt or self.system_prompt},
            {"role": "user", "content": user_prompt},
        ]

    async def stream_with_logging(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        tools: Any = None,
        enable_thinking: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> GenerationResult:
        """Streamed call; each event is forwarded to on_event as it arrives."""
        start_time = time.time()
        result = await self.client.complete(
            self.build_messages(user_prompt, system_prompt),
            self.settings,
            tools=tools,
            enable_thinking=enable_thinking,
            cancel_event=cancel_event,
            on_event=on_event,
        )
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"[{self.name}] streamed {len(result.content)} chars in {duration_ms}ms")
        return result

    async def generate_text(
        self,
        user_prompt: str,
        system_prompt: Optional[str] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> str:
        """Single non-streaming call."""
        start_time = time.time()
        content = await self.client.complete_text(
            self.build_messages(user_prompt, system_prompt),
            self.settings,
            cancel_event=cancel_event,
        )
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"[{self.name}] generated {len(content)} chars in {duration_ms}ms")
        return content

    async def generate_structured(
        self,
        user_prompt: str,
        response_model: Type[T],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """JSON-mode call validated against response_model."""
        start_time = time.time()
        result = await self.client.complete_structured(
            self.build_messages(user_prompt),
            self.settings,
            response_model,
            cancel_event=cancel_event,
        )
        duration_ms = int((time.time() - start_time) * 1000)
        logger.debug(f"[{self.name}] {response_model.__name__} in {duration_ms}ms")
        return result
