"""
Generation Client for storyforge
Chat completions against an OpenAI-compatible endpoint (DeepSeek by default):
streamed text and reasoning deltas, a bounded tool-call loop, plain
completions and strictly validated JSON-mode output.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Type, TypeVar, Union

from openai import AsyncOpenAI
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

DEFAULT_MAX_TOOL_ROUNDS = 3

_FENCE_RE = re.compile(r"^\s*```(?:json|JSON)?\s*\n?|\n?\s*```\s*$")


# ============================================================================
# Errors
# ============================================================================

class GenerationError(Exception):
    """A generation call failed for a reason other than transport or cancellation."""


class ToolLoopLimitExceeded(GenerationError):
    """The model kept requesting tools past the configured bound."""


class StructuredOutputError(GenerationError):
    """JSON-mode output did not validate against the expected schema."""

    def __init__(self, message: str, raw: str = ""):
        super().__init__(message)
        self.raw = raw


class GenerationCancelled(Exception):
    """The run's cancellation signal was set during a generation call."""


# ============================================================================
# Stream events
# ============================================================================

@dataclass(frozen=True)
class ContentDelta:
    text: str


@dataclass(frozen=True)
class ThinkingDelta:
    text: str


@dataclass(frozen=True)
class ToolCallRequested:
    call_id: str
    name: str
    arguments: str


StreamEvent = Union[ContentDelta, ThinkingDelta, ToolCallRequested]


@dataclass
class GenerationResult:
    """Accumulated output of a streamed call."""
    content: str
    thinking: Optional[str] = None


def strip_code_fences(text: str) -> str:
    """Remove one leading ```/```json fence and one trailing ``` fence."""
    return _FENCE_RE.sub("", text.strip()).strip()


def parse_structured(raw: str, response_model: Type[T]) -> T:
    """
    Validate JSON text against a pydantic model.

    One retry after stripping markdown code fences, then StructuredOutputError.
    """
    try:
        return response_model.model_validate_json(raw)
    except ValidationError as first_error:
        stripped = strip_code_fences(raw)
        if stripped != raw:
            try:
                return response_model.model_validate_json(stripped)
            except ValidationError as e:
                raise StructuredOutputError(
                    f"{response_model.__name__} validation failed: {e.error_count()} error(s)",
                    raw=raw,
                ) from e
        raise StructuredOutputError(
            f"{response_model.__name__} validation failed: {first_error.error_count()} error(s)",
            raw=raw,
        ) from first_error


def _raise_if_cancelled(cancel_event: Optional[asyncio.Event]) -> None:
    if cancel_event is not None and cancel_event.is_set():
        raise GenerationCancelled("Generation cancelled")


class GenerationClient:
    """
    Client for an OpenAI-compatible chat completions service.

    `settings` arguments are AgentSettings-like objects exposing
    `model`, `temperature` and `max_tokens`.
    """

    def __init__(
        self,
        api_key: str,
        base_url: str = "https://api.deepseek.com",
        timeout: float = 120.0,
        max_tool_rounds: int = DEFAULT_MAX_TOOL_ROUNDS,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url
        self.timeout = timeout
        self.max_tool_rounds = max_tool_rounds
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Get or create the underlying SDK client."""
        if self._client is None:
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._client

    @staticmethod
    def _build_kwargs(
        messages: List[Dict[str, Any]],
        settings: Any,
        stream: bool,
        tools: Any = None,
        enable_thinking: bool = False,
        response_format: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "model": settings.model,
            "messages": messages,
            "temperature": settings.temperature,
            "stream": stream,
        }
        if getattr(settings, "max_tokens", None):
            kwargs["max_tokens"] = settings.max_tokens
        if tools is not None and len(tools):
            kwargs["tools"] = tools.get_openai_tools()
        if response_format:
            kwargs["response_format"] = response_format
        if enable_thinking:
            kwargs["extra_body"] = {"thinking": {"type": "enabled"}}
        return kwargs

    async def stream(
        self,
        messages: List[Dict[str, Any]],
        settings: Any,
        tools: Any = None,
        enable_thinking: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Stream a completion as typed events.

        When the model finishes with `tool_calls`, the requested tool is run
        through the ToolRegistry, the assistant and tool turns are appended,
        and the request is re-issued. At most `max_tool_rounds` tool calls are
        served per stream.

        Raises:
            GenerationCancelled: cancel_event was set
            ToolLoopLimitExceeded: the model asked for one tool call too many
            openai.APIError: transport / HTTP failures
        """
        conversation = list(messages)

        for tool_round in range(self.max_tool_rounds + 1):
            _raise_if_cancelled(cancel_event)
            kwargs = self._build_kwargs(
                conversation, settings, stream=True, tools=tools, enable_thinking=enable_thinking
            )
            response = await self._get_client().chat.completions.create(**kwargs)

            call_id = ""
            call_name = ""
            argument_parts: List[str] = []
            finish_reason = None
            try:
                async for chunk in response:
                    _raise_if_cancelled(cancel_event)
                    if not chunk.choices:
                        continue
                    choice = chunk.choices[0]
                    delta = choice.delta
                    if delta is not None:
                        reasoning = getattr(delta, "reasoning_content", None)
                        if reasoning:
                            yield ThinkingDelta(reasoning)
                        if delta.content:
                            yield ContentDelta(delta.content)
                        if delta.tool_calls:
                            call = delta.tool_calls[0]
                            if call.id:
                                call_id = call.id
                            if call.function is not None:
                                if call.function.name:
                                    call_name = call.function.name
                                if call.function.arguments:
                                    argument_parts.append(call.function.arguments)
                    if choice.finish_reason:
                        finish_reason = choice.finish_reason
            finally:
                await response.close()

            if finish_reason != "tool_calls" or not call_name:
                return

            if tool_round >= self.max_tool_rounds:
                raise ToolLoopLimitExceeded(
                    f"Model requested tool '{call_name}' after {self.max_tool_rounds} tool rounds"
                )
            if tools is None:
                raise GenerationError(f"Model requested tool '{call_name}' but no tools were offered")

            arguments = "".join(argument_parts)
            yield ToolCallRequested(call_id=call_id, name=call_name, arguments=arguments)

            result = await tools.execute_json(call_name, arguments)
            tool_output = result.to_message_content()
            logger.info(f"[stream] Tool {call_name} round {tool_round + 1}: {arguments}")
            yield ThinkingDelta(f"\n[{call_name}] {arguments}\n{tool_output}\n")

            conversation.append({
                "role": "assistant",
                "content": None,
                "tool_calls": [{
                    "id": call_id,
                    "type": "function",
                    "function": {"name": call_name, "arguments": arguments},
                }],
            })
            conversation.append({
                "role": "tool",
                "tool_call_id": call_id,
                "content": tool_output,
            })

    async def complete(
        self,
        messages: List[Dict[str, Any]],
        settings: Any,
        tools: Any = None,
        enable_thinking: bool = False,
        cancel_event: Optional[asyncio.Event] = None,
        on_event: Optional[Callable[[StreamEvent], None]] = None,
    ) -> GenerationResult:
        """Consume `stream` into a GenerationResult, forwarding each event to on_event."""
        content_parts: List[str] = []
        thinking_parts: List[str] = []

        async for event in self.stream(
            messages,
            settings,
            tools=tools,
            enable_thinking=enable_thinking,
            cancel_event=cancel_event,
        ):
            if isinstance(event, ContentDelta):
                content_parts.append(event.text)
            elif isinstance(event, ThinkingDelta):
                thinking_parts.append(event.text)
            if on_event is not None:
                on_event(event)

        return GenerationResult(
            content="".join(content_parts),
            thinking="".join(thinking_parts) or None,
        )

    async def complete_text(
        self,
        messages: List[Dict[str, Any]],
        settings: Any,
        cancel_event: Optional[asyncio.Event] = None,
        response_format: Optional[Dict[str, str]] = None,
    ) -> str:
        """Single non-streaming completion; returns the message content."""
        _raise_if_cancelled(cancel_event)
        kwargs = self._build_kwargs(
            messages, settings, stream=False, response_format=response_format
        )
        response = await self._get_client().chat.completions.create(**kwargs)
        _raise_if_cancelled(cancel_event)
        if not response.choices:
            raise GenerationError("Completion returned no choices")
        return response.choices[0].message.content or ""

    async def complete_structured(
        self,
        messages: List[Dict[str, Any]],
        settings: Any,
        response_model: Type[T],
        cancel_event: Optional[asyncio.Event] = None,
    ) -> T:
        """
        JSON-mode completion validated against `response_model`.

        Raises:
            StructuredOutputError: output failed validation even after fence stripping
        """
        raw = await self.complete_text(
            messages,
            settings,
            cancel_event=cancel_event,
            response_format={"type": "json_object"},
        )
        return parse_structured(raw, response_model)
