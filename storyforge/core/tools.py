"""
Tool Registry for storyforge Agents

Agents can query the novel's semantic memory on their own instead of
receiving every fact up front. The generation client advertises registered
tools to the model and runs them when the model asks.

Key concepts:
- ToolSpec: JSON schema definition for a tool
- Tool: a spec plus its handler
- ToolRegistry: name -> tool lookup and execution
"""

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

SEARCH_NOVEL_MEMORY = "search_novel_memory"
NO_RESULTS_TEXT = "No relevant information found."


class ToolCategory(str, Enum):
    """Grouping shown in tool listings."""
    MEMORY = "memory"  # Vector search, retrieval
    UTILITY = "utility"


@dataclass
class ToolSpec:
    """
    Interface of a tool as advertised to the model.

    parameters holds the JSON Schema properties; required lists the mandatory keys.
    """
    name: str
    description: str
    parameters: Dict[str, Any]  # JSON Schema for parameters
    required: List[str] = field(default_factory=list)
    category: ToolCategory = ToolCategory.UTILITY

    def to_openai_function(self) -> Dict[str, Any]:
        """The function object of a chat-completions tool entry."""
        return {
            "name": self.name,
            "description": self.description,
            "parameters": {
                "type": "object",
                "properties": self.parameters,
                "required": self.required,
            },
        }

    def to_openai_tool(self) -> Dict[str, Any]:
        """Wrap as a chat-completions `tools` entry."""
        return {"type": "function", "function": self.to_openai_function()}


@dataclass
class ToolResult:
    """Outcome of one tool call; failures are reported, never raised."""
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_message_content(self) -> str:
        """Text sent back to the model as the tool turn."""
        if not self.success:
            return f"Tool error: {self.error}"
        if isinstance(self.data, str):
            return self.data
        return json.dumps(self.data, ensure_ascii=False)


@dataclass
class Tool:
    """A tool that agents can call."""
    spec: ToolSpec
    handler: Callable[..., Any]
    is_async: bool = True

    async def execute(self, /, **kwargs: Any) -> ToolResult:
        """Run the handler; any exception becomes a failed ToolResult."""
        try:
            if self.is_async:
                result = await self.handler(**kwargs)
            else:
                result = self.handler(**kwargs)

            return ToolResult(
                success=True,
                data=result,
                metadata={"tool": self.spec.name},
            )
        except Exception as e:
            logger.warning(f"[Tool.execute] {self.spec.name} failed: {e}")
            return ToolResult(
                success=False,
                error=str(e),
                metadata={"tool": self.spec.name},
            )


class ToolRegistry:
    """
    Tools one agent may call, keyed by name.

    The registry:
    - Keeps each spec with its handler
    - Lists the specs for the request's tools field
    - Runs a call by name, from kwargs or a JSON argument string
    """

    def __init__(self) -> None:
        self._tools: Dict[str, Tool] = {}

    def register(
        self,
        name: str,
        description: str,
        parameters: Dict[str, Any],
        handler: Callable[..., Any],
        required: Optional[List[str]] = None,
        category: ToolCategory = ToolCategory.UTILITY,
        is_async: bool = True,
    ) -> None:
        """
        Register a new tool.

        Args:
            name: Tool name (must be unique)
            description: Human-readable description
            parameters: JSON Schema for parameters
            handler: Function to execute
            required: Required parameter names
            category: Tool category
            is_async: Whether handler is async
        """
        spec = ToolSpec(
            name=name,
            description=description,
            parameters=parameters,
            required=required or [],
            category=category,
        )
        self._tools[name] = Tool(spec=spec, handler=handler, is_async=is_async)

    def get_tool(self, name: str) -> Optional[Tool]:
        """Get a tool by name."""
        return self._tools.get(name)

    def get_openai_tools(self) -> List[Dict[str, Any]]:
        """Get tool specs in chat-completions `tools` format."""
        return [tool.spec.to_openai_tool() for tool in self._tools.values()]

    async def execute(self, name: str, /, **kwargs: Any) -> ToolResult:
        """Execute a tool by name."""
        tool = self._tools.get(name)
        if not tool:
            return ToolResult(
                success=False,
                error=f"Tool '{name}' not found",
            )
        return await tool.execute(**kwargs)

    async def execute_json(self, name: str, arguments: str) -> ToolResult:
        """Execute a tool from the raw JSON argument string the model produced."""
        try:
            kwargs = json.loads(arguments) if arguments else {}
        except json.JSONDecodeError as e:
            return ToolResult(success=False, error=f"Invalid tool arguments: {e}")
        if not isinstance(kwargs, dict):
            return ToolResult(success=False, error="Tool arguments must be a JSON object")
        return await self.execute(name, **kwargs)

    def list_tools(self) -> List[str]:
        """List all registered tool names."""
        return list(self._tools.keys())

    def __len__(self) -> int:
        return len(self._tools)


def create_memory_tools(memory_store: Any, limit: int = 3, use_rerank: bool = False) -> ToolRegistry:
    """
    Create the registry exposing the novel's semantic memory.

    Args:
        memory_store: MemoryStore to search
        limit: Results per query
        use_rerank: Whether searches go through the rerank service

    Returns:
        Registry with `search_novel_memory`
    """
    registry = ToolRegistry()

    async def search_novel_memory(queries: Any = None) -> str:
        if isinstance(queries, str):
            queries = [queries]
        valid = [q.strip() for q in (queries or []) if isinstance(q, str) and q.strip()]
        if not valid:
            return "No valid queries were provided. Pass a non-empty list of search strings."

        blocks = []
        for query in valid:
            hits = await memory_store.search(query, limit=limit, use_rerank=use_rerank)
            if hits:
                lines = "\n".join(f"- {hit.text}" for hit in hits)
            else:
                lines = NO_RESULTS_TEXT
            blocks.append(f'Query "{query}":\n{lines}')
        return "\n\n".join(blocks)

    registry.register(
        name=SEARCH_NOVEL_MEMORY,
        description=(
            "Search the novel's long-term memory (earlier chapters, character profiles, "
            "tasks, worldview and outlines) for facts needed to stay consistent."
        ),
        parameters={
            "queries": {
                "type": "array",
                "items": {"type": "string"},
                "description": "One or more search strings, e.g. a character name or past event",
            },
        },
        required=["queries"],
        category=ToolCategory.MEMORY,
        handler=search_novel_memory,
    )

    return registry
