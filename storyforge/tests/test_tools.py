"""
Unit tests for the tool registry and the memory search tool.

Tests cover:
- ToolSpec conversion to chat-completions format
- ToolResult message content
- Registry execution and error reporting
- search_novel_memory input handling and output format
"""

import pytest

from storyforge.core.tools import (
    NO_RESULTS_TEXT,
    SEARCH_NOVEL_MEMORY,
    ToolCategory,
    ToolRegistry,
    ToolResult,
    ToolSpec,
    create_memory_tools,
)
from storyforge.services.memory_store import MemoryType


class TestToolSpec:
    """Tests for ToolSpec class."""

    def test_to_openai_tool(self):
        spec = ToolSpec(
            name="search_characters",
            description="Search for characters",
            parameters={"query": {"type": "string", "description": "Search query"}},
            required=["query"],
            category=ToolCategory.MEMORY,
        )

        tool = spec.to_openai_tool()

        assert tool["type"] == "function"
        assert tool["function"]["name"] == "search_characters"
        assert tool["function"]["parameters"]["type"] == "object"
        assert "query" in tool["function"]["parameters"]["properties"]
        assert tool["function"]["parameters"]["required"] == ["query"]


class TestToolResult:
    """Tests for ToolResult class."""

    def test_string_data(self):
        assert ToolResult(success=True, data="plain").to_message_content() == "plain"

    def test_structured_data_is_json(self):
        content = ToolResult(success=True, data={"name": "Mira"}).to_message_content()

        assert content == '{"name": "Mira"}'

    def test_error(self):
        content = ToolResult(success=False, error="boom").to_message_content()

        assert content == "Tool error: boom"


class TestToolRegistry:
    """Tests for ToolRegistry class."""

    @pytest.mark.asyncio
    async def test_execute_unknown_tool(self):
        result = await ToolRegistry().execute("missing")

        assert result.success is False
        assert "not found" in result.error

    @pytest.mark.asyncio
    async def test_handler_exception_becomes_error_result(self):
        registry = ToolRegistry()

        async def broken():
            raise ValueError("bad input")

        registry.register(name="broken", description="Fails", parameters={}, handler=broken)

        result = await registry.execute("broken")

        assert result.success is False
        assert result.error == "bad input"

    @pytest.mark.asyncio
    async def test_sync_handler(self):
        registry = ToolRegistry()
        registry.register(
            name="echo",
            description="Echo",
            parameters={"text": {"type": "string"}},
            handler=lambda text: text.upper(),
            is_async=False,
        )

        result = await registry.execute_json("echo", '{"text": "hi"}')

        assert result.data == "HI"

    @pytest.mark.asyncio
    async def test_execute_json_rejects_non_object(self):
        registry = ToolRegistry()

        result = await registry.execute_json("anything", "[1, 2]")

        assert result.success is False

    @pytest.mark.asyncio
    async def test_name_argument_reaches_handler(self):
        registry = ToolRegistry()
        registry.register(
            name="greet",
            description="Greet",
            parameters={"name": {"type": "string"}},
            handler=lambda name: f"hello {name}",
            is_async=False,
        )

        result = await registry.execute_json("greet", '{"name": "Mira"}')

        assert result.success is True
        assert result.data == "hello Mira"

    def test_list_and_len(self):
        registry = ToolRegistry()
        registry.register(name="a", description="A", parameters={}, handler=lambda: None, is_async=False)

        assert registry.list_tools() == ["a"]
        assert len(registry) == 1
        assert registry.get_tool("a").spec.name == "a"


class TestMemoryTool:
    """Tests for search_novel_memory."""

    @pytest.mark.asyncio
    async def test_registry_exposes_memory_search(self, memory_store):
        registry = create_memory_tools(memory_store)

        assert registry.list_tools() == [SEARCH_NOVEL_MEMORY]
        assert registry.get_tool(SEARCH_NOVEL_MEMORY).spec.category == ToolCategory.MEMORY

    @pytest.mark.asyncio
    async def test_search_formats_blocks_per_query(self, memory_store):
        await memory_store.add("The dragon guards the castle.", {"round": 1, "type": MemoryType.NARRATIVE})
        registry = create_memory_tools(memory_store, limit=1)

        result = await registry.execute_json(SEARCH_NOVEL_MEMORY, '{"queries": ["dragon castle", "ocean"]}')

        assert result.success is True
        blocks = result.data.split("\n\n")
        assert blocks[0] == 'Query "dragon castle":\n- The dragon guards the castle.'
        assert blocks[1].startswith('Query "ocean":')

    @pytest.mark.asyncio
    async def test_search_empty_memory(self, memory_store):
        registry = create_memory_tools(memory_store)

        result = await registry.execute(SEARCH_NOVEL_MEMORY, queries=["anything"])

        assert result.data == f'Query "anything":\n{NO_RESULTS_TEXT}'

    @pytest.mark.asyncio
    async def test_single_string_query_accepted(self, memory_store):
        registry = create_memory_tools(memory_store)

        result = await registry.execute(SEARCH_NOVEL_MEMORY, queries="Mira")

        assert result.data.startswith('Query "Mira":')

    @pytest.mark.asyncio
    async def test_invalid_queries(self, memory_store):
        registry = create_memory_tools(memory_store)

        result = await registry.execute(SEARCH_NOVEL_MEMORY, queries=[1, "  "])

        assert result.success is True
        assert result.data.startswith("No valid queries")

    @pytest.mark.asyncio
    async def test_unexpected_argument_is_reported(self, memory_store):
        registry = create_memory_tools(memory_store)

        result = await registry.execute_json(SEARCH_NOVEL_MEMORY, '{"queries": ["x"], "name": "Mira"}')

        assert result.success is False
        assert "name" in result.error
