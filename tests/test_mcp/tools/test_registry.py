"""Tests for ToolSpec and ToolRegistry.

Covers:
- ToolSpec immutability
- ToolRegistry filtering, list_tools, tool_count
- call_tool dispatch and error translation
"""

import dataclasses
from unittest.mock import MagicMock

import mcp.types as types
import pytest

from tavern_sync.errors import NotFoundError
from tavern_sync.mcp.tools import ALL_SPECS
from tavern_sync.mcp.tools.registry import ToolRegistry, ToolSpec


def _make_spec(name: str, handler=None) -> ToolSpec:
    """Helper to create a ToolSpec for testing."""
    if handler is None:

        async def handler(context, args):
            return types.CallToolResult(
                content=[types.TextContent(type="text", text=f"ok:{name}")]
            )

    return ToolSpec(
        tool=types.Tool(
            name=name,
            description=f"Test tool {name}",
            inputSchema={"type": "object", "properties": {}, "required": []},
        ),
        handler=handler,
    )


def _raising(exc: Exception):
    async def handler(context, args):
        raise exc

    return handler


class TestToolSpec:
    def test_frozen(self):
        spec = _make_spec("a")
        with pytest.raises(dataclasses.FrozenInstanceError):
            spec.tool = None


class TestToolRegistry:
    def test_all_registered(self):
        registry = ToolRegistry([_make_spec("a"), _make_spec("b")])
        assert registry.tool_count() == 2
        assert [t.name for t in registry.list_tools()] == ["a", "b"]

    def test_enabled_filter(self):
        registry = ToolRegistry(
            [_make_spec("a"), _make_spec("b")], enabled=frozenset({"b"})
        )
        assert [t.name for t in registry.list_tools()] == ["b"]

    def test_shipped_tools(self):
        registry = ToolRegistry(ALL_SPECS)
        assert sorted(t.name for t in registry.list_tools()) == [
            "get_character_details",
            "get_worldbook_details",
            "lorebook_diff",
            "lorebook_generate",
            "lorebook_list",
            "lorebook_pull",
            "lorebook_push",
            "lorebook_status",
            "search_characters",
            "search_worldinfo",
        ]


class TestCallTool:
    async def test_dispatch(self):
        registry = ToolRegistry([_make_spec("a")])
        result = await registry.call_tool("a", None, MagicMock())
        assert result.content[0].text == "ok:a"

    async def test_unknown_tool(self):
        registry = ToolRegistry([_make_spec("a")])
        with pytest.raises(ValueError, match="Unknown tool"):
            await registry.call_tool("zzz", {}, MagicMock())

    async def test_sync_error_translated(self):
        registry = ToolRegistry(
            [_make_spec("a", _raising(NotFoundError("Lore Book 'X' not found")))]
        )
        result = await registry.call_tool("a", {}, MagicMock())
        assert result.isError is True
        assert result.content[0].text.startswith("Error (not_found)")

    async def test_value_error_is_validation_error(self):
        registry = ToolRegistry([_make_spec("a", _raising(ValueError("bad count")))])
        result = await registry.call_tool("a", {}, MagicMock())
        assert result.content[0].text.startswith("Error (validation_error): bad count")

    async def test_os_error_is_io_error(self):
        registry = ToolRegistry(
            [_make_spec("a", _raising(PermissionError("read-only")))]
        )
        result = await registry.call_tool("a", {}, MagicMock())
        assert result.content[0].text.startswith("Error (io_error)")

    async def test_unexpected_error_is_server_error(self):
        registry = ToolRegistry([_make_spec("a", _raising(KeyError("x")))])
        result = await registry.call_tool("a", {}, MagicMock())
        assert result.content[0].text.startswith("Error (server_error)")
