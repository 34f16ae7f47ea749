"""Tests for the read-only search and details tools."""

from __future__ import annotations

import json

import pytest
from conftest import FakeRemoteStore, remote_entry

from tavern_sync.config_schema import UnifiedConfig
from tavern_sync.errors import NotFoundError, RemoteError
from tavern_sync.mcp.lifespan import SyncContext
from tavern_sync.mcp.tools.browse import (
    BROWSE_SPECS,
    BROWSE_TOOLS,
    _handle_get_character_details,
    _handle_get_worldbook_details,
    _handle_search_characters,
    _handle_search_worldinfo,
    match_entry,
    public_character_fields,
    search_lorebooks,
)
from tavern_sync.mcp.tools.registry import ToolRegistry
from tavern_sync.settings import Settings
from tavern_sync.sync.models import Entry


@pytest.fixture
def remote():
    return FakeRemoteStore(
        books={
            "World": {
                "entries": {
                    "0": remote_entry(
                        0,
                        "Sun Temple",
                        "The temple burns at noon when the desert wind rises.",
                        key=["sun", "temple"],
                    ),
                    "1": remote_entry(
                        1, "Rain Rite", "Villagers pray for water.", key=["rain"]
                    ),
                    "2": remote_entry(
                        2,
                        None,
                        "A long corridor leads to the hidden shrine of the moon.",
                        key=[],
                    ),
                }
            },
            "Moon Atlas": {
                "entries": {
                    "0": remote_entry(
                        0, "Tides", "The moon pulls the sea.", key=["tide"]
                    ),
                }
            },
        },
        characters={
            "Alice": {
                "name": "Alice",
                "avatar": "Alice.png",
                "description": "A wandering mage.",
                "tags": ["fantasy", "Mage"],
                "chat": "Alice - 2024-01-01.jsonl",
                "create_date": "2024-01-01",
                "data": {"extensions": {"world": "World"}},
            },
            "Bob": {"name": "Bob", "avatar": "Bob.png", "tags": ["scifi"]},
        },
    )


@pytest.fixture
def context(remote, mock_config):
    settings = Settings(config=mock_config, unified=UnifiedConfig())
    return SyncContext.from_settings(settings, client=remote)


def _text(result) -> str:
    return result.content[0].text


class TestDefinitions:
    def test_specs_match_tools(self):
        assert [s.tool for s in BROWSE_SPECS] == BROWSE_TOOLS

    def test_all_read_only(self):
        assert all(t.annotations.readOnlyHint for t in BROWSE_TOOLS)


# ---------------------------------------------------------------------------
# Matching and search
# ---------------------------------------------------------------------------


class TestMatchEntry:
    def test_key_checked_first(self):
        entry = Entry(key=["Sunrise"], comment="sun", content="sun")
        assert match_entry(entry, "SUN") == ("key", "Key: Sunrise")

    def test_name_before_content(self):
        entry = Entry(key=["x"], comment="Old Sun", content="sun")
        assert match_entry(entry, "sun") == ("name", "Name: Old Sun")

    def test_content_snippet_has_context(self):
        entry = Entry(content="a" * 40 + "needle" + "b" * 40)
        assert match_entry(entry, "needle") == (
            "content",
            "..." + "a" * 30 + "needle" + "b" * 30 + "...",
        )

    def test_no_match(self):
        assert match_entry(Entry(key=["a"], comment="b", content="c"), "zzz") is None


class TestSearchLorebooks:
    def test_searches_every_book(self, remote):
        hits = search_lorebooks(remote, "moon")
        assert [(h.book, h.id, h.match_type) for h in hits] == [
            ("Moon Atlas", "METADATA", "book_name"),
            ("Moon Atlas", "0", "content"),
            ("World", "2", "content"),
        ]
        assert hits[2].name == "(No Name)"

    def test_limit(self, remote):
        assert len(search_lorebooks(remote, "moon", limit=2)) == 2

    def test_single_book(self, remote):
        hits = search_lorebooks(remote, "moon", book="World")
        assert [(h.book, h.id) for h in hits] == [("World", "2")]

    def test_named_book_missing(self, remote):
        with pytest.raises(NotFoundError, match="Nowhere"):
            search_lorebooks(remote, "moon", book="Nowhere")

    def test_failing_book_skipped(self, remote):
        class FlakyRemote(FakeRemoteStore):
            def fetch_lorebook(self, name):
                if name == "World":
                    raise RemoteError(500, "boom")
                return super().fetch_lorebook(name)

        flaky = FlakyRemote(books=remote.books)
        hits = search_lorebooks(flaky, "moon")
        assert {h.book for h in hits} == {"Moon Atlas"}


# ---------------------------------------------------------------------------
# Lore Book handlers
# ---------------------------------------------------------------------------


class TestWorldInfoHandlers:
    async def test_search_text(self, context):
        result = await _handle_search_worldinfo(context, {"query": "rain"})
        assert _text(result) == (
            "Found 1 matches:\n\n[World] Rain Rite (ID: 1)\n   Match: key\n   Key: rain"
        )
        assert result.structuredContent["hits"][0]["id"] == "1"

    async def test_search_no_match(self, context):
        result = await _handle_search_worldinfo(context, {"query": "zzz"})
        assert _text(result) == 'No matches found for "zzz"'
        assert result.structuredContent["hits"] == []

    async def test_query_too_long(self, context):
        with pytest.raises(ValueError, match="at most 100"):
            await _handle_search_worldinfo(context, {"query": "x" * 101})

    async def test_query_required(self, context):
        with pytest.raises(ValueError, match="query is required"):
            await _handle_search_worldinfo(context, {"query": "  "})

    async def test_limit_out_of_range(self, context):
        with pytest.raises(ValueError, match="between 1 and 100"):
            await _handle_search_worldinfo(context, {"query": "sun", "limit": 0})

    async def test_details(self, context):
        result = await _handle_get_worldbook_details(context, {"book": "World"})
        assert _text(result).splitlines() == [
            "# World",
            "",
            "- [0] Sun Temple (Keys: sun, temple)",
            "- [1] Rain Rite (Keys: rain)",
            "- [2] No Name (Keys: )",
        ]
        assert result.structuredContent["entries"][0] == {
            "id": "0",
            "name": "Sun Temple",
            "keys": ["sun", "temple"],
            "enabled": True,
        }

    async def test_details_missing_book(self, context):
        registry = ToolRegistry(BROWSE_SPECS)
        result = await registry.call_tool(
            "get_worldbook_details", {"book": "Nowhere"}, context
        )
        assert result.isError is True
        assert _text(result).startswith("Error (not_found)")


# ---------------------------------------------------------------------------
# Character handlers
# ---------------------------------------------------------------------------


class TestCharacterHandlers:
    async def test_search_by_tag(self, context):
        result = await _handle_search_characters(context, {"query": "mage"})
        assert _text(result) == "Found 1 characters:\n\n- Alice (File: Alice.png)"

    async def test_search_by_name(self, context):
        result = await _handle_search_characters(context, {"query": "BO"})
        assert result.structuredContent["characters"] == [
            {"name": "Bob", "avatar": "Bob.png"}
        ]

    async def test_search_no_match(self, context):
        result = await _handle_search_characters(context, {"query": "zed"})
        assert _text(result) == 'No characters found matching "zed"'

    async def test_details_hide_server_fields(self, context):
        result = await _handle_get_character_details(context, {"name": "Alice"})
        card = json.loads(_text(result))
        assert card == result.structuredContent
        assert card["description"] == "A wandering mage."
        assert card["tags"] == ["fantasy", "Mage"]
        for hidden in ("avatar", "chat", "create_date", "data"):
            assert hidden not in card

    async def test_details_missing(self, context):
        with pytest.raises(NotFoundError, match="Zed"):
            await _handle_get_character_details(context, {"name": "Zed"})

    def test_data_block_fallback(self):
        card = public_character_fields(
            {"name": "Alice", "data": {"personality": "Curious"}}
        )
        assert card["personality"] == "Curious"
        assert card["scenario"] is None
