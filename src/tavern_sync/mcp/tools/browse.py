"""MCP tools that read the server without touching local files.

Defines four tools:

- ``search_worldinfo`` -- keyword search over Lore Book entries.
- ``get_worldbook_details`` -- the entry list of one Lore Book.
- ``search_characters`` -- characters whose name or a tag matches.
- ``get_character_details`` -- one character card, without local paths
  or server bookkeeping.
"""

from __future__ import annotations

import json
import logging
from typing import Any

import mcp.types as types
from pydantic import BaseModel

from ...core.async_utils import run_sync
from ...errors import NotFoundError, RemoteError
from ...sync.models import Entry
from ...sync.remote import RemoteStore, ingest_lorebook
from ..lifespan import SyncContext
from .registry import ToolSpec

logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 100
DEFAULT_SEARCH_LIMIT = 20
MAX_SEARCH_LIMIT = 100
SNIPPET_CONTEXT = 30
BOOK_NAME_HIT_ID = "METADATA"

# Card fields safe to hand to an agent; avatar paths, chat pointers and
# extension settings stay on the server.
PUBLIC_CHARACTER_FIELDS = (
    "name",
    "description",
    "personality",
    "scenario",
    "first_mes",
    "mes_example",
    "tags",
    "creator",
    "character_version",
)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_READ_ONLY = types.ToolAnnotations(
    readOnlyHint=True,
    destructiveHint=False,
    idempotentHint=True,
    openWorldHint=True,
)

_QUERY_PROPERTY = {
    "type": "string",
    "minLength": 1,
    "maxLength": MAX_QUERY_LENGTH,
    "description": f"Search keyword (max {MAX_QUERY_LENGTH} chars), case-insensitive",
}

BROWSE_TOOLS: list[types.Tool] = [
    types.Tool(
        name="search_worldinfo",
        description=(
            "Search Lore Book entries by keyword in their keys, name or content. "
            "Searches every Lore Book unless one is named."
        ),
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "query": _QUERY_PROPERTY,
                "book": {
                    "type": "string",
                    "description": "Limit the search to this Lore Book",
                },
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "maximum": MAX_SEARCH_LIMIT,
                    "default": DEFAULT_SEARCH_LIMIT,
                    "description": f"Max results (1-{MAX_SEARCH_LIMIT})",
                },
            },
            "required": ["query"],
        },
    ),
    types.Tool(
        name="get_worldbook_details",
        description="List every entry of a Lore Book with its id, name and keys.",
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "book": {"type": "string", "description": "Lore Book name"},
            },
            "required": ["book"],
        },
    ),
    types.Tool(
        name="search_characters",
        description="Search characters by name or tag.",
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {"query": _QUERY_PROPERTY},
            "required": ["query"],
        },
    ),
    types.Tool(
        name="get_character_details",
        description=(
            "Get the card of one character: description, personality, scenario, "
            "greetings, example dialogue and tags."
        ),
        annotations=_READ_ONLY,
        inputSchema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Character name or avatar filename",
                },
            },
            "required": ["name"],
        },
    ),
]


# ---------------------------------------------------------------------------
# Search helpers
# ---------------------------------------------------------------------------


class SearchHit(BaseModel):
    """One search result: where it is and why it matched."""

    book: str
    id: str
    name: str
    match_type: str
    snippet: str


def match_entry(entry: Entry, query: str) -> tuple[str, str] | None:
    """Return ``(match_type, snippet)`` for the first field containing *query*.

    Keys are checked before the name, the name before the content.  Case is
    ignored.  A content match is shown with some surrounding text.
    """
    needle = query.lower()
    for key in entry.key:
        if needle in key.lower():
            return "key", f"Key: {key}"
    if entry.comment and needle in entry.comment.lower():
        return "name", f"Name: {entry.comment}"
    index = entry.content.lower().find(needle)
    if index >= 0:
        start = max(0, index - SNIPPET_CONTEXT)
        end = min(len(entry.content), index + len(query) + SNIPPET_CONTEXT)
        return "content", f"...{entry.content[start:end]}..."
    return None


def search_lorebooks(
    client: RemoteStore,
    query: str,
    book: str | None = None,
    limit: int = DEFAULT_SEARCH_LIMIT,
) -> list[SearchHit]:
    """Search entries of *book*, or of every Lore Book, for *query*.

    A Lore Book whose own name matches yields a hit with id ``METADATA``.
    When searching every book, a book that fails to load is skipped.

    Raises:
        NotFoundError: If *book* is given and does not exist.
    """
    needle = query.lower()
    names = [book] if book else client.list_lorebooks()
    hits: list[SearchHit] = []

    for name in names:
        if len(hits) >= limit:
            break
        if needle in name.lower():
            hits.append(
                SearchHit(
                    book=name,
                    id=BOOK_NAME_HIT_ID,
                    name=name,
                    match_type="book_name",
                    snippet="The Lore Book name matches the query.",
                )
            )

        try:
            payload = client.fetch_lorebook(name)
        except RemoteError as exc:
            if book:
                raise
            logger.warning("Skipping Lore Book '%s' in search: %s", name, exc)
            continue
        if payload is None:
            if book:
                raise NotFoundError(f"Lore Book '{name}' not found")
            continue

        loaded = ingest_lorebook(payload, name).book
        for key, entry in zip(loaded.entry_keys, loaded.entries):
            if len(hits) >= limit:
                break
            found = match_entry(entry, query)
            if found is None:
                continue
            match_type, snippet = found
            hits.append(
                SearchHit(
                    book=name,
                    id=key,
                    name=entry.comment or "(No Name)",
                    match_type=match_type,
                    snippet=snippet,
                )
            )

    return hits[:limit]


def search_character_records(
    records: list[dict[str, Any]], query: str
) -> list[dict[str, Any]]:
    """Character summaries whose name or any tag contains *query*."""
    needle = query.lower()
    matches = []
    for record in records:
        name = record.get("name") or ""
        tags = record.get("tags")
        tag_hit = isinstance(tags, list) and any(
            needle in str(tag).lower() for tag in tags
        )
        if needle in name.lower() or tag_hit:
            matches.append(record)
    return matches


def public_character_fields(record: dict[str, Any]) -> dict[str, Any]:
    """The agent-facing subset of a character record.

    Top-level fields win; V2 cards that only carry a field under ``data``
    fall back to it.
    """
    data_block = record.get("data")
    if not isinstance(data_block, dict):
        data_block = {}
    card: dict[str, Any] = {}
    for field in PUBLIC_CHARACTER_FIELDS:
        value = record.get(field)
        card[field] = value if value is not None else data_block.get(field)
    return card


# ---------------------------------------------------------------------------
# Argument helpers
# ---------------------------------------------------------------------------


def _require_text(
    args: dict[str, Any], key: str, max_length: int | None = None
) -> str:
    value = args.get(key)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{key} is required")
    if max_length is not None and len(value) > max_length:
        raise ValueError(f"{key} must be at most {max_length} characters")
    return value


def _parse_limit(args: dict[str, Any]) -> int:
    raw = args.get("limit")
    if raw is None:
        return DEFAULT_SEARCH_LIMIT
    try:
        limit = int(raw)
    except (TypeError, ValueError):
        raise ValueError("limit must be an integer") from None
    if not 1 <= limit <= MAX_SEARCH_LIMIT:
        raise ValueError(f"limit must be between 1 and {MAX_SEARCH_LIMIT}")
    return limit


def _text_result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_search_worldinfo(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    query = _require_text(args, "query", MAX_QUERY_LENGTH)
    book = args.get("book") or None
    limit = _parse_limit(args)
    hits = await run_sync(search_lorebooks, context.client, query, book, limit)
    structured = {"query": query, "hits": [h.model_dump() for h in hits]}

    if not hits:
        return _text_result(f'No matches found for "{query}"', structured)
    blocks = [
        f"[{h.book}] {h.name} (ID: {h.id})\n   Match: {h.match_type}\n   {h.snippet}"
        for h in hits
    ]
    text = f"Found {len(hits)} matches:\n\n" + "\n\n".join(blocks)
    return _text_result(text, structured)


async def _handle_get_worldbook_details(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    book = _require_text(args, "book")
    payload = await run_sync(context.client.fetch_lorebook, book)
    if payload is None:
        raise NotFoundError(f"Lore Book '{book}' not found")
    result = ingest_lorebook(payload, book)

    entries = [
        {
            "id": key,
            "name": entry.comment,
            "keys": entry.key,
            "enabled": not entry.disable,
        }
        for key, entry in zip(result.book.entry_keys, result.book.entries)
    ]
    lines = [
        f"- [{e['id']}] {e['name'] or 'No Name'} (Keys: {', '.join(e['keys'])})"
        for e in entries
    ]
    text = f"# {book}\n\n" + ("\n".join(lines) or "(No entries)")
    return _text_result(
        text, {"book": book, "entries": entries, "dropped": result.dropped}
    )


async def _handle_search_characters(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    query = _require_text(args, "query", MAX_QUERY_LENGTH)
    records = await run_sync(context.client.list_characters)
    matches = search_character_records(records, query)
    structured = {
        "query": query,
        "characters": [
            {"name": m.get("name"), "avatar": m.get("avatar")} for m in matches
        ],
    }

    if not matches:
        return _text_result(f'No characters found matching "{query}"', structured)
    summary = "\n".join(
        f"- {m.get('name')} (File: {m.get('avatar')})" for m in matches
    )
    return _text_result(
        f"Found {len(matches)} characters:\n\n{summary}", structured
    )


async def _handle_get_character_details(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    name = _require_text(args, "name")
    record = await run_sync(context.client.fetch_character, name)
    if record is None:
        raise NotFoundError(f"Character '{name}' not found")
    card = public_character_fields(record)
    return _text_result(json.dumps(card, indent=2, ensure_ascii=False), card)


BROWSE_SPECS: list[ToolSpec] = [
    ToolSpec(tool=BROWSE_TOOLS[0], handler=_handle_search_worldinfo),
    ToolSpec(tool=BROWSE_TOOLS[1], handler=_handle_get_worldbook_details),
    ToolSpec(tool=BROWSE_TOOLS[2], handler=_handle_search_characters),
    ToolSpec(tool=BROWSE_TOOLS[3], handler=_handle_get_character_details),
]
