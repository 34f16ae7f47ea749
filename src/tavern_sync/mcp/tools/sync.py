"""MCP tool handlers for Lore Book and Character sync.

Defines six tools:

- ``lorebook_pull`` -- overwrite a local root with the remote copy.
- ``lorebook_push`` -- replace the remote copy with a local root.
- ``lorebook_status`` -- list entries that differ.
- ``lorebook_diff`` -- line-level changes of modified entries.
- ``lorebook_generate`` -- scaffold placeholder entries.
- ``lorebook_list`` -- names of remote Lore Books or characters.

Handlers receive the ``SyncContext`` built once at startup.  The engine
is synchronous; every call goes through ``run_sync``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...sync.generator import generate_entries
from ...sync.models import ProjectKind
from ...sync.reporter import (
    diff_to_json,
    format_diff,
    format_pull_result,
    format_push_result,
    format_status,
)
from ..lifespan import SyncContext
from .registry import ToolSpec

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Tool definitions
# ---------------------------------------------------------------------------

_DIR_PROPERTY = {
    "type": "string",
    "description": "Absolute path of the project directory",
}

SYNC_TOOLS: list[types.Tool] = [
    types.Tool(
        name="lorebook_pull",
        description=(
            "Pull a Lore Book or Character from SillyTavern into a local "
            "directory. Overwrites local files and removes orphaned entry files."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "name": {
                    "type": "string",
                    "description": "Remote name. Defaults to the directory name.",
                },
                "target_dir": _DIR_PROPERTY,
                "kind": {
                    "type": "string",
                    "enum": ["lorebook", "character"],
                    "description": "What to pull. Detected from the directory when omitted.",
                },
            },
            "required": ["target_dir"],
        },
    ),
    types.Tool(
        name="lorebook_push",
        description=(
            "Push a local Lore Book or Character directory to SillyTavern, "
            "replacing the remote copy. Aborts without writing if any entry is invalid."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=True,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_dir": _DIR_PROPERTY,
                "name": {
                    "type": "string",
                    "description": "Remote name. Defaults to the directory name.",
                },
            },
            "required": ["project_dir"],
        },
    ),
    types.Tool(
        name="lorebook_status",
        description=(
            "Show which entries differ between a local project and SillyTavern: "
            "[+] local only, [-] remote only, [~] modified."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {"project_dir": _DIR_PROPERTY},
            "required": ["project_dir"],
        },
    ),
    types.Tool(
        name="lorebook_diff",
        description="Show line-level changes of modified Lore Book entries (remote -> local).",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "project_dir": _DIR_PROPERTY,
                "name": {
                    "type": "string",
                    "description": "Remote Lore Book name. Defaults to the directory name.",
                },
                "entry": {
                    "type": "string",
                    "description": "Only show this entry (by name)",
                },
            },
            "required": ["project_dir"],
        },
    ),
    types.Tool(
        name="lorebook_generate",
        description=(
            "Create placeholder entries <prefix>_1..<prefix>_N in a local "
            "Lore Book. Existing entries are skipped."
        ),
        annotations=types.ToolAnnotations(
            readOnlyHint=False,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=False,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "target_dir": _DIR_PROPERTY,
                "prefix": {"type": "string", "description": "Entry id prefix"},
                "count": {
                    "type": "integer",
                    "minimum": 1,
                    "description": "Number of entries to create",
                },
            },
            "required": ["target_dir", "prefix", "count"],
        },
    ),
    types.Tool(
        name="lorebook_list",
        description="List the Lore Books or characters available on the SillyTavern server.",
        annotations=types.ToolAnnotations(
            readOnlyHint=True,
            destructiveHint=False,
            idempotentHint=True,
            openWorldHint=True,
        ),
        inputSchema={
            "type": "object",
            "properties": {
                "kind": {
                    "type": "string",
                    "enum": ["lorebook", "character"],
                    "default": "lorebook",
                },
            },
            "required": [],
        },
    ),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_dir(args: dict[str, Any], key: str) -> Path:
    """Return ``args[key]`` as an absolute Path.

    Raises:
        ValueError: If the argument is missing or relative.
    """
    raw = args.get(key)
    if not raw:
        raise ValueError(f"{key} is required")
    path = Path(raw)
    if not path.is_absolute():
        raise ValueError(f"{key} must be an absolute path: {raw}")
    return path


def _text_result(text: str, structured: dict) -> types.CallToolResult:
    return types.CallToolResult(
        content=[types.TextContent(type="text", text=text)],
        structuredContent=structured,
    )


# ---------------------------------------------------------------------------
# Individual handlers
# ---------------------------------------------------------------------------


async def _handle_pull(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    target_dir = _require_dir(args, "target_dir")
    kind = ProjectKind(args["kind"]) if args.get("kind") else None
    result = await run_sync(context.engine.pull, args.get("name"), target_dir, kind)
    return _text_result(format_pull_result(result), result.model_dump(mode="json"))


async def _handle_push(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    project_dir = _require_dir(args, "project_dir")
    result = await run_sync(context.engine.push, project_dir, args.get("name"))
    return _text_result(format_push_result(result), result.model_dump(mode="json"))


async def _handle_status(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    project_dir = _require_dir(args, "project_dir")
    results = await run_sync(context.engine.status, project_dir)
    text = (
        "\n\n".join(format_status(r) for r in results)
        or "(No linked Lore Books)"
    )
    return _text_result(text, {"books": [diff_to_json(r) for r in results]})


async def _handle_diff(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    project_dir = _require_dir(args, "project_dir")
    result = await run_sync(context.engine.compare, project_dir, args.get("name"))
    return _text_result(
        format_diff(result, args.get("entry")), diff_to_json(result)
    )


async def _handle_generate(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    target_dir = _require_dir(args, "target_dir")
    prefix = args.get("prefix") or ""
    try:
        count = int(args.get("count", 0))
    except (TypeError, ValueError):
        raise ValueError("count must be an integer") from None
    created = await run_sync(generate_entries, prefix, count, target_dir)
    text = (
        f"Created {len(created)} entries: {', '.join(created)}"
        if created
        else "No entries created (all ids already exist)"
    )
    return _text_result(text, {"created": created})


async def _handle_list(
    context: SyncContext, args: dict[str, Any]
) -> types.CallToolResult:
    kind = ProjectKind(args.get("kind") or ProjectKind.LOREBOOK.value)
    if kind == ProjectKind.CHARACTER:
        records = await run_sync(context.client.list_characters)
        names = [r.get("name") for r in records if r.get("name")]
    else:
        names = await run_sync(context.client.list_lorebooks)
    lines = [f"{len(names)} {kind.value}(s):"] + [f"  {n}" for n in names]
    return _text_result("\n".join(lines), {"kind": kind.value, "names": names})


SYNC_SPECS: list[ToolSpec] = [
    ToolSpec(tool=SYNC_TOOLS[0], handler=_handle_pull),
    ToolSpec(tool=SYNC_TOOLS[1], handler=_handle_push),
    ToolSpec(tool=SYNC_TOOLS[2], handler=_handle_status),
    ToolSpec(tool=SYNC_TOOLS[3], handler=_handle_diff),
    ToolSpec(tool=SYNC_TOOLS[4], handler=_handle_generate),
    ToolSpec(tool=SYNC_TOOLS[5], handler=_handle_list),
]
