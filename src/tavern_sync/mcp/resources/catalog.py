"""Listing resources: the Lore Books and characters on the server.

- ``tavern://worldbooks`` -- one Lore Book name per line.
- ``tavern://characters`` -- ``- <name> (<avatar>)`` per character.
"""

import logging
from typing import Any

import mcp.types as types

from ...core.async_utils import run_sync
from ...errors import TavernSyncError
from ...sync.remote import RemoteStore

logger = logging.getLogger(__name__)

WORLDBOOKS_URI = "tavern://worldbooks"
CHARACTERS_URI = "tavern://characters"

TAVERN_RESOURCES = [
    types.Resource(
        uri=WORLDBOOKS_URI,  # type: ignore[arg-type]  # MCP AnyUrl/Url type mismatch
        name="Lore Book List",
        description="Names of every Lore Book on the server, one per line.",
        mimeType="text/plain",
    ),
    types.Resource(
        uri=CHARACTERS_URI,  # type: ignore[arg-type]  # MCP AnyUrl/Url type mismatch
        name="Character List",
        description="Every character on the server with its avatar filename.",
        mimeType="text/plain",
    ),
]


async def handle_list_resources() -> list[types.Resource]:
    """List the available listing resources."""
    return TAVERN_RESOURCES


def _format_characters(records: list[dict[str, Any]]) -> str:
    return "\n".join(
        f"- {r.get('name')} ({r.get('avatar')})" for r in records if r.get("name")
    )


async def handle_read_resource(uri: Any, client: RemoteStore) -> str:
    """Read a listing resource by URI.

    Args:
        uri: ``tavern://worldbooks`` or ``tavern://characters``
        client: Remote store to list from

    Returns:
        The listing text, or an error message if the server call fails.

    Raises:
        ValueError: If the URI names no known resource.
    """
    target = str(uri)
    try:
        match target:
            case "tavern://worldbooks":
                names = await run_sync(client.list_lorebooks)
                return "\n".join(names)
            case "tavern://characters":
                records = await run_sync(client.list_characters)
                return _format_characters(records)
    except TavernSyncError as e:
        logger.warning("Reading %s failed: %s", target, e)
        return f"Error (remote_error): {e}"
    raise ValueError(f"Unknown resource: {target}")
