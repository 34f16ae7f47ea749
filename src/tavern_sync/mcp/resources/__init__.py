"""MCP resource handlers for SillyTavern listings.

Exposes the Lore Book and character lists as read-only resources.
"""

from .catalog import (
    TAVERN_RESOURCES,
    handle_list_resources,
    handle_read_resource,
)

__all__ = [
    "handle_list_resources",
    "handle_read_resource",
    "TAVERN_RESOURCES",
]
