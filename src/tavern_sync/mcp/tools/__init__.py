"""MCP tool handlers for Lore Book and Character sync.

This package wraps the sync engine and the server's read endpoints with
async handlers and structured error responses.  Handlers receive the
``SyncContext`` built by ``mcp.lifespan``; the transport lives elsewhere.
"""

from .browse import BROWSE_SPECS, BROWSE_TOOLS
from .errors import build_error_response, translate_sync_error
from .registry import ToolRegistry, ToolSpec
from .sync import SYNC_SPECS, SYNC_TOOLS

ALL_SPECS: list[ToolSpec] = [*SYNC_SPECS, *BROWSE_SPECS]

__all__ = [
    "build_error_response",
    "translate_sync_error",
    "ToolSpec",
    "ToolRegistry",
    "ALL_SPECS",
    "BROWSE_SPECS",
    "BROWSE_TOOLS",
    "SYNC_SPECS",
    "SYNC_TOOLS",
]
