"""Error response builders for MCP tool handlers.

Structured error responses carry a corrective action so an agent can
recover without human help.
"""

import mcp.types as types

from ...errors import (
    MalformedLocalStateError,
    NotFoundError,
    RemoteError,
    TavernSyncError,
    ValidationError,
)


def build_error_response(
    error_type: str, message: str, corrective_action: str
) -> types.CallToolResult:
    """Build a structured error response with corrective action.

    Args:
        error_type: Error category (not_found, validation_error,
            malformed_local_state, remote_error, server_error)
        message: Human-readable error description
        corrective_action: Specific action the agent can take to resolve the error

    Returns:
        CallToolResult with isError=True

    Examples:
        >>> build_error_response("not_found", "Lore Book 'X' not found", "Use lorebook_list to see available books.")
        CallToolResult(content=[TextContent(...)], isError=True)
    """
    error_text = f"Error ({error_type}): {message}\n\nAction: {corrective_action}"

    return types.CallToolResult(
        content=[types.TextContent(type="text", text=error_text)],
        isError=True,
    )


def translate_sync_error(error: TavernSyncError) -> types.CallToolResult:
    """Translate a sync error into a structured error response."""
    match error:
        case NotFoundError():
            return build_error_response(
                "not_found",
                str(error),
                "Use lorebook_list to see the available Lore Books and characters.",
            )
        case ValidationError():
            return build_error_response(
                "validation_error",
                str(error),
                "Fix the listed fields in index.yaml or the entry files, then retry. Nothing was sent.",
            )
        case MalformedLocalStateError():
            return build_error_response(
                "malformed_local_state",
                str(error),
                "Check the directory is a project root, or run lorebook_pull to create one.",
            )
        case RemoteError(status=status) if status in (401, 403):
            return build_error_response(
                "permission_denied",
                str(error),
                "Check ST_USERNAME/ST_PASSWORD or ST_API_KEY.",
            )
        case RemoteError():
            return build_error_response(
                "remote_error",
                str(error),
                "Check that the server at ST_API_URL is running, then retry.",
            )
        case _:
            return build_error_response(
                "server_error", str(error), "Retry the operation."
            )
