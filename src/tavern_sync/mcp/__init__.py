"""MCP integration: startup context, tool definitions, handlers and resources."""
