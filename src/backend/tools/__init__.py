"""MCP tool handlers and manager-bound wrappers."""
