"""MCP tools exposed by this server."""
