"""Transport adapters: HTTP routes, WebSocket messages and MCP tools."""
