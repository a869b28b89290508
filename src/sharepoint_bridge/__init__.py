"""SharePoint bridge: certificate-authenticated document library access over MCP, HTTP and WebSocket."""

__version__ = "0.1.0"
