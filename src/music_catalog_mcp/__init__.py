"""Apple Music catalog resolution and playlist sync for MCP clients."""

__version__ = "0.1.0"
