"""Gmail multi-inbox MCP server."""

__version__ = "1.0.0"
