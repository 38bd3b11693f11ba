"""MCP server for the CData Sync REST API."""

__version__ = "1.0.0"
