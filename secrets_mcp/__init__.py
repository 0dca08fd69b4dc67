"""Secrets MCP Server - OS keychain backed secret storage for AI agents."""

__version__ = "1.0.0"
