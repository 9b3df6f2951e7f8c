"""Dropbox MCP server: Dropbox file operations for AI assistants."""

from dropbox_mcp.__version__ import __version__

__all__ = ["__version__"]
