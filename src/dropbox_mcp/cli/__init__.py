"""Command-line interface for dropbox-mcp."""
