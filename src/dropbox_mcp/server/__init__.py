"""MCP server implementation for Dropbox.

Provides 16 tools over the Dropbox HTTP API:

Authentication (2):
- Browser-based OAuth 2.0 authorization
- Token status check against Dropbox

Browsing (3):
- List folders, search, get metadata

Transfer (2):
- Download (text or base64)
- Upload, with chunked upload sessions above 150 MiB

File management (4):
- Create folder, move, copy, delete

Sharing (3):
- Create, list and revoke shared links

Revisions (2):
- List revisions and restore a file

Transport: Stdio (for Claude Desktop)
Authentication: OAuth 2.0 with automatic token refresh
"""

from dropbox_mcp.server.dropbox_server import DropboxServer, main


def create_server() -> DropboxServer:
    """Create and configure a Dropbox MCP server.

    Returns:
        DropboxServer: Configured server instance ready to run.

    Example:
        >>> server = create_server()
        >>> asyncio.run(server.run())
    """
    return DropboxServer()


__all__ = ["create_server", "DropboxServer", "main"]
