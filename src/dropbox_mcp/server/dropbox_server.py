"""Dropbox MCP server for Claude Desktop integration.

This MCP server exposes Dropbox file, sharing and revision operations as
tools. OAuth credentials are loaded once from :class:`TokenStorage` at
startup; the access token is refreshed automatically when it is close to
expiry.
"""

import asyncio
import base64
import binascii
import json
import logging
from datetime import datetime
from typing import Any

import httpx
from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from dropbox_mcp.api import (
    CommitInfo,
    DeletedMetadata,
    DropboxClient,
    FileLinkMetadata,
    FileMetadata,
    FolderLinkMetadata,
    FolderMetadata,
    WriteMode,
)
from dropbox_mcp.api.models import AnyLinkMetadata, AnyMetadata, format_dropbox_time
from dropbox_mcp.auth import OAuthManager, TokenStatus, TokenStorage
from dropbox_mcp.exceptions import ApiError, AuthError

# Configure logging (stderr; stdout carries the JSON-RPC stream)
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

SERVER_NAME = "dropbox-mcp"


def _format_time(value: datetime | None) -> str | None:
    return format_dropbox_time(value) if value else None


def _require(arguments: dict[str, Any], *names: str) -> None:
    """Raise ValueError naming every required argument that is missing or empty."""
    missing = [name for name in names if not arguments.get(name)]
    if missing:
        noun = "parameter is" if len(missing) == 1 else "parameters are"
        raise ValueError(f"{' and '.join(missing)} {noun} required")


def project_metadata(entry: AnyMetadata, detailed: bool = False) -> dict[str, Any]:
    """Project a metadata variant into the tool result shape.

    Args:
        entry: File, folder or deleted entry.
        detailed: Include the content hash (files) or id (folders).

    Returns:
        Dictionary with at least ``name``, ``path`` and ``type``.
    """
    if isinstance(entry, FileMetadata):
        item: dict[str, Any] = {
            "name": entry.name,
            "path": entry.path_display,
            "type": "file",
            "size": entry.size,
            "modified": _format_time(entry.server_modified),
            "rev": entry.rev,
        }
        if detailed:
            item["content_hash"] = entry.content_hash
        return item

    if isinstance(entry, FolderMetadata):
        item = {"name": entry.name, "path": entry.path_display, "type": "folder"}
        if detailed:
            item["id"] = entry.id
        return item

    if isinstance(entry, DeletedMetadata):
        return {"name": entry.name, "path": entry.path_display, "type": "deleted"}

    raise TypeError(f"Unexpected metadata type: {type(entry).__name__}")


def project_shared_link(link: AnyLinkMetadata) -> dict[str, Any]:
    """Project a shared link variant into the tool result shape."""
    if isinstance(link, FileLinkMetadata):
        link_type = "file"
    elif isinstance(link, FolderLinkMetadata):
        link_type = "folder"
    else:
        raise TypeError(f"Unexpected shared link type: {type(link).__name__}")

    item: dict[str, Any] = {
        "url": link.url,
        "name": link.name,
        "path": link.path_lower,
        "type": link_type,
    }
    if link.expires is not None:
        item["expires"] = _format_time(link.expires)
    return item


def is_text_content(data: bytes) -> bool:
    """Return True if ``data`` has no control bytes other than tab/CR/LF."""
    for b in data:
        if b < 32 and b not in (9, 10, 13):
            return False
    return True


class DropboxServer:
    """MCP server for the Dropbox API.

    Provides 16 tools covering authentication, browsing, transfer, file
    management, sharing and revisions.

    Attributes:
        server: MCP Server instance.
        storage: TokenStorage holding the credential file.
        manager: OAuthManager for authorization and token refresh.
        client: DropboxClient used by every file and sharing tool.
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the Dropbox MCP server.

        Args:
            storage: Credential storage. Creates default if not provided.
            http_client: Optional HTTP client for the Dropbox API.
        """
        self.server = Server(SERVER_NAME)
        self.storage = storage or TokenStorage()
        self.manager = OAuthManager(storage=self.storage)
        self.client = DropboxClient(self.manager, http_client=http_client)
        self._setup_handlers()

    async def close(self) -> None:
        """Close the Dropbox client and release resources."""
        await self.client.close()

    def _setup_handlers(self) -> None:
        """Register MCP tool handlers."""

        @self.server.list_tools()
        async def list_tools() -> list[Tool]:
            """Return list of available tools."""
            return self.tool_definitions()

        @self.server.call_tool()
        async def call_tool(name: str, arguments: dict[str, Any]) -> list[TextContent]:
            """Handle tool calls."""
            return await self.handle_tool_call(name, arguments)

    async def handle_tool_call(
        self, name: str, arguments: dict[str, Any] | None
    ) -> list[TextContent]:
        """Run a tool and wrap its result (or error) as JSON text content."""
        try:
            result = await self._dispatch_tool(name, arguments or {})
            return [TextContent(type="text", text=json.dumps(result, indent=2))]
        except Exception as e:
            logger.exception(f"Error calling tool {name}")
            return [
                TextContent(
                    type="text",
                    text=json.dumps({"error": str(e)}, indent=2),
                )
            ]

    def tool_definitions(self) -> list[Tool]:
        """Return the tool catalogue advertised to the MCP host."""
        path_only = {
            "type": "object",
            "properties": {
                "path": {"type": "string", "description": "Path to the file or folder"},
            },
            "required": ["path"],
        }
        relocation = {
            "type": "object",
            "properties": {
                "from_path": {"type": "string", "description": "Source path"},
                "to_path": {"type": "string", "description": "Destination path"},
            },
            "required": ["from_path", "to_path"],
        }
        return [
            Tool(
                name="dropbox_auth",
                description="Authenticate with Dropbox using OAuth 2.0 (opens a browser)",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "client_id": {
                            "type": "string",
                            "description": "Dropbox App Client ID (optional if DROPBOX_CLIENT_ID env var is set)",
                        },
                        "client_secret": {
                            "type": "string",
                            "description": "Dropbox App Client Secret (optional if DROPBOX_CLIENT_SECRET env var is set)",
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="dropbox_check_auth",
                description="Check current authentication status",
                inputSchema={"type": "object", "properties": {}, "required": []},
            ),
            Tool(
                name="dropbox_list",
                description="List files and folders in a Dropbox directory",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path to list (empty string for root)",
                            "default": "",
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="dropbox_search",
                description="Search for files and folders in Dropbox",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "query": {"type": "string", "description": "Search query"},
                        "path": {
                            "type": "string",
                            "description": "Path to search in (optional)",
                        },
                    },
                    "required": ["query"],
                },
            ),
            Tool(
                name="dropbox_get_metadata",
                description="Get metadata for a file or folder",
                inputSchema=path_only,
            ),
            Tool(
                name="dropbox_download",
                description="Download a file from Dropbox (text, or base64 for binary files)",
                inputSchema=path_only,
            ),
            Tool(
                name="dropbox_upload",
                description="Upload a file to Dropbox",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path where the file will be uploaded",
                        },
                        "content": {"type": "string", "description": "File content"},
                        "encoding": {
                            "type": "string",
                            "description": "How content is encoded: 'text' (UTF-8) or 'base64'",
                            "default": "text",
                            "enum": ["text", "base64"],
                        },
                        "mode": {
                            "type": "string",
                            "description": "Upload mode: 'add' or 'overwrite'",
                            "default": "add",
                            "enum": ["add", "overwrite"],
                        },
                    },
                    "required": ["path", "content"],
                },
            ),
            Tool(
                name="dropbox_create_folder",
                description="Create a new folder in Dropbox",
                inputSchema=path_only,
            ),
            Tool(
                name="dropbox_move",
                description="Move or rename a file or folder",
                inputSchema=relocation,
            ),
            Tool(
                name="dropbox_copy",
                description="Copy a file or folder",
                inputSchema=relocation,
            ),
            Tool(
                name="dropbox_delete",
                description="Delete a file or folder",
                inputSchema=path_only,
            ),
            Tool(
                name="dropbox_create_shared_link",
                description="Create a shared link for a file or folder",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Path to share"},
                        "settings": {
                            "type": "object",
                            "description": "Sharing settings",
                            "properties": {
                                "expires": {
                                    "type": "string",
                                    "description": "Expiration time (ISO 8601 format)",
                                },
                                "password": {
                                    "type": "string",
                                    "description": "Password for the shared link",
                                },
                            },
                        },
                    },
                    "required": ["path"],
                },
            ),
            Tool(
                name="dropbox_list_shared_links",
                description="List shared links for a file or folder",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {
                            "type": "string",
                            "description": "Path to list shared links for (optional)",
                        },
                    },
                    "required": [],
                },
            ),
            Tool(
                name="dropbox_revoke_shared_link",
                description="Revoke a shared link",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "url": {"type": "string", "description": "Shared link URL to revoke"},
                    },
                    "required": ["url"],
                },
            ),
            Tool(
                name="dropbox_get_revisions",
                description="Get version history of a file",
                inputSchema=path_only,
            ),
            Tool(
                name="dropbox_restore_file",
                description="Restore a file to a specific version",
                inputSchema={
                    "type": "object",
                    "properties": {
                        "path": {"type": "string", "description": "Path to the file"},
                        "rev": {"type": "string", "description": "Revision ID to restore"},
                    },
                    "required": ["path", "rev"],
                },
            ),
        ]

    async def _dispatch_tool(self, name: str, arguments: dict[str, Any]) -> dict[str, Any]:
        """Dispatch tool call to appropriate handler.

        Args:
            name: Tool name.
            arguments: Tool arguments.

        Returns:
            Tool result as dictionary.

        Raises:
            ValueError: If tool name is not recognized.
        """
        handlers = {
            # Authentication
            "dropbox_auth": self._auth,
            "dropbox_check_auth": self._check_auth,
            # Browsing
            "dropbox_list": self._list,
            "dropbox_search": self._search,
            "dropbox_get_metadata": self._get_metadata,
            # Transfer
            "dropbox_download": self._download,
            "dropbox_upload": self._upload,
            # File management
            "dropbox_create_folder": self._create_folder,
            "dropbox_move": self._move,
            "dropbox_copy": self._copy,
            "dropbox_delete": self._delete,
            # Sharing
            "dropbox_create_shared_link": self._create_shared_link,
            "dropbox_list_shared_links": self._list_shared_links,
            "dropbox_revoke_shared_link": self._revoke_shared_link,
            # Revisions
            "dropbox_get_revisions": self._get_revisions,
            "dropbox_restore_file": self._restore_file,
        }

        handler = handlers.get(name)
        if handler is None:
            raise ValueError(f"Unknown tool: {name}")

        return await handler(arguments)

    # =========================================================================
    # Authentication
    # =========================================================================

    async def _auth(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Run the browser OAuth flow and store the resulting tokens."""
        await self.manager.authenticate(
            client_id=arguments.get("client_id"),
            client_secret=arguments.get("client_secret"),
        )
        return {
            "status": "authenticated",
            "message": "Successfully authenticated with Dropbox",
        }

    async def _check_auth(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Report whether the stored token is usable.

        A locally valid (or refreshable) token is confirmed against Dropbox
        with ``check/user``.
        """
        if self.manager.get_status() == TokenStatus.MISSING:
            return {
                "authenticated": False,
                "message": "Not authenticated. Please run dropbox_auth first.",
            }

        try:
            await self.client.check_user()
        except (AuthError, ApiError, httpx.HTTPError) as e:
            logger.warning(f"Token validation failed: {e}")
            return {
                "authenticated": False,
                "message": "Token is invalid or expired. Please re-authenticate.",
            }

        return {
            "authenticated": True,
            "message": "Authenticated with Dropbox",
            "expires_at": _format_time(self.manager.credential.expires_at),
        }

    # =========================================================================
    # Browsing
    # =========================================================================

    async def _list(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List a folder (root by default)."""
        path = arguments.get("path") or ""
        entries = await self.client.list_folder(path)
        items = [project_metadata(e) for e in entries]
        return {"path": path, "entries": items, "count": len(items)}

    async def _search(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Search files and folders."""
        _require(arguments, "query")
        matches = await self.client.search(arguments["query"], arguments.get("path") or "")
        items = [project_metadata(m) for m in matches]
        return {"matches": items, "count": len(items)}

    async def _get_metadata(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Get detailed metadata for one path."""
        _require(arguments, "path")
        metadata = await self.client.get_metadata(arguments["path"])
        return project_metadata(metadata, detailed=True)

    # =========================================================================
    # Transfer
    # =========================================================================

    async def _download(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Download a file; binary content is returned base64-encoded."""
        _require(arguments, "path")
        data = await self.client.download(arguments["path"])

        if is_text_content(data):
            try:
                return {
                    "path": arguments["path"],
                    "content": data.decode("utf-8"),
                    "encoding": "text",
                    "size": len(data),
                }
            except UnicodeDecodeError:
                pass

        return {
            "path": arguments["path"],
            "content": base64.b64encode(data).decode("ascii"),
            "encoding": "base64",
            "size": len(data),
        }

    async def _upload(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Upload text or base64 content.

        Payloads over 150 MiB are sent through a chunked upload session.
        """
        _require(arguments, "path", "content")

        mode_name = arguments.get("mode") or WriteMode.ADD.value
        try:
            mode = WriteMode(mode_name)
        except ValueError:
            raise ValueError(f"mode must be 'add' or 'overwrite', got {mode_name!r}") from None

        encoding = arguments.get("encoding") or "text"
        content: str = arguments["content"]
        if encoding == "text":
            data = content.encode("utf-8")
        elif encoding == "base64":
            try:
                data = base64.b64decode(content, validate=True)
            except binascii.Error as e:
                raise ValueError(f"content is not valid base64: {e}") from e
        else:
            raise ValueError(f"encoding must be 'text' or 'base64', got {encoding!r}")

        commit = CommitInfo(path=arguments["path"], mode=mode, autorename=True)
        metadata = await self.client.upload(commit, data)
        return {"status": "uploaded", **project_metadata(metadata)}

    # =========================================================================
    # File management
    # =========================================================================

    async def _create_folder(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create a folder."""
        _require(arguments, "path")
        folder = await self.client.create_folder(arguments["path"])
        return {"status": "folder_created", **project_metadata(folder, detailed=True)}

    async def _move(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Move or rename a file or folder."""
        _require(arguments, "from_path", "to_path")
        metadata = await self.client.move(arguments["from_path"], arguments["to_path"])
        return {"status": "moved", **project_metadata(metadata)}

    async def _copy(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Copy a file or folder."""
        _require(arguments, "from_path", "to_path")
        metadata = await self.client.copy(arguments["from_path"], arguments["to_path"])
        return {"status": "copied", **project_metadata(metadata)}

    async def _delete(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Delete a file or folder."""
        _require(arguments, "path")
        path = arguments["path"]
        await self.client.delete(path)
        return {"status": "success", "message": f"Successfully deleted {path}"}

    # =========================================================================
    # Sharing
    # =========================================================================

    async def _create_shared_link(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Create (or reuse) a shared link."""
        _require(arguments, "path")
        settings = arguments.get("settings") or {}

        expires = None
        if settings.get("expires"):
            try:
                expires = datetime.fromisoformat(settings["expires"].replace("Z", "+00:00"))
            except ValueError as e:
                raise ValueError(f"settings.expires must be an ISO 8601 timestamp: {e}") from e

        url = await self.client.create_shared_link(
            arguments["path"],
            expires=expires,
            password=settings.get("password"),
        )
        return {"url": url, "path": arguments["path"]}

    async def _list_shared_links(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List shared links, optionally for one path."""
        links = await self.client.list_shared_links(arguments.get("path") or "")
        items = [project_shared_link(link) for link in links]
        return {"links": items, "count": len(items)}

    async def _revoke_shared_link(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Revoke a shared link."""
        _require(arguments, "url")
        await self.client.revoke_shared_link(arguments["url"])
        return {"status": "success", "message": "Shared link revoked successfully"}

    # =========================================================================
    # Revisions
    # =========================================================================

    async def _get_revisions(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """List previous revisions of a file."""
        _require(arguments, "path")
        revisions = await self.client.list_revisions(arguments["path"])
        items = [
            {
                "rev": rev.rev,
                "size": rev.size,
                "modified": _format_time(rev.server_modified),
            }
            for rev in revisions
        ]
        return {"path": arguments["path"], "revisions": items, "count": len(items)}

    async def _restore_file(self, arguments: dict[str, Any]) -> dict[str, Any]:
        """Restore a file to an earlier revision."""
        _require(arguments, "path", "rev")
        metadata = await self.client.restore(arguments["path"], arguments["rev"])
        return {"status": "restored", **project_metadata(metadata)}

    async def run(self) -> None:
        """Run the MCP server using stdio transport."""
        try:
            async with stdio_server() as (read_stream, write_stream):
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
        finally:
            await self.close()


def main() -> None:
    """Entry point for the Dropbox MCP server."""
    server = DropboxServer()
    asyncio.run(server.run())


if __name__ == "__main__":
    main()
