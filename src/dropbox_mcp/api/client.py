"""Async client for the Dropbox HTTP API (v2).

Dropbox exposes two endpoint families:

- RPC endpoints on ``api.dropboxapi.com`` take and return JSON bodies.
- Content endpoints on ``content.dropboxapi.com`` carry file bytes in the
  body, pass arguments JSON-encoded in the ``Dropbox-API-Arg`` header, and
  return results either as JSON (uploads) or in the ``Dropbox-API-Result``
  header (downloads).

Every request asks :class:`OAuthManager` for a bearer token first, which
refreshes the stored credential when it is about to expire.
"""

import io
import json
import logging
from datetime import datetime
from typing import Any

import httpx

from dropbox_mcp.api.models import (
    METADATA_ADAPTER,
    SHARED_LINK_ADAPTER,
    AnyLinkMetadata,
    AnyMetadata,
    CommitInfo,
    FileMetadata,
    FolderMetadata,
    TransferSession,
    format_dropbox_time,
)
from dropbox_mcp.api.upload import UPLOAD_SIZE_THRESHOLD, upload_large
from dropbox_mcp.auth.oauth_manager import OAuthManager
from dropbox_mcp.exceptions import ApiError

logger = logging.getLogger(__name__)

API_BASE = "https://api.dropboxapi.com/2"
CONTENT_BASE = "https://content.dropboxapi.com/2"

CONTENT_TIMEOUT = 120.0
SEARCH_MAX_RESULTS = 100
REVISIONS_LIMIT = 100


def _raise_for_error(response: httpx.Response, endpoint: str) -> None:
    """Raise ApiError for a non-2xx Dropbox response.

    Dropbox reports endpoint-specific failures as HTTP 409 with an
    ``error_summary`` string such as ``path/not_found/..``.
    """
    if response.is_success:
        return

    summary = ""
    try:
        body = response.json()
        if isinstance(body, dict):
            summary = body.get("error_summary") or str(body.get("error", ""))
    except ValueError:
        summary = response.text.strip()

    raise ApiError(endpoint, response.status_code, summary)


class DropboxClient:
    """Dropbox files and sharing API client.

    Attributes:
        manager: OAuth manager supplying (and refreshing) access tokens.
    """

    def __init__(
        self,
        manager: OAuthManager,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            manager: OAuth manager used for bearer tokens.
            http_client: Optional pre-built client (tests pass a mock transport).
        """
        self.manager = manager
        self._http_client = http_client

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create shared HTTP client with connection pooling."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                http2=True,
                limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
                timeout=httpx.Timeout(30.0, connect=10.0),
            )
        return self._http_client

    async def close(self) -> None:
        """Close the shared HTTP client and release resources."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _rpc(self, endpoint: str, arg: dict[str, Any] | None = None) -> Any:
        """Call an RPC-style endpoint.

        Args:
            endpoint: Route below ``/2/``, e.g. ``files/list_folder``.
            arg: JSON argument, or None for endpoints that take no argument.

        Returns:
            Decoded JSON response (None for endpoints that return ``null``).

        Raises:
            ApiError: If Dropbox returns an error status.
            httpx.HTTPError: On transport failure.
        """
        access_token = await self.manager.get_access_token()
        client = await self._get_http_client()

        headers = {"Authorization": f"Bearer {access_token}"}
        if arg is None:
            response = await client.post(f"{API_BASE}/{endpoint}", headers=headers)
        else:
            response = await client.post(f"{API_BASE}/{endpoint}", headers=headers, json=arg)
        _raise_for_error(response, endpoint)

        if not response.content:
            return None
        return response.json()

    async def _content(
        self,
        endpoint: str,
        arg: dict[str, Any],
        content: bytes = b"",
    ) -> httpx.Response:
        """Call a content-style endpoint.

        Args:
            endpoint: Route below ``/2/``, e.g. ``files/upload``.
            arg: Argument object sent in the ``Dropbox-API-Arg`` header.
            content: Raw request body.

        Returns:
            Raw httpx.Response object.

        Raises:
            ApiError: If Dropbox returns an error status.
            httpx.HTTPError: On transport failure.
        """
        access_token = await self.manager.get_access_token()
        client = await self._get_http_client()

        response = await client.post(
            f"{CONTENT_BASE}/{endpoint}",
            content=content,
            headers={
                "Authorization": f"Bearer {access_token}",
                # json.dumps escapes non-ASCII, as HTTP headers require
                "Dropbox-API-Arg": json.dumps(arg),
                "Content-Type": "application/octet-stream",
            },
            timeout=CONTENT_TIMEOUT,
        )
        _raise_for_error(response, endpoint)
        return response

    # =========================================================================
    # Files
    # =========================================================================

    async def list_folder(self, path: str = "") -> list[AnyMetadata]:
        """List a folder, following ``has_more`` cursors to the end."""
        result = await self._rpc(
            "files/list_folder",
            {"path": path, "recursive": False, "include_deleted": False},
        )
        entries = [METADATA_ADAPTER.validate_python(e) for e in result.get("entries", [])]

        while result.get("has_more"):
            result = await self._rpc("files/list_folder/continue", {"cursor": result["cursor"]})
            entries.extend(METADATA_ADAPTER.validate_python(e) for e in result.get("entries", []))

        return entries

    async def search(self, query: str, path: str = "") -> list[AnyMetadata]:
        """Search by name and content.

        Only the first page of up to 100 matches is returned.
        """
        options: dict[str, Any] = {"max_results": SEARCH_MAX_RESULTS}
        if path:
            options["path"] = path

        result = await self._rpc("files/search_v2", {"query": query, "options": options})

        entries = []
        for match in result.get("matches", []):
            # SearchMatchV2.metadata is a MetadataV2 union wrapping the Metadata
            wrapper = match.get("metadata", {})
            if wrapper.get(".tag") != "metadata":
                continue
            entries.append(METADATA_ADAPTER.validate_python(wrapper["metadata"]))
        return entries

    async def get_metadata(self, path: str) -> AnyMetadata:
        """Get metadata for a file or folder."""
        result = await self._rpc("files/get_metadata", {"path": path})
        return METADATA_ADAPTER.validate_python(result)

    async def download(self, path: str) -> bytes:
        """Download a file's full content."""
        response = await self._content("files/download", {"path": path})
        return response.content

    async def upload(self, commit: CommitInfo, data: bytes) -> FileMetadata:
        """Upload bytes, switching to an upload session above 150 MiB.

        Args:
            commit: Target path and write policy.
            data: File content.

        Returns:
            Metadata of the uploaded file.
        """
        if len(data) > UPLOAD_SIZE_THRESHOLD:
            return await upload_large(self, commit, io.BytesIO(data))

        response = await self._content("files/upload", commit.to_api_arg(), content=data)
        return FileMetadata.model_validate(response.json())

    async def upload_session_start(self) -> TransferSession:
        """Open an upload session with an empty first chunk."""
        response = await self._content("files/upload_session/start", {"close": False})
        return TransferSession(session_id=response.json()["session_id"])

    async def upload_session_append(self, session: TransferSession, chunk: bytes) -> None:
        """Append ``chunk`` at the session's current offset.

        The caller advances the session offset once this returns.
        """
        await self._content(
            "files/upload_session/append_v2",
            {"cursor": session.cursor(), "close": False},
            content=chunk,
        )

    async def upload_session_finish(
        self, session: TransferSession, commit: CommitInfo
    ) -> FileMetadata:
        """Commit the session at its current offset."""
        response = await self._content(
            "files/upload_session/finish",
            {"cursor": session.cursor(), "commit": commit.to_api_arg()},
        )
        return FileMetadata.model_validate(response.json())

    async def create_folder(self, path: str) -> FolderMetadata:
        """Create a folder (no autorename)."""
        result = await self._rpc("files/create_folder_v2", {"path": path, "autorename": False})
        return FolderMetadata.model_validate(result["metadata"])

    async def move(self, from_path: str, to_path: str) -> AnyMetadata:
        """Move or rename a file or folder."""
        result = await self._rpc(
            "files/move_v2",
            {
                "from_path": from_path,
                "to_path": to_path,
                "autorename": False,
                "allow_ownership_transfer": False,
            },
        )
        return METADATA_ADAPTER.validate_python(result["metadata"])

    async def copy(self, from_path: str, to_path: str) -> AnyMetadata:
        """Copy a file or folder."""
        result = await self._rpc(
            "files/copy_v2",
            {"from_path": from_path, "to_path": to_path, "autorename": False},
        )
        return METADATA_ADAPTER.validate_python(result["metadata"])

    async def delete(self, path: str) -> AnyMetadata:
        """Delete a file or folder."""
        result = await self._rpc("files/delete_v2", {"path": path})
        return METADATA_ADAPTER.validate_python(result["metadata"])

    async def list_revisions(self, path: str, limit: int = REVISIONS_LIMIT) -> list[FileMetadata]:
        """List previous revisions of a file, newest first."""
        result = await self._rpc("files/list_revisions", {"path": path, "limit": limit})
        return [FileMetadata.model_validate(e) for e in result.get("entries", [])]

    async def restore(self, path: str, rev: str) -> FileMetadata:
        """Restore a file to the given revision."""
        result = await self._rpc("files/restore", {"path": path, "rev": rev})
        return FileMetadata.model_validate(result)

    # =========================================================================
    # Sharing
    # =========================================================================

    async def create_shared_link(
        self,
        path: str,
        expires: datetime | None = None,
        password: str | None = None,
    ) -> str:
        """Create a shared link, or return the existing one for ``path``.

        Args:
            path: File or folder to share.
            expires: Optional link expiry.
            password: Optional link password.

        Returns:
            The shared link URL.
        """
        arg: dict[str, Any] = {"path": path}
        settings: dict[str, Any] = {}
        if expires is not None:
            settings["expires"] = format_dropbox_time(expires)
        if password:
            settings["link_password"] = password
            settings["requested_visibility"] = "password"
        if settings:
            arg["settings"] = settings

        try:
            result = await self._rpc("sharing/create_shared_link_with_settings", arg)
        except ApiError as e:
            if not e.error_summary.startswith("shared_link_already_exists"):
                raise
            links = await self.list_shared_links(path)
            if not links:
                raise
            logger.info(f"Reusing existing shared link for {path}")
            return links[0].url

        return SHARED_LINK_ADAPTER.validate_python(result).url

    async def list_shared_links(self, path: str = "") -> list[AnyLinkMetadata]:
        """List shared links, optionally restricted to one path."""
        arg: dict[str, Any] = {}
        if path:
            arg["path"] = path
        result = await self._rpc("sharing/list_shared_links", arg)
        return [SHARED_LINK_ADAPTER.validate_python(link) for link in result.get("links", [])]

    async def revoke_shared_link(self, url: str) -> None:
        """Revoke a shared link."""
        await self._rpc("sharing/revoke_shared_link", {"url": url})

    # =========================================================================
    # Users
    # =========================================================================

    async def check_user(self) -> None:
        """Verify that the access token is accepted by Dropbox.

        Raises:
            ApiError: If Dropbox rejects the token.
        """
        await self._rpc("check/user", {"query": "dropbox-mcp"})
