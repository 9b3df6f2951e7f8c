"""Shared pytest fixtures for dropbox-mcp tests.

This module provides reusable fixtures for credentials, token storage, the
OAuth manager and a Dropbox API client backed by ``httpx.MockTransport``.
"""

import json
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

import httpx
import pytest
from click.testing import CliRunner

from dropbox_mcp.auth.models import Credential

# =============================================================================
# Credential Fixtures
# =============================================================================


@pytest.fixture
def valid_credential() -> Credential:
    """Create a credential whose access token is valid for an hour."""
    return Credential(
        client_id="test_client_id",
        client_secret="test_client_secret",  # pragma: allowlist secret
        access_token="test_access_token_abc123",
        refresh_token="test_refresh_token_xyz789",
        expires_at=datetime.now(timezone.utc) + timedelta(hours=1),
    )


@pytest.fixture
def expired_credential() -> Credential:
    """Create a credential whose access token expired an hour ago."""
    return Credential(
        client_id="test_client_id",
        client_secret="test_client_secret",  # pragma: allowlist secret
        access_token="expired_access_token",
        refresh_token="test_refresh_token",
        expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
    )


# =============================================================================
# Token Storage Fixtures
# =============================================================================


@pytest.fixture
def temp_token_dir(tmp_path: Path) -> Path:
    """Directory for credential storage tests (not created yet)."""
    return tmp_path / ".dropbox-mcp"


@pytest.fixture
def temp_token_path(temp_token_dir: Path) -> Path:
    """Get the path for a temporary config.json file."""
    return temp_token_dir / "config.json"


@pytest.fixture
def token_storage(temp_token_path: Path):
    """Create a TokenStorage instance with temporary storage."""
    from dropbox_mcp.auth.token_storage import TokenStorage

    return TokenStorage(token_path=temp_token_path)


@pytest.fixture
def stored_valid_credential(token_storage, valid_credential: Credential) -> Credential:
    """Write a valid credential to the temporary storage."""
    token_storage.save(valid_credential)
    return valid_credential


# =============================================================================
# OAuth Manager Fixtures
# =============================================================================


@pytest.fixture
def oauth_manager(token_storage):
    """Create an OAuthManager with temporary storage."""
    from dropbox_mcp.auth.oauth_manager import OAuthManager

    return OAuthManager(storage=token_storage)


@pytest.fixture
def authenticated_manager(token_storage, stored_valid_credential: Credential):
    """Create an OAuthManager backed by a stored, valid credential."""
    from dropbox_mcp.auth.oauth_manager import OAuthManager

    return OAuthManager(storage=token_storage)


@pytest.fixture(autouse=True)
def clear_client_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep developer Dropbox credentials out of the tests."""
    monkeypatch.delenv("DROPBOX_CLIENT_ID", raising=False)
    monkeypatch.delenv("DROPBOX_CLIENT_SECRET", raising=False)
    monkeypatch.delenv("DROPBOX_MCP_CONFIG", raising=False)


# =============================================================================
# Dropbox API Mocks
# =============================================================================


class DropboxRecorder:
    """Routes mocked Dropbox requests to canned handlers and records them.

    Handlers are keyed by API route (``files/list_folder``) and receive the
    decoded JSON argument (body for RPC routes, ``Dropbox-API-Arg`` header
    for content routes) plus the raw request.
    """

    def __init__(self) -> None:
        self.routes: dict[str, Callable[[Any, httpx.Request], httpx.Response]] = {}
        self.calls: list[tuple[str, Any, httpx.Request]] = []

    def on(self, route: str, handler: Callable[[Any, httpx.Request], httpx.Response]) -> None:
        self.routes[route] = handler

    def json(self, route: str, payload: Any, status_code: int = 200) -> None:
        """Answer ``route`` with a fixed JSON body."""
        self.on(route, lambda arg, request: httpx.Response(status_code, json=payload))

    def calls_to(self, route: str) -> list[tuple[Any, httpx.Request]]:
        return [(arg, request) for name, arg, request in self.calls if name == route]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        route = request.url.path.removeprefix("/2/")
        if "Dropbox-API-Arg" in request.headers:
            arg = json.loads(request.headers["Dropbox-API-Arg"])
        elif request.content:
            arg = json.loads(request.content)
        else:
            arg = None
        self.calls.append((route, arg, request))

        handler = self.routes.get(route)
        if handler is None:
            return httpx.Response(404, text=f"no mock for {route}")
        return handler(arg, request)


@pytest.fixture
def dropbox_api() -> DropboxRecorder:
    """Recorder standing in for the Dropbox HTTP API."""
    return DropboxRecorder()


@pytest.fixture
def mock_http_client(dropbox_api: DropboxRecorder) -> httpx.AsyncClient:
    """Async HTTP client whose requests are answered by ``dropbox_api``."""
    return httpx.AsyncClient(transport=httpx.MockTransport(dropbox_api))


@pytest.fixture
def dropbox_client(authenticated_manager, mock_http_client: httpx.AsyncClient):
    """DropboxClient with a valid credential and mocked transport."""
    from dropbox_mcp.api.client import DropboxClient

    return DropboxClient(authenticated_manager, http_client=mock_http_client)


# =============================================================================
# CLI Fixtures
# =============================================================================


@pytest.fixture
def cli_runner() -> CliRunner:
    """Create a Click CLI test runner."""
    return CliRunner()
