"""OAuth authentication for Dropbox MCP.

This package implements the Dropbox OAuth2 authorization code flow with a
local callback listener, transparent token refresh, and credential storage.

Quick Start:
    ```python
    from dropbox_mcp.auth import OAuthManager, TokenStorage

    manager = OAuthManager(TokenStorage())

    # Authenticate (opens the browser)
    await manager.authenticate(
        client_id="your-app-key",
        client_secret="your-app-secret"  # pragma: allowlist secret
    )

    # Bearer token for API use, refreshed when near expiry
    token = await manager.get_access_token()
    ```
"""

from dropbox_mcp.auth.models import AuthResult, Credential, TokenStatus
from dropbox_mcp.auth.oauth_flow import AuthorizationFlow
from dropbox_mcp.auth.oauth_manager import OAuthManager
from dropbox_mcp.auth.token_storage import TokenStorage

__all__ = [
    "AuthorizationFlow",
    "AuthResult",
    "Credential",
    "OAuthManager",
    "TokenStatus",
    "TokenStorage",
]
