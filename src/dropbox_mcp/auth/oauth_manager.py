"""OAuth manager for Dropbox authentication.

Owns the in-memory :class:`Credential`, which is loaded once from
:class:`TokenStorage` and saved after every mutation. The blocking pieces
(browser flow, refresh grant) run in the default executor so the MCP event
loop keeps serving.

Environment Variables:
    DROPBOX_CLIENT_ID: Dropbox app key (used when not passed explicitly)
    DROPBOX_CLIENT_SECRET: Dropbox app secret (used when not passed explicitly)
"""

import asyncio
import logging
import os
from pathlib import Path

from dropbox_mcp.auth.models import AuthResult, Credential, TokenStatus
from dropbox_mcp.auth.oauth_flow import AUTH_TIMEOUT_SECONDS, AuthorizationFlow
from dropbox_mcp.auth.token_client import refresh_access_token
from dropbox_mcp.auth.token_storage import TokenStorage
from dropbox_mcp.exceptions import NotAuthenticatedError

logger = logging.getLogger(__name__)

CLIENT_ID_ENV_VAR = "DROPBOX_CLIENT_ID"
CLIENT_SECRET_ENV_VAR = "DROPBOX_CLIENT_SECRET"  # nosec B105 - env var name


class OAuthManager:
    """OAuth authentication manager for Dropbox.

    Handles the authorization flow, token refresh and persistence.

    Attributes:
        storage: Token storage instance for persisting credentials.
        credential: The current credential (loaded at construction).

    Example:
        ```python
        manager = OAuthManager(TokenStorage())
        await manager.authenticate(client_id="abc", client_secret="xyz")
        token = await manager.get_access_token()
        ```
    """

    def __init__(
        self,
        storage: TokenStorage | None = None,
        auth_timeout: float = AUTH_TIMEOUT_SECONDS,
    ) -> None:
        """Initialize OAuth manager.

        Args:
            storage: Token storage instance. Creates default if not provided.
            auth_timeout: Seconds to wait for the browser callback.
        """
        self.storage = storage or TokenStorage()
        self.credential = self.storage.load()
        self.auth_timeout = auth_timeout

    @property
    def token_path(self) -> Path:
        """Get the credential storage path."""
        return self.storage.token_path

    def get_status(self) -> TokenStatus:
        """Get the status of the stored credential."""
        return self.credential.status()

    def has_valid_tokens(self) -> bool:
        """Check if a usable access token is stored."""
        return self.credential.is_valid()

    def _run_oauth_flow(self, client_id: str, client_secret: str) -> AuthResult:
        """Run the browser flow (blocking operation)."""
        flow = AuthorizationFlow(client_id, client_secret, timeout=self.auth_timeout)
        return flow.run()

    async def authenticate(
        self,
        client_id: str | None = None,
        client_secret: str | None = None,
    ) -> Credential:
        """Perform the complete browser authorization flow.

        Args:
            client_id: Dropbox app key. Falls back to DROPBOX_CLIENT_ID.
            client_secret: Dropbox app secret. Falls back to DROPBOX_CLIENT_SECRET.

        Returns:
            The updated, persisted credential.

        Raises:
            ValueError: If client ID/secret are not available.
            AuthError: If the authorization flow fails.
        """
        client_id = client_id or os.environ.get(CLIENT_ID_ENV_VAR, "")
        client_secret = client_secret or os.environ.get(CLIENT_SECRET_ENV_VAR, "")
        if not client_id or not client_secret:
            raise ValueError(
                "client_id and client_secret are required "
                f"(provide as parameters or set {CLIENT_ID_ENV_VAR} and "
                f"{CLIENT_SECRET_ENV_VAR})"
            )

        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(None, self._run_oauth_flow, client_id, client_secret)

        self.credential.client_id = client_id
        self.credential.client_secret = client_secret
        self.credential.update_tokens(result)
        self.storage.save(self.credential)

        logger.info("Dropbox authorization completed")
        return self.credential

    async def refresh_if_needed(self) -> bool:
        """Refresh the access token if it expires within five minutes.

        Returns:
            True if a refresh happened, False if none was needed.

        Raises:
            TokenRefreshError: If the refresh grant fails.
        """
        if not self.credential.needs_refresh():
            return False

        logger.info("Access token near expiry, refreshing...")
        loop = asyncio.get_running_loop()
        result = await loop.run_in_executor(
            None,
            refresh_access_token,
            self.credential.client_id,
            self.credential.client_secret,
            self.credential.refresh_token,
        )

        self.credential.update_tokens(result)
        self.storage.save(self.credential)
        return True

    async def get_access_token(self) -> str:
        """Get a usable access token, refreshing first if necessary.

        Returns:
            Bearer token string.

        Raises:
            TokenRefreshError: If a needed refresh fails.
            NotAuthenticatedError: If no valid token is available.
        """
        await self.refresh_if_needed()

        if not self.credential.is_valid():
            raise NotAuthenticatedError(
                "invalid or expired token. Please run dropbox_auth first."
            )
        return self.credential.access_token
