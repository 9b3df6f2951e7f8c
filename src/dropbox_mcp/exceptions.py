"""Exception hierarchy for dropbox-mcp.

Authorization failures are split by kind so callers can decide whether to
retry the whole browser flow:

- transport problems (browser launch, local listener) are fatal,
- protocol problems (state mismatch, denied consent, failed code exchange)
  subclass :class:`AuthorizationError`,
- a missing callback raises :class:`AuthorizationTimeoutError`, which is
  not an :class:`AuthorizationError`.
"""


class DropboxMCPError(Exception):
    """Base exception for all dropbox-mcp errors."""


class ConfigError(DropboxMCPError):
    """The persisted credential file could not be read or written."""


class AuthError(DropboxMCPError):
    """OAuth authorization or token lifecycle failed."""


class BrowserLaunchError(AuthError):
    """The system browser could not be opened for authorization."""


class ListenerError(AuthError):
    """The local OAuth callback listener could not be started."""


class AuthorizationError(AuthError):
    """The provider callback did not produce usable tokens."""


class StateMismatchError(AuthorizationError):
    """Callback ``state`` did not match the in-flight request."""


class AuthorizationDeniedError(AuthorizationError):
    """The provider redirected back without an authorization code."""

    def __init__(self, description: str = "") -> None:
        super().__init__(f"authorization failed: {description}")
        self.description = description


class TokenExchangeError(AuthorizationError):
    """Exchanging the authorization code for tokens failed."""


class AuthorizationTimeoutError(AuthError):
    """No callback arrived before the authorization deadline."""


class TokenRefreshError(AuthError):
    """Refreshing the access token failed."""


class NotAuthenticatedError(AuthError):
    """No usable access token is stored."""


class UploadError(DropboxMCPError):
    """A chunked upload session failed and was abandoned."""


class ApiError(DropboxMCPError):
    """The Dropbox API returned an error response.

    Attributes:
        endpoint: API route that failed (e.g. ``files/list_folder``).
        status_code: HTTP status returned by Dropbox.
        error_summary: Dropbox ``error_summary`` string, if provided.
    """

    def __init__(self, endpoint: str, status_code: int, error_summary: str = "") -> None:
        detail = error_summary or f"HTTP {status_code}"
        super().__init__(f"{endpoint} failed: {detail}")
        self.endpoint = endpoint
        self.status_code = status_code
        self.error_summary = error_summary
