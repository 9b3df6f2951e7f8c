"""Requests against the Dropbox OAuth2 token endpoint.

Both grants used by dropbox-mcp go through :func:`_token_request`:

- ``authorization_code``: called from the callback listener thread once the
  browser redirect delivers a code.
- ``refresh_token``: called before API use when the access token is about to
  expire.

These are plain blocking calls on a short-lived ``httpx.Client``; async callers
run them in an executor.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx

from dropbox_mcp.auth.models import AuthResult
from dropbox_mcp.exceptions import TokenExchangeError, TokenRefreshError

logger = logging.getLogger(__name__)

AUTHORIZE_URL = "https://www.dropbox.com/oauth2/authorize"
TOKEN_URL = "https://api.dropboxapi.com/oauth2/token"  # nosec B105 - endpoint URL, not a credential

TOKEN_REQUEST_TIMEOUT = 30.0


def _parse_token_response(payload: dict[str, Any]) -> AuthResult:
    """Convert a token endpoint JSON body to an AuthResult.

    Args:
        payload: Decoded JSON response.

    Returns:
        AuthResult with an absolute ``expires_at`` computed from ``expires_in``.

    Raises:
        KeyError: If ``access_token`` is missing.
        ValueError: If the body is not a JSON object.
    """
    if not isinstance(payload, dict):
        raise ValueError(f"token response is not a JSON object: {payload!r}")

    expires_at: datetime | None = None
    expires_in = payload.get("expires_in")
    if expires_in is not None:
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=int(expires_in))

    return AuthResult(
        access_token=payload["access_token"],
        refresh_token=payload.get("refresh_token") or "",
        expires_at=expires_at,
    )


def _token_request(data: dict[str, str], client: httpx.Client | None) -> AuthResult:
    """POST a grant to the token endpoint.

    Args:
        data: Form fields including ``grant_type``.
        client: Optional client to use (tests inject a mock transport).

    Returns:
        Parsed AuthResult.

    Raises:
        httpx.HTTPError: On transport failure or non-2xx status.
        KeyError, ValueError: If the response body is not a token payload.
    """
    owns_client = client is None
    http = client or httpx.Client(timeout=TOKEN_REQUEST_TIMEOUT)
    try:
        response = http.post(TOKEN_URL, data=data, headers={"Accept": "application/json"})
        response.raise_for_status()
        return _parse_token_response(response.json())
    finally:
        if owns_client:
            http.close()


def _describe_http_error(error: Exception) -> str:
    """Build a readable message, including the provider's error body if any."""
    if isinstance(error, httpx.HTTPStatusError):
        try:
            body = error.response.json()
            detail = body.get("error_description") or body.get("error") or ""
        except ValueError:
            detail = error.response.text
        return f"HTTP {error.response.status_code}: {detail}".rstrip(": ")
    return str(error)


def exchange_code(
    client_id: str,
    client_secret: str,
    code: str,
    redirect_uri: str,
    client: httpx.Client | None = None,
) -> AuthResult:
    """Exchange an authorization code for access and refresh tokens.

    Args:
        client_id: Dropbox app key.
        client_secret: Dropbox app secret.
        code: Code received on the callback.
        redirect_uri: The exact redirect URI used in the authorization request.
        client: Optional httpx client.

    Returns:
        AuthResult with access token, refresh token and expiry.

    Raises:
        TokenExchangeError: If the exchange fails for any reason.
    """
    data = {
        "grant_type": "authorization_code",
        "code": code,
        "redirect_uri": redirect_uri,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    try:
        return _token_request(data, client)
    except (httpx.HTTPError, KeyError, ValueError) as e:
        raise TokenExchangeError(f"token exchange failed: {_describe_http_error(e)}") from e


def refresh_access_token(
    client_id: str,
    client_secret: str,
    refresh_token: str,
    client: httpx.Client | None = None,
) -> AuthResult:
    """Obtain a new access token using the refresh grant.

    Args:
        client_id: Dropbox app key.
        client_secret: Dropbox app secret.
        refresh_token: Stored offline refresh token.
        client: Optional httpx client.

    Returns:
        AuthResult. ``refresh_token`` is usually empty because Dropbox does
        not rotate refresh tokens.

    Raises:
        TokenRefreshError: On network failure or an invalid grant.
    """
    data = {
        "grant_type": "refresh_token",
        "refresh_token": refresh_token,
        "client_id": client_id,
        "client_secret": client_secret,
    }
    try:
        result = _token_request(data, client)
    except (httpx.HTTPError, KeyError, ValueError) as e:
        raise TokenRefreshError(f"failed to refresh token: {_describe_http_error(e)}") from e

    logger.info("Refreshed Dropbox access token")
    return result
