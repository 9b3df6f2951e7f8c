"""Credential models for Dropbox OAuth.

The persisted :class:`Credential` holds exactly five fields: the app's client
id and secret plus the current access token, refresh token and expiry.
"""

from datetime import datetime, timedelta, timezone
from enum import Enum

from pydantic import BaseModel, field_validator

# Refresh this long before the access token actually expires
REFRESH_MARGIN = timedelta(minutes=5)


def utcnow() -> datetime:
    """Return the current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class TokenStatus(str, Enum):
    """Summary of the stored credential's usability."""

    VALID = "valid"
    EXPIRED = "expired"
    MISSING = "missing"


class AuthResult(BaseModel):
    """Tokens returned by the authorization code exchange or a refresh."""

    access_token: str
    refresh_token: str = ""
    expires_at: datetime | None = None


class Credential(BaseModel):
    """Dropbox app credentials and the current OAuth tokens.

    Attributes:
        client_id: Dropbox app key.
        client_secret: Dropbox app secret.
        access_token: Short-lived bearer token ("" when not authenticated).
        refresh_token: Long-lived offline refresh token.
        expires_at: Absolute expiry of ``access_token``; None means no expiry.
    """

    client_id: str = ""
    client_secret: str = ""
    access_token: str = ""
    refresh_token: str = ""
    expires_at: datetime | None = None

    @field_validator("expires_at")
    @classmethod
    def _ensure_timezone(cls, value: datetime | None) -> datetime | None:
        # Older files may contain naive timestamps; treat them as UTC
        if value is not None and value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value

    def is_valid(self, now: datetime | None = None) -> bool:
        """Check whether the access token can be used right now.

        Args:
            now: Reference time, defaults to the current UTC time.

        Returns:
            True if an access token exists and has not expired.
        """
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return (now or utcnow()) < self.expires_at

    def needs_refresh(self, now: datetime | None = None) -> bool:
        """Check whether the access token expires within the refresh margin.

        Args:
            now: Reference time, defaults to the current UTC time.

        Returns:
            True if a refresh token exists and expiry is less than
            five minutes away (or already past).
        """
        if not self.refresh_token or self.expires_at is None:
            return False
        return (now or utcnow()) + REFRESH_MARGIN > self.expires_at

    def update_tokens(self, result: AuthResult) -> None:
        """Apply freshly issued tokens.

        The refresh token is only replaced when the provider returned a new
        one; refresh responses normally omit it.
        """
        self.access_token = result.access_token
        if result.refresh_token:
            self.refresh_token = result.refresh_token
        self.expires_at = result.expires_at

    def status(self, now: datetime | None = None) -> TokenStatus:
        """Return the :class:`TokenStatus` for this credential."""
        if not self.access_token:
            return TokenStatus.MISSING
        if self.is_valid(now):
            return TokenStatus.VALID
        return TokenStatus.EXPIRED
