"""Unit tests for credential models.

Tests cover validity, refresh timing, token updates and status reporting.
"""

from datetime import datetime, timedelta, timezone

import pytest

from dropbox_mcp.auth.models import AuthResult, Credential, TokenStatus

NOW = datetime(2024, 6, 1, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestCredentialValidity:
    """Tests for Credential.is_valid()."""

    def test_should_be_invalid_without_access_token(self) -> None:
        """Verify an empty credential is not valid."""
        assert Credential().is_valid(NOW) is False

    def test_should_be_valid_before_expiry(self) -> None:
        """Verify a token expiring in the future is valid."""
        credential = Credential(access_token="tok", expires_at=NOW + timedelta(minutes=1))
        assert credential.is_valid(NOW) is True

    def test_should_be_invalid_at_expiry(self) -> None:
        """Verify a token is invalid once its expiry is reached."""
        credential = Credential(access_token="tok", expires_at=NOW)
        assert credential.is_valid(NOW) is False

    def test_should_be_valid_without_expiry(self) -> None:
        """Verify a token with no expiry never expires."""
        assert Credential(access_token="tok").is_valid(NOW) is True

    def test_should_treat_naive_expiry_as_utc(self) -> None:
        """Verify naive timestamps from older files compare as UTC."""
        credential = Credential(access_token="tok", expires_at=datetime(2024, 6, 1, 13, 0, 0))
        assert credential.expires_at.tzinfo is not None
        assert credential.is_valid(NOW) is True


@pytest.mark.unit
class TestCredentialNeedsRefresh:
    """Tests for Credential.needs_refresh()."""

    def test_should_refresh_within_five_minutes_of_expiry(self) -> None:
        """Verify a token expiring in four minutes needs refresh."""
        credential = Credential(
            access_token="tok",
            refresh_token="ref",
            expires_at=NOW + timedelta(minutes=4),
        )
        assert credential.needs_refresh(NOW) is True

    def test_should_not_refresh_with_ample_lifetime(self) -> None:
        """Verify a token expiring in ten minutes does not need refresh."""
        credential = Credential(
            access_token="tok",
            refresh_token="ref",
            expires_at=NOW + timedelta(minutes=10),
        )
        assert credential.needs_refresh(NOW) is False

    def test_should_refresh_expired_token(self) -> None:
        """Verify an already expired token needs refresh."""
        credential = Credential(
            access_token="tok",
            refresh_token="ref",
            expires_at=NOW - timedelta(hours=1),
        )
        assert credential.needs_refresh(NOW) is True

    def test_should_not_refresh_without_refresh_token(self) -> None:
        """Verify refresh is impossible without a refresh token."""
        credential = Credential(access_token="tok", expires_at=NOW - timedelta(hours=1))
        assert credential.needs_refresh(NOW) is False

    def test_should_not_refresh_without_expiry(self) -> None:
        """Verify a non-expiring token never needs refresh."""
        credential = Credential(access_token="tok", refresh_token="ref")
        assert credential.needs_refresh(NOW) is False


@pytest.mark.unit
class TestCredentialUpdateTokens:
    """Tests for Credential.update_tokens()."""

    def test_should_replace_all_tokens(self) -> None:
        """Verify access token, refresh token and expiry are replaced."""
        credential = Credential(access_token="old", refresh_token="old_ref")
        credential.update_tokens(
            AuthResult(access_token="new", refresh_token="new_ref", expires_at=NOW)
        )

        assert credential.access_token == "new"
        assert credential.refresh_token == "new_ref"
        assert credential.expires_at == NOW

    def test_should_keep_refresh_token_when_omitted(self) -> None:
        """Verify refresh responses without a refresh token keep the old one."""
        credential = Credential(access_token="old", refresh_token="keep_me")
        credential.update_tokens(AuthResult(access_token="new", expires_at=NOW))

        assert credential.access_token == "new"
        assert credential.refresh_token == "keep_me"

    def test_should_keep_client_credentials(self) -> None:
        """Verify app credentials survive a token update."""
        credential = Credential(client_id="id", client_secret="secret")  # pragma: allowlist secret
        credential.update_tokens(AuthResult(access_token="new"))

        assert credential.client_id == "id"
        assert credential.client_secret == "secret"  # pragma: allowlist secret


@pytest.mark.unit
class TestCredentialStatus:
    """Tests for Credential.status()."""

    def test_should_report_missing(self) -> None:
        assert Credential().status(NOW) == TokenStatus.MISSING

    def test_should_report_valid(self) -> None:
        credential = Credential(access_token="tok", expires_at=NOW + timedelta(hours=1))
        assert credential.status(NOW) == TokenStatus.VALID

    def test_should_report_expired(self) -> None:
        credential = Credential(access_token="tok", expires_at=NOW - timedelta(seconds=1))
        assert credential.status(NOW) == TokenStatus.EXPIRED
