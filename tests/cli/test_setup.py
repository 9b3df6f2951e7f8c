"""CLI tests for the setup, doctor and mcp commands."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from dropbox_mcp.__version__ import __version__
from dropbox_mcp.auth.models import Credential
from dropbox_mcp.cli.main import main


@pytest.fixture
def config_env(temp_token_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the CLI at a temporary credential file."""
    monkeypatch.setenv("DROPBOX_MCP_CONFIG", str(temp_token_path))
    return temp_token_path


@pytest.mark.unit
class TestSetupCommand:
    """Tests for the setup CLI command."""

    def test_should_show_error_without_credentials(
        self, cli_runner: CliRunner, config_env: Path
    ) -> None:
        """Verify error shown when client ID/secret not provided."""
        result = cli_runner.invoke(main, ["setup"])

        assert result.exit_code == 1
        assert "OAuth client credentials required" in result.output

    def test_should_run_authentication_with_credentials(self, cli_runner: CliRunner) -> None:
        """Verify authentication runs when credentials provided."""
        with patch("dropbox_mcp.auth.OAuthManager") as mock_manager_class:
            mock_manager = MagicMock()
            mock_manager.has_valid_tokens.return_value = False
            mock_manager.authenticate = AsyncMock()
            mock_manager.token_path = "/tmp/config.json"
            mock_manager_class.return_value = mock_manager

            result = cli_runner.invoke(
                main,
                [
                    "setup",
                    "--client-id=test_id",
                    "--client-secret=test_secret",
                ],
            )

            mock_manager.authenticate.assert_called_once_with(
                client_id="test_id",
                client_secret="test_secret",  # pragma: allowlist secret
            )
            assert "Browser will open" in result.output
            assert "Authentication successful" in result.output

    def test_should_read_credentials_from_environment(
        self, cli_runner: CliRunner, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Verify DROPBOX_CLIENT_ID/SECRET feed the options."""
        monkeypatch.setenv("DROPBOX_CLIENT_ID", "env_id")
        monkeypatch.setenv("DROPBOX_CLIENT_SECRET", "env_secret")
        with patch("dropbox_mcp.auth.OAuthManager") as mock_manager_class:
            mock_manager = MagicMock()
            mock_manager.has_valid_tokens.return_value = False
            mock_manager.authenticate = AsyncMock()
            mock_manager_class.return_value = mock_manager

            cli_runner.invoke(main, ["setup"])

            mock_manager.authenticate.assert_called_once_with(
                client_id="env_id",
                client_secret="env_secret",  # pragma: allowlist secret
            )

    def test_should_report_authentication_failure(self, cli_runner: CliRunner) -> None:
        """Verify flow errors are reported with a non-zero exit."""
        with patch("dropbox_mcp.auth.OAuthManager") as mock_manager_class:
            mock_manager = MagicMock()
            mock_manager.has_valid_tokens.return_value = False
            mock_manager.authenticate = AsyncMock(
                side_effect=RuntimeError("authentication timeout after 300 seconds")
            )
            mock_manager_class.return_value = mock_manager

            result = cli_runner.invoke(main, ["setup", "--client-id=a", "--client-secret=b"])

            assert result.exit_code == 1
            assert "Authentication failed: authentication timeout" in result.output

    def test_should_skip_when_already_authenticated(
        self, cli_runner: CliRunner, config_env: Path, valid_credential: Credential, token_storage
    ) -> None:
        """Verify declining re-authentication leaves tokens alone."""
        token_storage.save(valid_credential)

        result = cli_runner.invoke(main, ["setup"], input="n\n")

        assert result.exit_code == 0
        assert "Already authenticated" in result.output


@pytest.mark.unit
class TestDoctorCommand:
    """Tests for the doctor CLI command."""

    def test_should_report_missing_tokens(self, cli_runner: CliRunner, config_env: Path) -> None:
        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "Not authenticated" in result.output

    def test_should_report_valid_tokens(
        self, cli_runner: CliRunner, config_env: Path, valid_credential: Credential, token_storage
    ) -> None:
        token_storage.save(valid_credential)

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 0
        assert "✓ Authenticated" in result.output
        assert "Refresh token: stored" in result.output

    def test_should_report_refreshable_expired_tokens(
        self,
        cli_runner: CliRunner,
        config_env: Path,
        expired_credential: Credential,
        token_storage,
    ) -> None:
        token_storage.save(expired_credential)

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 0
        assert "Token expired (can be refreshed)" in result.output

    def test_should_report_corrupt_file(self, cli_runner: CliRunner, config_env: Path) -> None:
        config_env.parent.mkdir(parents=True)
        config_env.write_text("{{{")

        result = cli_runner.invoke(main, ["doctor"])

        assert result.exit_code == 1
        assert "Credential file corrupted" in result.output


@pytest.mark.unit
class TestMcpCommand:
    """Tests for the mcp CLI command."""

    def test_should_start_server(self, cli_runner: CliRunner, config_env: Path) -> None:
        with patch("dropbox_mcp.server.main") as mock_server_main:
            result = cli_runner.invoke(main, ["mcp"])

        assert result.exit_code == 0
        mock_server_main.assert_called_once_with()

    def test_should_print_version(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(main, ["--version"])

        assert result.exit_code == 0
        assert __version__ in result.output
