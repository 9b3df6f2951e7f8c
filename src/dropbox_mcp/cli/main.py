"""Command-line interface for dropbox-mcp."""

import asyncio
import sys

import click

from dropbox_mcp.__version__ import __version__
from dropbox_mcp.exceptions import ConfigError


@click.group()
@click.version_option(version=__version__)
def main() -> None:
    """Dropbox MCP Server - Connect Claude to your Dropbox.

    This tool provides 16 tools across:
    - Authentication (browser OAuth, status check)
    - Files (list, search, metadata, download, upload)
    - File management (create folder, move, copy, delete)
    - Sharing (create, list, revoke shared links)
    - Revisions (history, restore)
    """
    pass


@main.command()
@click.option("--client-id", envvar="DROPBOX_CLIENT_ID", help="Dropbox app key")
@click.option("--client-secret", envvar="DROPBOX_CLIENT_SECRET", help="Dropbox app secret")
def setup(client_id: str | None, client_secret: str | None) -> None:
    """Set up Dropbox OAuth authentication.

    This will:
    1. Open browser for the Dropbox consent page
    2. Store tokens securely at ~/.dropbox-mcp/config.json

    Requires:
    - DROPBOX_CLIENT_ID environment variable or --client-id option
    - DROPBOX_CLIENT_SECRET environment variable or --client-secret option
    """
    from dropbox_mcp.auth import OAuthManager

    try:
        manager = OAuthManager()
    except ConfigError as e:
        click.echo(f"❌ Error: {e}")
        click.echo("Delete the file and run 'dropbox-mcp setup' again.")
        sys.exit(1)

    # Check if already authenticated
    if manager.has_valid_tokens():
        click.echo("✓ Already authenticated!")
        click.echo(f"Token stored at: {manager.token_path}")
        click.echo("")

        if not click.confirm("Re-authenticate?"):
            return

    # Validate credentials
    if not client_id or not client_secret:
        click.echo("❌ Error: OAuth client credentials required")
        click.echo("")
        click.echo("Set environment variables:")
        click.echo("  export DROPBOX_CLIENT_ID='your-app-key'")
        click.echo("  export DROPBOX_CLIENT_SECRET='your-app-secret'")
        click.echo("")
        click.echo("Or pass as options:")
        click.echo("  dropbox-mcp setup --client-id=... --client-secret=...")
        sys.exit(1)

    # Run authentication
    click.echo("Starting OAuth authentication flow...")
    click.echo("Browser will open for Dropbox consent...")
    click.echo("")

    try:
        asyncio.run(manager.authenticate(client_id=client_id, client_secret=client_secret))
        click.echo("✓ Authentication successful!")
        click.echo(f"Token stored at: {manager.token_path}")
        click.echo("")
        click.echo("Run 'dropbox-mcp doctor' to verify setup.")
    except Exception as e:
        click.echo(f"❌ Authentication failed: {e}")
        sys.exit(1)


@main.command()
def mcp() -> None:
    """Start the MCP server for Claude Desktop integration.

    Starts the stdio MCP server. Authentication is not required to start;
    the dropbox_auth tool can run the browser flow from inside the client.

    This command is typically invoked by Claude Desktop via the MCP protocol.
    """
    from dropbox_mcp.auth import OAuthManager, TokenStatus
    from dropbox_mcp.server import main as server_main

    try:
        status = OAuthManager().get_status()
    except ConfigError as e:
        click.echo(f"❌ Credential file corrupted: {e}", err=True)
        click.echo("Run 'dropbox-mcp setup' to re-authenticate.", err=True)
        sys.exit(1)

    if status == TokenStatus.MISSING:
        click.echo("⚠️  Not authenticated yet.", err=True)
        click.echo("Use the dropbox_auth tool or run 'dropbox-mcp setup'.", err=True)

    # Start the MCP server (runs indefinitely)
    try:
        click.echo("Starting Dropbox MCP server...", err=True)
        click.echo("Server provides 16 tools for Claude Desktop", err=True)
        click.echo("", err=True)
        server_main()
    except KeyboardInterrupt:
        click.echo("\nServer stopped.", err=True)
    except Exception as e:
        click.echo(f"❌ Server error: {e}", err=True)
        sys.exit(1)


@main.command()
def doctor() -> None:
    """Check installation and authentication status.

    Verifies:
    1. Credential file is readable
    2. Token validity
    """
    from dropbox_mcp.auth import OAuthManager, TokenStatus

    click.echo("Dropbox MCP Status:")
    click.echo("")

    click.echo("Authentication:")
    try:
        manager = OAuthManager()
    except ConfigError as e:
        click.echo(f"  ❌ Credential file corrupted: {e}")
        click.echo("")
        click.echo("Run 'dropbox-mcp setup' to re-authenticate.")
        sys.exit(1)

    click.echo(f"  Token file: {manager.token_path}")
    status = manager.get_status()
    credential = manager.credential

    if status == TokenStatus.MISSING:
        click.echo("  ❌ Not authenticated")
        click.echo("")
        click.echo("Run 'dropbox-mcp setup' to authenticate.")
        sys.exit(1)
    elif status == TokenStatus.EXPIRED:
        if credential.refresh_token:
            click.echo("  ⚠️  Token expired (can be refreshed)")
            click.echo("")
            click.echo("Token will refresh automatically on use.")
        else:
            click.echo("  ❌ Token expired and no refresh token is stored")
            click.echo("")
            click.echo("Run 'dropbox-mcp setup' to re-authenticate.")
            sys.exit(1)
    elif status == TokenStatus.VALID:
        click.echo("  ✓ Authenticated")
        if credential.expires_at:
            expires = credential.expires_at.strftime("%Y-%m-%d %H:%M:%S UTC")
            click.echo(f"  Token expires: {expires}")
        click.echo(f"  Refresh token: {'stored' if credential.refresh_token else 'none'}")

    click.echo("")
    click.echo("✓ Ready to use!")


if __name__ == "__main__":
    main()
