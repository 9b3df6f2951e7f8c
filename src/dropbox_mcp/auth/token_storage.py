"""JSON-based credential storage for Dropbox MCP.

Storage Location: ~/.dropbox-mcp/config.json (override with DROPBOX_MCP_CONFIG)

The file holds a single :class:`~dropbox_mcp.auth.models.Credential` record:
client id/secret plus the current access token, refresh token and expiry.
It is written atomically (temp file + rename) with owner-only permissions.
No encryption is applied; protect the home directory accordingly.
"""

import json
import logging
import os
from pathlib import Path

from pydantic import ValidationError

from dropbox_mcp.auth.models import Credential
from dropbox_mcp.exceptions import ConfigError

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "DROPBOX_MCP_CONFIG"
CREDENTIALS_DIR = Path.home() / ".dropbox-mcp"
CONFIG_FILE = CREDENTIALS_DIR / "config.json"


def get_token_path() -> Path:
    """Get the credential file path.

    Returns:
        Path from DROPBOX_MCP_CONFIG if set, otherwise ~/.dropbox-mcp/config.json.
    """
    override = os.environ.get(CONFIG_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return CONFIG_FILE


class TokenStorage:
    """Durable holder of the Dropbox :class:`Credential`.

    The store has no in-memory cache; callers load once at startup, mutate the
    returned object and call :meth:`save` after every change.

    Attributes:
        token_path: Path to the credential JSON file.

    Example:
        ```python
        storage = TokenStorage()
        credential = storage.load()
        credential.update_tokens(result)
        storage.save(credential)
        ```
    """

    def __init__(self, token_path: Path | None = None) -> None:
        """Initialize credential storage.

        Args:
            token_path: Custom path for the credential file. Defaults to
                :func:`get_token_path`.
        """
        self.token_path = token_path or get_token_path()
        self.credentials_dir = self.token_path.parent

    def _ensure_credentials_dir(self) -> None:
        """Create credentials directory with secure permissions if needed.

        An existing directory is only tightened when it is the default
        ~/.dropbox-mcp; a custom location may be shared with other files.
        """
        if not self.credentials_dir.exists():
            self.credentials_dir.mkdir(parents=True, mode=0o700)
        elif self.credentials_dir == CREDENTIALS_DIR:
            self.credentials_dir.chmod(0o700)

    def exists(self) -> bool:
        """Return True if a credential file has been written."""
        return self.token_path.exists()

    def load(self) -> Credential:
        """Load the stored credential.

        Returns:
            The stored Credential, or an empty one if no file exists yet.

        Raises:
            ConfigError: If the file exists but cannot be read or parsed.
        """
        if not self.token_path.exists():
            return Credential()

        try:
            with open(self.token_path) as f:
                data = json.load(f)
            return Credential.model_validate(data)
        except (OSError, json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"failed to read credential file {self.token_path}: {e}") from e

    def save(self, credential: Credential) -> None:
        """Persist the credential as a single atomic write.

        Args:
            credential: Credential to store.

        Raises:
            ConfigError: If the file cannot be written.
        """
        tmp_path = self.token_path.with_suffix(self.token_path.suffix + ".tmp")
        try:
            self._ensure_credentials_dir()
            # Create with 0600 so the secret is never world-readable, even briefly
            fd = os.open(tmp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(credential.model_dump_json(indent=2))
            os.replace(tmp_path, self.token_path)
            self.token_path.chmod(0o600)
        except OSError as e:
            raise ConfigError(f"failed to write credential file {self.token_path}: {e}") from e

        logger.debug(f"Saved credentials to {self.token_path}")
