"""Browser-based OAuth2 authorization code flow for Dropbox.

One call to :meth:`AuthorizationFlow.run` performs a complete attempt:

1. generate a random ``state`` value,
2. bind a callback listener on ``localhost`` with an OS-assigned port,
3. open the user's browser at the Dropbox authorization page,
4. wait until the callback delivers tokens or an error, or the deadline passes.

The listener thread and the waiting caller share a single
:class:`concurrent.futures.Future`. The first outcome set on it wins; anything
arriving afterwards is ignored. The listener is shut down and its socket closed
before :meth:`run` returns, whatever the outcome.
"""

import logging
import secrets
import socketserver
import threading
import webbrowser
from collections.abc import Callable
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from http.server import BaseHTTPRequestHandler, HTTPServer
from urllib.parse import parse_qs, urlencode, urlparse

from dropbox_mcp.auth.models import AuthResult
from dropbox_mcp.auth.token_client import AUTHORIZE_URL, exchange_code
from dropbox_mcp.exceptions import (
    AuthorizationDeniedError,
    AuthorizationTimeoutError,
    BrowserLaunchError,
    ListenerError,
    StateMismatchError,
    TokenExchangeError,
)

logger = logging.getLogger(__name__)

LISTEN_HOST = "localhost"
CALLBACK_PATH = "/callback"
AUTH_TIMEOUT_SECONDS = 300.0

SUCCESS_PAGE = b"""<!DOCTYPE html>
<html>
<head>
    <title>Authentication Successful</title>
    <style>
        body { font-family: Arial, sans-serif; text-align: center; padding: 50px; }
        .success { color: #4CAF50; }
    </style>
</head>
<body>
    <h1 class="success">Authentication Successful!</h1>
    <p>You can now close this window and return to your terminal.</p>
    <script>setTimeout(function(){ window.close(); }, 3000);</script>
</body>
</html>"""


def generate_state() -> str:
    """Return a 16-byte random state value, hex-encoded (32 characters)."""
    return secrets.token_hex(16)


def build_authorization_url(client_id: str, redirect_uri: str, state: str) -> str:
    """Build the Dropbox authorization URL.

    ``token_access_type=offline`` makes Dropbox issue a refresh token.
    """
    params = {
        "client_id": client_id,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "state": state,
        "token_access_type": "offline",
    }
    return f"{AUTHORIZE_URL}?{urlencode(params)}"


class _CallbackServer(HTTPServer):
    """Local listener bound to one authorization attempt."""

    def __init__(
        self,
        expected_state: str,
        outcome: "Future[AuthResult]",
        exchange: Callable[[str, str], AuthResult],
    ) -> None:
        self.expected_state = expected_state
        self.outcome = outcome
        self.exchange = exchange
        self.redirect_uri = ""
        super().__init__((LISTEN_HOST, 0), _CallbackHandler)

    def server_bind(self) -> None:
        # Skip HTTPServer's reverse-DNS lookup of the host name
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = str(host)
        self.server_port = port

    @property
    def port(self) -> int:
        return int(self.server_address[1])

    def deliver(self, result: AuthResult | None = None, error: Exception | None = None) -> None:
        """Complete the outcome unless an earlier callback already did."""
        if self.outcome.done():
            logger.debug("Ignoring OAuth callback after the flow completed")
            return
        if error is not None:
            self.outcome.set_exception(error)
        else:
            self.outcome.set_result(result)


class _CallbackHandler(BaseHTTPRequestHandler):
    """HTTP handler for the OAuth redirect."""

    server: _CallbackServer

    def log_message(self, format: str, *args) -> None:
        """Suppress HTTP server logs."""
        pass

    def _respond(self, status: int, body: bytes, content_type: str = "text/plain") -> None:
        self.send_response(status)
        self.send_header("Content-Type", content_type)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def do_GET(self) -> None:
        """Handle GET request from the OAuth redirect."""
        parsed = urlparse(self.path)

        if parsed.path != CALLBACK_PATH:
            self._respond(404, b"Not Found")
            return

        query = parse_qs(parsed.query)

        def param(name: str) -> str:
            return query.get(name, [""])[0]

        # Outcomes are delivered before responding; the browser may already be gone
        if param("state") != self.server.expected_state:
            self.server.deliver(error=StateMismatchError("state mismatch"))
            self._respond(400, b"State mismatch")
            return

        code = param("code")
        if not code:
            description = param("error_description") or param("error")
            self.server.deliver(error=AuthorizationDeniedError(description))
            self._respond(400, b"Authorization failed")
            return

        try:
            result = self.server.exchange(code, self.server.redirect_uri)
        except TokenExchangeError as e:
            self.server.deliver(error=e)
            self._respond(500, b"Token exchange failed")
            return
        except Exception as e:
            logger.exception("Unexpected error during token exchange")
            error = TokenExchangeError(f"token exchange failed: {e}")
            error.__cause__ = e
            self.server.deliver(error=error)
            self._respond(500, b"Token exchange failed")
            return

        self.server.deliver(result=result)
        self._respond(200, SUCCESS_PAGE, content_type="text/html")


class AuthorizationFlow:
    """A single browser authorization attempt.

    Attributes:
        client_id: Dropbox app key.
        timeout: Seconds to wait for the callback.
        authorization_url: URL opened in the browser (set during :meth:`run`).
        port: Port the callback listener bound to (set during :meth:`run`).

    Example:
        ```python
        flow = AuthorizationFlow(client_id="abc", client_secret="xyz")
        result = flow.run()  # blocks until callback, error or timeout
        ```
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        timeout: float = AUTH_TIMEOUT_SECONDS,
        open_browser: Callable[[str], bool] = webbrowser.open,
    ) -> None:
        self.client_id = client_id
        self._client_secret = client_secret
        self.timeout = timeout
        self._open_browser = open_browser
        self.authorization_url: str | None = None
        self.port: int | None = None

    def _exchange(self, code: str, redirect_uri: str) -> AuthResult:
        return exchange_code(self.client_id, self._client_secret, code, redirect_uri)

    def run(self) -> AuthResult:
        """Run the flow and block until it completes.

        Returns:
            Tokens obtained from the authorization code exchange.

        Raises:
            ListenerError: If the local listener cannot be bound.
            BrowserLaunchError: If the browser cannot be opened.
            StateMismatchError: If the callback carries a foreign state.
            AuthorizationDeniedError: If the callback carries no code.
            TokenExchangeError: If the code cannot be exchanged.
            AuthorizationTimeoutError: If no callback arrives in time.
        """
        state = generate_state()
        outcome: Future[AuthResult] = Future()

        try:
            server = _CallbackServer(state, outcome, self._exchange)
        except OSError as e:
            raise ListenerError(f"failed to start local server: {e}") from e

        thread: threading.Thread | None = None
        try:
            self.port = server.port
            server.redirect_uri = f"http://localhost:{server.port}{CALLBACK_PATH}"
            self.authorization_url = build_authorization_url(
                self.client_id, server.redirect_uri, state
            )

            thread = threading.Thread(
                target=server.serve_forever,
                kwargs={"poll_interval": 0.1},
                name="dropbox-oauth-callback",
                daemon=True,
            )
            thread.start()

            logger.info(f"Waiting for Dropbox authorization on port {server.port}")
            logger.info(f"If the browser doesn't open, visit: {self.authorization_url}")
            try:
                opened = self._open_browser(self.authorization_url)
            except webbrowser.Error as e:
                raise BrowserLaunchError(f"failed to open browser: {e}") from e
            if not opened:
                raise BrowserLaunchError("failed to open browser: no usable browser found")

            try:
                return outcome.result(timeout=self.timeout)
            except FutureTimeoutError:
                raise AuthorizationTimeoutError(
                    f"authentication timeout after {self.timeout:g} seconds"
                ) from None
        finally:
            if thread is not None:
                server.shutdown()
                thread.join()
            server.server_close()
            logger.debug("OAuth callback listener closed")
