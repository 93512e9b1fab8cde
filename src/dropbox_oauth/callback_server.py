"""
Loopback HTTP callback server for the Dropbox OAuth flow.

Desktop and command-line apps register a loopback redirect URI such as
``http://127.0.0.1:8765/oauth/callback``. This server listens there while a
flow is running, rebuilds the redirect URL from each request and hands it
to the flow coordinator. It only binds to the loopback interface and shuts
down when the flow ends.
"""

import html
import logging
import threading
from typing import Callable, Optional

from flask import Flask, Response, request
from werkzeug.serving import make_server

from .config import DropboxOAuthConfig
from .exceptions import ConfigurationError
from .flow_coordinator import RedirectEvent

logger = logging.getLogger(__name__)

_PAGE = """<html>
<head><title>{title}</title></head>
<body style="font-family: Arial, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px;">
    <h1 style="color: {color};">{heading}</h1>
    <p>{body}</p>
    <p style="margin-top: 30px; color: #666;">You can close this window.</p>
</body>
</html>"""


class OAuthCallbackServer:
    """
    Local HTTP server that receives the OAuth redirect.

    Args:
        config: OAuth configuration with a loopback redirect URI
        on_redirect: Called with a RedirectEvent for the full redirect URL;
                     returns True if it was consumed by the running flow.
                     Sets event.error when the redirect failed the flow.
    """

    def __init__(
        self, config: DropboxOAuthConfig, on_redirect: Callable[[RedirectEvent], bool]
    ):
        if not config.is_loopback_redirect:
            raise ConfigurationError(
                f"Callback server needs a loopback redirect URI, got {config.redirect_uri}"
            )

        self.config = config
        self.on_redirect = on_redirect
        self.app = Flask(__name__)
        self.app.logger.setLevel(logging.WARNING)  # Suppress Flask logs
        self.server = None
        self._thread: Optional[threading.Thread] = None

        self.app.add_url_rule(
            self.config.callback_path,
            "oauth_callback",
            self._handle_callback,
            methods=["GET"],
        )
        self.app.add_url_rule(
            "/oauth/status", "oauth_status", self._handle_status, methods=["GET"]
        )

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _redirect_url(self) -> str:
        """Rebuild the redirect URL as registered, plus the received query."""
        query = request.query_string.decode("utf-8")
        base = self.config.redirect_uri.split("?", 1)[0]
        return f"{base}?{query}" if query else base

    def _handle_callback(self) -> Response:
        """Handle OAuth redirect from Dropbox."""
        logger.info("Received OAuth callback")

        error = request.args.get("error")
        event = RedirectEvent(url=self._redirect_url())
        consumed = self.on_redirect(event)

        if not consumed:
            logger.warning("Callback did not match a running authorization flow")
            return Response(
                _PAGE.format(
                    title="Authorization Failed",
                    color="#d32f2f",
                    heading="❌ Authorization Failed",
                    body="No authorization is in progress for this request.",
                ),
                status=400,
                content_type="text/html",
            )

        if error:
            error_desc = request.args.get("error_description", "Unknown error")
            return Response(
                _PAGE.format(
                    title="Authorization Failed",
                    color="#d32f2f",
                    heading="❌ Authorization Failed",
                    body=f"<strong>Error:</strong> {html.escape(error)}<br>{html.escape(error_desc)}",
                ),
                status=400,
                content_type="text/html",
            )

        if event.error is not None:
            return Response(
                _PAGE.format(
                    title="Authorization Failed",
                    color="#d32f2f",
                    heading="❌ Authorization Failed",
                    body=html.escape(str(event.error)),
                ),
                status=400,
                content_type="text/html",
            )

        return Response(
            _PAGE.format(
                title="Authorization Received",
                color="#4caf50",
                heading="✅ Authorization Received",
                body="Return to the application to finish signing in.",
            ),
            status=200,
            content_type="text/html",
        )

    def _handle_status(self) -> Response:
        """Status endpoint for debugging."""
        return Response(
            '{"status": "running", "waiting_for": "oauth_callback"}',
            status=200,
            content_type="application/json",
        )

    def start(self) -> None:
        """
        Start the callback server in a background thread.

        Raises:
            OSError: If the port cannot be bound
        """
        if self.is_running:
            return

        host = self.config.callback_host
        port = self.config.callback_port
        logger.info(f"Starting OAuth callback server on {host}:{port}")

        self.server = make_server(host, port, self.app, threaded=True)
        self._thread = threading.Thread(
            target=self.server.serve_forever, name="dropbox-oauth-callback", daemon=True
        )
        self._thread.start()

        logger.info("OAuth callback server started successfully")

    def stop(self) -> None:
        """Stop the callback server and wait for its thread."""
        if self.server is None:
            return

        logger.info("OAuth callback server shutting down")
        self.server.shutdown()
        self.server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self.server = None
        self._thread = None
