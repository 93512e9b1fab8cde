"""
OAuth configuration for Dropbox API integration.

This module provides configuration management for OAuth 2.0 authentication
with Dropbox's APIs. Configuration can be loaded from environment
variables or provided programmatically.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

from .auth_url import validate_app_key, validate_redirect_uri
from .exceptions import ConfigurationError

LOOPBACK_HOSTS = ("127.0.0.1", "localhost", "::1")

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8765/oauth/callback"
DEFAULT_TOKEN_DIR = str(Path.home() / ".dropbox_oauth")


@dataclass
class DropboxOAuthConfig:
    """
    Configuration for Dropbox OAuth 2.0 with PKCE.

    PKCE lets a native or command-line application use the authorization
    code flow without embedding a client secret, so only the app key is
    required.

    Attributes:
        app_key: Dropbox app key from the App Console
        redirect_uri: Registered redirect URI. Either a loopback URL
                      (served by the built-in callback server) or a custom
                      URL scheme delivered by the embedding application.
        authorization_url: Dropbox OAuth authorization endpoint
        token_url: Dropbox OAuth token endpoint
        token_dir: Directory holding one token file per account
        token_access_type: "offline" to receive a refresh token
        refresh_buffer_seconds: Refresh tokens this many seconds before expiry
        redirect_timeout_seconds: How long a flow waits for the redirect
        request_timeout_seconds: HTTP timeout for token endpoint calls
    """

    # Required - from Dropbox App Console
    app_key: str

    redirect_uri: str = DEFAULT_REDIRECT_URI

    # Dropbox OAuth endpoints
    authorization_url: str = "https://www.dropbox.com/oauth2/authorize"
    token_url: str = "https://api.dropboxapi.com/oauth2/token"

    token_dir: str = DEFAULT_TOKEN_DIR
    token_access_type: str = "offline"

    refresh_buffer_seconds: int = 300  # Refresh 5 min before expiry
    redirect_timeout_seconds: float = 300
    request_timeout_seconds: float = 30

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        validate_app_key(self.app_key)
        validate_redirect_uri(self.redirect_uri)

        if self.token_access_type not in ("offline", "online", "legacy"):
            raise ConfigurationError(
                f"token_access_type must be offline, online or legacy, "
                f"got {self.token_access_type!r}"
            )

        if self.refresh_buffer_seconds < 0:
            raise ConfigurationError("refresh_buffer_seconds cannot be negative")

        if self.redirect_timeout_seconds <= 0:
            raise ConfigurationError("redirect_timeout_seconds must be positive")

        if self.is_loopback_redirect:
            port = self.callback_port
            if not (1 <= port <= 65535):
                raise ConfigurationError(
                    f"callback port must be between 1 and 65535, got {port}"
                )

    @property
    def is_loopback_redirect(self) -> bool:
        """True if the redirect URI points at a local HTTP listener."""
        parsed = urlparse(self.redirect_uri)
        return parsed.scheme == "http" and parsed.hostname in LOOPBACK_HOSTS

    @property
    def callback_host(self) -> Optional[str]:
        """Host the loopback callback server binds to."""
        return urlparse(self.redirect_uri).hostname

    @property
    def callback_port(self) -> int:
        """Port of the redirect URI (80 if not given)."""
        try:
            port = urlparse(self.redirect_uri).port
        except ValueError as e:
            raise ConfigurationError(f"Invalid redirect_uri port: {e}") from e
        return port or 80

    @property
    def callback_path(self) -> str:
        """URL path of the redirect URI."""
        return urlparse(self.redirect_uri).path or "/"

    @classmethod
    def from_env(cls) -> "DropboxOAuthConfig":
        """
        Load configuration from environment variables.

        Required environment variables:
            DROPBOX_APP_KEY: Dropbox app key

        Optional environment variables:
            DROPBOX_REDIRECT_URI: Redirect URI (default: http://127.0.0.1:8765/oauth/callback)
            DROPBOX_TOKEN_DIR: Token directory (default: ~/.dropbox_oauth)
            DROPBOX_REDIRECT_TIMEOUT: Seconds to wait for the redirect (default: 300)

        Returns:
            DropboxOAuthConfig instance

        Raises:
            ConfigurationError: If required environment variables are missing
        """
        app_key = os.environ.get("DROPBOX_APP_KEY")

        if not app_key:
            raise ConfigurationError(
                "Missing Dropbox app key. Set environment variable:\n"
                "  DROPBOX_APP_KEY=your_app_key\n"
                "\n"
                "Get an app key from: https://www.dropbox.com/developers/apps"
            )

        timeout = os.environ.get("DROPBOX_REDIRECT_TIMEOUT", "300")
        try:
            redirect_timeout = float(timeout)
        except ValueError as e:
            raise ConfigurationError(
                f"DROPBOX_REDIRECT_TIMEOUT must be a number, got {timeout!r}"
            ) from e

        return cls(
            app_key=app_key,
            redirect_uri=os.environ.get("DROPBOX_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            token_dir=os.environ.get("DROPBOX_TOKEN_DIR", DEFAULT_TOKEN_DIR),
            redirect_timeout_seconds=redirect_timeout,
        )
