"""
Redirect URL interception.

An interceptor recognizes the redirect the authorization server sends the
user back to and pulls the authorization code and state out of it. Matching
is exact on scheme, host, port and path: a URL that merely starts with the
registered redirect URI is not a match, which blocks redirect injection.
"""

import logging
from dataclasses import dataclass
from typing import Optional
from urllib.parse import parse_qs, urlparse

from .auth_url import validate_redirect_uri
from .config import LOOPBACK_HOSTS
from .exceptions import AuthorizationError, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class RedirectParams:
    """
    Parameters carried by an authorization redirect.

    Attributes:
        code: Authorization code (if the user approved)
        state: State nonce echoed back by the authorization server
        error: OAuth error code (if authorization failed)
        error_description: Human-readable error description
    """

    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None

    @property
    def is_error(self) -> bool:
        return self.error is not None


def _normalize_path(path: str) -> str:
    return path or "/"


class RedirectInterceptor:
    """
    Base interceptor for a registered redirect URI.

    Subclasses restrict which redirect URIs they accept; the matching and
    extraction rules are shared.
    """

    def __init__(self, redirect_uri: str):
        validate_redirect_uri(redirect_uri)
        self.redirect_uri = redirect_uri
        self._expected = urlparse(redirect_uri)

    def matches(self, url: str) -> bool:
        """
        Check whether a URL is a redirect to the registered URI.

        Args:
            url: Incoming URL

        Returns:
            True only if scheme, userinfo, host, port and path all match exactly
        """
        if not url:
            return False
        try:
            parsed = urlparse(url)
            port = parsed.port
            expected_port = self._expected.port
        except ValueError:
            return False

        return (
            parsed.scheme.lower() == self._expected.scheme.lower()
            and parsed.username == self._expected.username
            and parsed.password == self._expected.password
            and (parsed.hostname or "") == (self._expected.hostname or "")
            and port == expected_port
            and _normalize_path(parsed.path) == _normalize_path(self._expected.path)
        )

    def extract(self, url: str) -> RedirectParams:
        """
        Extract code/state (or error) from a matching redirect URL.

        Query parameters take precedence; the fragment is consulted as a
        fallback because some platforms deliver parameters there.

        Raises:
            AuthorizationError: If the URL does not match, or carries
                                neither a code nor an error
        """
        if not self.matches(url):
            raise AuthorizationError(
                f"URL does not match redirect URI {self.redirect_uri}"
            )

        parsed = urlparse(url)
        query = parse_qs(parsed.query) or parse_qs(parsed.fragment)

        def first(name: str) -> Optional[str]:
            values = query.get(name)
            return values[0] if values else None

        params = RedirectParams(
            code=first("code"),
            state=first("state"),
            error=first("error"),
            error_description=first("error_description"),
        )

        if not params.code and not params.error:
            raise AuthorizationError("No authorization code in redirect")

        return params


class URLSchemeInterceptor(RedirectInterceptor):
    """
    Interceptor for a custom URL scheme (e.g. ``db-<app_key>://2/token``).

    The embedding application receives the URL through its platform
    URL-open handler and hands it to the coordinator.
    """

    def __init__(self, redirect_uri: str):
        super().__init__(redirect_uri)
        if self._expected.scheme.lower() in ("http", "https"):
            raise ConfigurationError(
                f"URL scheme interceptor needs a custom scheme, got {redirect_uri}"
            )


class LoopbackInterceptor(RedirectInterceptor):
    """Interceptor for a loopback HTTP listener (http://127.0.0.1:<port>/path)."""

    def __init__(self, redirect_uri: str):
        super().__init__(redirect_uri)
        if self._expected.scheme != "http" or self._expected.hostname not in LOOPBACK_HOSTS:
            raise ConfigurationError(
                f"Loopback interceptor needs an http loopback URI, got {redirect_uri}"
            )


def interceptor_for(redirect_uri: str) -> RedirectInterceptor:
    """Pick the interceptor variant for a redirect URI."""
    parsed = urlparse(redirect_uri)
    scheme = parsed.scheme.lower()
    if scheme == "http" and parsed.hostname in LOOPBACK_HOSTS:
        return LoopbackInterceptor(redirect_uri)
    if scheme in ("http", "https"):
        # Hosted redirect page; the application forwards the URL itself
        return RedirectInterceptor(redirect_uri)
    return URLSchemeInterceptor(redirect_uri)
