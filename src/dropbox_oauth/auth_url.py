"""
Authorization request URL construction.

Builds the URL the user visits to grant the app access. Dropbox extends
the standard authorization-code request with ``token_access_type`` (to ask
for a refresh token) and ``include_granted_scopes`` (to merge previously
granted scopes into the new token).
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urlencode, urlparse

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class ScopeRequest:
    """
    Scopes requested during authorization.

    Attributes:
        scopes: Scope names, e.g. ["files.content.read", "account_info.read"]
        include_granted_scopes: Also return scopes granted in earlier flows
        scope_type: "user" or "team", the kind of previously granted scopes
                    to include
    """

    scopes: List[str] = field(default_factory=list)
    include_granted_scopes: bool = False
    scope_type: str = "user"

    def __post_init__(self) -> None:
        if self.scope_type not in ("user", "team"):
            raise ConfigurationError(
                f"scope_type must be 'user' or 'team', got {self.scope_type!r}"
            )

    @property
    def scope_string(self) -> str:
        """Space-joined scope list as sent on the wire."""
        return " ".join(self.scopes)


def validate_app_key(app_key: str) -> None:
    """
    Reject empty or malformed app keys.

    Raises:
        ConfigurationError: If app_key is empty or contains whitespace
    """
    if not app_key or not app_key.strip():
        raise ConfigurationError("app_key cannot be empty")
    if any(ch.isspace() for ch in app_key):
        raise ConfigurationError(f"app_key contains whitespace: {app_key!r}")


def validate_redirect_uri(redirect_uri: str) -> None:
    """
    Reject empty or malformed redirect URIs.

    A redirect URI needs a scheme and either a host (app://auth,
    http://127.0.0.1:8765/cb) or a path (app:/callback).

    Raises:
        ConfigurationError: If redirect_uri is unusable
    """
    if not redirect_uri:
        raise ConfigurationError("redirect_uri cannot be empty")

    parsed = urlparse(redirect_uri)
    if not parsed.scheme:
        raise ConfigurationError(f"redirect_uri has no scheme: {redirect_uri!r}")
    if not parsed.netloc and not parsed.path:
        raise ConfigurationError(
            f"redirect_uri has neither host nor path: {redirect_uri!r}"
        )
    if parsed.fragment:
        raise ConfigurationError(
            f"redirect_uri must not contain a fragment: {redirect_uri!r}"
        )
    try:
        parsed.port
    except ValueError as e:
        raise ConfigurationError(f"redirect_uri has an invalid port: {e}") from e


def build_authorization_url(
    authorization_url: str,
    app_key: str,
    redirect_uri: str,
    code_challenge: str,
    state: str,
    scope_request: Optional[ScopeRequest] = None,
    token_access_type: Optional[str] = "offline",
) -> str:
    """
    Build the authorization endpoint URL for a PKCE flow.

    Args:
        authorization_url: Authorization endpoint
        app_key: Dropbox app key (sent as client_id)
        redirect_uri: Registered redirect URI
        code_challenge: S256 PKCE challenge
        state: State nonce for this session
        scope_request: Optional scopes to request
        token_access_type: "offline" for a refresh token, None to omit

    Returns:
        Complete authorization URL

    Raises:
        ConfigurationError: If app_key or redirect_uri is empty or malformed
    """
    validate_app_key(app_key)
    validate_redirect_uri(redirect_uri)

    params = {
        "client_id": app_key,
        "redirect_uri": redirect_uri,
        "response_type": "code",
        "code_challenge": code_challenge,
        "code_challenge_method": "S256",
        "state": state,
    }
    if token_access_type:
        params["token_access_type"] = token_access_type

    if scope_request is not None:
        if scope_request.scopes:
            params["scope"] = scope_request.scope_string
        if scope_request.include_granted_scopes:
            params["include_granted_scopes"] = scope_request.scope_type

    # Keep the redirect URI readable; ":" and "/" are legal in a query
    url = f"{authorization_url}?{urlencode(params, safe=':/')}"
    logger.debug(f"Generated authorization URL: {url}")
    return url
