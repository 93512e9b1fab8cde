"""
OAuth 2.0 module for Dropbox API integration.

This package implements the Authorization Code flow with PKCE for native
and command-line Dropbox apps. No client secret is needed.

Public API:
    DropboxOAuthConfig: OAuth configuration management
    ScopeRequest: Scopes requested during authorization
    TokenRecord: Token data for one account
    TokenStorage: File-based token persistence (one file per account)
    TokenExchangeClient: Token endpoint client
    TokenManager: Refresh-aware access tokens
    AuthFlowCoordinator: Authorization flow state machine
    AuthPresenter / BrowserPresenter: UI collaborators
    OAuthCallbackServer: Loopback redirect listener
    DropboxOAuthManager: High-level interface

Exceptions:
    DropboxOAuthError: Base exception
    ConfigurationError: Bad app key or redirect URI
    AuthorizationError: Authorization flow error
    AlreadyInProgressError: A flow is already running
    InvalidStateError: State nonce mismatch
    AuthorizationCancelledError: Flow cancelled
    AuthorizationTimeoutError: No redirect in time
    TokenExchangeError: Token endpoint call failed
    TokenNetworkError / TokenAuthError / TokenServerError: Exchange failure kinds
    TokenRefreshError: Token refresh failed
    TokenNotAvailableError: No valid tokens
    TokenStorageError: Storage operation failed
"""

from .auth_url import ScopeRequest, build_authorization_url
from .callback_server import OAuthCallbackServer
from .config import DropboxOAuthConfig
from .exceptions import (
    AlreadyInProgressError,
    AuthorizationCancelledError,
    AuthorizationError,
    AuthorizationTimeoutError,
    ConfigurationError,
    DropboxOAuthError,
    InvalidStateError,
    TokenAuthError,
    TokenExchangeError,
    TokenNetworkError,
    TokenNotAvailableError,
    TokenRefreshError,
    TokenServerError,
    TokenStorageError,
)
from .flow_coordinator import AuthFlowCoordinator, AuthSession, AuthStatus, RedirectEvent
from .manager import DropboxOAuthManager
from .pkce import compute_code_challenge, generate_pkce_pair, generate_state
from .presentation import AuthPresenter, BrowserPresenter, LoadingStatusDelegate
from .redirect import (
    LoopbackInterceptor,
    RedirectInterceptor,
    RedirectParams,
    URLSchemeInterceptor,
    interceptor_for,
)
from .token_client import TokenExchangeClient
from .token_manager import TokenManager
from .token_storage import TokenRecord, TokenStorage

__all__ = [
    # Configuration
    "DropboxOAuthConfig",
    # PKCE / URL
    "generate_pkce_pair",
    "compute_code_challenge",
    "generate_state",
    "ScopeRequest",
    "build_authorization_url",
    # Redirects
    "RedirectInterceptor",
    "URLSchemeInterceptor",
    "LoopbackInterceptor",
    "RedirectParams",
    "interceptor_for",
    "OAuthCallbackServer",
    # Tokens
    "TokenRecord",
    "TokenStorage",
    "TokenExchangeClient",
    "TokenManager",
    # Flow
    "AuthFlowCoordinator",
    "AuthSession",
    "AuthStatus",
    "RedirectEvent",
    "AuthPresenter",
    "BrowserPresenter",
    "LoadingStatusDelegate",
    "DropboxOAuthManager",
    # Exceptions
    "DropboxOAuthError",
    "ConfigurationError",
    "AuthorizationError",
    "AlreadyInProgressError",
    "InvalidStateError",
    "AuthorizationCancelledError",
    "AuthorizationTimeoutError",
    "TokenExchangeError",
    "TokenNetworkError",
    "TokenAuthError",
    "TokenServerError",
    "TokenRefreshError",
    "TokenNotAvailableError",
    "TokenStorageError",
]
