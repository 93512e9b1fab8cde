"""
OAuth exception classes for Dropbox API integration.

This module defines the exception hierarchy for all OAuth-related errors.
Every failure of an authorization flow is delivered to the caller as one of
these types through the future returned by the flow coordinator.
"""

from typing import Optional


class DropboxOAuthError(Exception):
    """Base exception for all Dropbox OAuth errors."""

    pass


class ConfigurationError(DropboxOAuthError):
    """OAuth configuration error (bad app key or redirect URI)."""

    pass


class AuthorizationError(DropboxOAuthError):
    """OAuth authorization flow error."""

    pass


class AlreadyInProgressError(AuthorizationError):
    """An authorization flow is already running on this coordinator."""

    pass


class InvalidStateError(AuthorizationError):
    """
    State nonce in the redirect did not match the session.

    Treated as a possible CSRF or redirect-injection attempt; always
    terminal for the session.
    """

    pass


class AuthorizationCancelledError(AuthorizationError):
    """Authorization was cancelled by the user or the caller."""

    pass


class AuthorizationTimeoutError(AuthorizationError):
    """No redirect was received within the allotted time."""

    pass


class TokenExchangeError(DropboxOAuthError):
    """Failed to exchange authorization code for tokens."""

    pass


class TokenNetworkError(TokenExchangeError):
    """Token endpoint could not be reached."""

    pass


class TokenAuthError(TokenExchangeError):
    """Token endpoint rejected the grant (invalid_grant, expired code, ...)."""

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ):
        super().__init__(message)
        self.error = error
        self.error_description = error_description


class TokenServerError(TokenExchangeError):
    """Token endpoint returned a 5xx response."""

    def __init__(self, message: str, status_code: int):
        super().__init__(message)
        self.status_code = status_code


class TokenRefreshError(DropboxOAuthError):
    """Failed to refresh access token using refresh token."""

    pass


class TokenNotAvailableError(DropboxOAuthError):
    """No valid tokens available (need to authorize first)."""

    pass


class TokenStorageError(DropboxOAuthError):
    """Token storage operation failed (file I/O error)."""

    pass
