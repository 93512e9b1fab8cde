"""
Token manager for Dropbox OAuth integration.

This module manages the token lifecycle after authorization:
- Token refresh (refresh token -> new access token)
- Automatic refresh before expiry
- Token validation and status checks

Refreshes for one account are serialized through the storage's per-account
lock, so concurrent callers trigger a single refresh and a refresh cannot
race an explicit save.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from .config import DropboxOAuthConfig
from .exceptions import TokenExchangeError, TokenNotAvailableError, TokenRefreshError
from .token_client import TokenExchangeClient
from .token_storage import TokenRecord, TokenStorage

logger = logging.getLogger(__name__)


class TokenManager:
    """
    Provides valid access tokens for linked accounts.

    Responsibilities:
    - Refresh access tokens before expiry
    - Provide valid access tokens to API clients
    - Track token status per account
    """

    def __init__(
        self,
        config: DropboxOAuthConfig,
        storage: Optional[TokenStorage] = None,
        token_client: Optional[TokenExchangeClient] = None,
    ):
        """
        Initialize token manager.

        Args:
            config: OAuth configuration
            storage: Token storage (creates default if not provided)
            token_client: Token endpoint client (creates default if not provided)
        """
        self.config = config
        self.storage = storage or TokenStorage(config.token_dir)
        self.token_client = token_client or TokenExchangeClient(config)

    def refresh_tokens(
        self, account_id: str, scopes: Optional[List[str]] = None
    ) -> TokenRecord:
        """
        Refresh the access token of an account.

        Args:
            account_id: Account to refresh
            scopes: Optional narrower scope set for the new access token

        Returns:
            New TokenRecord (also saved to storage)

        Raises:
            TokenNotAvailableError: If no refresh token is stored
            TokenRefreshError: If the token endpoint call fails
        """
        with self.storage.account_lock(account_id):
            current = self.storage.load(account_id)
            if current is None or not current.can_refresh:
                raise TokenNotAvailableError(
                    f"No refresh token available for {account_id}. "
                    f"Run authorization flow first."
                )
            return self._refresh_locked(current, scopes)

    def get_valid_access_token(self, account_id: str) -> str:
        """
        Get a valid access token, refreshing if necessary.

        This is the main method used by API clients.

        Returns:
            Valid access token string

        Raises:
            TokenNotAvailableError: If no usable token and no way to refresh
                                    (need to run authorization flow)
            TokenRefreshError: If a needed refresh fails
        """
        with self.storage.account_lock(account_id):
            token = self.storage.load(account_id)

            if token is None:
                raise TokenNotAvailableError(
                    f"No tokens available for {account_id}. Run authorization flow first."
                )

            if not token.expires_within(self.config.refresh_buffer_seconds):
                return token.access_token

            if not token.can_refresh:
                if token.is_expired:
                    raise TokenNotAvailableError(
                        f"Access token for {account_id} expired and cannot be refreshed. "
                        f"Run authorization flow again."
                    )
                return token.access_token

            logger.info(
                f"Token expires soon "
                f"(within {self.config.refresh_buffer_seconds}s), refreshing..."
            )
            return self._refresh_locked(token).access_token

    def get_authorization_header(self, account_id: str) -> dict:
        """
        Authorization header for API requests.

        Returns:
            {"Authorization": "Bearer <token>"}
        """
        return {"Authorization": f"Bearer {self.get_valid_access_token(account_id)}"}

    def is_authorized(self, account_id: str) -> bool:
        """True if tokens are stored for the account."""
        return self.storage.load(account_id) is not None

    def get_token_status(self, account_id: str) -> dict:
        """
        Get current token status for diagnostics.

        Returns:
            Dictionary with token status information:
            - authorized: Whether we have tokens
            - expired: Whether access token is expired (if authorized)
            - expires_at: When access token expires (if authorized)
            - expires_in_seconds: Seconds until expiry (if authorized)
            - refreshable: Whether a refresh token is stored (if authorized)
            - scopes: Granted scopes (if authorized)
        """
        token = self.storage.load(account_id)

        if not token:
            return {
                "account_id": account_id,
                "authorized": False,
                "message": "No tokens stored",
            }

        expires_in = (token.expires_at - datetime.now(timezone.utc)).total_seconds()

        return {
            "account_id": account_id,
            "authorized": True,
            "expired": token.is_expired,
            "expires_at": token.expires_at.isoformat(),
            "expires_in_seconds": max(0, expires_in),
            "refreshable": token.can_refresh,
            "scopes": list(token.scopes),
        }

    def revoke(self, account_id: str) -> bool:
        """
        Delete stored tokens for an account (local revocation).

        This does NOT revoke the tokens on Dropbox's servers.

        Returns:
            True if tokens were deleted
        """
        deleted = self.storage.delete(account_id)
        if deleted:
            logger.info(f"Tokens revoked (local) for {account_id}")
        return deleted

    def _refresh_locked(
        self, current: TokenRecord, scopes: Optional[List[str]] = None
    ) -> TokenRecord:
        try:
            refreshed = self.token_client.refresh(
                current.refresh_token, account_id=current.account_id, scopes=scopes
            )
        except TokenExchangeError as e:
            logger.error(f"Token refresh failed for {current.account_id}: {e}")
            raise TokenRefreshError(
                f"Token refresh failed: {e}. "
                f"Your refresh token may have been revoked. "
                f"Please run the authorization flow again."
            ) from e

        if not refreshed.scopes:
            refreshed.scopes = list(current.scopes)
        if refreshed.uid is None:
            refreshed.uid = current.uid
        if refreshed.team_id is None:
            refreshed.team_id = current.team_id

        self.storage.save(refreshed)
        logger.info(f"Successfully refreshed tokens for {current.account_id}")
        return refreshed
