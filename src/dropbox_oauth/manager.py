"""
High-level OAuth manager.

This module provides the main interface applications use. It wires the
token storage, token endpoint client, redirect interceptor, presenter and
flow coordinator together, runs blocking loopback authorizations, and
hands out refresh-aware access tokens.
"""

import logging
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import List, Optional

from .auth_url import ScopeRequest
from .callback_server import OAuthCallbackServer
from .config import DropboxOAuthConfig
from .exceptions import AuthorizationError, AuthorizationTimeoutError
from .flow_coordinator import AuthFlowCoordinator, AuthStatus
from .presentation import AuthPresenter, BrowserPresenter
from .redirect import interceptor_for
from .token_client import TokenExchangeClient
from .token_manager import TokenManager
from .token_storage import TokenRecord, TokenStorage

logger = logging.getLogger(__name__)


class DropboxOAuthManager:
    """
    Entry point for Dropbox OAuth in an application.

    Construct one per application and keep it for the process lifetime.

    Example:
        manager = DropboxOAuthManager()
        record = manager.authorize(ScopeRequest(["files.content.read"]))
        headers = manager.get_authorization_header(record.account_id)
    """

    def __init__(
        self,
        config: Optional[DropboxOAuthConfig] = None,
        presenter: Optional[AuthPresenter] = None,
    ):
        """
        Initialize OAuth manager.

        Args:
            config: OAuth configuration (loads from environment if not provided)
            presenter: UI collaborator (opens the system browser if not provided)
        """
        self.config = config or DropboxOAuthConfig.from_env()
        self.storage = TokenStorage(self.config.token_dir)
        self.token_client = TokenExchangeClient(self.config)
        self.token_manager = TokenManager(self.config, self.storage, self.token_client)
        self.coordinator = AuthFlowCoordinator(
            self.config,
            self.token_client,
            self.storage,
            interceptor=interceptor_for(self.config.redirect_uri),
            presenter=presenter or BrowserPresenter(),
        )

    def authorize(
        self,
        scope_request: Optional[ScopeRequest] = None,
        timeout: Optional[float] = None,
    ) -> TokenRecord:
        """
        Run a complete authorization flow and block until it finishes.

        With a loopback redirect URI the built-in callback server receives
        the redirect. With a custom scheme the application must deliver the
        URL through ``handle_redirect_url`` from another thread.

        Args:
            scope_request: Scopes to request
            timeout: Seconds to wait for the redirect

        Returns:
            TokenRecord of the authorized account

        Raises:
            AuthorizationError: Flow failed, was cancelled or timed out
            TokenExchangeError: Code could not be exchanged
        """
        wait = timeout if timeout is not None else self.config.redirect_timeout_seconds
        server = None
        if self.config.is_loopback_redirect:
            server = OAuthCallbackServer(self.config, self.coordinator.deliver_redirect)
            server.start()

        try:
            future = self.coordinator.start(scope_request, timeout=wait)
            try:
                # Exchange time is bounded by the request timeout
                record = future.result(
                    timeout=wait + self.config.request_timeout_seconds + 5
                )
            except FutureTimeoutError as e:
                self.coordinator.cancel()
                raise AuthorizationTimeoutError(
                    "Authorization did not finish in time"
                ) from e
        finally:
            if server is not None:
                server.stop()

        logger.info(f"Authorization succeeded for account {record.account_id}")
        return record

    def ensure_authorized(
        self, account_id: str, scope_request: Optional[ScopeRequest] = None
    ) -> TokenRecord:
        """
        Return stored tokens for an account, authorizing if there are none.

        Raises:
            AuthorizationError: If the new flow authorized a different account
        """
        record = self.storage.load(account_id)
        if record is not None:
            logger.info("Already authorized")
            return record

        logger.info("No tokens found, starting authorization flow")
        record = self.authorize(scope_request)
        if record.account_id != account_id:
            raise AuthorizationError(
                f"Authorized account {record.account_id} instead of {account_id}"
            )
        return record

    def handle_redirect_url(self, url: str) -> bool:
        """
        Deliver a URL from the platform URL-open handler.

        Returns:
            True if the URL belonged to the running authorization flow
        """
        return self.coordinator.on_redirect(url)

    def cancel(self) -> bool:
        """Cancel the running authorization flow, if any."""
        return self.coordinator.cancel()

    @property
    def flow_status(self) -> AuthStatus:
        return self.coordinator.status

    def get_access_token(self, account_id: str) -> str:
        """
        Get a valid access token for API calls, refreshing if needed.

        Raises:
            TokenNotAvailableError: If not authorized
        """
        return self.token_manager.get_valid_access_token(account_id)

    def get_authorization_header(self, account_id: str) -> dict:
        """
        Get Authorization header dict for API requests.

        Returns:
            Dict with Authorization header: {"Authorization": "Bearer <token>"}
        """
        return self.token_manager.get_authorization_header(account_id)

    def is_authorized(self, account_id: str) -> bool:
        return self.token_manager.is_authorized(account_id)

    def list_accounts(self) -> List[str]:
        """Accounts with stored tokens."""
        return self.storage.list_accounts()

    def get_status(self, account_id: str) -> dict:
        """Token status for diagnostics (see TokenManager.get_token_status)."""
        return self.token_manager.get_token_status(account_id)

    def revoke(self, account_id: str) -> bool:
        """
        Revoke authorization for an account locally.

        Note: This does NOT revoke the tokens on Dropbox's servers.
        """
        revoked = self.token_manager.revoke(account_id)
        if revoked:
            logger.info("Authorization revoked locally. Re-authorization required.")
        return revoked

    def close(self) -> None:
        """Cancel any running flow and release background threads."""
        self.coordinator.close()
