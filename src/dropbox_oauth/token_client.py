"""
Token endpoint client for Dropbox OAuth integration.

Performs the two network exchanges of the PKCE flow:
- authorization code + code verifier -> access/refresh tokens
- refresh token -> new access token

Each call is a single round trip. Nothing here retries: an authorization
code is single-use, so a failed exchange means starting a new flow.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

import requests

from .config import DropboxOAuthConfig
from .exceptions import (
    TokenAuthError,
    TokenExchangeError,
    TokenNetworkError,
    TokenServerError,
)
from .token_storage import TokenRecord

logger = logging.getLogger(__name__)


class TokenExchangeClient:
    """
    Talks to the OAuth token endpoint.

    No client secret is sent: PKCE public clients identify themselves by
    ``client_id`` and prove possession with the code verifier.
    """

    def __init__(self, config: DropboxOAuthConfig):
        self.config = config

    def exchange(
        self, code: str, code_verifier: str, redirect_uri: str
    ) -> TokenRecord:
        """
        Exchange authorization code for access and refresh tokens.

        Args:
            code: Authorization code from the redirect
            code_verifier: PKCE verifier of the session that requested the code
            redirect_uri: Redirect URI used in the authorization request

        Returns:
            TokenRecord for the authorizing account

        Raises:
            TokenNetworkError: Token endpoint unreachable
            TokenAuthError: Grant rejected (invalid_grant, expired code)
            TokenServerError: Token endpoint returned 5xx
            TokenExchangeError: Any other failure
        """
        logger.info("Exchanging authorization code for tokens")

        data = self._post(
            {
                "grant_type": "authorization_code",
                "code": code,
                "code_verifier": code_verifier,
                "client_id": self.config.app_key,
                "redirect_uri": redirect_uri,
            },
            action="Token exchange",
        )

        try:
            record = self._record_from_response(data)
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise TokenExchangeError(
                f"Invalid response from token endpoint: {e}"
            ) from e

        logger.info(f"Obtained tokens for account {record.account_id}")
        return record

    def refresh(
        self,
        refresh_token: str,
        account_id: Optional[str] = None,
        scopes: Optional[List[str]] = None,
    ) -> TokenRecord:
        """
        Obtain a new access token with a refresh token.

        Args:
            refresh_token: Long-lived refresh token
            account_id: Account the token belongs to; used when the response
                        does not name one (Dropbox omits it on refresh)
            scopes: Optional narrower scope set for the new access token

        Returns:
            New TokenRecord. The refresh token is carried over when the
            endpoint does not rotate it.

        Raises:
            Same as exchange()
        """
        logger.info("Refreshing access token")

        body = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": self.config.app_key,
        }
        if scopes:
            body["scope"] = " ".join(scopes)

        data = self._post(body, action="Token refresh")

        try:
            record = self._record_from_response(
                data, account_id=account_id, refresh_token=refresh_token
            )
        except (KeyError, TypeError, ValueError) as e:
            logger.error(f"Invalid response from token endpoint: {e}")
            raise TokenExchangeError(
                f"Invalid response from token endpoint: {e}"
            ) from e

        logger.info(f"Refreshed tokens for account {record.account_id}")
        return record

    def _post(self, body: dict, action: str) -> dict:
        """POST a form body to the token endpoint and return parsed JSON."""
        try:
            response = requests.post(
                self.config.token_url,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
                data=body,
                timeout=self.config.request_timeout_seconds,
            )
        except requests.RequestException as e:
            logger.error(f"Network error during {action.lower()}: {e}")
            raise TokenNetworkError(f"Network error during {action.lower()}: {e}") from e

        status = response.status_code
        if status == 200:
            try:
                payload = response.json()
            except ValueError as e:
                logger.error(f"Invalid response from token endpoint: {e}")
                raise TokenExchangeError(
                    f"Invalid response from token endpoint: {e}"
                ) from e
            if not isinstance(payload, dict):
                logger.error("Invalid response from token endpoint: not a JSON object")
                raise TokenExchangeError(
                    "Invalid response from token endpoint: expected a JSON object, "
                    f"got {type(payload).__name__}"
                )
            return payload

        logger.error(f"{action} failed: {status} - {response.text}")

        if status in (400, 401, 403):
            error, description = self._oauth_error(response)
            raise TokenAuthError(
                f"{action} rejected with status {status}: {error}"
                + (f" ({description})" if description else ""),
                error=error,
                error_description=description,
            )

        if 500 <= status < 600:
            raise TokenServerError(
                f"{action} failed with server error {status}", status_code=status
            )

        raise TokenExchangeError(f"{action} failed with status {status}")

    @staticmethod
    def _oauth_error(response) -> tuple:
        """Pull ``error`` and ``error_description`` out of an error body."""
        try:
            payload = response.json()
        except ValueError:
            return "unknown_error", response.text or None
        if not isinstance(payload, dict):
            return "unknown_error", None
        return payload.get("error", "unknown_error"), payload.get("error_description")

    @staticmethod
    def _record_from_response(
        data: dict,
        account_id: Optional[str] = None,
        refresh_token: Optional[str] = None,
    ) -> TokenRecord:
        owner = account_id or (
            data.get("account_id") or data.get("team_id") or data.get("uid")
        )
        if not owner:
            raise KeyError("account_id")

        scope = data.get("scope", "")
        return TokenRecord(
            account_id=owner,
            access_token=data["access_token"],
            refresh_token=data.get("refresh_token", refresh_token),
            expires_in=int(data["expires_in"]),
            issued_at=datetime.now(timezone.utc).isoformat(),
            scopes=scope.split() if scope else [],
            token_type=data.get("token_type", "bearer"),
            uid=data.get("uid"),
            team_id=data.get("team_id"),
        )
