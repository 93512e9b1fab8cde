"""Tests for OAuth token manager module."""

from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest

from dropbox_oauth.exceptions import (
    TokenAuthError,
    TokenNotAvailableError,
    TokenRefreshError,
)
from dropbox_oauth.token_client import TokenExchangeClient
from dropbox_oauth.token_manager import TokenManager
from dropbox_oauth.token_storage import TokenRecord, TokenStorage

ACCOUNT = "dbid:account_1"


def make_record(issued_ago=timedelta(0), refresh_token="valid_refresh_token", **overrides):
    fields = dict(
        account_id=ACCOUNT,
        access_token="valid_access_token",
        refresh_token=refresh_token,
        expires_in=1800,
        issued_at=(datetime.now(timezone.utc) - issued_ago).isoformat(),
        scopes=["files.content.read"],
        uid="12345",
    )
    fields.update(overrides)
    return TokenRecord(**fields)


class TestTokenManager:
    """Tests for TokenManager class."""

    @pytest.fixture
    def client(self):
        return mock.Mock(spec=TokenExchangeClient)

    @pytest.fixture
    def manager(self, config, storage, client):
        return TokenManager(config, storage=storage, token_client=client)

    def test_manager_defaults(self, config):
        """TokenManager builds storage and client from config."""
        manager = TokenManager(config)

        assert isinstance(manager.storage, TokenStorage)
        assert isinstance(manager.token_client, TokenExchangeClient)

    def test_get_valid_access_token_with_valid_token(self, manager, storage, client):
        """A fresh token is returned without refreshing."""
        storage.save(make_record())

        assert manager.get_valid_access_token(ACCOUNT) == "valid_access_token"
        client.refresh.assert_not_called()

    def test_get_valid_access_token_refreshes_if_expiring(self, manager, storage, client):
        """A token inside the refresh buffer is refreshed and saved."""
        storage.save(make_record(issued_ago=timedelta(minutes=28)))
        client.refresh.return_value = make_record(
            access_token="refreshed_token", scopes=[], uid=None
        )

        token = manager.get_valid_access_token(ACCOUNT)

        assert token == "refreshed_token"
        client.refresh.assert_called_once_with(
            "valid_refresh_token", account_id=ACCOUNT, scopes=None
        )
        stored = storage.load(ACCOUNT)
        assert stored.access_token == "refreshed_token"
        # Carried over from the previous record
        assert stored.scopes == ["files.content.read"]
        assert stored.uid == "12345"

    def test_get_valid_access_token_raises_if_no_tokens(self, manager):
        """No stored tokens -> TokenNotAvailableError."""
        with pytest.raises(TokenNotAvailableError, match="No tokens available"):
            manager.get_valid_access_token(ACCOUNT)

    def test_expired_without_refresh_token(self, manager, storage):
        """Expired online-only token cannot be renewed."""
        storage.save(make_record(issued_ago=timedelta(hours=1), refresh_token=None))

        with pytest.raises(TokenNotAvailableError, match="cannot be refreshed"):
            manager.get_valid_access_token(ACCOUNT)

    def test_expiring_without_refresh_token_still_usable(self, manager, storage, client):
        """An online-only token is used until it actually expires."""
        storage.save(make_record(issued_ago=timedelta(minutes=28), refresh_token=None))

        assert manager.get_valid_access_token(ACCOUNT) == "valid_access_token"
        client.refresh.assert_not_called()

    def test_refresh_tokens_raises_if_no_tokens(self, manager):
        """refresh_tokens needs a stored refresh token."""
        with pytest.raises(TokenNotAvailableError, match="No refresh token available"):
            manager.refresh_tokens(ACCOUNT)

    def test_refresh_failure_raises_refresh_error(self, manager, storage, client):
        """Token endpoint failures become TokenRefreshError."""
        storage.save(make_record())
        client.refresh.side_effect = TokenAuthError("rejected", error="invalid_grant")

        with pytest.raises(TokenRefreshError, match="may have been revoked"):
            manager.refresh_tokens(ACCOUNT)

        # Old record left untouched
        assert storage.load(ACCOUNT).access_token == "valid_access_token"

    def test_refresh_tokens_with_scopes(self, manager, storage, client):
        """Explicit refresh forwards narrowed scopes."""
        storage.save(make_record())
        client.refresh.return_value = make_record(access_token="narrow")

        manager.refresh_tokens(ACCOUNT, scopes=["files.content.read"])

        client.refresh.assert_called_once_with(
            "valid_refresh_token", account_id=ACCOUNT, scopes=["files.content.read"]
        )

    def test_get_authorization_header(self, manager, storage):
        """Header uses the bearer scheme."""
        storage.save(make_record())

        assert manager.get_authorization_header(ACCOUNT) == {
            "Authorization": "Bearer valid_access_token"
        }

    def test_is_authorized(self, manager, storage):
        """is_authorized reflects stored tokens."""
        assert manager.is_authorized(ACCOUNT) is False
        storage.save(make_record())
        assert manager.is_authorized(ACCOUNT) is True

    def test_get_token_status_when_authorized(self, manager, storage):
        """Status dict describes the stored token."""
        storage.save(make_record())

        status = manager.get_token_status(ACCOUNT)

        assert status["authorized"] is True
        assert status["expired"] is False
        assert status["refreshable"] is True
        assert status["expires_in_seconds"] > 0
        assert status["scopes"] == ["files.content.read"]

    def test_get_token_status_when_not_authorized(self, manager):
        """Status says not authorized when nothing is stored."""
        status = manager.get_token_status(ACCOUNT)

        assert status["authorized"] is False
        assert "message" in status

    def test_revoke_deletes_tokens(self, manager, storage):
        """revoke() deletes stored tokens."""
        storage.save(make_record())

        assert manager.revoke(ACCOUNT) is True
        assert manager.is_authorized(ACCOUNT) is False
        assert manager.revoke(ACCOUNT) is False

    @mock.patch("requests.post")
    def test_malformed_refresh_response_raises_refresh_error(self, mock_post, config, storage):
        """A non-object refresh body surfaces as TokenRefreshError."""
        storage.save(make_record(issued_ago=timedelta(hours=1)))
        mock_post.return_value = mock.Mock(status_code=200, text="[]")
        mock_post.return_value.json.return_value = []
        manager = TokenManager(config, storage=storage)

        with pytest.raises(TokenRefreshError):
            manager.get_valid_access_token(ACCOUNT)
