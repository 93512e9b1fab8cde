"""Shared fixtures for Dropbox OAuth tests."""

from concurrent.futures import Executor, Future
from datetime import datetime, timezone

import pytest

from dropbox_oauth.config import DropboxOAuthConfig
from dropbox_oauth.token_storage import TokenRecord, TokenStorage


class InlineExecutor(Executor):
    """Runs submitted work immediately on the calling thread."""

    def __init__(self):
        self.submitted = 0

    def submit(self, fn, *args, **kwargs):
        self.submitted += 1
        future = Future()
        try:
            future.set_result(fn(*args, **kwargs))
        except Exception as e:
            future.set_exception(e)
        return future


@pytest.fixture
def config(tmp_path):
    """OAuth config with a custom-scheme redirect and temp token dir."""
    return DropboxOAuthConfig(
        app_key="k",
        redirect_uri="app://auth",
        token_dir=str(tmp_path / "tokens"),
    )


@pytest.fixture
def loopback_config(tmp_path):
    """OAuth config with a loopback redirect."""
    return DropboxOAuthConfig(
        app_key="test_app_key",
        redirect_uri="http://127.0.0.1:8765/oauth/callback",
        token_dir=str(tmp_path / "tokens"),
    )


@pytest.fixture
def storage(config):
    return TokenStorage(config.token_dir)


@pytest.fixture
def inline_executor():
    return InlineExecutor()


@pytest.fixture
def token_record():
    return TokenRecord(
        account_id="dbid:account_1",
        access_token="access_abc123",
        refresh_token="refresh_xyz789",
        expires_in=14400,
        issued_at=datetime.now(timezone.utc).isoformat(),
        scopes=["files.content.read", "account_info.read"],
        uid="12345",
    )
