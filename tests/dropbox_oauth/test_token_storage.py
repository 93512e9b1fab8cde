"""Tests for OAuth token storage module."""

import json
import os
import threading
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from dropbox_oauth.exceptions import TokenStorageError
from dropbox_oauth.token_storage import TokenRecord, TokenStorage


def make_record(account_id="dbid:account_1", access_token="access", **overrides):
    fields = dict(
        account_id=account_id,
        access_token=access_token,
        refresh_token="refresh",
        expires_in=1800,
        issued_at=datetime.now(timezone.utc).isoformat(),
        scopes=["files.content.read"],
    )
    fields.update(overrides)
    return TokenRecord(**fields)


class TestTokenRecord:
    """Tests for TokenRecord class."""

    def test_record_creation(self, token_record):
        """TokenRecord holds all fields."""
        assert token_record.account_id == "dbid:account_1"
        assert token_record.access_token == "access_abc123"
        assert token_record.refresh_token == "refresh_xyz789"
        assert token_record.token_type == "bearer"
        assert token_record.scopes == ["files.content.read", "account_info.read"]
        assert token_record.can_refresh is True

    def test_empty_access_token_rejected(self):
        """access_token must be non-empty."""
        with pytest.raises(ValueError, match="access_token"):
            make_record(access_token="")

    def test_empty_account_id_rejected(self):
        """account_id must be non-empty."""
        with pytest.raises(ValueError, match="account_id"):
            make_record(account_id="")

    def test_without_refresh_token_cannot_refresh(self):
        """Online-only grants cannot be renewed silently."""
        assert make_record(refresh_token=None).can_refresh is False

    def test_expires_at_property(self):
        """expires_at calculates correct expiration datetime."""
        issued = datetime(2026, 1, 25, 10, 0, 0, tzinfo=timezone.utc)
        record = make_record(issued_at=issued.isoformat(), expires_in=1800)

        assert record.expires_at == issued + timedelta(seconds=1800)

    def test_expires_at_with_naive_datetime(self):
        """expires_at treats naive timestamps as UTC."""
        record = make_record(issued_at=datetime(2026, 1, 25, 10, 0, 0).isoformat())

        assert record.expires_at == datetime(2026, 1, 25, 10, 30, 0, tzinfo=timezone.utc)

    def test_is_expired(self):
        """is_expired reflects the issue time and lifetime."""
        fresh = make_record(issued_at=(datetime.now(timezone.utc) - timedelta(minutes=10)).isoformat())
        stale = make_record(issued_at=(datetime.now(timezone.utc) - timedelta(minutes=40)).isoformat())

        assert fresh.is_expired is False
        assert stale.is_expired is True

    def test_expires_within(self):
        """expires_within checks a forward-looking buffer."""
        record = make_record(issued_at=(datetime.now(timezone.utc) - timedelta(minutes=25)).isoformat())

        assert record.expires_within(600) is True
        assert record.expires_within(60) is False

    def test_from_dict_rejects_unknown_fields(self):
        """from_dict refuses unexpected keys."""
        data = make_record().to_dict()
        data["surprise"] = True

        with pytest.raises(TypeError):
            TokenRecord.from_dict(data)


class TestTokenStorage:
    """Tests for TokenStorage class."""

    def test_storage_creates_directory(self, tmp_path):
        """TokenStorage creates the token directory."""
        token_dir = tmp_path / "nested" / "tokens"
        TokenStorage(str(token_dir))

        assert token_dir.is_dir()

    def test_storage_raises_if_directory_cannot_be_created(self, tmp_path):
        """A file in the way of the token directory is a storage error."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")

        with pytest.raises(TokenStorageError, match="Could not create token directory"):
            TokenStorage(str(blocker / "tokens"))

    def test_save_writes_one_file_per_account(self, storage):
        """save() writes the record to the account's file."""
        storage.save(make_record("dbid:one", "access_1"))
        storage.save(make_record("dbid:two", "access_2"))

        with open(storage.path_for("dbid:one")) as f:
            data = json.load(f)

        assert data["access_token"] == "access_1"
        assert storage.load("dbid:two").access_token == "access_2"

    def test_account_id_is_quoted_in_file_name(self, storage):
        """Account ids with separators stay inside the token directory."""
        path = storage.path_for("../dbid:evil")

        assert path.parent == storage.token_dir
        assert "/" not in path.name

    @pytest.mark.skipif(os.name != "posix", reason="POSIX permissions")
    def test_save_sets_secure_permissions(self, storage, token_record):
        """save() sets file permissions to 600."""
        storage.save(token_record)

        mode = storage.path_for(token_record.account_id).stat().st_mode
        assert (mode & 0o777) == 0o600

    def test_save_raises_on_io_error(self, storage, token_record):
        """save() raises TokenStorageError on I/O errors."""
        # A directory where the token file should be
        storage.path_for(token_record.account_id).mkdir()

        with pytest.raises(TokenStorageError, match="Failed to save tokens"):
            storage.save(token_record)

    def test_load_roundtrip(self, storage, token_record):
        """Saved tokens load back unchanged."""
        storage.save(token_record)

        assert storage.load(token_record.account_id) == token_record

    def test_load_returns_none_when_missing(self, storage):
        """load() returns None when no file exists."""
        assert storage.load("dbid:nobody") is None

    def test_load_returns_none_on_corrupted_json(self, storage):
        """load() returns None for corrupted JSON file."""
        storage.path_for("dbid:x").write_text("{ this is not valid json }")

        assert storage.load("dbid:x") is None

    def test_load_returns_none_on_missing_fields(self, storage):
        """load() returns None when required fields are missing."""
        storage.path_for("dbid:x").write_text(json.dumps({"access_token": "token"}))

        assert storage.load("dbid:x") is None

    def test_load_ignores_file_for_other_account(self, storage):
        """load() refuses a file whose record names another account."""
        storage.path_for("dbid:x").write_text(json.dumps(make_record("dbid:y").to_dict()))

        assert storage.load("dbid:x") is None

    def test_delete(self, storage, token_record):
        """delete() removes the account's file."""
        storage.save(token_record)

        assert storage.delete(token_record.account_id) is True
        assert storage.exists(token_record.account_id) is False
        assert storage.delete(token_record.account_id) is False

    def test_list_accounts(self, storage):
        """list_accounts returns decoded account ids."""
        storage.save(make_record("dbid:b"))
        storage.save(make_record("dbid:a"))

        assert storage.list_accounts() == ["dbid:a", "dbid:b"]

    def test_empty_account_id_rejected(self, storage):
        """Paths need an account id."""
        with pytest.raises(TokenStorageError):
            storage.path_for("")

    def test_account_lock_is_per_account(self, storage):
        """Each account gets one reentrant lock."""
        lock = storage.account_lock("dbid:a")

        assert storage.account_lock("dbid:a") is lock
        assert storage.account_lock("dbid:b") is not lock
        with lock:
            with lock:
                pass

    def test_save_waits_for_account_lock(self, storage):
        """A save blocks while another thread holds the account lock."""
        lock = storage.account_lock("dbid:a")
        saved = threading.Event()

        def writer():
            storage.save(make_record("dbid:a", "from_writer"))
            saved.set()

        with lock:
            thread = threading.Thread(target=writer)
            thread.start()
            assert saved.wait(0.2) is False
            storage.save(make_record("dbid:a", "from_holder"))

        thread.join(timeout=5)
        assert saved.is_set()
        assert storage.load("dbid:a").access_token == "from_writer"
