"""
Token storage for Dropbox OAuth integration.

This module provides file-based token persistence with expiry tracking.
Each account gets its own JSON file inside the token directory, so several
linked accounts can coexist. Writes for one account are serialized through
a per-account lock so a background refresh cannot clobber an explicit save.
"""

import json
import logging
import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional
from urllib.parse import quote, unquote

from .exceptions import TokenStorageError

logger = logging.getLogger(__name__)


@dataclass
class TokenRecord:
    """
    Stored OAuth token data for one account.

    Attributes:
        account_id: Dropbox account (or team) identifier the tokens belong to
        access_token: Short-lived access token for API calls
        refresh_token: Long-lived token for obtaining new access tokens;
                       None for online-only grants
        expires_in: Token lifetime in seconds from issue time
        issued_at: ISO timestamp of when tokens were issued/refreshed
        scopes: Granted OAuth scopes
        token_type: Token type (typically "bearer")
        uid: Legacy numeric user id, if returned
        team_id: Team id for team-linked apps, if returned
    """

    account_id: str
    access_token: str
    refresh_token: Optional[str]
    expires_in: int  # seconds from issue
    issued_at: str  # ISO timestamp
    scopes: List[str] = field(default_factory=list)
    token_type: str = "bearer"
    uid: Optional[str] = None
    team_id: Optional[str] = None

    def __post_init__(self) -> None:
        if not self.account_id:
            raise ValueError("account_id cannot be empty")
        if not self.access_token:
            raise ValueError("access_token cannot be empty")

    @property
    def expires_at(self) -> datetime:
        """
        Calculate expiration datetime.

        Returns:
            Datetime when access token expires (timezone-aware UTC)
        """
        issued = datetime.fromisoformat(self.issued_at)
        # Ensure timezone-aware
        if issued.tzinfo is None:
            issued = issued.replace(tzinfo=timezone.utc)
        return issued + timedelta(seconds=self.expires_in)

    @property
    def is_expired(self) -> bool:
        """True if the access token has expired."""
        return datetime.now(timezone.utc) >= self.expires_at

    @property
    def can_refresh(self) -> bool:
        """True if the record can be renewed without user interaction."""
        return bool(self.refresh_token)

    def expires_within(self, seconds: int) -> bool:
        """
        Check if token expires within given seconds.

        Args:
            seconds: Number of seconds to check

        Returns:
            True if token will expire within the specified time, False otherwise
        """
        buffer_time = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        return buffer_time >= self.expires_at

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "TokenRecord":
        """
        Create TokenRecord from dictionary.

        Raises:
            KeyError: If required fields are missing
            TypeError: If fields have wrong types or unknown keys are present
            ValueError: If account_id or access_token is empty
        """
        return cls(**data)


class TokenStorage:
    """
    File-based token storage (JSON, one file per account).

    Files are written with user-only permissions (600). The account id is
    percent-encoded into the file name, so ids such as ``dbid:AAH...`` are
    safe on every platform.
    """

    SUFFIX = ".json"

    def __init__(self, token_dir: str):
        """
        Initialize token storage.

        Args:
            token_dir: Directory that holds the token files
        """
        self.token_dir = Path(token_dir).expanduser()
        self._locks: Dict[str, threading.RLock] = {}
        self._locks_guard = threading.Lock()
        self._ensure_directory()

    def _ensure_directory(self) -> None:
        """Create token directory if needed."""
        try:
            self.token_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TokenStorageError(
                f"Could not create token directory {self.token_dir}: {e}"
            ) from e

    def path_for(self, account_id: str) -> Path:
        """Token file path for an account."""
        if not account_id:
            raise TokenStorageError("account_id cannot be empty")
        return self.token_dir / f"{quote(account_id, safe='')}{self.SUFFIX}"

    def account_lock(self, account_id: str) -> threading.RLock:
        """
        Lock serializing writes for one account.

        Reentrant, so a caller can hold it across load, refresh and save.
        """
        with self._locks_guard:
            lock = self._locks.get(account_id)
            if lock is None:
                lock = threading.RLock()
                self._locks[account_id] = lock
            return lock

    def _set_secure_permissions(self, path: Path) -> None:
        """Set file permissions to user-only read/write (600)."""
        try:
            path.chmod(0o600)
            logger.debug(f"Set secure permissions (600) on {path}")
        except OSError as e:
            logger.warning(f"Could not set secure permissions: {e}")

    def save(self, record: TokenRecord) -> None:
        """
        Save tokens for ``record.account_id``.

        Args:
            record: Token record to save

        Raises:
            TokenStorageError: If save operation fails
        """
        path = self.path_for(record.account_id)
        with self.account_lock(record.account_id):
            try:
                with open(path, "w") as f:
                    json.dump(record.to_dict(), f, indent=2)

                self._set_secure_permissions(path)

                logger.info(f"Tokens saved for account {record.account_id}")
            except OSError as e:
                logger.error(f"Failed to save tokens: {e}")
                raise TokenStorageError(f"Failed to save tokens: {e}") from e

    def load(self, account_id: str) -> Optional[TokenRecord]:
        """
        Load tokens for an account.

        Returns:
            TokenRecord if file exists and is valid, None otherwise

        Notes:
            - Returns None if file doesn't exist (normal before first authorization)
            - Returns None if file is corrupted (logs warning)
        """
        path = self.path_for(account_id)
        if not path.exists():
            logger.debug(f"No token file found at {path}")
            return None

        try:
            with open(path, "r") as f:
                data = json.load(f)

            record = TokenRecord.from_dict(data)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
            logger.warning(
                f"Invalid token file at {path}, will need re-authorization: {e}"
            )
            return None
        except OSError as e:
            logger.warning(f"Could not read token file: {e}")
            return None

        if record.account_id != account_id:
            logger.warning(
                f"Token file {path} belongs to {record.account_id}, ignoring"
            )
            return None

        logger.debug(f"Tokens loaded from {path}")
        return record

    def delete(self, account_id: str) -> bool:
        """
        Delete tokens for an account.

        Returns:
            True if file was deleted, False if file didn't exist

        Raises:
            TokenStorageError: If the file exists but cannot be removed
        """
        path = self.path_for(account_id)
        with self.account_lock(account_id):
            if not path.exists():
                logger.debug(f"Token file does not exist: {path}")
                return False
            try:
                path.unlink()
            except OSError as e:
                logger.error(f"Failed to delete token file: {e}")
                raise TokenStorageError(f"Failed to delete token file: {e}") from e

        logger.info(f"Tokens deleted for account {account_id}")
        return True

    def exists(self, account_id: str) -> bool:
        """True if a token file exists for the account."""
        return self.path_for(account_id).exists()

    def list_accounts(self) -> List[str]:
        """Account ids with a stored token file, sorted."""
        return sorted(
            unquote(path.name[: -len(self.SUFFIX)])
            for path in self.token_dir.glob(f"*{self.SUFFIX}")
            if path.is_file()
        )
