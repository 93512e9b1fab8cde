#!/usr/bin/env python3
"""
Dropbox OAuth Authorization Status Checker

This script lists the accounts with stored tokens and shows whether each
one is usable.

Usage:
    python scripts/check_dropbox_auth.py

    # Verbose output with token details
    python scripts/check_dropbox_auth.py --verbose
"""

import argparse
import logging
import sys
from datetime import datetime
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dropbox_oauth.config import DropboxOAuthConfig
from dropbox_oauth.exceptions import ConfigurationError
from dropbox_oauth.token_manager import TokenManager

# Setup logging
logging.basicConfig(
    level=logging.WARNING,  # Quiet by default
    format="%(message)s",
)
logger = logging.getLogger(__name__)


def format_time_remaining(seconds: float) -> str:
    """
    Format seconds into human-readable time remaining.

    Returns:
        Formatted string (e.g., "2h 15m", "45m", "expired")
    """
    if seconds <= 0:
        return "expired"

    hours = int(seconds // 3600)
    minutes = int((seconds % 3600) // 60)

    if hours > 0:
        return f"{hours}h {minutes}m"
    elif minutes > 0:
        return f"{minutes}m"
    else:
        return f"{int(seconds)}s"


def print_account(manager: TokenManager, account_id: str, verbose: bool) -> bool:
    """Print status for one account; returns True if usable."""
    status = manager.get_token_status(account_id)
    print(f"Account:     {account_id}")

    if not status["authorized"]:
        print(f"Status:      ❌ {status.get('message', 'Not authorized')}")
        print()
        return False

    expired = status["expired"]
    refreshable = status["refreshable"]

    if expired and refreshable:
        print("Status:      ⚠️  Token expired (will refresh on next API call)")
    elif expired:
        print("Status:      ❌ Token expired, no refresh token")
    else:
        remaining = format_time_remaining(status["expires_in_seconds"])
        print(f"Status:      ✅ Active (expires in {remaining})")

    if verbose:
        token_file = manager.storage.path_for(account_id)
        print(f"Expires at:  {status['expires_at']}")
        print(f"Refreshable: {'yes' if refreshable else 'no'}")
        print(f"Scopes:      {' '.join(status['scopes']) or 'N/A'}")
        print(f"Token file:  {token_file}")
        stat = token_file.stat()
        print(f"  Permissions: {oct(stat.st_mode)[-3:]}")
        modified = datetime.fromtimestamp(stat.st_mtime)
        print(f"  Modified:    {modified.strftime('%Y-%m-%d %H:%M:%S')}")

    print()
    return refreshable or not expired


def check_authorization(verbose: bool = False) -> int:
    """
    Check and display authorization status.

    Returns:
        Exit code (0 if every account is usable, 1 if not, 2 on error)
    """
    try:
        config = DropboxOAuthConfig.from_env()
    except ConfigurationError as e:
        print("❌ CONFIGURATION ERROR")
        print()
        print(f"Error: {e}")
        print()
        return 2

    manager = TokenManager(config)

    print("=" * 70)
    print("DROPBOX OAUTH AUTHORIZATION STATUS")
    print("=" * 70)
    print()

    accounts = manager.storage.list_accounts()
    if not accounts:
        print("❌ NOT AUTHORIZED")
        print()
        print(f"No token files in {manager.storage.token_dir}")
        print()
        print("To authorize, run:")
        print("    python scripts/authorize_dropbox.py")
        print()
        return 1

    usable = [print_account(manager, account_id, verbose) for account_id in accounts]

    print("=" * 70)
    return 0 if all(usable) else 1


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Check Dropbox OAuth authorization status",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show detailed token information",
    )

    args = parser.parse_args()

    return check_authorization(verbose=args.verbose)


if __name__ == "__main__":
    sys.exit(main())
