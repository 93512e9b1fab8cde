#!/usr/bin/env python3
"""
Dropbox OAuth Authorization Script

This script runs the OAuth 2.0 Authorization Code flow with PKCE against
Dropbox. It starts a loopback callback server, opens the browser, waits
for the redirect and stores the tokens for the authorized account in the
token directory.

Usage:
    python scripts/authorize_dropbox.py
    python scripts/authorize_dropbox.py --scope files.content.read --scope account_info.read

    # To revoke existing authorization
    python scripts/authorize_dropbox.py --revoke dbid:AAH4f99T0taONIb-OurWxbNQ6ywGRopQngc

Prerequisites:
    - Environment variables must be set:
        export DROPBOX_APP_KEY="your_app_key"
    - The redirect URI (default http://127.0.0.1:8765/oauth/callback)
      must be registered in the Dropbox App Console
"""

import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from dropbox_oauth.auth_url import ScopeRequest
from dropbox_oauth.exceptions import (
    AuthorizationCancelledError,
    ConfigurationError,
    DropboxOAuthError,
)
from dropbox_oauth.manager import DropboxOAuthManager
from dropbox_oauth.presentation import BrowserPresenter

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def authorize(
    scopes: list,
    include_granted_scopes: str = None,
    open_browser: bool = True,
    timeout: float = None,
) -> int:
    """
    Run the authorization flow.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        manager = DropboxOAuthManager(presenter=BrowserPresenter(open_browser=open_browser))
    except ConfigurationError as e:
        logger.error(f"❌ Configuration error: {e}")
        logger.error("")
        logger.error("Please ensure environment variables are set:")
        logger.error("  export DROPBOX_APP_KEY='your_app_key'")
        return 1

    scope_request = None
    if scopes or include_granted_scopes:
        scope_request = ScopeRequest(
            scopes=scopes,
            include_granted_scopes=include_granted_scopes is not None,
            scope_type=include_granted_scopes or "user",
        )

    try:
        logger.info("Starting OAuth authorization flow...")
        record = manager.authorize(scope_request, timeout=timeout)
    except AuthorizationCancelledError:
        logger.info("Authorization cancelled")
        return 1
    except DropboxOAuthError as e:
        logger.error(f"❌ Authorization failed: {e}")
        logger.error("   Please check the error messages above and try again")
        return 1
    except OSError as e:
        logger.error(f"❌ Could not start callback server: {e}")
        return 1
    finally:
        manager.close()

    logger.info("✅ Authorization successful!")
    logger.info(f"   Account: {record.account_id}")
    logger.info(f"   Scopes:  {' '.join(record.scopes) or 'N/A'}")
    logger.info(f"   Tokens saved to: {manager.storage.path_for(record.account_id)}")
    return 0


def revoke(account_id: str) -> int:
    """
    Revoke stored authorization for an account.

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    try:
        manager = DropboxOAuthManager()

        if not manager.revoke(account_id):
            logger.info(f"No authorization found for {account_id}")
            return 0

        logger.info("✅ Authorization revoked")
        logger.info("")
        logger.info("Run this script again to re-authorize")
        return 0

    except DropboxOAuthError as e:
        logger.error(f"❌ Error revoking authorization: {e}")
        return 1


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description="Dropbox OAuth Authorization (PKCE)",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Prerequisites:
  export DROPBOX_APP_KEY='your_app_key'

Examples:
  # Run authorization flow
  python scripts/authorize_dropbox.py --scope files.content.read

  # Revoke existing authorization
  python scripts/authorize_dropbox.py --revoke ACCOUNT_ID
        """,
    )
    parser.add_argument(
        "--scope",
        action="append",
        default=[],
        help="Scope to request (repeatable)",
    )
    parser.add_argument(
        "--include-granted-scopes",
        choices=["user", "team"],
        help="Also include scopes granted in earlier authorizations",
    )
    parser.add_argument(
        "--revoke",
        metavar="ACCOUNT_ID",
        help="Revoke existing authorization for an account and delete its tokens",
    )
    parser.add_argument(
        "--no-browser",
        action="store_true",
        help="Don't automatically open browser (display URL only)",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="Seconds to wait for the redirect",
    )

    args = parser.parse_args()

    if args.revoke:
        return revoke(args.revoke)

    return authorize(
        args.scope,
        include_granted_scopes=args.include_granted_scopes,
        open_browser=not args.no_browser,
        timeout=args.timeout,
    )


if __name__ == "__main__":
    sys.exit(main())
