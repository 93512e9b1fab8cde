"""
Presentation collaborators for the authorization flow.

The flow coordinator never renders UI itself. It calls an ``AuthPresenter``
to show the authorization page, dismiss it, toggle a loading indicator and
report errors. Applications inject their own presenter; ``BrowserPresenter``
is the default for terminal use.
"""

import logging
import webbrowser
from typing import Optional

logger = logging.getLogger(__name__)


class LoadingStatusDelegate:
    """
    Hook for applications that draw their own loading indicator.

    When given to ``BrowserPresenter``, loading state is forwarded here
    instead of being printed.
    """

    def show_loading(self) -> None:
        pass

    def dismiss_loading(self) -> None:
        pass


class AuthPresenter:
    """Interface the flow coordinator drives. All methods default to no-ops."""

    def present(self, url: str) -> None:
        """Show the authorization page for ``url``."""

    def dismiss(self) -> None:
        """Close the authorization page, if the presenter owns it."""

    def show_loading(self) -> None:
        """Indicate that tokens are being exchanged."""

    def hide_loading(self) -> None:
        """Remove the loading indicator."""

    def present_error(self, message: str) -> None:
        """Tell the user the flow failed."""


class BrowserPresenter(AuthPresenter):
    """
    Opens the system browser and reports progress on the terminal.

    Args:
        open_browser: Open the URL automatically; otherwise only print it
        loading_delegate: Optional delegate that takes over loading display
    """

    def __init__(
        self,
        open_browser: bool = True,
        loading_delegate: Optional[LoadingStatusDelegate] = None,
    ):
        self.open_browser = open_browser
        self.loading_delegate = loading_delegate

    def present(self, url: str) -> None:
        print("\n" + "=" * 70)
        print("DROPBOX OAUTH AUTHORIZATION")
        print("=" * 70)
        print("\nPlease authorize the application by visiting:")
        print(f"\n  {url}\n")

        if self.open_browser:
            print("🌐 Opening browser automatically...")
            try:
                webbrowser.open(url)
            except webbrowser.Error as e:
                logger.warning(f"Could not open browser automatically: {e}")
                print(f"⚠️  Could not open browser: {e}")
                print("   Please copy the URL above and paste it in your browser.")
        else:
            print("📋 Copy the URL above and paste it in your browser.")

        print("\n⏳ Waiting for authorization...")
        print("=" * 70 + "\n")

    def dismiss(self) -> None:
        # The system browser tab is not ours to close
        logger.debug("Authorization page dismissed")

    def show_loading(self) -> None:
        if self.loading_delegate is not None:
            self.loading_delegate.show_loading()
        else:
            print("🔄 Exchanging authorization code for tokens...")

    def hide_loading(self) -> None:
        if self.loading_delegate is not None:
            self.loading_delegate.dismiss_loading()

    def present_error(self, message: str) -> None:
        print(f"❌ Authorization failed: {message}")
