"""
Authorization flow coordinator.

This module holds the state machine that drives one OAuth 2.0
authorization-code-with-PKCE flow at a time:

    Idle -> Pending -> AwaitingRedirect -> Exchanging -> Completed
                                                      -> Failed
                                                      -> Cancelled

Every terminal state resets the coordinator to Idle and releases the
session. Redirect delivery, cancellation, timeouts and exchange completion
can arrive on different threads, so all transitions happen under a single
reentrant lock. The token exchange is the only blocking step; it runs on an
executor and its result is delivered back under the lock.
"""

import logging
import secrets
import threading
import uuid
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, List, Optional

from .auth_url import ScopeRequest, build_authorization_url
from .config import DropboxOAuthConfig
from .exceptions import (
    AlreadyInProgressError,
    AuthorizationCancelledError,
    AuthorizationError,
    AuthorizationTimeoutError,
    DropboxOAuthError,
    InvalidStateError,
    TokenExchangeError,
    TokenStorageError,
)
from .pkce import generate_pkce_pair, generate_state
from .presentation import AuthPresenter
from .redirect import RedirectInterceptor, interceptor_for
from .token_client import TokenExchangeClient
from .token_storage import TokenRecord, TokenStorage

logger = logging.getLogger(__name__)


class AuthStatus(str, Enum):
    """Coordinator / session status."""

    IDLE = "idle"
    PENDING = "pending"
    AWAITING_REDIRECT = "awaiting_redirect"
    EXCHANGING = "exchanging"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (AuthStatus.COMPLETED, AuthStatus.CANCELLED, AuthStatus.FAILED)


@dataclass
class AuthSession:
    """
    State of one in-flight authorization.

    Owned by the coordinator; released when the flow reaches a terminal
    status.
    """

    session_id: str
    code_verifier: str
    code_challenge: str
    state: str
    redirect_uri: str
    scope_request: Optional[ScopeRequest]
    created_at: datetime
    status: AuthStatus = AuthStatus.PENDING
    authorization_url: Optional[str] = None
    error: Optional[DropboxOAuthError] = None

    def __repr__(self) -> str:
        # Keep the verifier and nonce out of logs and tracebacks
        return (
            f"AuthSession(session_id={self.session_id!r}, "
            f"status={self.status.value!r}, created_at={self.created_at.isoformat()!r})"
        )


@dataclass
class RedirectEvent:
    """An incoming redirect URL, consumed once by the coordinator."""

    url: str
    received_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    # Set when the redirect ended the flow unsuccessfully
    error: Optional[DropboxOAuthError] = None


StatusListener = Callable[[AuthStatus, Optional[AuthSession]], None]


class AuthFlowCoordinator:
    """
    Runs the authorization-code-with-PKCE flow.

    One instance per embedding application; it holds at most one session.
    Callers get a ``concurrent.futures.Future`` from ``start()`` that
    resolves to the new ``TokenRecord`` or fails with a ``DropboxOAuthError``.

    Example:
        coordinator = AuthFlowCoordinator(config, TokenExchangeClient(config), storage)
        future = coordinator.start(ScopeRequest(["files.content.read"]))
        # ... platform URL-open handler calls coordinator.on_redirect(url)
        record = future.result()
    """

    def __init__(
        self,
        config: DropboxOAuthConfig,
        token_client: TokenExchangeClient,
        storage: TokenStorage,
        interceptor: Optional[RedirectInterceptor] = None,
        presenter: Optional[AuthPresenter] = None,
        executor: Optional[Executor] = None,
    ):
        """
        Initialize the coordinator.

        Args:
            config: OAuth configuration
            token_client: Client for the token endpoint
            storage: Where completed flows write their tokens
            interceptor: Redirect matcher (derived from config.redirect_uri
                         if not provided)
            presenter: UI collaborator (no-op presenter if not provided)
            executor: Runs the token exchange (a private single-thread pool
                      if not provided)
        """
        self.config = config
        self.token_client = token_client
        self.storage = storage
        self.interceptor = interceptor or interceptor_for(config.redirect_uri)
        self.presenter = presenter or AuthPresenter()

        self._executor = executor
        self._owns_executor = executor is None

        self._lock = threading.RLock()
        self._status = AuthStatus.IDLE
        self._session: Optional[AuthSession] = None
        self._future: Optional[Future] = None
        self._timer: Optional[threading.Timer] = None
        self._cancel_requested = False
        self._listeners: List[StatusListener] = []

    @property
    def status(self) -> AuthStatus:
        with self._lock:
            return self._status

    @property
    def session(self) -> Optional[AuthSession]:
        with self._lock:
            return self._session

    def add_listener(self, listener: StatusListener) -> None:
        """Register a callback invoked on every status transition."""
        with self._lock:
            self._listeners.append(listener)

    def start(
        self,
        scope_request: Optional[ScopeRequest] = None,
        timeout: Optional[float] = None,
    ) -> Future:
        """
        Begin a new authorization flow.

        Generates a fresh PKCE pair and state nonce, builds the
        authorization URL, hands it to the presenter and waits for the
        redirect.

        Args:
            scope_request: Scopes to request
            timeout: Seconds to wait for the redirect
                     (default: config.redirect_timeout_seconds)

        Returns:
            Future resolving to the TokenRecord of the authorized account

        Raises:
            AlreadyInProgressError: If a flow is already running
            ConfigurationError: If the app key or redirect URI is unusable
        """
        with self._lock:
            if self._status is not AuthStatus.IDLE:
                raise AlreadyInProgressError(
                    f"Authorization already in progress ({self._status.value})"
                )

            code_verifier, code_challenge = generate_pkce_pair()
            state = generate_state()
            url = build_authorization_url(
                self.config.authorization_url,
                self.config.app_key,
                self.config.redirect_uri,
                code_challenge,
                state,
                scope_request=scope_request,
                token_access_type=self.config.token_access_type,
            )

            session = AuthSession(
                session_id=uuid.uuid4().hex,
                code_verifier=code_verifier,
                code_challenge=code_challenge,
                state=state,
                redirect_uri=self.config.redirect_uri,
                scope_request=scope_request,
                created_at=datetime.now(timezone.utc),
                authorization_url=url,
            )
            future: Future = Future()
            future.add_done_callback(self._on_future_done)

            self._session = session
            self._future = future
            self._cancel_requested = False
            self._transition(AuthStatus.PENDING)

        # Opening a browser can block; keep it outside the lock
        present_error = None
        try:
            self.presenter.present(url)
        except Exception as e:
            logger.error(f"Could not present authorization page: {e}")
            present_error = e

        with self._lock:
            # Cancelled while the page was being presented
            if self._session is not session:
                return future

            if present_error is not None:
                self._fail(
                    AuthorizationError(f"Could not present authorization page: {present_error}")
                )
                return future

            self._transition(AuthStatus.AWAITING_REDIRECT)
            wait = timeout if timeout is not None else self.config.redirect_timeout_seconds
            self._arm_timeout(session, wait)
            logger.info(f"Waiting for authorization redirect (timeout: {wait}s)")
            return future

    def on_redirect(self, url: str) -> bool:
        """
        Deliver an incoming URL to the coordinator.

        URLs that do not match the registered redirect URI, or that arrive
        while no flow is waiting, are ignored so unrelated app-open events
        pass through.

        Args:
            url: Raw URL received by the application

        Returns:
            True if the URL was consumed by the current flow
        """
        return self.deliver_redirect(RedirectEvent(url=url))

    def deliver_redirect(self, event: RedirectEvent) -> bool:
        """
        Deliver a redirect event and record how the flow took it.

        Same as ``on_redirect``, but when the redirect ends the flow
        (state mismatch, provider error, missing code) the error is stored
        on ``event.error`` so a listener can show the right page.

        Returns:
            True if the event was consumed by the current flow
        """
        with self._lock:
            session = self._session
            if self._status is not AuthStatus.AWAITING_REDIRECT or session is None:
                logger.debug(f"Ignoring URL, no flow awaiting a redirect ({self._status.value})")
                return False

            if not self.interceptor.matches(event.url):
                logger.debug("Ignoring URL that does not match the redirect URI")
                return False

            logger.info("Received authorization redirect")

            try:
                params = self.interceptor.extract(event.url)
            except AuthorizationError as e:
                event.error = e
                self._fail(e)
                return True

            if params.state is None or not secrets.compare_digest(params.state, session.state):
                logger.error("State nonce mismatch in redirect; possible CSRF or redirect injection")
                event.error = InvalidStateError(
                    "State nonce in redirect does not match the authorization session"
                )
                self._fail(event.error)
                return True

            if params.is_error:
                if params.error == "access_denied":
                    logger.info("User declined authorization")
                    event.error = AuthorizationCancelledError("User declined authorization")
                    self._call_presenter("dismiss")
                    self._finish(AuthStatus.CANCELLED, error=event.error)
                else:
                    event.error = AuthorizationError(
                        f"Authorization failed: {params.error}"
                        + (f" - {params.error_description}" if params.error_description else "")
                    )
                    self._fail(event.error)
                return True

            self._cancel_timer()
            self._call_presenter("dismiss")
            self._call_presenter("show_loading")
            self._transition(AuthStatus.EXCHANGING)
            code = params.code

        try:
            self._get_executor().submit(self._run_exchange, session, code)
        except Exception as e:
            logger.exception("Could not schedule token exchange")
            event.error = TokenExchangeError(f"Could not schedule token exchange: {e}")
            self._on_exchange_result(session.session_id, error=event.error)
        return True

    def cancel(self) -> bool:
        """
        Cancel the current flow.

        Before the redirect arrives the flow is cancelled immediately. While
        the exchange is in flight the cancel is queued: the exchange result
        is discarded when it settles and no tokens are stored.

        Returns:
            True if a flow was cancelled or a cancel was queued
        """
        with self._lock:
            if self._status in (AuthStatus.PENDING, AuthStatus.AWAITING_REDIRECT):
                logger.info("Authorization cancelled")
                self._call_presenter("dismiss")
                self._finish(
                    AuthStatus.CANCELLED,
                    error=AuthorizationCancelledError("Authorization cancelled"),
                )
                return True

            if self._status is AuthStatus.EXCHANGING:
                logger.info("Cancel requested during token exchange; result will be discarded")
                self._cancel_requested = True
                return True

            return False

    def close(self) -> None:
        """Cancel any running flow and release the private executor."""
        self.cancel()
        if self._owns_executor and self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None

    # Internal -------------------------------------------------------------

    def _get_executor(self) -> Executor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(
                    max_workers=1, thread_name_prefix="dropbox-oauth-exchange"
                )
            return self._executor

    def _run_exchange(self, session: AuthSession, code: str) -> None:
        """Executor task: perform the network exchange and report back."""
        try:
            record = self.token_client.exchange(
                code, session.code_verifier, session.redirect_uri
            )
        except TokenExchangeError as e:
            self._on_exchange_result(session.session_id, error=e)
            return
        except Exception as e:
            logger.exception("Unexpected error during token exchange")
            self._on_exchange_result(
                session.session_id,
                error=TokenExchangeError(f"Unexpected error during token exchange: {e}"),
            )
            return

        self._on_exchange_result(session.session_id, record=record)

    def _on_exchange_result(
        self,
        session_id: str,
        record: Optional[TokenRecord] = None,
        error: Optional[DropboxOAuthError] = None,
    ) -> None:
        with self._lock:
            if self._session is None or self._session.session_id != session_id:
                logger.warning("Discarding token exchange result for a stale session")
                return

            self._call_presenter("hide_loading")

            if self._cancel_requested:
                logger.info("Discarding token exchange result; flow was cancelled")
                self._finish(
                    AuthStatus.CANCELLED,
                    error=AuthorizationCancelledError("Authorization cancelled"),
                )
                return

            if error is not None:
                logger.error(f"Token exchange failed: {error}")
                self._fail(error)
                return

            try:
                self.storage.save(record)
            except TokenStorageError as e:
                self._fail(e)
                return

            logger.info(f"✅ Authorization complete for account {record.account_id}")
            self._finish(AuthStatus.COMPLETED, result=record)

    def _on_timeout(self, session_id: str) -> None:
        with self._lock:
            if self._session is None or self._session.session_id != session_id:
                return
            if self._status not in (AuthStatus.PENDING, AuthStatus.AWAITING_REDIRECT):
                return
            logger.warning("Timed out waiting for authorization redirect")
            self._fail(
                AuthorizationTimeoutError(
                    "No redirect received in time. "
                    "Please ensure you completed the authorization in your browser."
                )
            )

    def _on_future_done(self, future: Future) -> None:
        # Caller cancelled the future itself
        if future.cancelled():
            with self._lock:
                if future is self._future:
                    self.cancel()

    def _arm_timeout(self, session: AuthSession, seconds: float) -> None:
        self._cancel_timer()
        timer = threading.Timer(seconds, self._on_timeout, args=(session.session_id,))
        timer.daemon = True
        self._timer = timer
        timer.start()

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def _fail(self, error: DropboxOAuthError) -> None:
        if self._status is AuthStatus.EXCHANGING:
            self._call_presenter("hide_loading")
        else:
            self._call_presenter("dismiss")
        self._call_presenter("present_error", str(error))
        self._finish(AuthStatus.FAILED, error=error)

    def _finish(
        self,
        status: AuthStatus,
        result: Optional[TokenRecord] = None,
        error: Optional[DropboxOAuthError] = None,
    ) -> None:
        """Enter a terminal status, reset to Idle, then resolve the caller."""
        session = self._session
        future = self._future
        self._cancel_timer()

        if session is not None:
            session.error = error
        self._transition(status)

        self._session = None
        self._future = None
        self._cancel_requested = False
        self._status = AuthStatus.IDLE
        self._notify(AuthStatus.IDLE, session)

        if future is not None and not future.done():
            if error is not None:
                future.set_exception(error)
            else:
                future.set_result(result)

    def _transition(self, status: AuthStatus) -> None:
        previous = self._status
        self._status = status
        if self._session is not None:
            self._session.status = status
            logger.debug(
                f"Auth flow {self._session.session_id[:8]}: "
                f"{previous.value} -> {status.value}"
            )
        self._notify(status, self._session)

    def _notify(self, status: AuthStatus, session: Optional[AuthSession]) -> None:
        for listener in list(self._listeners):
            try:
                listener(status, session)
            except Exception:
                logger.exception("Auth status listener raised")

    def _call_presenter(self, method: str, *args) -> None:
        try:
            getattr(self.presenter, method)(*args)
        except Exception as e:
            logger.warning(f"Presenter {method}() failed: {e}")
