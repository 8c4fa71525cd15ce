"""Log in screen controller.

Drives the two ways into the app:
    - Credentials: username/password checked by the identity service.
    - Sign in with Apple: an Apple identity token, obtained through an
      authorization broker, exchanged by the identity service for a session.

Both end in the same place: ``Router.route_to_session(user)`` on success,
``Dialog.show_message(title, message)`` on failure. Nothing is retried.

Concurrency:
    Each attempt runs as one asyncio task returning an AuthResult. Only one
    attempt may be in flight per controller; triggers fired while a task is
    running are ignored. ``close()`` cancels the running attempt when the
    screen goes away; a cancelled attempt never reaches the router or the
    dialog.
"""
import asyncio
import logging
from typing import Any, Coroutine, Optional

from .broker import AuthorizationBroker, PresentationAnchor
from .errors import AuthorizationError, IdentityServiceError, PresentationAnchorError
from .identity_service import IdentityService
from .presenters import Dialog, Router
from .schemas import (
    AppleIDCredential,
    Authorization,
    AuthResult,
    Credentials,
    ErrorInfo,
    IdentityRequest,
    IdentityScope,
    LoginForm,
    User,
)
from .session import SessionProvider

logger = logging.getLogger(__name__)

# =============================================================================
# Dialog texts
# =============================================================================

ERROR_TITLE = "Error"
APPLE_TITLE = "Sign in with Apple"

INVALID_CREDENTIALS_MESSAGE = "Invalid credentials."
INVALID_CREDENTIAL_MESSAGE = "Invalid credential"
TOKEN_NOT_FOUND_MESSAGE = "Token not found"


class LogInController:
    """Controller behind the log in screen.

    Args:
        identity_service: Backend performing both logins.
        broker: Authorization broker for Sign in with Apple.
        router: Receives the user once a session exists.
        dialog: Shows error messages.
        session_provider: Consulted by ``load()`` for an existing session.
        anchor: Display surface for the broker's authorization UI.
        form: The screen's username/password fields.
    """

    def __init__(
        self,
        identity_service: IdentityService,
        broker: AuthorizationBroker,
        router: Router,
        dialog: Dialog,
        session_provider: Optional[SessionProvider] = None,
        anchor: Optional[PresentationAnchor] = None,
        form: Optional[LoginForm] = None,
    ):
        self._identity_service = identity_service
        self._broker = broker
        self._router = router
        self._dialog = dialog
        self._session_provider = session_provider
        self._anchor = anchor
        self.form = form or LoginForm()
        self._task: Optional[asyncio.Task] = None  # type: ignore[type-arg]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def in_flight(self) -> bool:
        """True while an authentication attempt is running."""
        return self._task is not None and not self._task.done()

    async def load(self) -> Optional[User]:
        """Skip the log in screen when a session already exists."""
        if self._session_provider is None:
            return None
        user = await self._session_provider.current_user()
        if user is None:
            return None
        logger.info("Existing session for user %s, skipping log in", user.object_id)
        self._router.route_to_session(user)
        return user

    def close(self) -> None:
        """Cancel the running attempt, if any."""
        if self.in_flight:
            logger.info("Log in screen closed, cancelling in-flight attempt")
            self._task.cancel()

    # ------------------------------------------------------------------
    # Credential flow
    # ------------------------------------------------------------------

    def handle_log_in(self) -> Optional[asyncio.Task]:  # type: ignore[type-arg]
        """Log in button: submit whatever the form fields hold."""
        return self.submit_credentials(self.form.username, self.form.password)

    def submit_credentials(
        self, username: Optional[str], password: Optional[str]
    ) -> Optional[asyncio.Task]:  # type: ignore[type-arg]
        """Start a username/password login.

        Returns:
            The running task, or None when nothing was started (attempt
            already in flight, or empty fields).
        """
        if self.in_flight:
            logger.warning("Log in ignored: an attempt is already in flight")
            return None
        if not username or not password:
            self._fail(ERROR_TITLE, INVALID_CREDENTIALS_MESSAGE)
            return None
        credentials = Credentials(username=username, password=password)
        return self._start(self._log_in(credentials))

    async def _log_in(self, credentials: Credentials) -> AuthResult:
        try:
            user = await self._identity_service.login(
                credentials.username, credentials.password
            )
        except IdentityServiceError as e:
            logger.warning(f"Log in failed (code={e.code}): {e.message}")
            return self._fail(ERROR_TITLE, f"Failed to log in: {e.message}")

        self.form.clear()
        return self._succeed(user)

    # ------------------------------------------------------------------
    # Sign in with Apple
    # ------------------------------------------------------------------

    def begin_federated_sign_in(self) -> Optional[asyncio.Task]:  # type: ignore[type-arg]
        """Start Sign in with Apple, requesting full name and email.

        Raises:
            PresentationAnchorError: The screen has no display surface.
        """
        if self.in_flight:
            logger.warning("Sign in with Apple ignored: an attempt is already in flight")
            return None
        request = IdentityRequest(
            requested_scopes={IdentityScope.FULL_NAME, IdentityScope.EMAIL}
        )
        anchor = self.presentation_anchor()
        return self._start(self._sign_in_with_apple(request, anchor))

    async def _sign_in_with_apple(
        self, request: IdentityRequest, anchor: PresentationAnchor
    ) -> AuthResult:
        try:
            authorization = await self._broker.perform_requests([request], anchor)
        except AuthorizationError as e:
            return self.on_authorization_error(e)
        return await self.on_authorization_complete(authorization)

    async def on_authorization_complete(self, authorization: Authorization) -> AuthResult:
        """Exchange a successful Apple authorization for a session."""
        credential = authorization.credential
        if not isinstance(credential, AppleIDCredential):
            return self._fail(APPLE_TITLE, INVALID_CREDENTIAL_MESSAGE)
        if not credential.identity_token:
            return self._fail(APPLE_TITLE, TOKEN_NOT_FOUND_MESSAGE)

        try:
            user = await self._identity_service.login_with_apple(
                credential.user, credential.identity_token
            )
        except IdentityServiceError as e:
            logger.warning(f"Apple log in failed (code={e.code}): {e.message}")
            return self._fail(ERROR_TITLE, e.message)
        return self._succeed(user)

    def on_authorization_error(self, error: AuthorizationError) -> AuthResult:
        """Surface a broker failure (cancellation included)."""
        logger.info(f"Apple authorization failed: {error.description}")
        return self._fail(ERROR_TITLE, error.description)

    def presentation_anchor(self) -> PresentationAnchor:
        if self._anchor is None:
            raise PresentationAnchorError("No presentation surface found!")
        return self._anchor

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _start(self, attempt: Coroutine[Any, Any, AuthResult]) -> asyncio.Task:  # type: ignore[type-arg]
        self._task = asyncio.create_task(attempt)
        return self._task

    def _succeed(self, user: User) -> AuthResult:
        self._router.route_to_session(user)
        return AuthResult(user=user)

    def _fail(self, title: str, message: str) -> AuthResult:
        self._dialog.show_message(title, message)
        return AuthResult(error=ErrorInfo(title=title, message=message))
