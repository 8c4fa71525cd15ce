"""Log in router: the log in screen over HTTP.

Endpoints:
    GET  /login                 - Load the screen (skips to home on a valid session cookie)
    POST /login                 - Log in with username/password
    GET  /login/apple           - Start Sign in with Apple (redirects to Apple)
    POST /login/apple/callback  - Apple's form_post response

GET /login opens a screen and hands its id to the client in a cookie. The
two triggers (POST /login, GET /login/apple) act on that screen, so only
one attempt per client can be in flight. Apple's callback is a cross-site
POST that carries no screen cookie; it finds its attempt by ``state``.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from fastapi import APIRouter, FastAPI, Form, HTTPException, Request
from fastapi.responses import JSONResponse, RedirectResponse
from pydantic import BaseModel

from login_app.config import get_config

from .apple_service import AppleWebAuthorizationBroker
from .identity_service import IdentityService
from .screen import OpenScreen, ScreenOutcome, ScreenRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/login", tags=["login"])


@dataclass
class PendingSignIn:
    """A Sign in with Apple attempt waiting for Apple's callback."""
    entry: OpenScreen
    task: asyncio.Task  # type: ignore[type-arg]


def configure_login(
    app: FastAPI,
    identity_service: IdentityService,
    apple_broker: AppleWebAuthorizationBroker,
) -> None:
    """Attach the log in collaborators to *app*."""
    app.state.identity_service = identity_service
    app.state.apple_broker = apple_broker
    app.state.login_screens = ScreenRegistry(identity_service, apple_broker)
    app.state.pending_sign_ins = {}


def _loaded_screen(request: Request) -> OpenScreen:
    """Return the client's open screen; triggers need a loaded screen."""
    registry: ScreenRegistry = request.app.state.login_screens
    entry = registry.get(request.cookies.get(get_config().session.screen_cookie_name))
    if entry is None:
        raise HTTPException(status_code=400, detail="Log in screen is not loaded")
    if entry.controller.in_flight:
        raise HTTPException(status_code=409, detail="A log in attempt is already in progress")
    entry.screen.reset()
    return entry


def _outcome_response(request: Request, entry: OpenScreen, outcome: ScreenOutcome) -> JSONResponse:
    """Render a screen outcome.

    A routed user gets the session cookie and the screen is closed.
    """
    body = outcome.model_dump(
        mode="json",
        exclude_none=True,
        exclude={"user": {"session_token", "auth_data"}},
    )
    response = JSONResponse(body)
    session = get_config().session
    if outcome.status == "routed":
        request.app.state.login_screens.discard(entry.screen_id)
        response.delete_cookie(session.screen_cookie_name)
        if outcome.user.session_token:
            response.set_cookie(
                session.cookie_name,
                outcome.user.session_token,
                httponly=True,
                secure=session.cookie_secure,
                samesite="lax",
            )
    return response


class LoginRequest(BaseModel):
    """Request body for a username/password log in."""
    username: str = ""
    password: str = ""


@router.get("")
async def load_screen(request: Request):
    """Load the log in screen.

    Returns status "routed" with the user when the session cookie is still
    valid, status "busy" while an attempt is running, otherwise "ready".
    """
    session = get_config().session
    registry: ScreenRegistry = request.app.state.login_screens
    entry = registry.get(request.cookies.get(session.screen_cookie_name))
    if entry is None:
        entry = registry.open()
    elif entry.controller.in_flight:
        return {"status": "busy"}
    else:
        entry.screen.reset()

    entry.session_provider.session_token = request.cookies.get(session.cookie_name)
    user = await entry.controller.load()
    if user is not None:
        return _outcome_response(request, entry, await entry.screen.outcome())

    response = JSONResponse({"status": "ready"})
    response.set_cookie(
        session.screen_cookie_name,
        entry.screen_id,
        httponly=True,
        secure=session.cookie_secure,
        samesite="lax",
    )
    return response


@router.post("")
async def log_in(request: Request, body: LoginRequest):
    """Log in with username and password.

    Returns status "routed" with the user, or status "message" with the
    dialog's title and message. 409 while another attempt is running.
    """
    entry = _loaded_screen(request)
    controller = entry.controller
    controller.form.username = body.username
    controller.form.password = body.password

    task = controller.handle_log_in()
    if task is not None:
        await task
    return _outcome_response(request, entry, await entry.screen.outcome())


# =============================================================================
# Sign in with Apple
# =============================================================================


@router.get("/apple")
async def apple_start(request: Request):
    """Start Sign in with Apple and redirect the browser to Apple."""
    config = get_config()
    if not config.apple.enabled:
        raise HTTPException(status_code=400, detail="Sign in with Apple is not enabled")
    if not config.apple.client_id or not config.apple.redirect_uri:
        raise HTTPException(
            status_code=400,
            detail="Sign in with Apple client_id/redirect_uri is not configured",
        )

    entry = _loaded_screen(request)
    screen = entry.screen
    task = entry.controller.begin_federated_sign_in()

    if not await screen.wait_for_presentation():
        await task
        return _outcome_response(request, entry, await screen.outcome())

    pending: Dict[str, PendingSignIn] = request.app.state.pending_sign_ins
    state = screen.state
    pending[state] = PendingSignIn(entry=entry, task=task)
    # Expired attempts disappear with their task
    task.add_done_callback(lambda _: pending.pop(state, None))
    return RedirectResponse(screen.authorization_url, status_code=303)


@router.post("/apple/callback")
async def apple_callback(
    request: Request,
    state: str = Form(...),
    code: Optional[str] = Form(None),
    id_token: Optional[str] = Form(None),
    user: Optional[str] = Form(None),
    error: Optional[str] = Form(None),
):
    """Receive Apple's form_post and finish the matching sign in attempt."""
    pending: Dict[str, PendingSignIn] = request.app.state.pending_sign_ins
    attempt = pending.pop(state, None)
    if attempt is None:
        raise HTTPException(status_code=400, detail="Unknown or expired sign in state")

    form = {
        key: value
        for key, value in {
            "code": code, "id_token": id_token, "user": user, "error": error,
        }.items()
        if value is not None
    }
    try:
        request.app.state.apple_broker.complete(state, form)
    except KeyError:
        raise HTTPException(status_code=400, detail="Unknown or expired sign in state")

    await attempt.task
    return _outcome_response(request, attempt.entry, await attempt.entry.screen.outcome())
