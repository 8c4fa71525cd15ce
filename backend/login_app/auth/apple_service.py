"""Sign in with Apple authorization broker (web flow).

Follows Apple's "Sign in with Apple JS" redirect flow:
1. Send the user to Apple's authorize endpoint (``response_mode=form_post``)
2. Wait for Apple to POST ``state``, ``code``, ``id_token`` (and ``user`` on
   the first authorization) back to the redirect URI
3. Turn that form post into an AppleIDCredential

The identity token is NOT verified here; the identity service verifies it
when it exchanges the token for a session.
"""
from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import Dict, Iterable, List, Mapping, Optional
from urllib.parse import quote, urlencode

import jwt

from .broker import AuthorizationBroker, PresentationAnchor
from .errors import AuthorizationError
from .schemas import AppleIDCredential, Authorization, IdentityRequest, IdentityScope

logger = logging.getLogger(__name__)

# Apple's scope names, in the order Apple documents them.
_SCOPE_NAMES = {
    IdentityScope.FULL_NAME: "name",
    IdentityScope.EMAIL: "email",
}

_ERROR_DESCRIPTIONS = {
    "user_cancelled_authorize": "The user canceled the authorization attempt.",
    "popup_closed_by_user": "The user canceled the authorization attempt.",
}


class AppleWebAuthorizationBroker(AuthorizationBroker):
    """Runs the Sign in with Apple web flow, one pending future per ``state``."""

    AUTHORIZE_URL = "https://appleid.apple.com/auth/authorize"
    RESPONSE_TYPE = "code id_token"
    RESPONSE_MODE = "form_post"

    def __init__(
        self,
        client_id: str,
        redirect_uri: str,
        authorize_url: str = AUTHORIZE_URL,
        response_timeout_seconds: float = 300,
    ):
        self.client_id = client_id
        self.redirect_uri = redirect_uri
        self.authorize_url = authorize_url
        self.response_timeout_seconds = response_timeout_seconds
        # state → future holding the Authorization
        self._pending: Dict[str, asyncio.Future] = {}  # type: ignore[type-arg]

    def authorization_url(self, scopes: Iterable[IdentityScope], state: str) -> str:
        """Build the authorize URL for *scopes* tagged with *state*."""
        requested = set(scopes)
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": self.RESPONSE_TYPE,
            "response_mode": self.RESPONSE_MODE,
            "state": state,
        }
        scope = " ".join(name for s, name in _SCOPE_NAMES.items() if s in requested)
        if scope:
            params["scope"] = scope
        return f"{self.authorize_url}?{urlencode(params, quote_via=quote)}"

    async def perform_requests(
        self, requests: List[IdentityRequest], anchor: PresentationAnchor
    ) -> Authorization:
        scopes = set()
        for request in requests:
            scopes |= request.requested_scopes

        state = uuid.uuid4().hex
        future = asyncio.get_running_loop().create_future()
        self._pending[state] = future
        try:
            anchor.present(self.authorization_url(scopes, state), state)
            logger.info("Apple authorization %s presented", state)
            return await asyncio.wait_for(future, timeout=self.response_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("Apple authorization %s timed out", state)
            raise AuthorizationError("The authorization request timed out.", code="timeout")
        finally:
            self._pending.pop(state, None)

    def is_pending(self, state: str) -> bool:
        return state in self._pending

    def complete(self, state: str, form: Mapping[str, str]) -> None:
        """Resolve the pending authorization for *state* from Apple's form post.

        Raises:
            KeyError: No authorization is waiting for *state*.
        """
        future = self._pending.get(state)
        if future is None:
            raise KeyError(state)
        if future.done():
            return

        error = form.get("error")
        if error:
            logger.info("Apple authorization %s failed: %s", state, error)
            future.set_exception(
                AuthorizationError(_ERROR_DESCRIPTIONS.get(error, error), code=error)
            )
            return

        try:
            credential = self._credential_from_form(form)
        except ValueError as e:
            future.set_exception(AuthorizationError(str(e), code="invalid_response"))
            return
        future.set_result(Authorization(credential=credential))

    @staticmethod
    def _credential_from_form(form: Mapping[str, str]) -> AppleIDCredential:
        id_token = form.get("id_token") or None
        user = _decode_subject(id_token) if id_token else ""

        email = None
        full_name = None
        if form.get("user"):
            # Only sent on the very first authorization
            try:
                info = json.loads(form["user"])
            except ValueError as e:
                raise ValueError("Malformed user information") from e
            if not isinstance(info, dict):
                raise ValueError("Malformed user information")
            email = info.get("email")
            name = info.get("name") or {}
            if not isinstance(name, dict):
                raise ValueError("Malformed user information")
            full_name = " ".join(
                part for part in (name.get("firstName"), name.get("lastName")) if part
            ) or None

        return AppleIDCredential(
            user=user,
            identity_token=id_token.encode("utf-8") if id_token else None,
            authorization_code=form.get("code"),
            email=email,
            full_name=full_name,
        )


def _decode_subject(id_token: str) -> str:
    """Read the ``sub`` claim of a JWT without verifying its signature."""
    try:
        claims = jwt.decode(id_token, options={"verify_signature": False})
    except jwt.DecodeError as e:
        raise ValueError("Malformed identity token") from e
    subject: Optional[str] = claims.get("sub")
    if not subject:
        raise ValueError("Identity token has no subject")
    return subject
