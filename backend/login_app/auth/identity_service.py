"""Identity service client for a Parse Server backend (Back4App).

Implements the three calls the log in screen needs:
1. ``POST /login`` for username/password
2. ``POST /users`` with Apple ``authData`` for Sign in with Apple
3. ``GET /users/me`` to resolve an existing session token
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from .errors import IdentityServiceError
from .schemas import User
from .session import SessionStore

logger = logging.getLogger(__name__)


class IdentityService(ABC):
    """Backend that turns credentials into an authenticated user."""

    @abstractmethod
    async def login(self, username: str, password: str) -> User:
        """Log in with username and password."""

    @abstractmethod
    async def login_with_apple(self, user: str, identity_token: bytes) -> User:
        """Log in (or sign up) with an Apple user id and identity token."""

    @abstractmethod
    async def become(self, session_token: str) -> User:
        """Resolve the user owning *session_token*."""


class ParseIdentityService(IdentityService):
    """Parse Server REST API client."""

    def __init__(
        self,
        server_url: str,
        application_id: str,
        client_key: Optional[str] = None,
        rest_api_key: Optional[str] = None,
        revocable_session: bool = True,
        session_store: Optional[SessionStore] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.server_url = server_url.rstrip("/")
        self.application_id = application_id
        self.client_key = client_key
        self.rest_api_key = rest_api_key
        self.revocable_session = revocable_session
        self.session_store = session_store
        self._client = client or httpx.AsyncClient()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def login(self, username: str, password: str) -> User:
        data = await self._request(
            "POST", "/login", json={"username": username, "password": password}
        )
        return self._remember(User.model_validate(data))

    async def login_with_apple(self, user: str, identity_token: bytes) -> User:
        auth_data = {"apple": {"id": user, "token": identity_token.decode("utf-8")}}
        data = await self._request("POST", "/users", json={"authData": auth_data})
        # A 201 (new user) only carries objectId, createdAt and sessionToken
        data.setdefault("authData", auth_data)
        return self._remember(User.model_validate(data))

    async def become(self, session_token: str) -> User:
        data = await self._request("GET", "/users/me", session_token=session_token)
        data.setdefault("sessionToken", session_token)
        return User.model_validate(data)

    async def current_user(self) -> Optional[User]:
        """Return the user stored after the last successful login, if any."""
        if self.session_store is None:
            return None
        return await self.session_store.current_user()

    def _remember(self, user: User) -> User:
        if self.session_store is not None:
            self.session_store.set_current(user)
        logger.info("Parse session acquired for user %s", user.object_id)
        return user

    def _headers(self, session_token: Optional[str] = None) -> Dict[str, str]:
        headers = {"X-Parse-Application-Id": self.application_id}
        if self.client_key:
            headers["X-Parse-Client-Key"] = self.client_key
        if self.rest_api_key:
            headers["X-Parse-REST-API-Key"] = self.rest_api_key
        if self.revocable_session:
            headers["X-Parse-Revocable-Session"] = "1"
        if session_token:
            headers["X-Parse-Session-Token"] = session_token
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
        session_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Send one request and return the decoded JSON body.

        Raises:
            IdentityServiceError: Transport failure, or a Parse error body
                (``{"code": ..., "error": ...}``).
        """
        try:
            resp = await self._client.request(
                method,
                f"{self.server_url}{path}",
                json=json,
                headers=self._headers(session_token),
            )
        except httpx.HTTPError as e:
            logger.error(f"Parse {method} {path} failed: {e}")
            raise IdentityServiceError(str(e) or type(e).__name__) from e

        try:
            data = resp.json()
        except ValueError:
            data = None

        if resp.is_error:
            data = data if isinstance(data, dict) else {}
            message = data.get("error") or resp.reason_phrase or f"HTTP {resp.status_code}"
            raise IdentityServiceError(message, code=data.get("code"))
        if not isinstance(data, dict):
            raise IdentityServiceError("Unexpected response from identity service")
        return data
