"""Session providers consulted when the log in screen loads.

A provider answers one question: is there already an authenticated user?
If so the screen skips straight to the home screen.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Optional

from .errors import IdentityServiceError
from .schemas import User

if TYPE_CHECKING:
    from .identity_service import IdentityService

logger = logging.getLogger(__name__)


class SessionProvider(ABC):
    """Source of the current session, injected into the controller."""

    @abstractmethod
    async def current_user(self) -> Optional[User]:
        """Return the authenticated user, or None."""


class SessionStore(SessionProvider):
    """In-memory current user for single-user hosts."""

    def __init__(self, user: Optional[User] = None) -> None:
        self._user = user

    async def current_user(self) -> Optional[User]:
        return self._user

    def set_current(self, user: User) -> None:
        self._user = user

    def clear(self) -> None:
        self._user = None


class TokenSessionProvider(SessionProvider):
    """Resolves a session token (e.g. from a cookie) through the identity service.

    An invalid or revoked token simply means "no session".
    """

    def __init__(self, identity_service: IdentityService, session_token: Optional[str]) -> None:
        self._identity_service = identity_service
        self.session_token = session_token

    async def current_user(self) -> Optional[User]:
        if not self.session_token:
            return None
        try:
            return await self._identity_service.become(self.session_token)
        except IdentityServiceError as exc:
            logger.info("Stored session rejected (code=%s): %s", exc.code, exc.message)
            return None
