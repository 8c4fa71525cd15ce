"""HTTP rendition of the log in screen.

A WebLogInScreen plays the three display roles the controller talks to:
dialog, router and presentation anchor. Instead of drawing anything it
records what the screen would show. The first outcome of an attempt wins.

Screens are long-lived: the ScreenRegistry keeps one screen and one
controller per client, so a second trigger while an attempt is running
hits that controller's in-flight guard.
"""
from __future__ import annotations

import asyncio
import logging
import uuid
from collections import OrderedDict
from dataclasses import dataclass
from typing import Literal, Optional

from pydantic import BaseModel

from .broker import AuthorizationBroker, PresentationAnchor
from .controller import LogInController
from .identity_service import IdentityService
from .presenters import Dialog, Router
from .schemas import DISMISS_ACTION_TITLE, User
from .session import TokenSessionProvider

logger = logging.getLogger(__name__)


class ScreenOutcome(BaseModel):
    """What the screen ended up showing.

    Attributes:
        status: "routed" (home screen with user) or "message" (dialog).
        user: The authenticated user when routed.
        title: Dialog title when a message is shown.
        message: Dialog body when a message is shown.
        action: Label of the dialog's only button.
    """
    status: Literal["routed", "message"]
    user: Optional[User] = None
    title: Optional[str] = None
    message: Optional[str] = None
    action: Optional[str] = None


class WebLogInScreen(Dialog, Router, PresentationAnchor):
    """Collects the outcome of the current log in attempt for an HTTP response.

    One screen lives across requests; ``reset()`` starts a new attempt.
    """

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> None:
        """Forget the previous outcome. Only call while no attempt is running."""
        loop = asyncio.get_running_loop()
        self._outcome: asyncio.Future = loop.create_future()  # type: ignore[type-arg]
        self._presented = asyncio.Event()
        self.authorization_url: Optional[str] = None
        self.state: Optional[str] = None

    @property
    def settled(self) -> bool:
        return self._outcome.done()

    # Dialog
    def show_message(self, title: str, message: str) -> None:
        self._settle(
            ScreenOutcome(
                status="message",
                title=title,
                message=message,
                action=DISMISS_ACTION_TITLE,
            )
        )

    # Router
    def route_to_session(self, user: User) -> None:
        self._settle(ScreenOutcome(status="routed", user=user))

    # PresentationAnchor
    def present(self, url: str, state: str) -> None:
        self.authorization_url = url
        self.state = state
        self._presented.set()

    async def wait_for_presentation(self) -> bool:
        """Wait until authorization is presented or the attempt ends early.

        Returns:
            True if an authorization page was presented.
        """
        presented = asyncio.ensure_future(self._presented.wait())
        try:
            await asyncio.wait(
                {presented, self._outcome}, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            presented.cancel()
        return self._presented.is_set()

    async def outcome(self) -> ScreenOutcome:
        # shield: a cancelled waiter must not cancel the shared outcome
        return await asyncio.shield(self._outcome)

    def _settle(self, outcome: ScreenOutcome) -> None:
        if self._outcome.done():
            logger.warning("Screen already settled, dropping %s outcome", outcome.status)
            return
        self._outcome.set_result(outcome)


# =============================================================================
# Screen registry
# =============================================================================

# Oldest screens are closed beyond this many open screens
MAX_OPEN_SCREENS = 10000


@dataclass
class OpenScreen:
    """One client's log in screen and the controller behind it."""
    screen_id: str
    screen: WebLogInScreen
    controller: LogInController
    session_provider: TokenSessionProvider


class ScreenRegistry:
    """Open log in screens keyed by screen id (LRU).

    A client keeps its screen id in a cookie, so every request from that
    client reaches the same controller and its in-flight guard.
    """

    def __init__(
        self,
        identity_service: IdentityService,
        broker: AuthorizationBroker,
        max_screens: int = MAX_OPEN_SCREENS,
    ) -> None:
        self._identity_service = identity_service
        self._broker = broker
        self._max_screens = max_screens
        self._screens: OrderedDict[str, OpenScreen] = OrderedDict()

    def __len__(self) -> int:
        return len(self._screens)

    def get(self, screen_id: Optional[str]) -> Optional[OpenScreen]:
        if not screen_id:
            return None
        entry = self._screens.get(screen_id)
        if entry is not None:
            self._screens.move_to_end(screen_id)
        return entry

    def open(self) -> OpenScreen:
        """Open a new screen with its own controller."""
        screen = WebLogInScreen()
        session_provider = TokenSessionProvider(self._identity_service, None)
        entry = OpenScreen(
            screen_id=uuid.uuid4().hex,
            screen=screen,
            controller=LogInController(
                identity_service=self._identity_service,
                broker=self._broker,
                router=screen,
                dialog=screen,
                session_provider=session_provider,
                anchor=screen,
            ),
            session_provider=session_provider,
        )
        self._screens[entry.screen_id] = entry
        while len(self._screens) > self._max_screens:
            _, oldest = self._screens.popitem(last=False)
            oldest.controller.close()
        return entry

    def discard(self, screen_id: str) -> None:
        entry = self._screens.pop(screen_id, None)
        if entry is not None:
            entry.controller.close()

    def close_all(self) -> None:
        for entry in self._screens.values():
            entry.controller.close()
        self._screens.clear()
