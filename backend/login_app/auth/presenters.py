"""Outbound contracts of the log in screen: message dialog and home-screen router."""
from abc import ABC, abstractmethod

from .schemas import User


class Dialog(ABC):
    """Presents a message with a single "Back" action."""

    @abstractmethod
    def show_message(self, title: str, message: str) -> None:
        """Schedule the message. Returns immediately."""


class Router(ABC):
    """Hands an authenticated user to the home screen."""

    @abstractmethod
    def route_to_session(self, user: User) -> None:
        """Present the home screen for *user*. No validation is performed."""
