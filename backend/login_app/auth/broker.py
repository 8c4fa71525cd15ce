"""Authorization broker interface.

A broker obtains a federated identity credential (e.g. Sign in with Apple)
for a list of identity requests. It needs a presentation anchor: the display
surface on which the provider's own authorization UI is shown.
"""
from abc import ABC, abstractmethod
from typing import List

from .schemas import Authorization, IdentityRequest


class PresentationAnchor(ABC):
    """Display surface that can show the provider's authorization page."""

    @abstractmethod
    def present(self, url: str, state: str) -> None:
        """Show the authorization page at *url* for the request tagged *state*."""


class AuthorizationBroker(ABC):
    """Obtains a federated credential from an identity provider."""

    @abstractmethod
    async def perform_requests(
        self, requests: List[IdentityRequest], anchor: PresentationAnchor
    ) -> Authorization:
        """Run the provider's authorization flow.

        Returns:
            The provider's authorization. Its credential shape is not checked.

        Raises:
            AuthorizationError: The user cancelled, the provider failed, or
                the request expired.
        """
