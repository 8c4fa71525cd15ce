"""Exceptions raised by the log in collaborators."""
from typing import Optional


class IdentityServiceError(Exception):
    """Raised when the identity service rejects a call or cannot be reached."""
    def __init__(self, message: str, code: Optional[int] = None):
        self.message = message
        self.code = code
        super().__init__(message)


class AuthorizationError(Exception):
    """Raised by an authorization broker when it cannot produce a credential.

    Covers user cancellation, provider errors and expired requests.
    """
    def __init__(self, description: str, code: Optional[str] = None):
        self.description = description
        self.code = code
        super().__init__(description)


class PresentationAnchorError(RuntimeError):
    """The screen has no display surface to present authorization on.

    This is a host integration bug. It is never shown to the user.
    """
