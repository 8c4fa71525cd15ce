"""Pydantic models shared by the log in flows."""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Set

from pydantic import BaseModel, ConfigDict, Field

# Label of the single dismiss action on every message dialog.
DISMISS_ACTION_TITLE = "Back"


class Credentials(BaseModel):
    """Username/password pair collected at submit time."""
    username: str
    password: str


@dataclass
class LoginForm:
    """The two input fields of the log in screen."""
    username: Optional[str] = None
    password: Optional[str] = None

    def clear(self) -> None:
        self.username = None
        self.password = None


class IdentityScope(str, Enum):
    """Contact information requested from the identity provider."""
    FULL_NAME = "fullName"
    EMAIL = "email"


class IdentityRequest(BaseModel):
    """A single federated authorization request."""
    requested_scopes: Set[IdentityScope] = Field(default_factory=set)


class AppleIDCredential(BaseModel):
    """Credential issued by Sign in with Apple.

    Attributes:
        user: Stable opaque identifier of the Apple account.
        identity_token: JWT issued by Apple, as raw bytes.
        authorization_code: Short-lived code for server-side token exchange.
        email: Only provided on the first authorization.
        full_name: Only provided on the first authorization.
    """
    user: str
    identity_token: Optional[bytes] = None
    authorization_code: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None


class Authorization(BaseModel):
    """Successful broker result. The credential shape is not guaranteed."""
    model_config = ConfigDict(arbitrary_types_allowed=True)

    credential: Any = None


class User(BaseModel):
    """Parse user returned by the identity service."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    object_id: str = Field(..., alias="objectId")
    username: Optional[str] = None
    email: Optional[str] = None
    session_token: Optional[str] = Field(default=None, alias="sessionToken")
    auth_data: Optional[Dict[str, Any]] = Field(default=None, alias="authData")


class ErrorInfo(BaseModel):
    """Content of one message dialog."""
    title: str
    message: str


@dataclass
class AuthResult:
    """Outcome of one authentication task: a user or the dialog that was shown."""
    user: Optional[User] = None
    error: Optional[ErrorInfo] = None

    @property
    def ok(self) -> bool:
        return self.user is not None
