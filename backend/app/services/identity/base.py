"""Identity provider contract used by the session."""

from __future__ import annotations

from typing import Callable, Optional, Protocol

from pydantic import BaseModel, Field

# Error codes reported by identity providers
POPUP_CLOSED_BY_USER = "popup-closed-by-user"
POPUP_BLOCKED = "popup-blocked"
CANCELLED_POPUP_REQUEST = "cancelled-popup-request"
UNAUTHORIZED_DOMAIN = "unauthorized-domain"
OPERATION_NOT_ALLOWED = "operation-not-allowed"
INTERNAL_ERROR = "internal-error"


class Identity(BaseModel):
    """A signed-in user as reported by the provider."""

    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    login: Optional[str] = None


class Credential(BaseModel):
    provider: str = "github"
    access_token: str = Field(repr=False)
    scope: Optional[str] = None


class SignInResult(BaseModel):
    identity: Identity
    credential: Credential


class IdentityProviderError(Exception):
    """Raised by providers; ``code`` is one of the module-level codes above."""

    def __init__(self, code: str, message: str = ""):
        super().__init__(message or code)
        self.code = code


IdentityListener = Callable[[Optional[Identity]], None]


class IdentityProvider(Protocol):
    async def sign_in_interactive(self) -> SignInResult:
        ...

    async def sign_out(self) -> None:
        ...

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Register ``listener``; it is called right away with the current identity."""
        ...
