from .base import (
    CANCELLED_POPUP_REQUEST,
    INTERNAL_ERROR,
    OPERATION_NOT_ALLOWED,
    POPUP_BLOCKED,
    POPUP_CLOSED_BY_USER,
    UNAUTHORIZED_DOMAIN,
    Credential,
    Identity,
    IdentityProvider,
    IdentityProviderError,
    SignInResult,
)
from .github_provider import GithubOAuthIdentityProvider

__all__ = [
    "CANCELLED_POPUP_REQUEST",
    "INTERNAL_ERROR",
    "OPERATION_NOT_ALLOWED",
    "POPUP_BLOCKED",
    "POPUP_CLOSED_BY_USER",
    "UNAUTHORIZED_DOMAIN",
    "Credential",
    "Identity",
    "IdentityProvider",
    "IdentityProviderError",
    "SignInResult",
    "GithubOAuthIdentityProvider",
]
