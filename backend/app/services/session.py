"""
Session context: the signed-in identity for this dashboard process.

The session is created once at application start (``start``) and released
at shutdown (``close``). It is passed explicitly to whatever needs the
identity; nothing reads it from module state.
"""

import asyncio
import logging
from enum import Enum
from typing import Callable, Optional, Set

from app.services.identity.base import (
    CANCELLED_POPUP_REQUEST,
    OPERATION_NOT_ALLOWED,
    POPUP_BLOCKED,
    POPUP_CLOSED_BY_USER,
    UNAUTHORIZED_DOMAIN,
    Credential,
    Identity,
    IdentityProvider,
    IdentityProviderError,
)
from app.services.profile_service import ProfileService

logger = logging.getLogger(__name__)


class SignInErrorKind(str, Enum):
    POPUP_CLOSED = "PopupClosed"
    POPUP_BLOCKED = "PopupBlocked"
    CONCURRENT_POPUP = "ConcurrentPopup"
    UNAUTHORIZED_ORIGIN = "UnauthorizedOrigin"
    PROVIDER_DISABLED = "ProviderDisabled"
    UNKNOWN = "Unknown"


_KIND_BY_PROVIDER_CODE = {
    POPUP_CLOSED_BY_USER: SignInErrorKind.POPUP_CLOSED,
    POPUP_BLOCKED: SignInErrorKind.POPUP_BLOCKED,
    CANCELLED_POPUP_REQUEST: SignInErrorKind.CONCURRENT_POPUP,
    UNAUTHORIZED_DOMAIN: SignInErrorKind.UNAUTHORIZED_ORIGIN,
    OPERATION_NOT_ALLOWED: SignInErrorKind.PROVIDER_DISABLED,
}

SIGN_IN_MESSAGES = {
    SignInErrorKind.POPUP_CLOSED: "Sign-in window was closed before completing authentication",
    SignInErrorKind.POPUP_BLOCKED: "The sign-in window was blocked. Please allow popups for this site.",
    SignInErrorKind.CONCURRENT_POPUP: "Another sign-in window is already open",
    SignInErrorKind.UNAUTHORIZED_ORIGIN: "This address is not authorized for GitHub sign-in. Check the OAuth app's callback URL.",
    SignInErrorKind.PROVIDER_DISABLED: "GitHub sign-in is not enabled for this dashboard",
    SignInErrorKind.UNKNOWN: "Failed to sign in with GitHub",
}

SIGN_OUT_FAILED = "Failed to sign out"
PROFILE_SAVE_FAILED = "Signed in, but your profile could not be saved"


class SignInError(Exception):
    def __init__(self, kind: SignInErrorKind, provider_code: Optional[str] = None):
        self.kind = kind
        self.message = SIGN_IN_MESSAGES[kind]
        self.provider_code = provider_code
        super().__init__(self.message)


def map_sign_in_error(provider_code: Optional[str]) -> SignInError:
    """Map a provider error code to a user-facing error; unknown codes fall back to a generic one."""
    kind = _KIND_BY_PROVIDER_CODE.get(provider_code or "", SignInErrorKind.UNKNOWN)
    return SignInError(kind, provider_code)


class SessionContext:
    def __init__(self, provider: IdentityProvider, profile_service: ProfileService):
        self.provider = provider
        self.profile_service = profile_service

        self.current_identity: Optional[Identity] = None
        self.is_loading = True
        self.last_error: Optional[str] = None

        self._credential: Optional[Credential] = None
        self._release: Optional[Callable[[], None]] = None
        self._started = False
        self._profile_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()

    @property
    def credential(self) -> Optional[Credential]:
        return self._credential

    def start(self) -> None:
        """Register the single identity-change listener."""
        if self._started:
            raise RuntimeError("Session already started")
        self._started = True
        self._release = self.provider.on_identity_change(self._handle_identity_change)
        logger.info("Session started")

    def close(self) -> None:
        """Release the listener. Safe to call more than once."""
        release, self._release = self._release, None
        if release is not None:
            release()
            logger.info("Session closed")
        for task in list(self._background):
            task.cancel()

    def _handle_identity_change(self, identity: Optional[Identity]) -> None:
        self.current_identity = identity
        self.is_loading = False

        if identity is None:
            self._credential = None
            self._profile_task = None
            return

        task = asyncio.get_running_loop().create_task(
            self.profile_service.upsert_profile(identity)
        )
        self._background.add(task)
        task.add_done_callback(self._on_profile_done)
        self._profile_task = task

    def _on_profile_done(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Profile upsert failed: {exc}")
            self.last_error = PROFILE_SAVE_FAILED

    async def sign_in(self) -> Identity:
        self.last_error = None
        self.is_loading = True
        try:
            result = await self.provider.sign_in_interactive()
        except IdentityProviderError as exc:
            error = map_sign_in_error(exc.code)
            logger.warning(f"GitHub sign-in failed ({exc.code}): {exc}")
            self.last_error = error.message
            raise error from exc
        except Exception as exc:
            error = map_sign_in_error(None)
            logger.exception(f"GitHub sign-in failed unexpectedly: {exc}")
            self.last_error = error.message
            raise error from exc
        finally:
            self.is_loading = False

        self._credential = result.credential
        if self.current_identity is None or self.current_identity.uid != result.identity.uid:
            # Provider did not report the change before returning
            self._handle_identity_change(result.identity)

        task = self._profile_task
        if task is not None:
            # Identity stays signed in either way; non-transient failures reach the caller
            await asyncio.shield(task)
        return result.identity

    async def sign_out(self) -> None:
        self.last_error = None
        try:
            await self.provider.sign_out()
        except Exception:
            logger.exception("Sign-out failed")
            self.last_error = SIGN_OUT_FAILED
            raise
        if self.current_identity is not None:
            self._handle_identity_change(None)
        logger.info("Signed out")
