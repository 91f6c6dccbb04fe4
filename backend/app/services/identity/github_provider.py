"""GitHub OAuth sign-in (authorization code flow, browser based)."""

from __future__ import annotations

import asyncio
import logging
import uuid
import webbrowser
from typing import Callable, List, Optional, Tuple
from urllib.parse import urlencode

import httpx

from app.services.identity.base import (
    CANCELLED_POPUP_REQUEST,
    INTERNAL_ERROR,
    OPERATION_NOT_ALLOWED,
    POPUP_BLOCKED,
    POPUP_CLOSED_BY_USER,
    UNAUTHORIZED_DOMAIN,
    Credential,
    Identity,
    IdentityListener,
    IdentityProviderError,
    SignInResult,
)

logger = logging.getLogger(__name__)

GITHUB_AUTHORIZE_URL = "https://github.com/login/oauth/authorize"
GITHUB_TOKEN_URL = "https://github.com/login/oauth/access_token"

# Errors GitHub sends back on the redirect or from the token endpoint
_GITHUB_ERROR_CODES = {
    "access_denied": POPUP_CLOSED_BY_USER,
    "redirect_uri_mismatch": UNAUTHORIZED_DOMAIN,
    "application_suspended": OPERATION_NOT_ALLOWED,
    "incorrect_client_credentials": OPERATION_NOT_ALLOWED,
}


def _github_error(error: str, description: Optional[str] = None) -> IdentityProviderError:
    code = _GITHUB_ERROR_CODES.get(error, INTERNAL_ERROR)
    return IdentityProviderError(code, description or error)


class GithubOAuthIdentityProvider:
    """
    Signs the dashboard user in with GitHub.

    ``sign_in_interactive`` opens the authorize page in the user's browser and
    waits until the OAuth callback route calls ``complete_authorization`` with
    the same ``state``. Only one sign-in can be pending at a time.
    """

    def __init__(
        self,
        client_id: Optional[str],
        client_secret: Optional[str],
        redirect_uri: str,
        scopes: List[str],
        api_url: str = "https://api.github.com",
        timeout: float = 300.0,
        open_browser: Callable[[str], bool] = webbrowser.open,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.scopes = scopes
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.open_browser = open_browser
        self.transport = transport

        self._pending: Optional[Tuple[str, asyncio.Future]] = None
        self._current: Optional[SignInResult] = None
        self._listeners: List[IdentityListener] = []

    @classmethod
    def from_settings(cls, settings) -> "GithubOAuthIdentityProvider":
        return cls(
            client_id=settings.GITHUB_CLIENT_ID,
            client_secret=settings.GITHUB_CLIENT_SECRET,
            redirect_uri=settings.GITHUB_REDIRECT_URI,
            scopes=settings.GITHUB_SCOPES,
            api_url=settings.GITHUB_API_URL,
            timeout=settings.OAUTH_SIGN_IN_TIMEOUT_SECONDS,
        )

    @property
    def configured(self) -> bool:
        return bool(self.client_id and self.client_secret)

    @property
    def pending_state(self) -> Optional[str]:
        return self._pending[0] if self._pending else None

    def build_authorize_url(self, state: str) -> str:
        params = {
            "client_id": self.client_id,
            "scope": " ".join(self.scopes),
            "redirect_uri": self.redirect_uri,
            "state": state,
        }
        return f"{GITHUB_AUTHORIZE_URL}?{urlencode(params)}"

    async def sign_in_interactive(self) -> SignInResult:
        if not self.configured:
            raise IdentityProviderError(
                OPERATION_NOT_ALLOWED,
                "GitHub OAuth credentials are not configured. Set GITHUB_CLIENT_ID/SECRET.",
            )
        if self._pending is not None and not self._pending[1].done():
            raise IdentityProviderError(CANCELLED_POPUP_REQUEST, "A sign-in is already pending")

        state = uuid.uuid4().hex
        future: asyncio.Future = asyncio.get_running_loop().create_future()
        self._pending = (state, future)
        try:
            if not self.open_browser(self.build_authorize_url(state)):
                raise IdentityProviderError(POPUP_BLOCKED, "Could not open a browser window")
            try:
                result: SignInResult = await asyncio.wait_for(future, timeout=self.timeout)
            except asyncio.TimeoutError:
                raise IdentityProviderError(
                    POPUP_CLOSED_BY_USER, "Sign-in was not completed in time"
                ) from None
        finally:
            self._pending = None

        self._current = result
        logger.info(f"Signed in to GitHub as {result.identity.login or result.identity.uid}")
        self._notify(result.identity)
        return result

    async def complete_authorization(
        self,
        state: str,
        code: Optional[str] = None,
        error: Optional[str] = None,
        error_description: Optional[str] = None,
    ) -> None:
        """Finish the pending sign-in from the OAuth redirect."""
        pending = self._pending
        if pending is None or pending[0] != state:
            raise IdentityProviderError(INTERNAL_ERROR, "Invalid or expired OAuth state")
        future = pending[1]
        if future.done():
            return

        if error or not code:
            future.set_exception(_github_error(error or "missing_code", error_description))
            return

        try:
            result = await self._exchange_code(code, state)
        except IdentityProviderError as exc:
            if not future.done():
                future.set_exception(exc)
            raise
        except httpx.HTTPError as exc:
            wrapped = IdentityProviderError(INTERNAL_ERROR, f"GitHub request failed: {exc}")
            if not future.done():
                future.set_exception(wrapped)
            raise wrapped from exc
        except (ValueError, KeyError) as exc:
            # Non-JSON body or a user payload without an id
            wrapped = IdentityProviderError(
                INTERNAL_ERROR, f"Unexpected response from GitHub: {exc!r}"
            )
            if not future.done():
                future.set_exception(wrapped)
            raise wrapped from exc

        if not future.done():
            future.set_result(result)

    async def _exchange_code(self, code: str, state: str) -> SignInResult:
        async with httpx.AsyncClient(timeout=10, transport=self.transport) as client:
            token_response = await client.post(
                GITHUB_TOKEN_URL,
                headers={"Accept": "application/json"},
                data={
                    "client_id": self.client_id,
                    "client_secret": self.client_secret,
                    "code": code,
                    "redirect_uri": self.redirect_uri,
                    "state": state,
                },
            )
            token_response.raise_for_status()
            token_data = token_response.json()
            if token_data.get("error"):
                raise _github_error(token_data["error"], token_data.get("error_description"))

            access_token = token_data.get("access_token")
            if not access_token:
                raise IdentityProviderError(INTERNAL_ERROR, "GitHub did not return an access token")

            user_response = await client.get(
                f"{self.api_url}/user",
                headers={
                    "Accept": "application/vnd.github+json",
                    "Authorization": f"Bearer {access_token}",
                },
            )
            user_response.raise_for_status()
            user_data = user_response.json()

        identity = Identity(
            uid=str(user_data["id"]),
            email=user_data.get("email"),
            display_name=user_data.get("name") or user_data.get("login"),
            photo_url=user_data.get("avatar_url"),
            login=user_data.get("login"),
        )
        credential = Credential(access_token=access_token, scope=token_data.get("scope"))
        return SignInResult(identity=identity, credential=credential)

    async def sign_out(self) -> None:
        self._current = None
        self._notify(None)

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        self._listeners.append(listener)
        listener(self._current.identity if self._current else None)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, identity: Optional[Identity]) -> None:
        for listener in list(self._listeners):
            listener(identity)
