from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import RedirectResponse

from app.config import settings
from app.dtos.session import SessionResponse
from app.middleware.auth import get_session
from app.services.identity.base import IdentityProviderError
from app.services.session import SessionContext

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.get("/session", response_model=SessionResponse)
def get_current_session(session: SessionContext = Depends(get_session)):
    """Current identity, loading flag and last session error."""
    return SessionResponse.from_session(session)


@router.post("/sign-in", response_model=SessionResponse)
async def sign_in(session: SessionContext = Depends(get_session)):
    """
    Open the GitHub authorize page and wait for the OAuth callback.

    Failures come back as 400 with a user-facing message.
    """
    await session.sign_in()
    return SessionResponse.from_session(session)


@router.post("/sign-out", response_model=SessionResponse)
async def sign_out(session: SessionContext = Depends(get_session)):
    await session.sign_out()
    return SessionResponse.from_session(session)


@router.get("/github/callback")
async def github_oauth_callback(
    request: Request,
    state: str = Query(..., description="GitHub OAuth state token"),
    code: Optional[str] = Query(None, description="GitHub authorization code"),
    error: Optional[str] = Query(None),
    error_description: Optional[str] = Query(None),
):
    """Hand the OAuth redirect to the pending sign-in, then redirect to the frontend."""
    provider = request.app.state.identity_provider
    redirect_target = settings.FRONTEND_BASE_URL.rstrip("/")

    try:
        await provider.complete_authorization(
            state, code=code, error=error, error_description=error_description
        )
    except IdentityProviderError as exc:
        return RedirectResponse(url=f"{redirect_target}/login?error={exc.code}")

    if error:
        return RedirectResponse(url=f"{redirect_target}/login?error={error}")
    return RedirectResponse(url=f"{redirect_target}/")
