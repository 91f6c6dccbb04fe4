"""Request dependencies for the signed-in session."""

from fastapi import Depends, HTTPException, Request, status

from app.services.identity.base import Identity
from app.services.session import SessionContext


def get_session(request: Request) -> SessionContext:
    return request.app.state.session


def get_current_identity(session: SessionContext = Depends(get_session)) -> Identity:
    """Return the signed-in identity, or 401 when nobody is signed in."""
    identity = session.current_identity
    if identity is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
        )
    return identity


def get_github_token(
    identity: Identity = Depends(get_current_identity),
    session: SessionContext = Depends(get_session),
) -> str:
    credential = session.credential
    if credential is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="GitHub access token missing, please sign in again",
        )
    return credential.access_token
