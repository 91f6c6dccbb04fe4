"""Session DTOs"""

from typing import Optional

from pydantic import BaseModel

from app.services.identity.base import Identity


class SessionResponse(BaseModel):
    signed_in: bool
    identity: Optional[Identity] = None
    is_loading: bool = False
    error: Optional[str] = None

    @classmethod
    def from_session(cls, session) -> "SessionResponse":
        return cls(
            signed_in=session.current_identity is not None,
            identity=session.current_identity,
            is_loading=session.is_loading,
            error=session.last_error,
        )
