"""GitHub integration DTOs"""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel

from app.utils.datetime import parse_datetime


class CandidateRepository(BaseModel):
    """A repository the signed-in user could connect."""

    external_id: str
    name: str
    full_name: str
    description: Optional[str] = None
    owner_login: str
    owner_avatar_url: Optional[str] = None
    is_private: bool = False
    language: Optional[str] = None
    default_branch: str = "main"
    html_url: Optional[str] = None
    stargazers_count: int = 0
    forks_count: int = 0
    updated_at: Optional[datetime] = None

    @classmethod
    def from_github(cls, payload: Dict[str, Any]) -> "CandidateRepository":
        owner = payload.get("owner") or {}
        return cls(
            external_id=str(payload["id"]),
            name=payload["name"],
            full_name=payload["full_name"],
            description=payload.get("description"),
            owner_login=owner.get("login") or payload["full_name"].split("/")[0],
            owner_avatar_url=owner.get("avatar_url"),
            is_private=bool(payload.get("private", False)),
            language=payload.get("language"),
            default_branch=payload.get("default_branch") or "main",
            html_url=payload.get("html_url"),
            stargazers_count=payload.get("stargazers_count") or 0,
            forks_count=payload.get("forks_count") or 0,
            updated_at=parse_datetime(payload.get("updated_at")),
        )


class WebhookRegistration(BaseModel):
    webhook_id: str
    webhook_secret: str
