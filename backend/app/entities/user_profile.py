from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

from .base import BaseEntity


class UserPreferences(BaseModel):
    theme: Literal["light", "dark", "system"] = "light"
    notifications: bool = True
    email_updates: bool = False


class UserStats(BaseModel):
    total_repos: int = 0
    total_docs: int = 0
    last_active_at: Optional[datetime] = None


class UserProfile(BaseEntity):
    uid: str
    email: Optional[str] = None
    display_name: Optional[str] = None
    photo_url: Optional[str] = None
    last_login_at: Optional[datetime] = None

    # Owned by other parts of the system; never overwritten on login
    repositories: List[str] = Field(default_factory=list)
    preferences: UserPreferences = Field(default_factory=UserPreferences)
    stats: UserStats = Field(default_factory=UserStats)
