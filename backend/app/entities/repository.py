"""Connected repository entity - a source repository linked to a dashboard user."""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator

from .base import BaseEntity


class RepositoryStats(BaseModel):
    """Aggregates maintained by the analysis pipeline."""

    docs_count: int = 0
    files_analyzed: int = 0
    coverage: float = 0.0


class ConnectedRepository(BaseEntity):
    user_id: str
    external_repo_id: str

    full_name: str
    name: str
    owner_login: str
    description: Optional[str] = None
    is_private: bool = False
    language: Optional[str] = None
    default_branch: str = "main"
    installation_id: Optional[int] = None

    webhook_id: Optional[str] = None
    webhook_secret: Optional[str] = Field(default=None, repr=False)

    last_analyzed_sha: Optional[str] = None
    last_analyzed_at: Optional[datetime] = None

    stats: RepositoryStats = Field(default_factory=RepositoryStats)
    is_active: bool = True

    @field_validator("external_repo_id", "webhook_id", mode="before")
    @classmethod
    def _stringify(cls, value: Any) -> Any:
        # GitHub hands out numeric ids; they are stored as strings
        if isinstance(value, int):
            return str(value)
        return value
