"""Shared base for documents stored in the remote store."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from app.utils.datetime import ensure_utc


class BaseEntity(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, value: Any) -> Any:
        # Documents written by other services may carry ObjectId / int ids
        if value is None or isinstance(value, str):
            return value
        return str(value)

    @field_validator("created_at", "updated_at", mode="after")
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value)

    def to_document(self) -> Dict[str, Any]:
        """Fields as they are written to the store (store-managed id excluded)."""
        return self.model_dump(exclude={"id"}, mode="python")
