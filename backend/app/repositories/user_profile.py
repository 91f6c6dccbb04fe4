"""User profile documents, keyed by the identity provider's user id."""

from typing import Any, Dict, Optional

from app.entities.user_profile import UserProfile
from app.store.base import RemoteStore

from .base import BaseRepository

COLLECTION = "users"


class UserProfileRepository(BaseRepository[UserProfile]):
    def __init__(self, store: RemoteStore):
        super().__init__(store, COLLECTION, UserProfile)

    async def find_by_uid(self, uid: str) -> Optional[UserProfile]:
        return await self.find_by_id(uid)

    async def exists(self, uid: str) -> bool:
        # Existence only; a profile that fails to decode still exists
        return await self.store.get(self.collection_name, uid) is not None

    async def create_profile(self, uid: str, fields: Dict[str, Any]) -> None:
        await self.store.set(self.collection_name, uid, fields, merge=False)

    async def merge_profile(self, uid: str, fields: Dict[str, Any]) -> None:
        """Write ``fields`` without touching anything else in the document."""
        await self.store.set(self.collection_name, uid, fields, merge=True)
