"""Connected repository records (``repositories`` collection)."""

from typing import Any, Dict, List, Optional

from app.entities.repository import ConnectedRepository, RepositoryStats
from app.store.base import QueryDescriptor, RemoteStore, SortKey, eq

from .base import BaseRepository

COLLECTION = "repositories"


class ConnectedRepositoryRepository(BaseRepository[ConnectedRepository]):
    """Repository for ConnectedRepository entities."""

    def __init__(self, store: RemoteStore):
        super().__init__(store, COLLECTION, ConnectedRepository)

    def active_for_user(self, user_id: str) -> QueryDescriptor:
        """Live-queryable view of a user's connected repositories, newest first."""
        return self.descriptor(
            filters=[eq("user_id", user_id), eq("is_active", True)],
            sort=SortKey("created_at", descending=True),
        )

    async def list_active(self, user_id: str) -> List[ConnectedRepository]:
        return await self.find_many(self.active_for_user(user_id))

    async def find_active_by_external_id(
        self, user_id: str, external_repo_id: str
    ) -> Optional[ConnectedRepository]:
        return await self.find_one(
            self.descriptor(
                filters=[
                    eq("user_id", user_id),
                    eq("external_repo_id", str(external_repo_id)),
                    eq("is_active", True),
                ]
            )
        )

    async def add_repository(self, user_id: str, fields: Dict[str, Any]) -> ConnectedRepository:
        """
        Persist a newly connected repository.

        The record is built locally from what was written so that callers do
        not depend on a follow-up read once the write has been accepted.
        """
        payload = dict(fields)
        payload.update(
            {
                "user_id": user_id,
                "is_active": True,
                "stats": RepositoryStats().model_dump(),
            }
        )
        repo = ConnectedRepository.model_validate(payload)
        doc_id = await self.insert_one(repo.to_document())
        return repo.model_copy(update={"id": doc_id})

    async def update_repository(self, repo_id: str, updates: Dict[str, Any]) -> None:
        await self.update_one(repo_id, updates)

    async def soft_delete(self, repo_id: str) -> None:
        """Mark inactive. Deleting an already inactive record only refreshes updated_at."""
        await self.update_one(repo_id, {"is_active": False})
