"""Typed access to one store collection."""

import logging
from typing import Any, Dict, Generic, Iterable, List, Optional, Sequence, Type, TypeVar

from pydantic import ValidationError

from app.entities.base import BaseEntity
from app.store.base import (
    SERVER_TIMESTAMP,
    FieldFilter,
    QueryDescriptor,
    RemoteStore,
    SortKey,
)
from app.store.exceptions import DocumentDecodeError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseEntity)


class BaseRepository(Generic[T]):
    """
    Decodes raw store documents into entities and back.

    Malformed documents never leave this layer untyped: single reads raise
    ``DocumentDecodeError`` and list reads drop them with a warning.
    """

    def __init__(self, store: RemoteStore, collection_name: str, model_class: Type[T]):
        self.store = store
        self.collection_name = collection_name
        self.model_class = model_class

    def decode(self, raw: Dict[str, Any]) -> T:
        try:
            return self.model_class.model_validate(raw)
        except ValidationError as exc:
            raise DocumentDecodeError(
                f"Malformed {self.collection_name} document {raw.get('id')}: {exc.error_count()} error(s)",
                collection=self.collection_name,
                doc_id=raw.get("id"),
            ) from exc

    def decode_many(self, raws: Iterable[Dict[str, Any]]) -> List[T]:
        items: List[T] = []
        for raw in raws:
            try:
                items.append(self.decode(raw))
            except DocumentDecodeError as exc:
                logger.warning(f"Skipping document: {exc}")
        return items

    def descriptor(
        self,
        filters: Sequence[FieldFilter] = (),
        sort: Optional[SortKey] = None,
        limit: Optional[int] = None,
    ) -> QueryDescriptor:
        return QueryDescriptor(
            collection=self.collection_name,
            filters=tuple(filters),
            sort=sort,
            limit=limit,
        )

    async def find_many(self, descriptor: QueryDescriptor) -> List[T]:
        raws = await self.store.query(descriptor)
        return self.decode_many(raws)

    async def find_one(self, descriptor: QueryDescriptor) -> Optional[T]:
        limited = QueryDescriptor(
            collection=descriptor.collection,
            filters=descriptor.filters,
            sort=descriptor.sort,
            limit=1,
        )
        items = await self.find_many(limited)
        return items[0] if items else None

    async def find_by_id(self, doc_id: str) -> Optional[T]:
        raw = await self.store.get(self.collection_name, doc_id)
        if raw is None:
            return None
        return self.decode(raw)

    async def insert_one(self, fields: Dict[str, Any]) -> str:
        payload = dict(fields)
        payload["created_at"] = SERVER_TIMESTAMP
        payload["updated_at"] = SERVER_TIMESTAMP
        return await self.store.create(self.collection_name, payload)

    async def update_one(self, doc_id: str, updates: Dict[str, Any]) -> None:
        payload = dict(updates)
        payload["updated_at"] = SERVER_TIMESTAMP
        await self.store.update(self.collection_name, doc_id, payload)
