"""MongoDB implementation of the remote store contract."""

from __future__ import annotations

import asyncio
import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Generator, List, Optional

from bson import ObjectId
from pymongo import ASCENDING, DESCENDING
from pymongo.database import Database
from pymongo.errors import (
    ConnectionFailure,
    DuplicateKeyError,
    OperationFailure,
    PyMongoError,
)

from app.store.base import (
    SERVER_TIMESTAMP,
    ChangeListener,
    ChangeOp,
    ErrorListener,
    FilterOp,
    QueryDescriptor,
    Unsubscribe,
)
from app.store.events import ChangeFeed, publish_change
from app.store.exceptions import (
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePermissionError,
    StoreUnavailableError,
)
from app.utils.datetime import utc_now

logger = logging.getLogger(__name__)

# Server error codes for Unauthorized / AuthenticationFailed / Atlas authz
_PERMISSION_CODES = {13, 18, 8000}


@contextmanager
def translate_errors(action: str) -> Generator[None, None, None]:
    """Classify pymongo failures into store error codes."""
    try:
        yield
    except DuplicateKeyError as exc:
        raise StoreConflictError(f"{action}: {exc}") from exc
    except ConnectionFailure as exc:
        # Covers AutoReconnect, NetworkTimeout and ServerSelectionTimeoutError
        raise StoreUnavailableError(f"{action}: {exc}") from exc
    except OperationFailure as exc:
        if exc.code in _PERMISSION_CODES or "not authorized" in str(exc).lower():
            raise StorePermissionError(f"{action}: {exc}") from exc
        raise StoreError(f"{action}: {exc}") from exc
    except PyMongoError as exc:
        raise StoreError(f"{action}: {exc}") from exc


def build_filter(descriptor: QueryDescriptor) -> Dict[str, Any]:
    clauses: List[Dict[str, Any]] = []
    for f in descriptor.filters:
        if f.op == FilterOp.IN:
            clauses.append({f.field: {"$in": list(f.value)}})
        else:
            clauses.append({f.field: f.value})
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def _resolve_timestamps(value: Any) -> Any:
    if value is SERVER_TIMESTAMP:
        return utc_now()
    if isinstance(value, dict):
        return {k: _resolve_timestamps(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_resolve_timestamps(v) for v in value]
    return value


def compile_update(fields: Dict[str, Any], flatten: bool) -> Dict[str, Any]:
    """
    Turn a field payload into a Mongo update document.

    Top-level (or, when ``flatten`` is set, any depth) SERVER_TIMESTAMP values
    become ``$currentDate``. Flattening writes nested maps as dotted paths so
    sibling keys already stored are left alone.
    """
    set_ops: Dict[str, Any] = {}
    date_ops: Dict[str, bool] = {}

    def visit(path: str, value: Any) -> None:
        if value is SERVER_TIMESTAMP:
            date_ops[path] = True
        elif flatten and isinstance(value, dict) and value:
            for key, nested in value.items():
                visit(f"{path}.{key}", nested)
        else:
            set_ops[path] = _resolve_timestamps(value)

    for key, value in fields.items():
        if key in ("id", "_id"):
            continue
        visit(key, value)

    update: Dict[str, Any] = {}
    if set_ops:
        update["$set"] = set_ops
    if date_ops:
        update["$currentDate"] = date_ops
    return update


def _id_filter(doc_id: str) -> Dict[str, Any]:
    # Ids written here are strings; documents inserted by other writers may use ObjectId.
    if ObjectId.is_valid(doc_id):
        return {"_id": {"$in": [doc_id, ObjectId(doc_id)]}}
    return {"_id": doc_id}


def from_mongo(doc: Dict[str, Any]) -> Dict[str, Any]:
    payload = dict(doc)
    payload["id"] = str(payload.pop("_id"))
    return payload


class MongoRemoteStore:
    """
    Remote store backed by a pymongo ``Database``.

    pymongo is synchronous, so every call is pushed to a worker thread to keep
    the event loop free. Successful writes publish a change message that the
    ``ChangeFeed`` fans out to live views.
    """

    def __init__(
        self,
        db: Database,
        feed: Optional[ChangeFeed] = None,
        publisher: Callable[[str, ChangeOp, str], bool] = publish_change,
    ):
        self.db = db
        self.feed = feed or ChangeFeed()
        self.publisher = publisher

    def ensure_indexes(self) -> None:
        with translate_errors("ensure indexes"):
            self.db["repositories"].create_index(
                [("user_id", ASCENDING), ("external_repo_id", ASCENDING)],
                unique=True,
                partialFilterExpression={"is_active": True},
                name="one_active_repo_per_user",
            )
            self.db["repositories"].create_index(
                [("user_id", ASCENDING), ("is_active", ASCENDING), ("created_at", DESCENDING)]
            )
            self.db["jobs"].create_index([("repo_id", ASCENDING), ("created_at", DESCENDING)])
            self.db["job_results"].create_index([("job_id", ASCENDING)])

    async def query(self, descriptor: QueryDescriptor) -> List[Dict[str, Any]]:
        return await asyncio.to_thread(self._query_sync, descriptor)

    def _query_sync(self, descriptor: QueryDescriptor) -> List[Dict[str, Any]]:
        with translate_errors(f"query {descriptor.collection}"):
            cursor = self.db[descriptor.collection].find(build_filter(descriptor))
            if descriptor.sort is not None:
                direction = DESCENDING if descriptor.sort.descending else ASCENDING
                cursor = cursor.sort(descriptor.sort.field, direction)
            if descriptor.limit:
                cursor = cursor.limit(descriptor.limit)
            return [from_mongo(doc) for doc in cursor]

    async def get(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get_sync, collection, doc_id)

    def _get_sync(self, collection: str, doc_id: str) -> Optional[Dict[str, Any]]:
        with translate_errors(f"get {collection}/{doc_id}"):
            doc = self.db[collection].find_one(_id_filter(doc_id))
        return from_mongo(doc) if doc else None

    async def create(self, collection: str, fields: Dict[str, Any]) -> str:
        return await asyncio.to_thread(self._create_sync, collection, fields)

    def _create_sync(self, collection: str, fields: Dict[str, Any]) -> str:
        doc_id = str(ObjectId())
        with translate_errors(f"create {collection}"):
            # An upsert so that $currentDate can stamp the server time on insert.
            self.db[collection].update_one(
                {"_id": doc_id}, compile_update(fields, flatten=True), upsert=True
            )
        self.publisher(collection, ChangeOp.INSERT, doc_id)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        await asyncio.to_thread(self._update_sync, collection, doc_id, fields)

    def _update_sync(self, collection: str, doc_id: str, fields: Dict[str, Any]) -> None:
        update = compile_update(fields, flatten=False)
        if not update:
            return
        with translate_errors(f"update {collection}/{doc_id}"):
            result = self.db[collection].update_one(_id_filter(doc_id), update)
        if result.matched_count == 0:
            raise StoreNotFoundError(f"{collection}/{doc_id} does not exist")
        self.publisher(collection, ChangeOp.UPDATE, doc_id)

    async def set(
        self,
        collection: str,
        doc_id: str,
        fields: Dict[str, Any],
        merge: bool = False,
    ) -> None:
        await asyncio.to_thread(self._set_sync, collection, doc_id, fields, merge)

    def _set_sync(
        self, collection: str, doc_id: str, fields: Dict[str, Any], merge: bool
    ) -> None:
        with translate_errors(f"set {collection}/{doc_id}"):
            if merge:
                result = self.db[collection].update_one(
                    {"_id": doc_id}, compile_update(fields, flatten=True), upsert=True
                )
            else:
                # Replacement cannot use update operators; timestamps are taken here.
                document = _resolve_timestamps(
                    {k: v for k, v in fields.items() if k not in ("id", "_id")}
                )
                result = self.db[collection].replace_one(
                    {"_id": doc_id}, document, upsert=True
                )
        op = ChangeOp.INSERT if result.upserted_id is not None else ChangeOp.UPDATE
        self.publisher(collection, op, doc_id)

    async def listen(
        self,
        collection: str,
        on_change: ChangeListener,
        on_error: Optional[ErrorListener] = None,
    ) -> Unsubscribe:
        return await self.feed.listen(collection, on_change, on_error)

    def ping(self) -> None:
        with translate_errors("ping"):
            self.db.command("ping")
