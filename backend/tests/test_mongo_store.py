import unittest
from datetime import datetime
from unittest.mock import MagicMock

from bson import ObjectId
from pymongo.errors import (
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from app.store.base import SERVER_TIMESTAMP, ChangeOp, QueryDescriptor, SortKey, eq, is_in
from app.store.exceptions import (
    StoreConflictError,
    StoreError,
    StoreNotFoundError,
    StorePermissionError,
    StoreUnavailableError,
    is_transient,
)
from app.store.mongo_store import (
    MongoRemoteStore,
    build_filter,
    compile_update,
    from_mongo,
    translate_errors,
)


class TestBuildFilter(unittest.TestCase):
    def test_equality_and_membership(self):
        descriptor = QueryDescriptor(
            collection="jobs",
            filters=(eq("status", "queued"), is_in("repo_id", ["a", "b"])),
        )
        self.assertEqual(
            build_filter(descriptor),
            {"$and": [{"status": "queued"}, {"repo_id": {"$in": ["a", "b"]}}]},
        )

    def test_single_and_empty(self):
        self.assertEqual(
            build_filter(QueryDescriptor("jobs", filters=(eq("repo_id", "a"),))),
            {"repo_id": "a"},
        )
        self.assertEqual(build_filter(QueryDescriptor("jobs")), {})


class TestCompileUpdate(unittest.TestCase):
    def test_server_timestamps_become_current_date(self):
        update = compile_update(
            {"id": "x", "name": "alpha", "updated_at": SERVER_TIMESTAMP}, flatten=False
        )
        self.assertEqual(update["$set"], {"name": "alpha"})
        self.assertEqual(update["$currentDate"], {"updated_at": True})

    def test_flatten_writes_dotted_paths(self):
        update = compile_update(
            {"preferences": {"theme": "dark"}, "stats": {"last_active_at": SERVER_TIMESTAMP}},
            flatten=True,
        )
        self.assertEqual(update["$set"], {"preferences.theme": "dark"})
        self.assertEqual(update["$currentDate"], {"stats.last_active_at": True})

    def test_nested_timestamp_resolved_without_flatten(self):
        update = compile_update({"stats": {"last_active_at": SERVER_TIMESTAMP}}, flatten=False)
        self.assertIsInstance(update["$set"]["stats"]["last_active_at"], datetime)

    def test_empty_payload(self):
        self.assertEqual(compile_update({"id": "x"}, flatten=True), {})


class TestTranslateErrors(unittest.TestCase):
    def assert_translated(self, raised, expected):
        with self.assertRaises(expected):
            with translate_errors("test"):
                raise raised

    def test_classification(self):
        self.assert_translated(DuplicateKeyError("dup"), StoreConflictError)
        self.assert_translated(ServerSelectionTimeoutError("no servers"), StoreUnavailableError)
        self.assert_translated(OperationFailure("denied", code=13), StorePermissionError)
        self.assert_translated(
            OperationFailure("user is not authorized on docgen"), StorePermissionError
        )
        self.assert_translated(OperationFailure("bad query", code=2), StoreError)

    def test_transient_only_for_unavailable(self):
        self.assertTrue(is_transient(StoreUnavailableError("x")))
        self.assertFalse(is_transient(StorePermissionError("x")))
        self.assertFalse(is_transient(ValueError("x")))


class TestMongoRemoteStore(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.db = MagicMock()
        self.collection = self.db.__getitem__.return_value
        self.publisher = MagicMock(return_value=True)
        self.store = MongoRemoteStore(self.db, feed=MagicMock(), publisher=self.publisher)

    def test_from_mongo_exposes_string_id(self):
        oid = ObjectId()
        self.assertEqual(from_mongo({"_id": oid, "a": 1}), {"id": str(oid), "a": 1})

    async def test_query_applies_sort_and_limit(self):
        cursor = self.collection.find.return_value
        cursor.sort.return_value = cursor
        cursor.limit.return_value = cursor
        cursor.__iter__.return_value = iter([{"_id": "j1", "status": "queued"}])

        rows = await self.store.query(
            QueryDescriptor(
                "jobs",
                filters=(eq("repo_id", "r1"),),
                sort=SortKey("created_at", descending=True),
                limit=10,
            )
        )

        self.collection.find.assert_called_once_with({"repo_id": "r1"})
        cursor.sort.assert_called_once_with("created_at", -1)
        cursor.limit.assert_called_once_with(10)
        self.assertEqual(rows, [{"id": "j1", "status": "queued"}])

    async def test_create_upserts_and_publishes(self):
        doc_id = await self.store.create("repositories", {"name": "a", "created_at": SERVER_TIMESTAMP})

        filter_doc, update = self.collection.update_one.call_args[0]
        self.assertEqual(filter_doc, {"_id": doc_id})
        self.assertEqual(update["$currentDate"], {"created_at": True})
        self.assertTrue(self.collection.update_one.call_args[1]["upsert"])
        self.publisher.assert_called_once_with("repositories", ChangeOp.INSERT, doc_id)

    async def test_update_missing_document(self):
        self.collection.update_one.return_value.matched_count = 0
        with self.assertRaises(StoreNotFoundError):
            await self.store.update("repositories", "r1", {"is_active": False})
        self.publisher.assert_not_called()

    async def test_merge_set_flattens(self):
        self.collection.update_one.return_value.upserted_id = None
        await self.store.set("users", "gh-1", {"preferences": {"theme": "dark"}}, merge=True)

        _, update = self.collection.update_one.call_args[0]
        self.assertEqual(update["$set"], {"preferences.theme": "dark"})
        self.publisher.assert_called_once_with("users", ChangeOp.UPDATE, "gh-1")

    async def test_replace_set_resolves_timestamps(self):
        self.collection.replace_one.return_value.upserted_id = "gh-1"
        await self.store.set("users", "gh-1", {"uid": "gh-1", "created_at": SERVER_TIMESTAMP})

        _, document = self.collection.replace_one.call_args[0]
        self.assertIsInstance(document["created_at"], datetime)
        self.publisher.assert_called_once_with("users", ChangeOp.INSERT, "gh-1")

    async def test_unreachable_server_maps_to_unavailable(self):
        self.collection.find_one.side_effect = ServerSelectionTimeoutError("timeout")
        with self.assertRaises(StoreUnavailableError):
            await self.store.get("users", "gh-1")

    def test_ensure_indexes_creates_partial_unique_index(self):
        self.store.ensure_indexes()
        calls = self.collection.create_index.call_args_list
        unique = [c for c in calls if c.kwargs.get("unique")]
        self.assertEqual(len(unique), 1)
        self.assertEqual(unique[0].kwargs["partialFilterExpression"], {"is_active": True})


if __name__ == "__main__":
    unittest.main()
