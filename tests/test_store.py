"""
Tests for tenant data stores.

MotorDataStore is tested against mocked motor collections; the
in-memory store is the one the engine tests run on.
"""
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest
from bson import ObjectId
from pymongo.errors import DuplicateKeyError

from apiflow.tenant import InMemoryDataStore, MotorDataStore, UpdateSummary, to_plain


@pytest.fixture
def collection():
    cursor = MagicMock()
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=[])

    coll = MagicMock()
    coll.find.return_value = cursor
    coll.find_one = AsyncMock(return_value=None)
    coll.insert_one = AsyncMock()
    coll.update_one = AsyncMock()
    coll.update_many = AsyncMock()
    coll.delete_one = AsyncMock()
    coll.delete_many = AsyncMock()
    coll.cursor = cursor
    return coll


@pytest.fixture
def motor_store(collection):
    database = MagicMock()
    database.name = "tenant_db"
    database.__getitem__.return_value = collection
    return MotorDataStore(database)


# =============================================================================
# BSON Conversion
# =============================================================================


class TestToPlain:
    def test_converts_object_ids_recursively(self):
        oid = ObjectId()

        assert to_plain({"_id": oid, "refs": [oid, {"inner": oid}], "n": 1}) == {
            "_id": str(oid),
            "refs": [str(oid), {"inner": str(oid)}],
            "n": 1,
        }


# =============================================================================
# MotorDataStore
# =============================================================================


class TestMotorDataStore:
    @pytest.mark.asyncio
    async def test_find_applies_limit_and_projection(self, motor_store, collection):
        oid = ObjectId()
        collection.cursor.to_list.return_value = [{"_id": oid, "name": "Ada"}]

        documents = await motor_store.find("users", {"name": "Ada"}, projection={"name": 1}, limit=10)

        assert documents == [{"_id": str(oid), "name": "Ada"}]
        collection.find.assert_called_once_with({"name": "Ada"}, {"name": 1})
        collection.cursor.limit.assert_called_once_with(10)
        collection.cursor.to_list.assert_awaited_once_with(length=10)

    @pytest.mark.asyncio
    async def test_string_ids_become_object_ids(self, motor_store, collection):
        oid = ObjectId()

        await motor_store.find("users", {"_id": str(oid)}, limit=1)

        assert collection.find.call_args.args[0] == {"_id": oid}

    @pytest.mark.asyncio
    async def test_non_object_id_strings_are_kept(self, motor_store, collection):
        await motor_store.find_one("users", {"_id": "user-42"})

        collection.find_one.assert_awaited_once_with({"_id": "user-42"}, None)

    @pytest.mark.asyncio
    async def test_insert_returns_plain_id(self, motor_store, collection):
        oid = ObjectId()
        collection.insert_one.return_value = SimpleNamespace(inserted_id=oid)
        document = {"name": "Ada"}

        inserted_id = await motor_store.insert_one("users", document)

        assert inserted_id == str(oid)
        assert document == {"name": "Ada"}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("many, method", [(True, "update_many"), (False, "update_one")])
    async def test_update_sets_changes(self, motor_store, collection, many, method):
        getattr(collection, method).return_value = SimpleNamespace(matched_count=3, modified_count=2)

        summary = await motor_store.update("users", {"team": "a"}, {"active": False}, many=many)

        assert summary == UpdateSummary(matched_count=3, modified_count=2)
        getattr(collection, method).assert_awaited_once_with({"team": "a"}, {"$set": {"active": False}})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("many, method", [(True, "delete_many"), (False, "delete_one")])
    async def test_delete_counts(self, motor_store, collection, many, method):
        getattr(collection, method).return_value = SimpleNamespace(deleted_count=4)

        assert await motor_store.delete("users", {}, many=many) == 4

    def test_database_name(self, motor_store):
        assert motor_store.database_name == "tenant_db"


# =============================================================================
# InMemoryDataStore
# =============================================================================


class TestInMemoryDataStore:
    @pytest.mark.asyncio
    async def test_dotted_equality_queries(self):
        store = InMemoryDataStore(
            collections={"orders": [{"customer": {"id": "1"}}, {"customer": {"id": "2"}}]}
        )

        found = await store.find("orders", {"customer.id": "2"}, limit=10)

        assert found == [{"customer": {"id": "2"}}]

    @pytest.mark.asyncio
    async def test_results_are_copies(self, store):
        found = await store.find_one("users", {"_id": "42"})
        found["name"] = "Changed"

        assert store.collections["users"][0]["name"] == "Ada"

    @pytest.mark.asyncio
    async def test_exclusion_projection(self, store):
        found = await store.find_one("users", {}, projection={"email": 0})

        assert found == {"_id": "42", "name": "Ada"}

    @pytest.mark.asyncio
    async def test_insert_assigns_id(self):
        store = InMemoryDataStore()

        inserted_id = await store.insert_one("things", {"a": 1})

        assert ObjectId.is_valid(inserted_id)
        assert store.collections["things"] == [{"a": 1, "_id": inserted_id}]

    @pytest.mark.asyncio
    async def test_duplicate_id(self, store):
        with pytest.raises(DuplicateKeyError):
            await store.insert_one("users", {"_id": "42"})

    @pytest.mark.asyncio
    async def test_unchanged_update_is_matched_not_modified(self, store):
        summary = await store.update("users", {"_id": "42"}, {"name": "Ada"}, many=False)

        assert summary == UpdateSummary(matched_count=1, modified_count=0)
