import copy
import os
from types import SimpleNamespace
from typing import Any

import pytest
from bson import ObjectId
from pymongo.errors import AutoReconnect

os.environ.setdefault("API_KEY", "test-api-key")
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("MONGO_DATABASE", "bizledger_test")


def _resolve(value: Any, parts: list[str]) -> list[Any]:
    if not parts:
        return [value]
    if isinstance(value, list):
        return [found for item in value for found in _resolve(item, parts)]
    if isinstance(value, dict) and parts[0] in value:
        return _resolve(value[parts[0]], parts[1:])
    return []


def _value_matches(value: Any, condition: Any) -> bool:
    if isinstance(condition, dict) and "$in" in condition:
        return any(_value_matches(value, option) for option in condition["$in"])
    if isinstance(value, list):
        return value == condition or condition in value
    return value == condition


def matches(doc: dict, query: dict) -> bool:
    """Subset of MongoDB query semantics: equality, dotted paths, $or and $in."""
    for key, condition in query.items():
        if key == "$or":
            if not any(matches(doc, clause) for clause in condition):
                return False
            continue
        values = _resolve(doc, key.split("."))
        if not any(_value_matches(value, condition) for value in values):
            return False
    return True


def _project(doc: dict, projection: dict | None) -> dict:
    if not projection:
        return copy.deepcopy(doc)
    kept = {"_id": doc["_id"]} if "_id" in doc else {}
    for field in projection:
        if field in doc:
            kept[field] = copy.deepcopy(doc[field])
    return kept


class FakeCursor:
    def __init__(self, collection: "FakeCollection", docs: list[dict]):
        self._collection = collection
        self._docs = docs

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        self._collection.maybe_fail("find")
        for doc in self._docs:
            yield doc


class FakeCollection:
    """In-memory stand-in for an AsyncIOMotorCollection."""

    def __init__(self, name: str):
        self.name = name
        self.docs: list[dict] = []
        self.fail_on: set[str] = set()
        self.fail_after_updates: int | None = None
        self.indexes: list[dict] = []
        self.delete_calls = 0
        self.update_calls = 0

    def insert(self, *docs: dict) -> list[ObjectId]:
        ids = []
        for doc in docs:
            doc = copy.deepcopy(doc)
            doc.setdefault("_id", ObjectId())
            self.docs.append(doc)
            ids.append(doc["_id"])
        return ids

    def get(self, document_id: Any) -> dict | None:
        return next((d for d in self.docs if d["_id"] == document_id), None)

    def maybe_fail(self, operation: str) -> None:
        if operation in self.fail_on:
            raise AutoReconnect(f"simulated {operation} failure on {self.name}")

    async def delete_many(self, query: dict):
        self.delete_calls += 1
        self.maybe_fail("delete_many")
        kept = [doc for doc in self.docs if not matches(doc, query)]
        deleted = len(self.docs) - len(kept)
        self.docs = kept
        return SimpleNamespace(deleted_count=deleted)

    def find(self, query: dict, projection: dict | None = None) -> FakeCursor:
        found = [_project(doc, projection) for doc in self.docs if matches(doc, query)]
        return FakeCursor(self, found)

    async def find_one(self, query: dict, projection: dict | None = None):
        self.maybe_fail("find_one")
        for doc in self.docs:
            if matches(doc, query):
                return _project(doc, projection)
        return None

    async def count_documents(self, query: dict, limit: int | None = None) -> int:
        self.maybe_fail("count_documents")
        count = sum(1 for doc in self.docs if matches(doc, query))
        return min(count, limit) if limit else count

    async def update_one(self, query: dict, update: dict):
        if not update:
            # pymongo validates this client-side
            raise ValueError("update cannot be empty")
        self.update_calls += 1
        self.maybe_fail("update_one")
        if (
            self.fail_after_updates is not None
            and self.update_calls > self.fail_after_updates
        ):
            raise AutoReconnect(f"simulated update failure on {self.name}")
        doc = next((d for d in self.docs if matches(d, query)), None)
        if doc is None:
            return SimpleNamespace(matched_count=0, modified_count=0)
        before = copy.deepcopy(doc)
        for field in update.get("$unset", {}):
            doc.pop(field, None)
        for field, value in update.get("$set", {}).items():
            doc[field] = copy.deepcopy(value)
        return SimpleNamespace(matched_count=1, modified_count=int(doc != before))

    async def create_index(self, keys, **options):
        self.maybe_fail("create_index")
        self.indexes.append({"keys": list(keys), **options})
        return options.get("name")


class FakeDatabase:
    """Hands out FakeCollections by name, like AsyncIOMotorDatabase.__getitem__."""

    def __init__(self):
        self.collections: dict[str, FakeCollection] = {}

    def __getitem__(self, name: str) -> FakeCollection:
        if name not in self.collections:
            self.collections[name] = FakeCollection(name)
        return self.collections[name]


@pytest.fixture
def fake_db() -> FakeDatabase:
    return FakeDatabase()


@pytest.fixture
def tenant_id() -> ObjectId:
    return ObjectId()


@pytest.fixture
def other_tenant_id() -> ObjectId:
    return ObjectId()
