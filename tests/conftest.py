import copy
import os
import sys
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import PyMongoError

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))


class FakeCollection:
    """Just enough of a pymongo collection for the store and identity provider."""

    def __init__(self):
        self.docs = []
        self.fail_reads = False
        self.fail_writes = False

    @staticmethod
    def _matches(doc, filter_dict):
        return all(doc.get(key) == value for key, value in (filter_dict or {}).items())

    def find_one(self, filter_dict=None):
        if self.fail_reads:
            raise PyMongoError("read failed")
        for doc in self.docs:
            if self._matches(doc, filter_dict):
                return copy.deepcopy(doc)
        return None

    def insert_one(self, doc):
        if self.fail_writes:
            raise PyMongoError("write failed")
        doc = copy.deepcopy(doc)
        doc.setdefault("_id", ObjectId())
        self.docs.append(doc)
        return SimpleNamespace(inserted_id=doc["_id"])

    def replace_one(self, filter_dict, replacement, upsert=False):
        if self.fail_writes:
            raise PyMongoError("write failed")
        for i, doc in enumerate(self.docs):
            if self._matches(doc, filter_dict):
                self.docs[i] = copy.deepcopy(replacement)
                return SimpleNamespace(matched_count=1)
        if upsert:
            self.docs.append(copy.deepcopy(replacement))
        return SimpleNamespace(matched_count=0)

    def update_one(self, filter_dict, update):
        if self.fail_writes:
            raise PyMongoError("write failed")
        for doc in self.docs:
            if self._matches(doc, filter_dict):
                doc.update(copy.deepcopy(update.get("$set", {})))
                return SimpleNamespace(matched_count=1)
        return SimpleNamespace(matched_count=0)


class FakeDatabase:
    name = "linguaquest-test"

    def __init__(self):
        self.collections = {}

    def __getitem__(self, name):
        return self.collections.setdefault(name, FakeCollection())

    def list_collection_names(self):
        return list(self.collections)


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def client(fake_db, monkeypatch):
    from fastapi.testclient import TestClient

    import main

    monkeypatch.setattr(main, "db", fake_db)
    monkeypatch.setattr(main, "_store", None)
    monkeypatch.setattr(main, "_identity", None)
    main.SESSIONS.clear()
    main.STATS.clear()
    main.PENDING_WRITES.clear()
    with TestClient(main.app) as test_client:
        yield test_client
    main.SESSIONS.clear()
    main.STATS.clear()
    main.PENDING_WRITES.clear()
