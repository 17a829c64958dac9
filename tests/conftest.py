"""
Shared test fixtures for mongo-cloner.

Provides:
- mongo: an in-memory fake MongoDB cluster patched into ``cluster_manager``
  so every module that opens a connection talks to it.  Unknown URIs behave
  like unreachable servers.
- tracker: a fresh JobTracker
- client: FastAPI TestClient with a fresh tracker swapped into the app
"""

import copy
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo.errors import OperationFailure, ServerSelectionTimeoutError

import cluster_manager
from job_tracker import JobTracker


def _matches(doc, mongo_filter):
    return all(doc.get(k) == v for k, v in (mongo_filter or {}).items())


class FakeCursor:
    def __init__(self, docs):
        self._docs = docs
        self._skip = 0
        self._limit = 0

    def sort(self, pairs):
        for field, direction in reversed(pairs):
            self._docs.sort(key=lambda d: d.get(field), reverse=direction < 0)
        return self

    def skip(self, n):
        self._skip = n
        return self

    def limit(self, n):
        self._limit = n
        return self

    def __iter__(self):
        docs = self._docs[self._skip:]
        if self._limit:
            docs = docs[:self._limit]
        return iter(copy.deepcopy(docs))


class FakeCollection:
    def __init__(self, database, name):
        self.database = database
        self.name = name
        self.docs = []
        self.indexes = [{"v": 2, "key": {"_id": 1}, "name": "_id_"}]
        self.insert_batches = []

    def _attach(self):
        self.database.collections[self.name] = self

    # --- reads ---
    def count_documents(self, mongo_filter, **kwargs):
        return len([d for d in self.docs if _matches(d, mongo_filter)])

    def estimated_document_count(self):
        return len(self.docs)

    def find(self, mongo_filter=None, projection=None, **kwargs):
        return FakeCursor([d for d in self.docs if _matches(d, mongo_filter)])

    def find_one(self, mongo_filter=None):
        for doc in self.docs:
            if _matches(doc, mongo_filter):
                return copy.deepcopy(doc)
        return None

    def list_indexes(self):
        return iter(copy.deepcopy(self.indexes))

    # --- writes ---
    def insert_many(self, docs, ordered=True):
        server = self.database.server
        if server.fail_inserts:
            raise OperationFailure("insert rejected by server")
        self._attach()
        for doc in docs:
            doc.setdefault("_id", ObjectId())
            self.docs.append(copy.deepcopy(doc))
        self.insert_batches.append(len(docs))
        return SimpleNamespace(inserted_ids=[d["_id"] for d in docs])

    def insert_one(self, doc):
        self.insert_many([doc])
        return SimpleNamespace(inserted_id=doc["_id"])

    def update_one(self, mongo_filter, update):
        for doc in self.docs:
            if _matches(doc, mongo_filter):
                before = copy.deepcopy(doc)
                doc.update(update.get("$set", {}))
                for key, amount in update.get("$inc", {}).items():
                    doc[key] = doc.get(key, 0) + amount
                return SimpleNamespace(matched_count=1, modified_count=int(doc != before))
        return SimpleNamespace(matched_count=0, modified_count=0)

    def delete_one(self, mongo_filter):
        for i, doc in enumerate(self.docs):
            if _matches(doc, mongo_filter):
                del self.docs[i]
                return SimpleNamespace(deleted_count=1)
        return SimpleNamespace(deleted_count=0)

    def drop(self):
        self.database.drop_count += 1
        self.database.collections.pop(self.name, None)
        self.docs = []
        self.indexes = [{"v": 2, "key": {"_id": 1}, "name": "_id_"}]

    def create_index(self, keys, **kwargs):
        server = self.database.server
        fields = [k for k, _ in keys]
        if set(fields) & server.fail_index_fields:
            raise OperationFailure(f"cannot index {fields}")
        self._attach()
        name = kwargs.pop("name", None) or "_".join(f"{k}_{v}" for k, v in keys)
        self.indexes.append({"v": 2, "key": dict(keys), "name": name, **kwargs})
        return name


class FakeDatabase:
    def __init__(self, server, name):
        self.server = server
        self.name = name
        self.collections = {}
        self.drop_count = 0

    def __getitem__(self, name):
        return self.collections.get(name) or FakeCollection(self, name)

    def list_collections(self):
        return iter([{"name": n, "type": "collection"} for n in self.collections])


class FakeServer:
    def __init__(self, uri):
        self.uri = uri
        self.down = False
        self.fail_inserts = False
        self.fail_index_fields = set()
        self.databases = {}
        self.opened = 0
        self.closed = 0

    def db(self, name):
        return self.databases.setdefault(name, FakeDatabase(self, name))

    def collection(self, db_name, coll_name):
        return self.db(db_name).collections.get(coll_name)

    def seed(self, db_name, coll_name, docs, indexes=()):
        coll = FakeCollection(self.db(db_name), coll_name)
        coll._attach()
        coll.docs = [copy.deepcopy(d) for d in docs]
        for d in coll.docs:
            d.setdefault("_id", ObjectId())
        coll.indexes.extend(copy.deepcopy(list(indexes)))
        return coll


class _Admin:
    def __init__(self, server):
        self._server = server

    def command(self, name):
        if self._server is None or self._server.down:
            raise ServerSelectionTimeoutError("No servers found yet")
        return {"ok": 1.0}


class FakeClient:
    def __init__(self, server):
        self._server = server
        self.admin = _Admin(server)
        if server is not None:
            server.opened += 1

    def __getitem__(self, name):
        return self._server.db(name)

    def list_databases(self):
        return iter([
            {"name": name, "sizeOnDisk": 8192 * len(db.collections), "empty": not db.collections}
            for name, db in self._server.databases.items()
        ])

    def close(self):
        if self._server is not None:
            self._server.closed += 1


class FakeCluster:
    def __init__(self):
        self.servers = {}

    def server(self, uri):
        return self.servers.setdefault(uri, FakeServer(uri))

    def client_factory(self, uri, **kwargs):
        return FakeClient(self.servers.get(uri))


@pytest.fixture
def mongo(monkeypatch):
    cluster = FakeCluster()
    monkeypatch.setattr(cluster_manager, "MongoClient", cluster.client_factory)
    return cluster


@pytest.fixture
def source(mongo):
    return mongo.server("mongodb://source:27017")


@pytest.fixture
def target(mongo):
    return mongo.server("mongodb://target:27017")


@pytest.fixture
def tracker():
    return JobTracker()


@pytest.fixture
def client(mongo, tracker, monkeypatch):
    """FastAPI TestClient with a fresh in-memory job registry."""
    from fastapi.testclient import TestClient
    import app as app_module

    monkeypatch.setattr(app_module, "tracker", tracker)
    with TestClient(app_module.app, raise_server_exceptions=False) as tc:
        yield tc
