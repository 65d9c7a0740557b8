# ==============================================
# Pytest Configuration and Fixtures
# ==============================================
#
# No live MySQL / MongoDB is needed: the fixtures below inject in-memory
# stand-ins through ConnectionPool(connect_fn=...) and
# DocumentStore(client_factory=...). The stand-ins raise the real
# pymysql / pymongo exception types so error handling is exercised as-is.
#
# FIXTURES:
# ---------
# - relational_db   → FakeRelationalDB seeded with 2 restaurants, 3 people, 1 order
# - pool            → ConnectionPool (size 3) over relational_db
# - mongo_client    → FakeMongoClient
# - store           → DocumentStore over mongo_client
# - migrator        → Migrator(pool, store) with a fixed clock
#
# ==============================================

import copy
import re
from datetime import datetime
from decimal import Decimal
from itertools import count

import pytest
import pymysql.err
from pymongo.errors import BulkWriteError, DuplicateKeyError, OperationFailure

from dualstore.storage import ConnectionPool, DocumentStore, Migrator


MIGRATED_AT = datetime(2024, 5, 2, 9, 30)


# ==============================================
# MySQL stand-in
# ==============================================

class FakeCursor:
    def __init__(self, conn):
        self.conn = conn
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        return False

    def execute(self, query, params=None):
        db = self.conn.db
        db.executed.append(query)
        if not self.conn.open:
            raise pymysql.err.InterfaceError(0, "")
        for fragment, exc in db.failures.items():
            if fragment in query:
                raise exc

        q = query.strip()
        if re.match(r"SELECT 1\b", q, re.I):
            self._rows = [{"ok": 1}]
            return 1

        insert = re.match(r"INSERT INTO (\w+) \(([^)]*)\)", q, re.I)
        if insert:
            table = insert.group(1)
            columns = [c.strip() for c in insert.group(2).split(",")]
            row = dict(zip(columns, params))
            if self.conn.in_transaction:
                self.conn.pending.append((table, row))
            else:
                db.tables.setdefault(table, []).append(row)
            return 1

        select = re.match(r"SELECT (.+?) FROM (\w+)", q, re.I | re.S)
        if select:
            columns = [c.strip() for c in select.group(1).split(",")]
            rows = db.tables.get(select.group(2), [])
            self._rows = [{c: row.get(c) for c in columns} for row in rows]
            return len(self._rows)

        raise pymysql.err.ProgrammingError(1064, f"Unsupported query: {query}")

    def fetchall(self):
        rows, self._rows = self._rows, []
        return rows


class FakeConnection:
    def __init__(self, db, params):
        self.db = db
        self.params = params
        self.open = True
        self.in_transaction = False
        self.pending = []
        self.commits = 0
        self.rollbacks = 0
        self.fail_rollback = False

    def cursor(self):
        return FakeCursor(self)

    def begin(self):
        self.in_transaction = True
        self.pending = []

    def commit(self):
        for table, row in self.pending:
            self.db.tables.setdefault(table, []).append(row)
        self.pending = []
        self.in_transaction = False
        self.commits += 1

    def rollback(self):
        if self.fail_rollback:
            raise pymysql.err.OperationalError(2013, "Lost connection to MySQL server during query")
        self.pending = []
        self.in_transaction = False
        self.rollbacks += 1

    def close(self):
        if not self.open:
            raise pymysql.err.Error("Already closed")
        self.open = False


class FakeRelationalDB:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.connections = []
        self.executed = []
        self.failures = {}  # query fragment -> exception to raise
        self.refuse = None  # exception raised by connect()

    def connect(self, **params):
        if self.refuse is not None:
            raise self.refuse
        conn = FakeConnection(self, params)
        self.connections.append(conn)
        return conn


def scenario_tables():
    """2 restaurants, 3 people (2 customers, 2 riders, one both), 1 delivered order."""
    return {
        "restaurant": [
            {"restaurant_id": 1, "name": "Pasta Place", "address": "1 Main St"},
            {"restaurant_id": 2, "name": "Sushi Spot", "address": "2 Side St"},
        ],
        "menu_item": [
            {"menu_item_id": 10, "restaurant_id": 1, "name": "Carbonara", "price": Decimal("12.50")},
            {"menu_item_id": 11, "restaurant_id": 1, "name": "Lasagna", "price": Decimal("11.00")},
            {"menu_item_id": 20, "restaurant_id": 2, "name": "Salmon Roll", "price": Decimal("8.75")},
        ],
        "person": [
            {"person_id": 1, "name": "Alice", "email": "alice@example.com", "phone": "555-0001"},
            {"person_id": 2, "name": "Bob", "email": "bob@example.com", "phone": "555-0002"},
            {"person_id": 3, "name": "Carol", "email": "carol@example.com", "phone": None},
        ],
        "customer": [
            {"person_id": 1, "default_address": "10 Elm St"},
            {"person_id": 3, "default_address": "30 Oak St"},
        ],
        "rider": [
            {"person_id": 2, "vehicle_type": "bike"},
            {"person_id": 3, "vehicle_type": "scooter"},
        ],
        "orders": [
            {
                "order_id": 100,
                "customer_id": 1,
                "restaurant_id": 1,
                "created_at": datetime(2024, 5, 1, 12, 0),
                "status": "paid",
                "total_amount": Decimal("23.50"),
                "payment_method": "card",
                "paid_at": datetime(2024, 5, 1, 12, 5),
            },
        ],
        "order_item": [
            {"order_id": 100, "menu_item_id": 10, "name": "Carbonara", "unit_price": Decimal("12.50"), "quantity": 1},
            {"order_id": 100, "menu_item_id": 11, "name": "Lasagna", "unit_price": Decimal("11.00"), "quantity": 1},
        ],
        "delivery": [
            {"order_id": 100, "rider_id": 2, "delivery_status": "assigned", "assigned_at": datetime(2024, 5, 1, 12, 10)},
        ],
    }


# ==============================================
# MongoDB stand-in
# ==============================================

def _matches(doc, query):
    return all(doc.get(k) == v for k, v in query.items())


class FakeInsertManyResult:
    def __init__(self, inserted_ids):
        self.inserted_ids = inserted_ids


class FakeCollection:
    def __init__(self, name, ids):
        self.name = name
        self.docs = []
        self.indexes = {"_id_": {"key": [("_id", 1)]}}
        self.fail_with = None  # exception raised by every write
        self._ids = ids

    # --- indexes ---

    def create_index(self, keys, name, unique=False, **kwargs):
        spec = {"key": list(keys)}
        if unique:
            spec["unique"] = True
        existing = self.indexes.get(name)
        if existing is not None and existing != spec:
            raise OperationFailure(
                f"An existing index has the same name as the requested index: {name}", code=86
            )
        if existing is None:
            for other_name, other in self.indexes.items():
                if other["key"] == spec["key"]:
                    raise OperationFailure(
                        f"Index already exists with a different name: {other_name}", code=85
                    )
        self.indexes[name] = spec
        return name

    def drop_index(self, name):
        if name not in self.indexes:
            raise OperationFailure(f"index not found with name [{name}]", code=27)
        del self.indexes[name]

    def index_information(self):
        return copy.deepcopy(self.indexes)

    def _unique_conflict(self, doc):
        for spec in self.indexes.values():
            if not spec.get("unique"):
                continue
            fields = [k for k, _ in spec["key"]]
            for existing in self.docs:
                if all(existing.get(f) == doc.get(f) for f in fields):
                    return fields
        return None

    # --- writes ---

    def _store(self, doc):
        doc.setdefault("_id", next(self._ids))
        self.docs.append(copy.deepcopy(doc))
        return doc["_id"]

    def insert_one(self, doc):
        if self.fail_with is not None:
            raise self.fail_with
        fields = self._unique_conflict(doc)
        if fields:
            raise DuplicateKeyError(f"E11000 duplicate key error collection: {self.name}", code=11000)
        return self._store(doc)

    def insert_many(self, docs, ordered=True):
        if self.fail_with is not None:
            raise self.fail_with
        inserted = []
        for i, doc in enumerate(docs):
            fields = self._unique_conflict(doc)
            if fields:
                raise BulkWriteError({
                    "writeErrors": [{
                        "index": i,
                        "code": 11000,
                        "errmsg": f"E11000 duplicate key error collection: {self.name} dup key: {fields}",
                        "op": doc,
                    }],
                    "writeConcernErrors": [],
                    "nInserted": len(inserted),
                    "nUpserted": 0,
                    "nMatched": 0,
                    "nModified": 0,
                    "nRemoved": 0,
                    "upserted": [],
                })
            inserted.append(self._store(doc))
        return FakeInsertManyResult(inserted)

    def replace_one(self, query, doc, upsert=False):
        if self.fail_with is not None:
            raise self.fail_with
        for i, existing in enumerate(self.docs):
            if _matches(existing, query):
                replacement = copy.deepcopy(doc)
                replacement["_id"] = existing["_id"]
                self.docs[i] = replacement
                return
        if upsert:
            self._store(dict(doc))

    def update_one(self, query, update, upsert=False):
        if self.fail_with is not None:
            raise self.fail_with
        for existing in self.docs:
            if _matches(existing, query):
                existing.update(copy.deepcopy(update.get("$set", {})))
                return
        if upsert:
            doc = dict(query)
            doc.update(copy.deepcopy(update.get("$set", {})))
            self._store(doc)

    def delete_many(self, query):
        self.docs = [d for d in self.docs if not _matches(d, query)]

    # --- reads ---

    def find_one(self, query, projection=None):
        for doc in self.docs:
            if _matches(doc, query):
                found = copy.deepcopy(doc)
                if projection:
                    keep = {k for k, v in projection.items() if v}
                    found = {k: v for k, v in found.items() if k in keep}
                return found
        return None

    def count_documents(self, query):
        return sum(1 for d in self.docs if _matches(d, query))


class FakeDatabase:
    def __init__(self, name):
        self.name = name
        self._collections = {}
        self._ids = count(1)

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(name, self._ids)
        return self._collections[name]


class FakeAdmin:
    def __init__(self, client):
        self.client = client

    def command(self, name):
        if self.client.down:
            raise self.client.down
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, uri="mongodb://fake"):
        self.uri = uri
        self.closed = False
        self.down = None
        self.admin = FakeAdmin(self)
        self._databases = {}

    def __getitem__(self, name):
        if name not in self._databases:
            self._databases[name] = FakeDatabase(name)
        return self._databases[name]

    def close(self):
        self.closed = True


# ==============================================
# Fixtures
# ==============================================

@pytest.fixture
def relational_db():
    return FakeRelationalDB(scenario_tables())


@pytest.fixture
def empty_relational_db():
    return FakeRelationalDB({})


@pytest.fixture
def pool(relational_db):
    return ConnectionPool(
        "localhost", 3306, "root", "root", "food_delivery",
        pool_size=3, connect_fn=relational_db.connect,
    )


@pytest.fixture
def mongo_client():
    return FakeMongoClient()


@pytest.fixture
def store(mongo_client):
    return DocumentStore("mongodb://fake", "food_delivery", client_factory=lambda uri: mongo_client)


@pytest.fixture
def migrator(pool, store):
    return Migrator(pool, store, source="mariadb", clock=lambda: MIGRATED_AT)
