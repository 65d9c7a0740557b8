# ==============================================
# Migrator
# ==============================================
#
# PURPOSE:
#   Copies the current MySQL snapshot into MongoDB so the same business
#   operations can run against either backend.
#
# HOW A RUN WORKS:
#   1. Read every source table inside ONE MySQL transaction
#      (a failure here rolls back; MongoDB is not touched), then make
#      sure the MongoDB indexes, unique orderId included, exist.
#   2. Transform rows into documents (storage/documents.py).
#   3. Write restaurants and people (upsert by id, re-runnable), then
#      orders (plain ordered insert: the unique orderId index makes a
#      re-run fail with DuplicateOrderError instead of duplicating).
#   4. Stamp the migration marker LAST, so "marker present" means every
#      count in it was fully written.
#   5. Return the per-entity counts.
#
# CLASS: Migrator
# ---------------
#   - __init__(pool: ConnectionPool, store: DocumentStore, source="mariadb")
#   - migrate() -> dict[str, int]
#   - read_snapshot() -> Snapshot
#
#   Two migrate() calls in the same process are serialised by a
#   non-blocking lock (the second raises MigrationInProgressError).
#   Across processes the unique orderId index is the only guard.
#
# ==============================================

import logging
import threading
from datetime import datetime, timezone
from typing import Callable, Optional

from pymongo.errors import BulkWriteError

from dualstore.errors import (
    DUPLICATE_KEY_CODE,
    DuplicateOrderError,
    MigrationInProgressError,
    is_duplicate_key,
)
from dualstore.storage.documents import (
    Snapshot,
    order_documents,
    person_documents,
    restaurant_documents,
)
from dualstore.storage.mongo_client import (
    META,
    MIGRATION_MARKER_ID,
    ORDERS,
    PEOPLE,
    RESTAURANTS,
    DocumentStore,
)
from dualstore.storage.mysql_client import ConnectionPool, fetch_all

logger = logging.getLogger(__name__)

# Snapshot attribute → query. Read in this order inside one transaction.
SNAPSHOT_QUERIES = {
    "restaurants": "SELECT restaurant_id, name, address FROM restaurant ORDER BY restaurant_id",
    "menu_items": "SELECT menu_item_id, restaurant_id, name, price FROM menu_item ORDER BY menu_item_id",
    "people": "SELECT person_id, name, email, phone FROM person ORDER BY person_id",
    "customers": "SELECT person_id, default_address FROM customer",
    "riders": "SELECT person_id, vehicle_type FROM rider",
    "orders": (
        "SELECT order_id, customer_id, restaurant_id, created_at, status, "
        "total_amount, payment_method, paid_at FROM orders ORDER BY order_id"
    ),
    "order_items": (
        "SELECT order_id, menu_item_id, name, unit_price, quantity "
        "FROM order_item ORDER BY order_id, menu_item_id"
    ),
    "deliveries": "SELECT order_id, rider_id, delivery_status, assigned_at FROM delivery",
}


class Migrator:
    """Relational → document migration coordinator."""

    def __init__(
        self,
        pool: ConnectionPool,
        store: DocumentStore,
        source: str = "mariadb",
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.pool = pool
        self.store = store
        self.source = source
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._running = threading.Lock()

    def migrate(self) -> dict[str, int]:
        """
        Run one full SQL → Mongo migration.

        Returns:
            {"restaurants": int, "people": int, "orders": int}

        Raises:
            MigrationInProgressError: another run is active in this process
            DuplicateOrderError: an orderId was already migrated; marker untouched
            pymysql / pymongo errors: propagated as raised, marker untouched
        """
        if not self._running.acquire(blocking=False):
            raise MigrationInProgressError("A migration is already running")
        try:
            logger.info("Starting migration from %s", self.source)
            snapshot = self.read_snapshot()
            # Unique orderId index must exist before any order is written
            self.store.ensure_indexes()

            migrated = {
                RESTAURANTS: self._upsert(RESTAURANTS, restaurant_documents(snapshot), "restaurantId"),
                PEOPLE: self._upsert(PEOPLE, person_documents(snapshot), "personId"),
                ORDERS: self._insert_orders(order_documents(snapshot)),
            }

            self._stamp_marker(migrated)
            logger.info("Migration finished: %s", migrated)
            return migrated
        finally:
            self._running.release()

    def read_snapshot(self) -> Snapshot:
        with self.pool.transaction() as conn:
            rows = {name: fetch_all(conn, query) for name, query in SNAPSHOT_QUERIES.items()}
        logger.info(
            "Read snapshot: %d restaurants, %d people, %d orders",
            len(rows["restaurants"]), len(rows["people"]), len(rows["orders"]),
        )
        return Snapshot(**rows)

    def _upsert(self, collection_name: str, documents: list[dict], key_field: str) -> int:
        # Replace whole document by its relational id, insert if missing
        collection = self.store.collection(collection_name)
        for doc in documents:
            collection.replace_one({key_field: doc[key_field]}, doc, upsert=True)
        logger.info("Upserted %d documents into '%s'", len(documents), collection_name)
        return len(documents)

    def _insert_orders(self, documents: list[dict]) -> int:
        if not documents:
            return 0
        collection = self.store.collection(ORDERS)
        try:
            result = collection.insert_many(documents, ordered=True)
        except BulkWriteError as e:
            if not is_duplicate_key(e):
                raise
            order_ids = [
                err.get("op", {}).get("orderId")
                for err in e.details.get("writeErrors", [])
                if err.get("code") == DUPLICATE_KEY_CODE
            ]
            raise DuplicateOrderError(
                f"Order(s) {order_ids} already present in '{ORDERS}': {e}", order_ids
            ) from e
        logger.info("Inserted %d documents into '%s'", len(result.inserted_ids), ORDERS)
        return len(result.inserted_ids)

    def _stamp_marker(self, migrated: dict[str, int]) -> None:
        self.store.collection(META).update_one(
            {"_id": MIGRATION_MARKER_ID},
            {"$set": {
                "source": self.source,
                "lastMigrationAt": self._clock(),
                "migrated": dict(migrated),
            }},
            upsert=True,
        )
        logger.info("Stamped migration marker")
