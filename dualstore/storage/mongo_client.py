# ==============================================
# DocumentStore
# ==============================================
#
# PURPOSE:
#   Owns the single MongoDB client for the process and the index
#   definitions the order reports rely on.
#
# WHY THIS CLASS EXISTS:
#   MongoClient is itself a connection pool and is meant to be created
#   once. Instead of a module-level global, one DocumentStore is built at
#   start-up and passed to every component that needs MongoDB; the
#   client inside it is created on first use, under a lock, so two
#   concurrent first calls still end up sharing one client.
#
# CLASS: DocumentStore
# --------------------
#   Constructor:
#   ------------
#   - __init__(uri, database, client_factory=pymongo.MongoClient)
#       Store connection params. Don't connect yet.
#
#   Methods:
#   --------
#   - get() -> pymongo Database
#       Lazily creates the client exactly once.
#
#   - ensure_indexes() -> None
#       Idempotent. Unique index on orders.orderId, plus the two report
#       indexes. Drops earlier names of the report indexes if present
#       (same key pattern under another name is rejected by the server).
#
#   - counts() -> dict[str, int]
#   - migration_marker() -> dict | None
#   - ping() -> bool
#   - close() -> None
#
# ==============================================

import logging
import threading
from typing import Any, Callable, Optional

import pymongo
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import OperationFailure

from dualstore.config import MongoConfig
from dualstore.errors import IndexMaintenanceError

logger = logging.getLogger(__name__)

RESTAURANTS = "restaurants"
PEOPLE = "people"
ORDERS = "orders"
META = "meta"

MIGRATION_MARKER_ID = "migration"

ORDER_ID_INDEX = "idx_orders_orderId_unique"
RIDER_REPORT_INDEX = "idx_orders_rider_report"
RESTAURANT_REPORT_INDEX = "idx_orders_restaurant_report"
# Earlier names for the report indexes (same key patterns), removed on start-up
SUPERSEDED_INDEXES = (
    "idx_orders_delivery_rider_date_status",
    "idx_orders_student2_report",
    "idx_orders_student1_report",
)

# IndexNotFound, NamespaceNotFound
INDEX_MISSING_CODES = {27, 26}


class DocumentStore:
    def __init__(
        self,
        uri: str,
        database: str,
        client_factory: Optional[Callable[..., Any]] = None,
    ):
        self.uri = uri
        self.database = database
        self._client_factory = client_factory or pymongo.MongoClient
        self._client = None
        self._init_lock = threading.Lock()

    @classmethod
    def from_config(cls, config: MongoConfig, **kwargs) -> "DocumentStore":
        return cls(uri=config.uri, database=config.database, **kwargs)

    @property
    def client(self):
        if self._client is None:
            with self._init_lock:
                # Another caller may have won the race while we waited
                if self._client is None:
                    self._client = self._client_factory(self.uri)
                    logger.info("Created MongoDB client for database '%s'", self.database)
        return self._client

    def get(self):
        """Handle to the configured database."""
        return self.client[self.database]

    def collection(self, name: str):
        return self.get()[name]

    def ensure_indexes(self) -> None:
        orders = self.collection(ORDERS)
        try:
            # orderId is generated by the relational store; a duplicate insert must fail
            orders.create_index(
                [("orderId", ASCENDING)], name=ORDER_ID_INDEX, unique=True
            )

            for name in SUPERSEDED_INDEXES:
                try:
                    orders.drop_index(name)
                    logger.info("Dropped superseded index '%s'", name)
                except OperationFailure as e:
                    if e.code not in INDEX_MISSING_CODES:
                        raise

            orders.create_index(
                [
                    ("delivery.rider.email", ASCENDING),
                    ("createdAt", DESCENDING),
                    ("delivery.deliveryStatus", ASCENDING),
                    ("delivery.assignedAt", DESCENDING),
                ],
                name=RIDER_REPORT_INDEX,
            )
            orders.create_index(
                [("restaurant.name", ASCENDING), ("createdAt", DESCENDING)],
                name=RESTAURANT_REPORT_INDEX,
            )
        except OperationFailure as e:
            raise IndexMaintenanceError(str(e), code=e.code) from e
        logger.debug("Order indexes in place on '%s.%s'", self.database, ORDERS)

    def counts(self) -> dict[str, int]:
        db = self.get()
        return {
            RESTAURANTS: db[RESTAURANTS].count_documents({}),
            PEOPLE: db[PEOPLE].count_documents({}),
            ORDERS: db[ORDERS].count_documents({}),
        }

    def migration_marker(self) -> Optional[dict]:
        return self.collection(META).find_one(
            {"_id": MIGRATION_MARKER_ID},
            {"_id": 0, "source": 1, "lastMigrationAt": 1, "migrated": 1},
        )

    def ping(self) -> bool:
        self.client.admin.command("ping")
        return True

    def close(self) -> None:
        with self._init_lock:
            if self._client is not None:
                self._client.close()
                self._client = None
                logger.info("Closed MongoDB client")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
