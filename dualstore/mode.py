# ==============================================
# Active mode + health status
# ==============================================
#
# current_mode(store) is recomputed on every call from MongoDB state:
#
#   marker with lastMigrationAt  AND  at least one order  → "document"
#   anything else                                         → "relational"
#
# The order count check means a store that was emptied out-of-band
# reports "relational" even if a stale marker is still there.
# This is reporting only; it does not pick the backend for requests.
#
# ==============================================

import logging
from enum import Enum

import pymysql.err

from dualstore.errors import PoolTimeoutError
from dualstore.storage.mongo_client import ORDERS, DocumentStore
from dualstore.storage.mysql_client import ConnectionPool

logger = logging.getLogger(__name__)


class Mode(str, Enum):
    RELATIONAL = "relational"
    DOCUMENT = "document"


def resolve_mode(marker: dict | None, order_count: int) -> Mode:
    if marker and marker.get("lastMigrationAt") and order_count > 0:
        return Mode.DOCUMENT
    return Mode.RELATIONAL


def current_mode(store: DocumentStore) -> Mode:
    marker = store.migration_marker()
    order_count = store.collection(ORDERS).count_documents({})
    return resolve_mode(marker, order_count)


def health_status(pool: ConnectionPool, store: DocumentStore) -> dict:
    """Read-only composite of both stores for the status command."""
    relational = {"ok": True}
    try:
        pool.ping()
    except (pymysql.err.MySQLError, PoolTimeoutError) as e:
        logger.warning("MySQL ping failed: %s", e)
        relational = {"ok": False, "error": str(e)}

    store.ensure_indexes()
    counts = store.counts()
    marker = store.migration_marker()

    return {
        "ok": relational["ok"],
        "activeMode": resolve_mode(marker, counts[ORDERS]).value,
        "relational": relational,
        "document": {
            "ok": True,
            "counts": counts,
            "migration": marker,
        },
    }
