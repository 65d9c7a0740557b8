# ==============================================
# Error Taxonomy
# ==============================================
#
# PURPOSE:
#   Name every failure the storage core can surface, and map each kind
#   to a status code in ONE pure function so boundaries (CLI, HTTP glue)
#   don't need their own catch-all logic.
#
# KINDS:
# ------
#   POOL                  → no capacity / connection lost (MySQL or MongoDB)
#   TRANSACTION           → failure while running a unit of work
#   DUPLICATE_KEY         → orderId already present in the document store
#   INDEX_MAINTENANCE     → index setup failed (other than "index not found")
#   MIGRATION_IN_PROGRESS → another migrate() is running in this process
#   INTERNAL              → anything else
#
# Driver exceptions are NOT wrapped by the pool or the transaction scope;
# classify() recognises them as-is. The project exceptions below keep the
# driver's message and chain the driver error as __cause__.
#
# ==============================================

from enum import Enum
from typing import Any, Iterable, Optional

import pymysql.err
import pymongo.errors


DUPLICATE_KEY_CODE = 11000

# Too many connections, can't connect, server gone away, lost connection, ...
MYSQL_CONNECTION_CODES = {1040, 2003, 2006, 2013, 2055}


class ErrorKind(Enum):
    POOL = "pool"
    TRANSACTION = "transaction"
    DUPLICATE_KEY = "duplicate_key"
    INDEX_MAINTENANCE = "index_maintenance"
    MIGRATION_IN_PROGRESS = "migration_in_progress"
    INTERNAL = "internal"


class DualStoreError(Exception):
    """Base class for errors raised by this package."""
    kind = ErrorKind.INTERNAL


class PoolTimeoutError(DualStoreError):
    """No lease became free within the caller-supplied acquire timeout."""
    kind = ErrorKind.POOL


class DuplicateOrderError(DualStoreError):
    """
    An order with the same orderId is already in the document store.

    Raised when re-migrating an unchanged snapshot; callers use it to tell
    "already migrated" apart from "migration failed".
    """
    kind = ErrorKind.DUPLICATE_KEY

    def __init__(self, message: str, order_ids: Iterable[Any] = ()):
        super().__init__(message)
        self.order_ids = list(order_ids)


class IndexMaintenanceError(DualStoreError):
    kind = ErrorKind.INDEX_MAINTENANCE

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class MigrationInProgressError(DualStoreError):
    kind = ErrorKind.MIGRATION_IN_PROGRESS


STATUS_BY_KIND = {
    ErrorKind.POOL: 503,
    ErrorKind.TRANSACTION: 500,
    ErrorKind.DUPLICATE_KEY: 409,
    ErrorKind.INDEX_MAINTENANCE: 500,
    ErrorKind.MIGRATION_IN_PROGRESS: 409,
    ErrorKind.INTERNAL: 500,
}


def is_duplicate_key(exc: BaseException) -> bool:
    """True for a single-write or bulk-write duplicate key error."""
    if isinstance(exc, pymongo.errors.DuplicateKeyError):
        return True
    if isinstance(exc, pymongo.errors.BulkWriteError):
        write_errors = (exc.details or {}).get("writeErrors", [])
        return any(err.get("code") == DUPLICATE_KEY_CODE for err in write_errors)
    return False


def _mysql_code(exc: BaseException) -> Optional[int]:
    if exc.args and isinstance(exc.args[0], int):
        return exc.args[0]
    return None


def classify(exc: BaseException) -> ErrorKind:
    """Map an exception (project or driver) to its ErrorKind."""
    if isinstance(exc, DualStoreError):
        return exc.kind
    if is_duplicate_key(exc):
        return ErrorKind.DUPLICATE_KEY
    # MySQL: lost/refused connections vs. everything else inside a unit of work
    if isinstance(exc, pymysql.err.InterfaceError):
        return ErrorKind.POOL
    if isinstance(exc, pymysql.err.OperationalError) and _mysql_code(exc) in MYSQL_CONNECTION_CODES:
        return ErrorKind.POOL
    if isinstance(exc, pymysql.err.MySQLError):
        return ErrorKind.TRANSACTION
    if isinstance(exc, pymongo.errors.ConnectionFailure):
        return ErrorKind.POOL
    return ErrorKind.INTERNAL


def status_for(exc: BaseException) -> int:
    return STATUS_BY_KIND[classify(exc)]


def error_payload(exc: BaseException) -> dict:
    """JSON-ready body for a failed admin action."""
    return {
        "ok": False,
        "error": str(exc) or "internal error",
        "kind": classify(exc).value,
    }
