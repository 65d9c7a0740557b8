# ==============================================
# ConnectionPool
# ==============================================
#
# PURPOSE:
#   Owns a bounded pool of MySQL/MariaDB connections. Every piece of
#   relational access goes through one of two scopes:
#
#     with pool.connection() as conn:    # one lease, always released
#     with pool.transaction() as conn:   # lease + BEGIN/COMMIT/ROLLBACK
#
# WHY THIS CLASS EXISTS:
#   A single shared connection can't serve interleaved requests, and a
#   connection that isn't handed back on an error path is gone for good.
#   The pool caps the number of live connections and guarantees every
#   lease comes back, whatever way the unit of work exits.
#
# CLASS: ConnectionPool
# ---------------------
#   Stateful: holds idle connections and the capacity counter.
#
#   Constructor:
#   ------------
#   - __init__(host, port, user, password, database,
#              pool_size=10, acquire_timeout=None, connect_fn=None)
#       Store connection params. Don't connect yet; connections are
#       opened lazily up to pool_size.
#
#   Methods:
#   --------
#   - connection() -> context manager yielding a lease
#   - transaction() -> context manager yielding a lease inside a transaction
#   - with_connection(fn) / with_transaction(fn) -> fn(conn)'s result
#   - ping() -> bool            (SELECT 1)
#   - stats() -> dict           (size / idle / in_use / max_size)
#   - close() -> None           (close idle connections)
#
#   Failure semantics:
#   ------------------
#   - Pool exhausted → caller blocks until a lease is released
#     (or PoolTimeoutError if acquire_timeout was given).
#   - Error inside transaction() → ROLLBACK, then the ORIGINAL error is
#     re-raised unchanged. A failing rollback is logged, never raised.
#   - Nothing is retried.
#
# ==============================================

import logging
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional, TypeVar

import pymysql
import pymysql.cursors

from dualstore.config import MySQLConfig
from dualstore.errors import PoolTimeoutError

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_POOL_SIZE = 10


class ConnectionPool:
    def __init__(
        self,
        host,
        port,
        user,
        password,
        database,
        pool_size: int = DEFAULT_POOL_SIZE,
        acquire_timeout: Optional[float] = None,
        connect_fn: Optional[Callable[..., Any]] = None,
    ):
        if pool_size < 1:
            raise ValueError("pool_size must be at least 1")
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.database = database
        self.pool_size = pool_size
        self.acquire_timeout = acquire_timeout
        self._connect_fn = connect_fn or pymysql.connect

        self._slots = threading.BoundedSemaphore(pool_size)
        self._lock = threading.Lock()
        self._idle: list = []
        self._leased: set = set()
        self._size = 0  # open connections, idle + leased
        logger.info(
            "MySQL pool configured: %s@%s:%s/%s (max %d connections)",
            user, host, port, database, pool_size,
        )

    @classmethod
    def from_config(cls, config: MySQLConfig, **kwargs) -> "ConnectionPool":
        return cls(
            host=config.host,
            port=config.port,
            user=config.user,
            password=config.password,
            database=config.database,
            pool_size=config.pool_size,
            **kwargs,
        )

    # ------------------------------------------
    # Lease handling
    # ------------------------------------------

    def _open_connection(self):
        return self._connect_fn(
            host=self.host,
            port=self.port,
            user=self.user,
            password=self.password,
            database=self.database,
            cursorclass=pymysql.cursors.DictCursor,
            autocommit=False,
        )

    def _acquire(self):
        if self.acquire_timeout is None:
            self._slots.acquire()
        elif not self._slots.acquire(timeout=self.acquire_timeout):
            raise PoolTimeoutError(
                f"No MySQL connection available after {self.acquire_timeout}s "
                f"(pool size {self.pool_size})"
            )

        with self._lock:
            conn = self._idle.pop() if self._idle else None

        if conn is None:
            try:
                conn = self._open_connection()
            except BaseException:
                # Connection refused: hand the capacity slot back, surface the driver error
                self._slots.release()
                raise
            with self._lock:
                self._size += 1

        with self._lock:
            self._leased.add(conn)
        logger.debug("Leased MySQL connection (%d in use)", len(self._leased))
        return conn

    def _release(self, conn) -> None:
        with self._lock:
            if conn not in self._leased:
                raise RuntimeError("Connection released twice or not owned by this pool")
            self._leased.discard(conn)
            broken = not getattr(conn, "open", True)
            if broken:
                self._size -= 1
            else:
                self._idle.append(conn)

        if broken:
            logger.warning("Dropping closed MySQL connection from the pool")
            try:
                conn.close()
            except pymysql.err.Error:
                pass  # already closed
        self._slots.release()
        logger.debug("Released MySQL connection (%d in use)", self.outstanding)

    @contextmanager
    def connection(self) -> Iterator[Any]:
        """Lease one connection for the duration of the block."""
        conn = self._acquire()
        try:
            yield conn
        finally:
            self._release(conn)

    @contextmanager
    def transaction(self) -> Iterator[Any]:
        """
        Lease one connection and run the block inside a transaction.

        COMMIT on normal exit, ROLLBACK on any exception; the exception
        raised by the block (or by COMMIT) is what the caller sees.
        """
        with self.connection() as conn:
            conn.begin()
            logger.debug("BEGIN")
            try:
                yield conn
                conn.commit()
                logger.debug("COMMIT")
            except BaseException as exc:
                self._rollback(conn, exc)
                raise

    def _rollback(self, conn, cause: BaseException) -> None:
        logger.warning("Rolling back transaction after %s: %s", type(cause).__name__, cause)
        try:
            conn.rollback()
        except Exception:
            # The caller must see the original failure, not the rollback artifact
            logger.exception("ROLLBACK failed; connection will be discarded")
            try:
                conn.close()
            except pymysql.err.Error:
                pass  # already closed

    def with_connection(self, fn: Callable[[Any], T]) -> T:
        with self.connection() as conn:
            return fn(conn)

    def with_transaction(self, fn: Callable[[Any], T]) -> T:
        with self.transaction() as conn:
            return fn(conn)

    # ------------------------------------------
    # Introspection
    # ------------------------------------------

    @property
    def outstanding(self) -> int:
        """Leases currently checked out."""
        with self._lock:
            return len(self._leased)

    def stats(self) -> dict:
        with self._lock:
            return {
                "size": self._size,
                "idle": len(self._idle),
                "in_use": len(self._leased),
                "max_size": self.pool_size,
            }

    def ping(self) -> bool:
        with self.connection() as conn:
            fetch_all(conn, "SELECT 1 AS ok")
        return True

    def close(self) -> None:
        """Close idle connections. Leased ones are closed when released broken."""
        with self._lock:
            idle, self._idle = self._idle, []
            self._size -= len(idle)
        for conn in idle:
            conn.close()
        logger.info("MySQL pool closed (%d idle connections)", len(idle))

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def fetch_all(conn, query: str, params: tuple | None = None) -> list[dict]:
    # Execute SELECT on a leased connection and return rows as dicts
    with conn.cursor() as cursor:
        if params is not None:
            cursor.execute(query, params)
        else:
            cursor.execute(query)
        return list(cursor.fetchall())
