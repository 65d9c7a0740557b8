# ==============================================
# STORAGE (MySQL + MongoDB)
# ==============================================
#
# This package handles all database access:
# the MySQL connection pool, the MongoDB handle, and the
# SQL → Mongo migration.
#
# Modules:
# --------
# - mysql_client.py    → bounded MySQL pool, connection / transaction scopes
# - mongo_client.py    → single MongoDB client, indexes, counts, marker
# - documents.py       → relational rows → document shapes
# - migrator.py        → SQL → Mongo migration run
#
# ==============================================

from .mysql_client import ConnectionPool
from .mongo_client import DocumentStore
from .documents import Snapshot
from .migrator import Migrator

__all__ = [
    "ConnectionPool",
    "DocumentStore",
    "Snapshot",
    "Migrator",
]
