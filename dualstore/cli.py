# ==============================================
# CLI: Command Line Entry Point
# ==============================================
#
# PURPOSE:
#   Administrative actions against the two stores.
#
# COMMANDS:
# ---------
# 1. Copy the current MySQL snapshot into MongoDB:
#    python -m dualstore.cli migrate
#
# 2. Show active mode, reachability, counts and migration marker:
#    python -m dualstore.cli status
#
# 3. Create / repair the MongoDB order indexes:
#    python -m dualstore.cli ensure-indexes
#
# Output is JSON on stdout. Failures print {"ok": false, "error", "kind"}
# and exit non-zero (2 when the order was already migrated or a
# migration is already running, 1 otherwise).
#
# ==============================================

import argparse
import json
import logging
import sys
from typing import Optional

from dualstore.config import AppConfig, get_config
from dualstore.errors import ErrorKind, classify, error_payload
from dualstore.mode import health_status
from dualstore.storage import ConnectionPool, DocumentStore, Migrator

logger = logging.getLogger(__name__)

EXIT_CODES = {
    ErrorKind.DUPLICATE_KEY: 2,
    ErrorKind.MIGRATION_IN_PROGRESS: 2,
}


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="dualstore",
        description="Food ordering store administration (MySQL → MongoDB)",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("migrate", help="Migrate the current SQL snapshot into MongoDB")
    sub.add_parser("status", help="Show active mode, store reachability and counts")
    sub.add_parser("ensure-indexes", help="Create the MongoDB order indexes")
    return parser


def run_command(command: str, pool: ConnectionPool, store: DocumentStore, config: AppConfig) -> dict:
    if command == "migrate":
        migrator = Migrator(pool, store, source=config.migration_source)
        return {"ok": True, "migrated": migrator.migrate()}
    if command == "status":
        return health_status(pool, store)
    if command == "ensure-indexes":
        store.ensure_indexes()
        return {"ok": True}
    raise ValueError(f"Unknown command: {command}")


def main(argv: Optional[list[str]] = None, config: Optional[AppConfig] = None,
         pool: Optional[ConnectionPool] = None, store: Optional[DocumentStore] = None) -> int:
    args = build_parser().parse_args(argv)
    config = config or get_config()
    configure_logging(config.log_level)

    pool = pool or ConnectionPool.from_config(config.mysql)
    store = store or DocumentStore.from_config(config.mongo)
    try:
        result = run_command(args.command, pool, store, config)
    except Exception as e:
        logger.exception("'%s' failed", args.command)
        print(json.dumps(error_payload(e), default=str, indent=2))
        return EXIT_CODES.get(classify(e), 1)
    finally:
        store.close()
        pool.close()

    print(json.dumps(result, default=str, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
