"""
Maintenance entry point.

    python -m sales_tracker [--db PATH] [--seed-demo] [--reconcile-targets]

Opens (and migrates) the database, optionally seeds the demo data set and
rebuilds every monthly target. Exit code 2 means the schema history does not
match this code base.
"""
from __future__ import annotations

import argparse
import sys

from .database import get_connection
from .database.errors import DomainError, MigrationOrderError
from .database.migrations import LATEST_VERSION
from .database.repositories import MonthlyTargetsRepo
from .database.versioning import get_current_version
from .utils.loggers import get_logger


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="sales_tracker")
    parser.add_argument("--db", help="database file (default: $SALES_TRACKER_DB or the package data dir)")
    parser.add_argument("--seed-demo", action="store_true", help="load the July 2025 demo data into an empty database")
    parser.add_argument("--reconcile-targets", action="store_true", help="recompute every monthly target")
    args = parser.parse_args(argv)

    log = get_logger()
    try:
        conn = get_connection(args.db, seed_demo=args.seed_demo)
    except MigrationOrderError as e:
        log.error("cannot open database: %s", e)
        return 2
    except DomainError as e:
        log.error("cannot open database: %s", e)
        return 1

    try:
        log.info("schema at version %d of %d", get_current_version(conn), LATEST_VERSION)
        if args.reconcile_targets:
            n = MonthlyTargetsRepo(conn).reconcile_all()
            log.info("reconciled %d monthly targets", n)
    except DomainError as e:
        log.error("%s", e)
        return 1
    finally:
        conn.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
