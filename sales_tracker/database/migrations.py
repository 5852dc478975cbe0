# database/migrations.py
"""
Ordered, versioned schema/data steps.

Each Migration is a list of operations run in ONE transaction:
  - str        : a single SQL statement (DDL or DML)
  - TableCopy  : stream rows out of `source_sql`, pass them through a pure
                 `transform(rows) -> rows`, insert the results into `target_table`
  - callable   : fn(conn, now) for data fixes that need the calculation helpers

Shape changes SQLite cannot express with ALTER TABLE follow the table rebuild
procedure: create <name>_new -> copy/transform -> drop <name> -> rename -> indexes.
Foreign keys are switched off for the duration of a step (a DROP TABLE would
otherwise cascade into child tables) and `PRAGMA foreign_key_check` must come
back clean before the step commits.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, Optional, Sequence, Union

from ..constants import (
    DEFAULT_COMPANY_ID,
    DEFAULT_COMPANY_NAME,
    DEFAULT_PRODUCT_COST_PRICE,
    DEFAULT_PRODUCT_ID,
    DEFAULT_PRODUCT_NAME,
    DEFAULT_PRODUCT_SELL_PRICE,
    DEFAULT_PRODUCT_UNIT_PER_CARTON,
)
from ..utils.helpers import Clock, now_str
from .errors import ConstraintViolation, DomainError, MigrationOrderError, translate_sqlite_error
from .versioning import get_current_version, record_version, verify_history

_log = logging.getLogger(__name__)

Row = dict
Transform = Callable[[Iterable[sqlite3.Row]], Iterable[Row]]


@dataclass(frozen=True)
class TableCopy:
    source_sql: str
    target_table: str
    transform: Transform


Operation = Union[str, TableCopy, Callable[[sqlite3.Connection, str], None]]


@dataclass(frozen=True)
class Migration:
    version: int
    description: str
    operations: Sequence[Operation] = field(default_factory=tuple)


# ----------------------------------------------------------------------
# Row transforms (pure)
# ----------------------------------------------------------------------

_ORDER_BOOKER_COLUMNS = (
    "id", "name", "name_urdu", "phone", "email",
    "join_date", "is_active", "created_at", "updated_at",
)


def _drop_legacy_booker_columns(rows: Iterable[sqlite3.Row]) -> Iterator[Row]:
    for r in rows:
        yield {c: r[c] for c in _ORDER_BOOKER_COLUMNS}


def _legacy_entry_headers(rows: Iterable[sqlite3.Row]) -> Iterator[Row]:
    for r in rows:
        sales = float(r["sales"] or 0.0)
        returns = float(r["returns"] or 0.0)
        yield {
            "id": r["id"],
            "order_booker_id": r["order_booker_id"],
            "date": r["date"],
            "notes": r["notes"],
            "total_amount": sales,
            "total_return_amount": returns,
            "net_amount": sales - returns,
            "created_at": r["created_at"],
            "updated_at": r["updated_at"],
        }


def _legacy_entry_items(rows: Iterable[sqlite3.Row]) -> Iterator[Row]:
    """One placeholder-product line per legacy flat entry; cartons become quantities."""
    for r in rows:
        sold = int(r["total_carton"] or 0)
        returned = int(r["return_carton"] or 0)
        net = sold - returned
        yield {
            "id": f"{r['id']}-legacy",
            "daily_entry_id": r["id"],
            "product_id": DEFAULT_PRODUCT_ID,
            "quantity_sold": sold,
            "quantity_returned": returned,
            "net_quantity": net,
            "cost_price_override": None,
            "sell_price_override": None,
            "total_cost": net * DEFAULT_PRODUCT_COST_PRICE,
            "total_revenue": float(r["sales"] or 0.0),
            "return_amount": float(r["returns"] or 0.0),
            "created_at": r["created_at"],
            "updated_at": r["updated_at"],
        }


def _coalesce_order_item_derived(rows: Iterable[sqlite3.Row]) -> Iterator[Row]:
    derived = ("total_cost", "total_amount", "profit", "cartons",
               "return_quantity", "return_amount", "return_cartons")
    for r in rows:
        out = dict(r)
        for c in derived:
            if out[c] is None:
                out[c] = 0
        yield out


# ----------------------------------------------------------------------
# Data fixes
# ----------------------------------------------------------------------

def _ensure_placeholder_product(conn: sqlite3.Connection, now: str) -> None:
    """Legacy flat entries need a product to hang their line item on."""
    if conn.execute("SELECT 1 FROM daily_entries LIMIT 1").fetchone() is None:
        return
    conn.execute(
        "INSERT OR IGNORE INTO companies (id, name, created_at, updated_at) VALUES (?, ?, ?, ?)",
        (DEFAULT_COMPANY_ID, DEFAULT_COMPANY_NAME, now, now),
    )
    conn.execute(
        """
        INSERT OR IGNORE INTO products (
            id, company_id, name, cost_price, sell_price, unit_per_carton, created_at, updated_at
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            DEFAULT_PRODUCT_ID, DEFAULT_COMPANY_ID, DEFAULT_PRODUCT_NAME,
            DEFAULT_PRODUCT_COST_PRICE, DEFAULT_PRODUCT_SELL_PRICE,
            DEFAULT_PRODUCT_UNIT_PER_CARTON, now, now,
        ),
    )


def _backfill_derived_aggregates(conn: sqlite3.Connection, now: str) -> None:
    from .propagation import recompute_daily_entry_totals, recompute_order_item, recompute_order_totals
    from .targets import reconcile_target

    for (item_id,) in conn.execute("SELECT id FROM order_items").fetchall():
        recompute_order_item(conn, item_id, now=now)
    for (order_id,) in conn.execute("SELECT id FROM orders").fetchall():
        recompute_order_totals(conn, order_id, now=now)
    for (entry_id,) in conn.execute("SELECT id FROM daily_entries").fetchall():
        recompute_daily_entry_totals(conn, entry_id, now=now)
    keys = conn.execute(
        """
        SELECT DISTINCT order_booker_id,
               CAST(substr(date, 1, 4) AS INTEGER) AS year,
               CAST(substr(date, 6, 2) AS INTEGER) AS month
          FROM daily_entries
        UNION
        SELECT order_booker_id, year, month FROM monthly_targets
        """
    ).fetchall()
    for booker_id, year, month in keys:
        reconcile_target(conn, booker_id, int(year), int(month), now=now)


# ----------------------------------------------------------------------
# Step list
# ----------------------------------------------------------------------

MIGRATIONS: tuple[Migration, ...] = (
    Migration(1, "create_order_bookers_table", (
        """
        CREATE TABLE IF NOT EXISTS order_bookers (
            id             TEXT PRIMARY KEY,
            name           TEXT NOT NULL,
            name_urdu      TEXT NOT NULL,
            phone          TEXT NOT NULL,
            email          TEXT,
            join_date      TEXT NOT NULL,
            is_active      INTEGER NOT NULL DEFAULT 1,
            monthly_target REAL NOT NULL DEFAULT 0,
            territory      TEXT,
            created_at     TEXT NOT NULL,
            updated_at     TEXT NOT NULL
        )
        """,
    )),
    Migration(2, "create_daily_entries_table", (
        """
        CREATE TABLE IF NOT EXISTS daily_entries (
            id              TEXT PRIMARY KEY,
            order_booker_id TEXT NOT NULL,
            date            TEXT NOT NULL,
            sales           REAL NOT NULL DEFAULT 0,
            returns         REAL NOT NULL DEFAULT 0,
            net_sales       REAL NOT NULL DEFAULT 0,
            notes           TEXT,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            FOREIGN KEY (order_booker_id) REFERENCES order_bookers(id) ON DELETE CASCADE
        )
        """,
    )),
    Migration(3, "create_monthly_targets_table", (
        """
        CREATE TABLE IF NOT EXISTS monthly_targets (
            id                     TEXT PRIMARY KEY,
            order_booker_id        TEXT NOT NULL,
            year                   INTEGER NOT NULL,
            month                  INTEGER NOT NULL CHECK (month BETWEEN 1 AND 12),
            target_amount          REAL NOT NULL DEFAULT 0,
            achieved_amount        REAL NOT NULL DEFAULT 0,
            remaining_amount       REAL NOT NULL DEFAULT 0,
            achievement_percentage REAL NOT NULL DEFAULT 0,
            days_in_month          INTEGER NOT NULL,
            working_days_in_month  INTEGER NOT NULL,
            daily_target_amount    REAL NOT NULL DEFAULT 0,
            created_at             TEXT NOT NULL,
            updated_at             TEXT NOT NULL,
            FOREIGN KEY (order_booker_id) REFERENCES order_bookers(id) ON DELETE CASCADE,
            UNIQUE (order_booker_id, year, month)
        )
        """,
    )),
    Migration(4, "create_indexes", (
        "CREATE INDEX IF NOT EXISTS idx_order_bookers_active ON order_bookers(is_active)",
        "CREATE INDEX IF NOT EXISTS idx_order_bookers_territory ON order_bookers(territory)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_order_booker ON daily_entries(order_booker_id)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_date ON daily_entries(date)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_order_booker_date ON daily_entries(order_booker_id, date)",
        "CREATE INDEX IF NOT EXISTS idx_monthly_targets_order_booker ON monthly_targets(order_booker_id)",
        "CREATE INDEX IF NOT EXISTS idx_monthly_targets_year_month ON monthly_targets(year, month)",
    )),
    Migration(5, "remove_territory_and_monthly_target_columns", (
        """
        CREATE TABLE order_bookers_new (
            id         TEXT PRIMARY KEY,
            name       TEXT NOT NULL,
            name_urdu  TEXT NOT NULL,
            phone      TEXT NOT NULL,
            email      TEXT,
            join_date  TEXT NOT NULL,
            is_active  INTEGER NOT NULL DEFAULT 1,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        TableCopy("SELECT * FROM order_bookers", "order_bookers_new", _drop_legacy_booker_columns),
        "DROP TABLE order_bookers",
        "ALTER TABLE order_bookers_new RENAME TO order_bookers",
        "CREATE INDEX IF NOT EXISTS idx_order_bookers_active ON order_bookers(is_active)",
    )),
    Migration(6, "add_carton_fields_to_daily_entries", (
        "ALTER TABLE daily_entries ADD COLUMN total_carton INTEGER NOT NULL DEFAULT 0",
        "ALTER TABLE daily_entries ADD COLUMN return_carton INTEGER NOT NULL DEFAULT 0",
    )),
    Migration(7, "create_companies_table", (
        """
        CREATE TABLE IF NOT EXISTS companies (
            id         TEXT PRIMARY KEY,
            name       TEXT NOT NULL,
            address    TEXT,
            email      TEXT,
            phone      TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_companies_name ON companies(name)",
    )),
    Migration(8, "create_products_table", (
        """
        CREATE TABLE IF NOT EXISTS products (
            id              TEXT PRIMARY KEY,
            company_id      TEXT NOT NULL,
            name            TEXT NOT NULL,
            cost_price      REAL NOT NULL,
            sell_price      REAL NOT NULL,
            unit_per_carton INTEGER NOT NULL,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            FOREIGN KEY (company_id) REFERENCES companies(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_products_company ON products(company_id)",
        "CREATE INDEX IF NOT EXISTS idx_products_name ON products(name)",
    )),
    Migration(9, "split_daily_entries_into_items", (
        """
        CREATE TABLE daily_entries_new (
            id                  TEXT PRIMARY KEY,
            order_booker_id     TEXT NOT NULL,
            date                TEXT NOT NULL,
            notes               TEXT,
            total_amount        REAL NOT NULL DEFAULT 0,
            total_return_amount REAL NOT NULL DEFAULT 0,
            net_amount          REAL NOT NULL DEFAULT 0,
            created_at          TEXT NOT NULL,
            updated_at          TEXT NOT NULL,
            FOREIGN KEY (order_booker_id) REFERENCES order_bookers(id) ON DELETE CASCADE
        )
        """,
        """
        CREATE TABLE daily_entry_items (
            id                  TEXT PRIMARY KEY,
            daily_entry_id      TEXT NOT NULL,
            product_id          TEXT NOT NULL,
            quantity_sold       INTEGER NOT NULL DEFAULT 0,
            quantity_returned   INTEGER NOT NULL DEFAULT 0,
            net_quantity        INTEGER NOT NULL DEFAULT 0,
            cost_price_override REAL,
            sell_price_override REAL,
            total_cost          REAL NOT NULL DEFAULT 0,
            total_revenue       REAL NOT NULL DEFAULT 0,
            return_amount       REAL NOT NULL DEFAULT 0,
            created_at          TEXT NOT NULL,
            updated_at          TEXT NOT NULL,
            FOREIGN KEY (daily_entry_id) REFERENCES daily_entries(id) ON DELETE CASCADE,
            FOREIGN KEY (product_id)     REFERENCES products(id)      ON DELETE CASCADE
        )
        """,
        _ensure_placeholder_product,
        TableCopy("SELECT * FROM daily_entries", "daily_entries_new", _legacy_entry_headers),
        TableCopy("SELECT * FROM daily_entries", "daily_entry_items", _legacy_entry_items),
        "DROP TABLE daily_entries",
        "ALTER TABLE daily_entries_new RENAME TO daily_entries",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_order_booker ON daily_entries(order_booker_id)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_date ON daily_entries(date)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entries_order_booker_date ON daily_entries(order_booker_id, date)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entry_items_entry ON daily_entry_items(daily_entry_id)",
        "CREATE INDEX IF NOT EXISTS idx_daily_entry_items_product ON daily_entry_items(product_id)",
    )),
    Migration(10, "create_orders_table", (
        """
        CREATE TABLE IF NOT EXISTS orders (
            id              TEXT PRIMARY KEY,
            order_booker_id TEXT NOT NULL,
            order_date      TEXT NOT NULL,
            supply_date     TEXT,
            total_amount    REAL NOT NULL DEFAULT 0,
            total_cost      REAL NOT NULL DEFAULT 0,
            total_profit    REAL NOT NULL DEFAULT 0,
            total_cartons   REAL NOT NULL DEFAULT 0,
            return_cartons  REAL NOT NULL DEFAULT 0,
            return_amount   REAL NOT NULL DEFAULT 0,
            status          TEXT NOT NULL DEFAULT 'pending'
                            CHECK (status IN ('pending','supplied','completed')),
            notes           TEXT,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            FOREIGN KEY (order_booker_id) REFERENCES order_bookers(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_orders_order_booker ON orders(order_booker_id)",
        "CREATE INDEX IF NOT EXISTS idx_orders_date ON orders(order_date)",
        "CREATE INDEX IF NOT EXISTS idx_orders_status ON orders(status)",
        "CREATE INDEX IF NOT EXISTS idx_orders_supply_date ON orders(supply_date)",
    )),
    Migration(11, "create_order_items_table", (
        """
        CREATE TABLE IF NOT EXISTS order_items (
            id              TEXT PRIMARY KEY,
            order_id        TEXT NOT NULL,
            product_id      TEXT NOT NULL,
            quantity        INTEGER NOT NULL,
            cost_price      REAL NOT NULL,
            sell_price      REAL NOT NULL,
            total_cost      REAL NOT NULL,
            total_amount    REAL NOT NULL,
            profit          REAL NOT NULL,
            cartons         REAL NOT NULL,
            return_quantity INTEGER NOT NULL DEFAULT 0,
            return_amount   REAL NOT NULL DEFAULT 0,
            return_cartons  REAL NOT NULL DEFAULT 0,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            FOREIGN KEY (order_id)   REFERENCES orders(id)   ON DELETE CASCADE,
            FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
        )
        """,
        "CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id)",
        "CREATE INDEX IF NOT EXISTS idx_order_items_product ON order_items(product_id)",
    )),
    Migration(12, "relax_order_item_derived_columns", (
        """
        CREATE TABLE order_items_new (
            id              TEXT PRIMARY KEY,
            order_id        TEXT NOT NULL,
            product_id      TEXT NOT NULL,
            quantity        INTEGER NOT NULL,
            cost_price      REAL NOT NULL,
            sell_price      REAL NOT NULL,
            total_cost      REAL NOT NULL DEFAULT 0,
            total_amount    REAL NOT NULL DEFAULT 0,
            profit          REAL NOT NULL DEFAULT 0,
            cartons         REAL NOT NULL DEFAULT 0,
            return_quantity INTEGER NOT NULL DEFAULT 0,
            return_amount   REAL NOT NULL DEFAULT 0,
            return_cartons  REAL NOT NULL DEFAULT 0,
            created_at      TEXT NOT NULL,
            updated_at      TEXT NOT NULL,
            FOREIGN KEY (order_id)   REFERENCES orders(id)   ON DELETE CASCADE,
            FOREIGN KEY (product_id) REFERENCES products(id) ON DELETE CASCADE
        )
        """,
        TableCopy("SELECT * FROM order_items", "order_items_new", _coalesce_order_item_derived),
        "DROP TABLE order_items",
        "ALTER TABLE order_items_new RENAME TO order_items",
        "CREATE INDEX IF NOT EXISTS idx_order_items_order ON order_items(order_id)",
        "CREATE INDEX IF NOT EXISTS idx_order_items_product ON order_items(product_id)",
    )),
    Migration(13, "backfill_derived_aggregates", (
        _backfill_derived_aggregates,
    )),
)

LATEST_VERSION = MIGRATIONS[-1].version


# ----------------------------------------------------------------------
# Runner
# ----------------------------------------------------------------------

class MigrationRunner:
    """
    Applies MIGRATIONS exactly once each, in ascending order.

    - A step at or below the recorded version is a no-op.
    - A step that is not exactly current+1 raises MigrationOrderError.
    - Each step and its history row commit together or not at all.
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        migrations: Sequence[Migration] = MIGRATIONS,
        *,
        clock: Optional[Clock] = None,
    ):
        self.conn = conn
        self.migrations = tuple(sorted(migrations, key=lambda m: m.version))
        self.clock = clock
        self._check_sequence()

    def _check_sequence(self) -> None:
        for expected, m in enumerate(self.migrations, start=1):
            if m.version != expected:
                raise MigrationOrderError(
                    f"Migration list is not contiguous: expected version {expected}, "
                    f"got {m.version} ({m.description})."
                )

    # ---- queries ----

    def current_version(self) -> int:
        return get_current_version(self.conn)

    def pending(self) -> list[Migration]:
        current = self.current_version()
        return [m for m in self.migrations if m.version > current]

    # ---- apply ----

    def run(self) -> list[int]:
        """Verify recorded history, then apply every pending step. Returns applied versions."""
        try:
            verify_history(self.conn, (m.version for m in self.migrations))
        except MigrationOrderError as e:
            _log.error("refusing to migrate: %s", e)
            raise
        applied = []
        for m in self.migrations:
            if self.apply(m):
                applied.append(m.version)
        return applied

    def apply(self, migration: Migration) -> bool:
        current = self.current_version()
        if migration.version <= current:
            _log.debug("migration %03d %s already applied", migration.version, migration.description)
            return False
        if migration.version != current + 1:
            _log.error(
                "migration %03d applied out of order (database at %03d)",
                migration.version, current,
            )
            raise MigrationOrderError(
                f"Cannot apply migration {migration.version} ({migration.description}): "
                f"database is at version {current}."
            )
        if self.conn.in_transaction:
            raise DomainError("Migrations must run outside an open transaction.")

        conn = self.conn
        now = now_str(self.clock)
        fk_enabled = bool(conn.execute("PRAGMA foreign_keys").fetchone()[0])
        conn.execute("PRAGMA foreign_keys = OFF")
        try:
            conn.execute("BEGIN IMMEDIATE")
            # another connection may have applied it before we got the write lock
            locked_version = get_current_version(conn)
            if migration.version <= locked_version:
                conn.rollback()
                _log.debug("migration %03d %s applied concurrently", migration.version, migration.description)
                return False
            if migration.version != locked_version + 1:
                raise MigrationOrderError(
                    f"Cannot apply migration {migration.version} ({migration.description}): "
                    f"database is at version {locked_version}."
                )
            for op in migration.operations:
                self._run_operation(op, now)
            violations = conn.execute("PRAGMA foreign_key_check").fetchall()
            if violations:
                first = violations[0]
                raise ConstraintViolation(
                    f"Migration {migration.version} left {len(violations)} dangling reference(s), "
                    f"first in table {first[0]!r} -> {first[2]!r}."
                )
            record_version(conn, migration.version, migration.description, now)
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            _log.error("migration %03d %s failed: %s", migration.version, migration.description, e)
            raise translate_sqlite_error(e) from e
        except BaseException:
            conn.rollback()
            _log.error("migration %03d %s failed", migration.version, migration.description)
            raise
        finally:
            if fk_enabled:
                conn.execute("PRAGMA foreign_keys = ON")

        _log.info("applied migration %03d %s", migration.version, migration.description)
        return True

    def _run_operation(self, op: Operation, now: str) -> None:
        if isinstance(op, str):
            self.conn.execute(op)
        elif isinstance(op, TableCopy):
            self._copy(op)
        else:
            op(self.conn, now)

    def _copy(self, copy: TableCopy) -> None:
        # materialize first: the transform may feed a table the source query reads
        rows = self.conn.execute(copy.source_sql).fetchall()
        for out in copy.transform(rows):
            cols = list(out.keys())
            self.conn.execute(
                f"INSERT INTO {copy.target_table} ({', '.join(cols)}) "
                f"VALUES ({', '.join('?' for _ in cols)})",
                [out[c] for c in cols],
            )


def migrate(conn: sqlite3.Connection, *, clock: Optional[Clock] = None) -> list[int]:
    return MigrationRunner(conn, clock=clock).run()


__all__ = [
    "Migration",
    "TableCopy",
    "MIGRATIONS",
    "LATEST_VERSION",
    "MigrationRunner",
    "migrate",
]
