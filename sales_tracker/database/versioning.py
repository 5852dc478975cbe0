import sqlite3
from typing import Iterable

from ..constants import TABLE_SCHEMA_MIGRATIONS
from .errors import MigrationOrderError


def _ensure_table(conn: sqlite3.Connection):
    conn.execute(f"""
        CREATE TABLE IF NOT EXISTS {TABLE_SCHEMA_MIGRATIONS}(
            version     INTEGER PRIMARY KEY,
            description TEXT NOT NULL,
            applied_at  TEXT NOT NULL
        );
    """)


def get_applied_versions(conn: sqlite3.Connection) -> list[int]:
    _ensure_table(conn)
    rows = conn.execute(
        f"SELECT version FROM {TABLE_SCHEMA_MIGRATIONS} ORDER BY version;"
    ).fetchall()
    return [int(r[0]) for r in rows]


def get_current_version(conn: sqlite3.Connection) -> int:
    _ensure_table(conn)
    row = conn.execute(f"SELECT MAX(version) FROM {TABLE_SCHEMA_MIGRATIONS};").fetchone()
    return int(row[0]) if row and row[0] is not None else 0


def record_version(conn: sqlite3.Connection, version: int, description: str, applied_at: str):
    """Caller owns the transaction; the row commits together with the step it records."""
    _ensure_table(conn)
    conn.execute(
        f"INSERT INTO {TABLE_SCHEMA_MIGRATIONS}(version, description, applied_at) VALUES (?, ?, ?);",
        (version, description, applied_at),
    )


def verify_history(conn: sqlite3.Connection, known_versions: Iterable[int]) -> None:
    """
    Recorded history must be exactly 1..N with every N known to this code base.
    Raises MigrationOrderError otherwise.
    """
    known = set(known_versions)
    applied = get_applied_versions(conn)
    for expected, version in enumerate(applied, start=1):
        if version != expected:
            raise MigrationOrderError(
                f"Schema history has a gap: expected version {expected}, found {version}."
            )
    unknown = [v for v in applied if v not in known]
    if unknown:
        raise MigrationOrderError(
            f"Database schema version {max(unknown)} is newer than this application supports."
        )
