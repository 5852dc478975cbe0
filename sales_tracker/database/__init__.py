# database/__init__.py
from __future__ import annotations

from pathlib import Path
import logging
import sqlite3
from typing import Optional, Union

from ..config import resolve_db_path
from ..utils.helpers import Clock
from .migrations import migrate

_log = logging.getLogger(__name__)


def get_connection(
    db_path: Optional[Union[str, Path]] = None,
    *,
    seed_demo: bool = False,
    clock: Optional[Clock] = None,
) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - foreign_keys ON
      - WAL mode (file databases)
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Pending migrations are applied before the connection is handed out;
    a MigrationOrderError here is fatal for startup.
    """
    path = resolve_db_path(db_path)
    in_memory = str(path) == ":memory:"
    if not in_memory:
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    if not in_memory:
        conn.execute("PRAGMA journal_mode = WAL;")

    try:
        applied = migrate(conn, clock=clock)
        if applied:
            _log.info("database %s migrated to version %d", path, applied[-1])

        if seed_demo:
            from .seeders.demo_data import seed_demo_data
            seed_demo_data(conn, clock=clock)
    except Exception:
        conn.close()
        raise

    return conn


__all__ = [
    "get_connection",
]
