from __future__ import annotations

import os
from pathlib import Path

from .constants import DATA_DIR, DB_FILE_NAME, DB_PATH_ENV

BASE_DIR = Path(__file__).resolve().parent
DATA_PATH = BASE_DIR / DATA_DIR
DB_PATH = DATA_PATH / DB_FILE_NAME


def resolve_db_path(path: Path | str | None = None) -> Path:
    """
    Resolve the database file location.

    Resolution order:
      1) explicit `path` argument
      2) environment variable SALES_TRACKER_DB
      3) DB_PATH (package data dir)
    """
    if path is not None:
        return Path(path).expanduser()
    env = os.environ.get(DB_PATH_ENV)
    if env:
        return Path(env).expanduser()
    return DB_PATH
