# database/transactions.py
from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from .errors import ConstraintViolation, translate_sqlite_error

_log = logging.getLogger(__name__)


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Start an IMMEDIATE transaction (write lock taken up front),
    commit on success, rollback on error.

    Re-entrant: if the connection is already inside a transaction, the outer
    unit owns commit/rollback and this block just runs inside it.

    sqlite3 errors leave as ConstraintViolation / TransactionFailure,
    chained to the original exception.
    """
    if conn.in_transaction:
        try:
            yield conn
        except sqlite3.Error as e:
            raise translate_sqlite_error(e) from e
        return

    cur = conn.cursor()
    try:
        cur.execute("BEGIN IMMEDIATE")
    except sqlite3.Error as e:
        cur.close()
        _log.error("could not begin transaction: %s", e)
        raise translate_sqlite_error(e) from e

    try:
        yield conn
        conn.commit()
    except sqlite3.Error as e:
        conn.rollback()
        err = translate_sqlite_error(e)
        if isinstance(err, ConstraintViolation):
            _log.warning("write rolled back: %s", e)
        else:
            _log.error("transaction aborted: %s", e)
        raise err from e
    except BaseException:
        conn.rollback()
        raise
    finally:
        cur.close()
