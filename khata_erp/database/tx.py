from __future__ import annotations

import itertools
import sqlite3
from contextlib import contextmanager
from typing import Iterator

from .errors import ConstraintError

_savepoint_ids = itertools.count(1)


@contextmanager
def immediate_tx(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Start an IMMEDIATE transaction (writer lock taken up front), commit on
    success, rollback on error.

    When a transaction is already open on `conn` the block runs inside a
    SAVEPOINT instead, so repositories can call each other and still commit
    or roll back as one unit with the outermost caller.

    sqlite3.IntegrityError is re-raised as ConstraintError with the engine's
    message; the rollback has happened by then.
    """
    if conn.in_transaction:
        name = f"sp_{next(_savepoint_ids)}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield conn
        except BaseException:
            conn.execute(f"ROLLBACK TO {name}")
            conn.execute(f"RELEASE {name}")
            raise
        conn.execute(f"RELEASE {name}")
        return

    conn.execute("BEGIN IMMEDIATE")
    try:
        yield conn
    except sqlite3.IntegrityError as e:
        conn.rollback()
        raise ConstraintError(str(e)) from e
    except BaseException:
        conn.rollback()
        raise
    conn.commit()
