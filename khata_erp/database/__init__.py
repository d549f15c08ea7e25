# database/__init__.py
from __future__ import annotations

from pathlib import Path
import sqlite3

from .migrations import run_guarded_migration, run_pending_migrations
from .schema import ensure_schema
from .tx import immediate_tx


def get_connection(path: str | Path | None = None) -> sqlite3.Connection:
    """
    Returns a sqlite3.Connection with:
      - autocommit mode (writes go through immediate_tx)
      - WAL mode
      - foreign_keys ON
      - row_factory = sqlite3.Row (so rows behave like dicts and tuples)
    Ensures schema & one-time migrations are applied idempotently.
    """
    if path is None:
        from ..config import db_path
        path = db_path()
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(path, isolation_level=None)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON;")
    conn.execute("PRAGMA journal_mode = WAL;")

    ensure_schema(conn)
    run_pending_migrations(conn)
    return conn


__all__ = [
    "get_connection",
    "ensure_schema",
    "immediate_tx",
    "run_guarded_migration",
    "run_pending_migrations",
]
