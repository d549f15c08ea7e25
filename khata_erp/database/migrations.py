"""
One-time data migrations, each recorded by name in `migration_history`.

The record row is the only gate: a migration whose record exists is never
run again, and a migration that raises leaves no record behind.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Callable, Iterable, List, Tuple

from ..constants import (
    DOC_CUSTOMER_ORDER,
    DOC_INVOICE,
    DOC_PREFIXES,
    DOC_SUPPLIER_ORDER,
    LEGACY_PREFIXES,
    TABLE_MIGRATIONS,
    TABLE_SEQUENCES,
)
from ..utils.helpers import utc_timestamp
from .tx import immediate_tx

_log = logging.getLogger(__name__)

MigrationAction = Callable[[sqlite3.Connection], None]


def has_run(conn: sqlite3.Connection, name: str) -> bool:
    row = conn.execute(
        f"SELECT 1 FROM {TABLE_MIGRATIONS} WHERE migration_name = ?;", (name,)
    ).fetchone()
    return row is not None


def run_guarded_migration(conn: sqlite3.Connection, name: str, action: MigrationAction) -> bool:
    """
    Run `action` once per database. Returns True if it ran now, False if it
    had already been recorded.
    """
    with immediate_tx(conn):
        if has_run(conn, name):
            return False
        action(conn)
        conn.execute(
            f"INSERT INTO {TABLE_MIGRATIONS}(migration_name, executed_at) VALUES (?, ?);",
            (name, utc_timestamp()),
        )
    _log.info("[Migration] %s applied", name)
    return True


# ---------------------------------------------------------------------------
# Sequence reconciliation
# ---------------------------------------------------------------------------

def _suffix_case(column: str, prefixes: Iterable[str]) -> Tuple[str, List[str]]:
    whens = []
    params: List[str] = []
    for prefix in prefixes:
        head = f"{prefix}-"
        whens.append(f"WHEN {column} LIKE ? THEN CAST(SUBSTR({column}, {len(head) + 1}) AS INTEGER)")
        params.append(head + "%")
    return "CASE " + " ".join(whens) + " ELSE 0 END", params


def max_issued_number(conn: sqlite3.Connection, sources: Iterable[Tuple[str, str]], prefixes: Iterable[str]) -> int:
    """
    Highest numeric suffix among ids in `sources` ([(table, column), ...])
    that start with one of `prefixes`; 0 when there are none.
    """
    prefixes = list(prefixes)
    best = 0
    for table, column in sources:
        case_sql, params = _suffix_case(column, prefixes)
        row = conn.execute(f"SELECT MAX({case_sql}) AS max_num FROM {table};", params).fetchone()
        if row and row[0]:
            best = max(best, int(row[0]))
    return best


def _set_last_number(conn: sqlite3.Connection, doc_type: str, value: int) -> None:
    conn.execute(
        f"INSERT INTO {TABLE_SEQUENCES}(doc_type, last_number) VALUES (?, ?) "
        f"ON CONFLICT(doc_type) DO UPDATE SET last_number = excluded.last_number;",
        (doc_type, value),
    )


def fix_invoice_sequence(conn: sqlite3.Connection) -> None:
    """
    Reset the invoice sequence to the largest invoice number already in use,
    counting both the current "E-" ids and legacy "AGS-I-" ids. Maal-only
    ledger rows carry invoice numbers too, so they are included.
    """
    prefixes = (DOC_PREFIXES[DOC_INVOICE],) + LEGACY_PREFIXES.get(DOC_INVOICE, ())
    actual_max = max_issued_number(
        conn,
        [("invoices", "invoice_id"), ("customer_maal_account", "maal_invoice_no")],
        prefixes,
    )
    _set_last_number(conn, DOC_INVOICE, actual_max)
    _log.info("Reset invoice sequence to %s", actual_max)


def seed_order_sequences(conn: sqlite3.Connection) -> None:
    """Order ids used to be row-count based; start the sequences past them."""
    for doc_type, table in ((DOC_CUSTOMER_ORDER, "customer_orders"), (DOC_SUPPLIER_ORDER, "supplier_orders")):
        actual_max = max_issued_number(conn, [(table, "order_id")], (DOC_PREFIXES[doc_type],))
        _set_last_number(conn, doc_type, actual_max)
        _log.info("Reset %s sequence to %s", doc_type, actual_max)


MIGRATIONS: List[Tuple[str, MigrationAction]] = [
    ("fix_invoice_sequence_v1", fix_invoice_sequence),
    ("seed_order_sequences_v1", seed_order_sequences),
]


def run_pending_migrations(conn: sqlite3.Connection) -> List[str]:
    """Apply every registered migration not yet recorded; returns the names applied."""
    applied = []
    for name, action in MIGRATIONS:
        if run_guarded_migration(conn, name, action):
            applied.append(name)
    return applied
