from __future__ import annotations

import logging
import sqlite3
from typing import List, Optional

from ...constants import DOC_PREFIXES, LEGACY_PREFIXES, REUSE_POOLS, TABLE_SEQUENCES
from ...utils.loggers import get_audit_logger, log_event
from ..errors import ConsistencyAnomaly, DomainError
from ..tx import immediate_tx

_log = logging.getLogger(__name__)

# live-document tables per doc type, used by the pool consistency check
_DOC_TABLES = {
    "invoice": [("invoices", "invoice_id"), ("customer_maal_account", "maal_invoice_no")],
    "customer_order": [("customer_orders", "order_id")],
    "supplier_order": [("supplier_orders", "order_id")],
    "quick_sale": [("quick_sales", "qs_id")],
}


class SequenceAllocator:
    """
    Issues human-readable document ids: `<PREFIX>-<N>`.

    N comes from `document_sequences.last_number`, claimed with a single
    UPDATE inside the caller's transaction, so the number and the row that
    uses it commit (or roll back) together. Row counts are never consulted.

    With `reuse_freed=True` the lowest number in the document type's reuse
    pool is handed out first, and `release()` puts a deleted document's
    number back into the pool.
    """

    def __init__(self, conn: sqlite3.Connection, *, reuse_freed: Optional[bool] = None):
        if reuse_freed is None:
            from ...config import reuse_freed_numbers
            reuse_freed = reuse_freed_numbers()
        self.conn = conn
        self.reuse_freed = reuse_freed

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _prefix(doc_type: str) -> str:
        try:
            return DOC_PREFIXES[doc_type]
        except KeyError:
            raise DomainError(f"Unknown document type: {doc_type!r}") from None

    def _pool(self, doc_type: str):
        return REUSE_POOLS.get(doc_type) if self.reuse_freed else None

    def format_id(self, doc_type: str, number: int) -> str:
        return f"{self._prefix(doc_type)}-{int(number)}"

    def parse_number(self, doc_type: str, doc_id: str | None) -> Optional[int]:
        """
        Numeric suffix of `doc_id` for this document type (current or legacy
        prefix), or None when the id is not one of ours.
        """
        if not doc_id:
            return None
        for prefix in (self._prefix(doc_type),) + LEGACY_PREFIXES.get(doc_type, ()):
            head = f"{prefix}-"
            if doc_id.startswith(head):
                tail = doc_id[len(head):]
                return int(tail) if tail.isdigit() and int(tail) > 0 else None
        return None

    def last_number(self, doc_type: str) -> int:
        row = self.conn.execute(
            f"SELECT last_number FROM {TABLE_SEQUENCES} WHERE doc_type=?", (doc_type,)
        ).fetchone()
        return int(row["last_number"]) if row else 0

    # ---- Queries ----------------------------------------------------------

    def peek_next_id(self, doc_type: str) -> str:
        """Preview the id the next `next_id()` would return. Consumes nothing."""
        pool = self._pool(doc_type)
        if pool:
            table, column = pool
            row = self.conn.execute(
                f"SELECT {column} AS n FROM {table} ORDER BY {column} ASC LIMIT 1"
            ).fetchone()
            if row:
                return self.format_id(doc_type, row["n"])
        return self.format_id(doc_type, self.last_number(doc_type) + 1)

    # ---- Mutations --------------------------------------------------------

    def next_id(self, doc_type: str) -> str:
        """
        Claim the next id. Call inside the transaction that inserts the
        document; on its own it commits the claim immediately.
        """
        prefix = self._prefix(doc_type)
        with immediate_tx(self.conn):
            pool = self._pool(doc_type)
            if pool:
                table, column = pool
                row = self.conn.execute(
                    f"SELECT {column} AS n FROM {table} ORDER BY {column} ASC LIMIT 1"
                ).fetchone()
                if row:
                    number = int(row["n"])
                    self.conn.execute(f"DELETE FROM {table} WHERE {column}=?", (number,))
                    _log.debug("Reusing freed %s number %s", doc_type, number)
                    return f"{prefix}-{number}"

            cur = self.conn.execute(
                f"UPDATE {TABLE_SEQUENCES} SET last_number = last_number + 1 WHERE doc_type=?",
                (doc_type,),
            )
            if cur.rowcount == 0:
                self.conn.execute(
                    f"INSERT INTO {TABLE_SEQUENCES}(doc_type, last_number) VALUES (?, 1)",
                    (doc_type,),
                )
            number = self.last_number(doc_type)
        return f"{prefix}-{number}"

    def reserve(self, doc_type: str, doc_id: str | None) -> bool:
        """
        Mark an id that was typed in rather than issued as used: last_number
        is raised to cover it and it leaves the reuse pool. Foreign ids are
        ignored (False).
        """
        number = self.parse_number(doc_type, doc_id)
        if number is None:
            return False
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE {TABLE_SEQUENCES} SET last_number = MAX(last_number, ?) WHERE doc_type=?",
                (number, doc_type),
            )
            if cur.rowcount == 0:
                self.conn.execute(
                    f"INSERT INTO {TABLE_SEQUENCES}(doc_type, last_number) VALUES (?, ?)",
                    (doc_type, number),
                )
            pool = REUSE_POOLS.get(doc_type)
            if pool:
                table, column = pool
                self.conn.execute(f"DELETE FROM {table} WHERE {column}=?", (number,))
        return True

    def release(self, doc_type: str, doc_id: str) -> bool:
        """
        Return a deleted document's number to the reuse pool. No-op (False)
        when reuse is off, the type has no pool, the id is foreign, or the
        number was never issued (above last_number).
        """
        pool = self._pool(doc_type)
        number = self.parse_number(doc_type, doc_id)
        if not pool or number is None:
            return False
        table, column = pool
        with immediate_tx(self.conn):
            last = self.last_number(doc_type)
            if number > last:
                _log.warning("Not pooling %s: never issued (last is %s)", doc_id, last)
                return False
            self.conn.execute(f"INSERT OR IGNORE INTO {table}({column}) VALUES (?)", (number,))
        return True

    # ---- Diagnostics ------------------------------------------------------

    def check_pool_consistency(self, doc_type: str) -> List[ConsistencyAnomaly]:
        """
        Pooled numbers must be above zero, at or below last_number, and not
        used by any live document. Each violation is logged and returned.
        """
        pool = REUSE_POOLS.get(doc_type)
        if not pool:
            return []
        table, column = pool
        last = self.last_number(doc_type)
        anomalies: List[ConsistencyAnomaly] = []

        for row in self.conn.execute(f"SELECT {column} AS n FROM {table} ORDER BY {column}").fetchall():
            number = int(row["n"])
            if number <= 0 or number > last:
                anomalies.append(ConsistencyAnomaly(
                    "pool_out_of_range",
                    f"Freed {doc_type} number {number} is outside 1..{last}",
                    {"doc_type": doc_type, "number": number, "last_number": last},
                ))
                continue
            doc_id = self.format_id(doc_type, number)
            for doc_table, doc_col in _DOC_TABLES.get(doc_type, []):
                if self.conn.execute(f"SELECT 1 FROM {doc_table} WHERE {doc_col}=? LIMIT 1", (doc_id,)).fetchone():
                    anomalies.append(ConsistencyAnomaly(
                        "pool_number_in_use",
                        f"Freed {doc_type} number {number} is still used by {doc_id}",
                        {"doc_type": doc_type, "number": number, "table": doc_table},
                    ))
                    break

        if anomalies:
            audit = get_audit_logger()
            for a in anomalies:
                _log.warning(a.message)
                log_event(audit, "sequence.pool", "check", a.message, a.as_dict(), level=logging.WARNING)
        return anomalies
