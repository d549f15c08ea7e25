from __future__ import annotations
import logging
import sqlite3
from typing import Iterable, Optional

from ...constants import DOC_QUICK_SALE
from ...utils.helpers import round_half_up
from ...utils.validators import non_empty
from ..errors import ValidationError
from ..tx import immediate_tx
from .invoices_repo import InvoiceLine, build_lines
from .products_repo import ProductsRepo
from .sequences_repo import SequenceAllocator

_log = logging.getLogger(__name__)


class QuickSalesRepo:
    """
    Walk-in counter sales: no party, no ledger rows. The stored total is
    rounded to the whole unit the customer actually paid.
    """

    def __init__(self, conn: sqlite3.Connection, sequences: SequenceAllocator | None = None):
        self.conn = conn
        self.sequences = sequences or SequenceAllocator(conn)
        self.products = ProductsRepo(conn)

    @staticmethod
    def _validate(qs_date: str, items: Iterable[dict | InvoiceLine]) -> list[InvoiceLine]:
        if not non_empty(qs_date):
            raise ValidationError("Missing required fields: qs_date")
        lines = build_lines(items)
        if not lines:
            raise ValidationError("A quick sale needs at least one line.")
        return lines

    @staticmethod
    def total_of(lines: list[InvoiceLine]) -> int:
        return round_half_up(sum(l.amount for l in lines))

    def _write_lines(self, qs_id: str, lines: list[InvoiceLine]) -> None:
        for line in lines:
            self.products.ensure_product(line.product_code)
            self.conn.execute(
                "INSERT INTO quick_sale_items(qs_id, product_code, quantity, selling_price) VALUES (?, ?, ?, ?)",
                (qs_id, line.product_code, line.quantity, line.selling_price),
            )

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def peek_next_id(self) -> str:
        return self.sequences.peek_next_id(DOC_QUICK_SALE)

    def list_quick_sales(self) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT q.qs_id, q.qs_date, q.remark, CAST(q.total AS REAL) AS total,
                   COUNT(i.id) AS item_count
            FROM quick_sales q
            LEFT JOIN quick_sale_items i ON i.qs_id = q.qs_id
            GROUP BY q.qs_id
            ORDER BY q.qs_date DESC, q.rowid DESC
            """
        ).fetchall()
        return [dict(r) for r in rows]

    def get(self, qs_id: str) -> Optional[dict]:
        r = self.conn.execute(
            "SELECT qs_id, qs_date, remark, CAST(total AS REAL) AS total FROM quick_sales WHERE qs_id=?",
            (qs_id,),
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        items = self.conn.execute(
            """
            SELECT i.id, i.product_code, p.name AS product_name, p.size, p.packing_type,
                   CAST(i.quantity AS REAL) AS quantity,
                   CAST(i.selling_price AS REAL) AS selling_price
            FROM quick_sale_items i
            LEFT JOIN products p ON p.code = i.product_code
            WHERE i.qs_id = ?
            ORDER BY i.id
            """,
            (qs_id,),
        ).fetchall()
        out["items"] = [dict(i) for i in items]
        return out

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create(self, qs_date: str, items: Iterable[dict | InvoiceLine], remark: str | None = None) -> dict:
        lines = self._validate(qs_date, items)
        total = self.total_of(lines)
        with immediate_tx(self.conn):
            qs_id = self.sequences.next_id(DOC_QUICK_SALE)
            self.conn.execute(
                "INSERT INTO quick_sales(qs_id, qs_date, total, remark) VALUES (?, ?, ?, ?)",
                (qs_id, qs_date, total, remark),
            )
            self._write_lines(qs_id, lines)
        _log.debug("Created quick sale %s total=%s", qs_id, total)
        return {"qs_id": qs_id, "total": total}

    def update(self, qs_id: str, qs_date: str, items: Iterable[dict | InvoiceLine], remark: str | None = None) -> bool:
        lines = self._validate(qs_date, items)
        total = self.total_of(lines)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                "UPDATE quick_sales SET qs_date=?, total=?, remark=? WHERE qs_id=?",
                (qs_date, total, remark, qs_id),
            )
            if cur.rowcount == 0:
                return False
            self.conn.execute("DELETE FROM quick_sale_items WHERE qs_id=?", (qs_id,))
            self._write_lines(qs_id, lines)
        return True

    def delete(self, qs_id: str) -> bool:
        with immediate_tx(self.conn):
            self.conn.execute("DELETE FROM quick_sale_items WHERE qs_id=?", (qs_id,))
            cur = self.conn.execute("DELETE FROM quick_sales WHERE qs_id=?", (qs_id,))
            if cur.rowcount:
                self.sequences.release(DOC_QUICK_SALE, qs_id)
        return cur.rowcount > 0
