from __future__ import annotations
import sqlite3


class HistoryRepo:
    """
    Read-side projections for the party account screens. Nothing is cached;
    every call reads the committed state.
    """

    def __init__(self, conn: sqlite3.Connection):
        self.conn = conn

    def list_party_history(self, customer_id: str) -> list[dict]:
        """
        Real invoices plus maal rows that mirror no invoice (maal-only
        entries). An invoice's own maal mirror is excluded by NOT EXISTS so
        it is never counted twice.

        Same-day rows come newest first. `entry_order` is the maal row id
        (an invoice's mirror row for invoices), so invoices and maal-only
        entries share one insertion order and E-10 sorts above E-9.
        """
        sql = """
        SELECT i.invoice_id              AS invoice_id,
               i.invoice_date            AS date,
               CAST(i.grand_total AS REAL) AS amount,
               i.remark                  AS remark,
               'invoice'                 AS source,
               NULL                      AS maal_id,
               (SELECT MIN(mm.id) FROM customer_maal_account mm
                 WHERE mm.maal_invoice_no = i.invoice_id) AS entry_order
          FROM invoices i
         WHERE i.customer_id = :party

        UNION ALL

        SELECT m.maal_invoice_no         AS invoice_id,
               m.maal_date               AS date,
               CAST(m.maal_amount AS REAL) AS amount,
               m.maal_remark             AS remark,
               'maal_only'               AS source,
               m.id                      AS maal_id,
               m.id                      AS entry_order
          FROM customer_maal_account m
         WHERE m.customer_id = :party
           AND NOT EXISTS (
                SELECT 1 FROM invoices i2
                 WHERE i2.invoice_id = m.maal_invoice_no
           )

         ORDER BY date DESC, entry_order DESC
        """
        return [dict(r) for r in self.conn.execute(sql, {"party": customer_id}).fetchall()]

    def list_party_payments(self, party_id: str, *, role: str = "customer") -> list[dict]:
        """Jama rows, newest date first; same-day rows newest insert first."""
        table, col = _jama_source(role)
        rows = self.conn.execute(
            f"""
            SELECT id AS transaction_id, {col} AS party_id, jama_date AS date,
                   jama_txn_type AS txn_type, CAST(jama_amount AS REAL) AS amount,
                   jama_remark AS remark
              FROM {table}
             WHERE {col} = ?
             ORDER BY jama_date DESC, id DESC
            """,
            (party_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def list_supplier_maal(self, supplier_id: str) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT id, supplier_id AS party_id, maal_date AS date, maal_invoice_no AS invoice_number,
                   CAST(maal_amount AS REAL) AS amount, maal_remark AS remark
              FROM supplier_maal_account
             WHERE supplier_id = ?
             ORDER BY maal_date DESC, id DESC
            """,
            (supplier_id,),
        ).fetchall()
        return [dict(r) for r in rows]


def _jama_source(role: str) -> tuple[str, str]:
    if role == "customer":
        return "customer_jama_account", "customer_id"
    if role == "supplier":
        return "supplier_jama_account", "supplier_id"
    raise ValueError(f"Unknown party role: {role!r}")
