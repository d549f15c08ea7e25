from __future__ import annotations

from dataclasses import dataclass
import logging
import sqlite3
from typing import Any, Dict, List, Optional, Protocol

from ...constants import DEFAULT_PAYMENT_TYPE, DOC_INVOICE
from ...utils.loggers import get_audit_logger, log_event
from ...utils.validators import non_empty, parse_float
from ..errors import ConsistencyAnomaly, ConstraintError, DomainError, ValidationError
from ..tx import immediate_tx
from .sequences_repo import SequenceAllocator

_log = logging.getLogger(__name__)


class InvoiceLike(Protocol):
    invoice_id: str
    customer_id: str
    invoice_date: str
    remark: str | None
    grand_total: float


@dataclass
class Payment:
    """Payment captured together with an invoice or order (a linked jama row)."""
    amount: float
    txn_type: str = DEFAULT_PAYMENT_TYPE
    date: str | None = None

    @classmethod
    def from_payload(cls, amount, txn_type=None, date=None) -> Optional["Payment"]:
        try:
            value = parse_float(amount, default=0.0)
        except ValueError as e:
            raise ValidationError(f"Payment amount: {e}") from e
        if value <= 0:
            return None
        return cls(amount=value, txn_type=txn_type or DEFAULT_PAYMENT_TYPE, date=date or None)


class LedgerRepo:
    """
    Maal (goods, debit) and jama (payment, credit) rows of one party role.

    For customers every invoice has exactly one maal row keyed by
    `maal_invoice_no = invoice_id` carrying the invoice's date, grand total
    and remark. Those mirror rows are written only through the
    record_invoice_* methods, called from inside the invoice transaction.
    Maal rows without an invoice ("maal-only") are plain ledger entries.

    balance = sum(maal_amount) - sum(jama_amount), always computed on read.
    """

    ROLE = ""
    PARTY_COL = ""
    HAS_INVOICES = False
    # jama remark prefix -> (table, id column) of the document owning that payment
    LINKED_DOCS: dict[str, tuple[str, str]] = {}

    def __init__(self, conn: sqlite3.Connection, sequences: SequenceAllocator | None = None):
        self.conn = conn
        self.sequences = sequences or SequenceAllocator(conn)

    @property
    def maal_table(self) -> str:
        return f"{self.ROLE}_maal_account"

    @property
    def jama_table(self) -> str:
        return f"{self.ROLE}_jama_account"

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def _amount(value, label: str = "Amount") -> float:
        if value is None or (isinstance(value, str) and not value.strip()):
            raise ValidationError(f"{label} is required.")
        try:
            return parse_float(value)
        except ValueError as e:
            raise ValidationError(f"{label}: {e}") from e

    def _require(self, **fields) -> None:
        missing = [label for label, value in fields.items() if not non_empty(value)]
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing))

    def _report(self, anomaly: ConsistencyAnomaly) -> ConsistencyAnomaly:
        _log.warning(anomaly.message)
        log_event(get_audit_logger(), f"{self.ROLE}.ledger", anomaly.kind, anomaly.message,
                  anomaly.as_dict(), level=logging.WARNING)
        return anomaly

    def _maal_select(self) -> str:
        return (
            f"SELECT id, {self.PARTY_COL} AS party_id, maal_date AS date, "
            f"maal_invoice_no AS invoice_number, maal_amount AS amount, maal_remark AS remark "
            f"FROM {self.maal_table}"
        )

    def _jama_select(self) -> str:
        return (
            f"SELECT id AS transaction_id, {self.PARTY_COL} AS party_id, jama_date AS date, "
            f"jama_txn_type AS txn_type, jama_amount AS amount, jama_remark AS remark "
            f"FROM {self.jama_table}"
        )

    def _insert_maal(self, party_id: str, date: str, invoice_no: str | None, amount: float, remark: str | None) -> int:
        cur = self.conn.execute(
            f"INSERT INTO {self.maal_table}({self.PARTY_COL}, maal_date, maal_invoice_no, maal_amount, maal_remark) "
            f"VALUES (?, ?, ?, ?, ?)",
            (party_id, date, invoice_no, amount, remark or ""),
        )
        return int(cur.lastrowid)

    def is_invoice(self, invoice_no: str | None) -> bool:
        if not self.HAS_INVOICES or not invoice_no:
            return False
        return self.conn.execute(
            "SELECT 1 FROM invoices WHERE invoice_id=?", (invoice_no,)
        ).fetchone() is not None

    def _claim_invoice_number(self, invoice_no: str, entry_id: int | None = None) -> None:
        """
        A typed invoice number on a customer maal entry must be free: no real
        invoice and no other maal row may carry it. Numbers in the invoice
        series are reserved so the allocator never issues them again.
        """
        if self.is_invoice(invoice_no):
            raise ConstraintError(f"{invoice_no} belongs to an existing invoice.")
        clash = self.conn.execute(
            f"SELECT id FROM {self.maal_table} WHERE maal_invoice_no=? AND id IS NOT ?",
            (invoice_no, entry_id),
        ).fetchone()
        if clash is not None:
            raise ConstraintError(f"Invoice number {invoice_no} is already used by maal entry {clash['id']}.")
        self.sequences.reserve(DOC_INVOICE, invoice_no)

    # ---------------------------------------------------------------------
    # INVOICE MIRROR (customer side)
    # ---------------------------------------------------------------------
    def record_invoice_created(self, invoice: InvoiceLike) -> int:
        with immediate_tx(self.conn):
            return self._insert_maal(
                invoice.customer_id, invoice.invoice_date, invoice.invoice_id,
                invoice.grand_total, invoice.remark,
            )

    def record_invoice_updated(self, invoice: InvoiceLike) -> List[ConsistencyAnomaly]:
        """
        Copy party/date/amount/remark onto the invoice's maal row. A missing
        mirror row is reported and recreated; duplicates are reported and all
        kept in step.
        """
        anomalies: List[ConsistencyAnomaly] = []
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE {self.maal_table} "
                f"SET {self.PARTY_COL}=?, maal_date=?, maal_amount=?, maal_remark=? "
                f"WHERE maal_invoice_no=?",
                (invoice.customer_id, invoice.invoice_date, invoice.grand_total,
                 invoice.remark or "", invoice.invoice_id),
            )
            if cur.rowcount == 0:
                anomalies.append(self._report(ConsistencyAnomaly(
                    "missing_maal_mirror",
                    f"Invoice {invoice.invoice_id} had no maal ledger row; recreated it",
                    {"invoice_id": invoice.invoice_id, "customer_id": invoice.customer_id},
                )))
                self._insert_maal(invoice.customer_id, invoice.invoice_date, invoice.invoice_id,
                                  invoice.grand_total, invoice.remark)
            elif cur.rowcount > 1:
                anomalies.append(self._report(ConsistencyAnomaly(
                    "duplicate_maal_mirror",
                    f"Invoice {invoice.invoice_id} has {cur.rowcount} maal ledger rows",
                    {"invoice_id": invoice.invoice_id, "rows": cur.rowcount},
                )))
        return anomalies

    def record_invoice_deleted(self, invoice_id: str) -> int:
        with immediate_tx(self.conn):
            cur = self.conn.execute(f"DELETE FROM {self.maal_table} WHERE maal_invoice_no=?", (invoice_id,))
        return cur.rowcount

    # ---------------------------------------------------------------------
    # MAAL ENTRIES
    # ---------------------------------------------------------------------
    def create_standalone_maal_entry(
        self,
        party_id: str,
        date: str,
        invoice_number: str | None,
        amount,
        remark: str | None = None,
    ) -> Dict[str, Any]:
        """
        Ledger-level goods entry with no invoice lines. On the customer side
        a missing invoice number is allocated from the invoice sequence, so
        the entry is addressable like any invoice.
        """
        self._require(**{f"{self.ROLE}_id": party_id, "date": date})
        value = self._amount(amount)
        invoice_number = invoice_number.strip() if non_empty(invoice_number) else None
        with immediate_tx(self.conn):
            if self.HAS_INVOICES:
                if invoice_number is None:
                    invoice_number = self.sequences.next_id(DOC_INVOICE)
                else:
                    self._claim_invoice_number(invoice_number)
            entry_id = self._insert_maal(party_id, date, invoice_number, value, remark)
        _log.debug("Maal entry %s (%s) for %s", entry_id, invoice_number, party_id)
        return {
            "id": entry_id,
            "party_id": party_id,
            "date": date,
            "invoice_number": invoice_number,
            "amount": value,
            "remark": remark or "",
        }

    def get_maal(self, identifier) -> Optional[Dict[str, Any]]:
        """Lookup by row id (int or digit string) first, then by invoice number."""
        row = None
        if isinstance(identifier, int) or (isinstance(identifier, str) and identifier.isdigit()):
            row = self.conn.execute(self._maal_select() + " WHERE id=?", (int(identifier),)).fetchone()
        if row is None and identifier is not None:
            row = self.conn.execute(
                self._maal_select() + " WHERE maal_invoice_no=? ORDER BY id LIMIT 1", (str(identifier),)
            ).fetchone()
        return dict(row) if row else None

    def list_maal(self, party_id: str) -> List[Dict[str, Any]]:
        rows = self.conn.execute(
            self._maal_select() + f" WHERE {self.PARTY_COL}=? ORDER BY maal_date DESC, id DESC",
            (party_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def update_maal_entry(self, identifier, date: str, amount, remark: str | None = None,
                          invoice_number: str | None = None) -> bool:
        """
        Edit a standalone maal entry. Entries mirroring a real invoice are
        refused: the invoice is the only writer of its mirror.
        """
        self._require(date=date)
        value = self._amount(amount)
        with immediate_tx(self.conn):
            entry = self.get_maal(identifier)
            if entry is None:
                return False
            if self.is_invoice(entry["invoice_number"]):
                raise DomainError("This entry is linked to an invoice. Edit the invoice instead.")
            new_no = invoice_number.strip() if non_empty(invoice_number) else entry["invoice_number"]
            renamed = self.HAS_INVOICES and new_no != entry["invoice_number"]
            if renamed:
                self._claim_invoice_number(new_no, entry["id"])
            self.conn.execute(
                f"UPDATE {self.maal_table} SET maal_date=?, maal_invoice_no=?, maal_amount=?, maal_remark=? WHERE id=?",
                (date, new_no, value, remark or "", entry["id"]),
            )
            if renamed and entry["invoice_number"]:
                self.sequences.release(DOC_INVOICE, entry["invoice_number"])
        return True

    def delete_maal_entry(self, identifier) -> bool:
        """
        Delete a standalone maal entry; its invoice number goes back to the
        reuse pool when reuse is enabled. Invoice mirrors are refused.
        """
        with immediate_tx(self.conn):
            entry = self.get_maal(identifier)
            if entry is None:
                return False
            if self.is_invoice(entry["invoice_number"]):
                raise DomainError("Cannot delete: this entry is linked to an invoice. Delete the invoice instead.")
            self.conn.execute(f"DELETE FROM {self.maal_table} WHERE id=?", (entry["id"],))
            if self.HAS_INVOICES and entry["invoice_number"]:
                self.sequences.release(DOC_INVOICE, entry["invoice_number"])
        return True

    # ---------------------------------------------------------------------
    # JAMA ENTRIES
    # ---------------------------------------------------------------------
    def create_jama_entry(self, party_id: str, date: str, txn_type: str, amount, remark: str | None = None) -> Dict[str, Any]:
        self._require(**{f"{self.ROLE}_id": party_id, "date": date, "txn_type": txn_type})
        value = self._amount(amount)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"INSERT INTO {self.jama_table}({self.PARTY_COL}, jama_date, jama_txn_type, jama_amount, jama_remark) "
                f"VALUES (?, ?, ?, ?, ?)",
                (party_id, date, txn_type, value, remark or ""),
            )
        return {
            "transaction_id": int(cur.lastrowid),
            "party_id": party_id,
            "date": date,
            "txn_type": txn_type,
            "amount": value,
            "remark": remark or "",
        }

    def get_jama_entry(self, transaction_id: int) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(self._jama_select() + " WHERE id=?", (transaction_id,)).fetchone()
        return dict(row) if row else None

    def update_jama_entry(self, transaction_id: int, date: str, txn_type: str, amount, remark: str | None = None) -> bool:
        self._require(transaction_id=transaction_id, date=date, txn_type=txn_type)
        value = self._amount(amount)
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE {self.jama_table} SET jama_date=?, jama_txn_type=?, jama_amount=?, jama_remark=? WHERE id=?",
                (date, txn_type, value, remark or "", transaction_id),
            )
        return cur.rowcount > 0

    def linked_document(self, remark: str | None) -> Optional[str]:
        """Id of the live invoice/order that owns a payment with this remark, if any."""
        remark = remark or ""
        for prefix, (table, column) in self.LINKED_DOCS.items():
            if remark.startswith(prefix):
                doc_id = remark[len(prefix):].split(" ", 1)[0]
                if doc_id and self.conn.execute(
                    f"SELECT 1 FROM {table} WHERE {column}=?", (doc_id,)
                ).fetchone():
                    return doc_id
        return None

    def delete_jama_entry(self, transaction_id: int) -> bool:
        """
        Payments captured with an invoice or order belong to that document and
        are refused here while it exists. Advances of deleted orders are plain
        payments again.
        """
        with immediate_tx(self.conn):
            row = self.conn.execute(
                f"SELECT jama_remark FROM {self.jama_table} WHERE id=?", (transaction_id,)
            ).fetchone()
            if row is None:
                return False
            owner = self.linked_document(row["jama_remark"])
            if owner is not None:
                raise DomainError(f"Cannot delete: this payment is linked to {owner}. Edit {owner} instead.")
            self.conn.execute(f"DELETE FROM {self.jama_table} WHERE id=?", (transaction_id,))
        return True

    # ---- linked payments (invoice / order) -------------------------------

    def find_linked_payment(self, remark: str) -> Optional[Dict[str, Any]]:
        row = self.conn.execute(
            self._jama_select() + " WHERE jama_remark = ? OR jama_remark LIKE ? ORDER BY id LIMIT 1",
            (remark, remark + " %"),
        ).fetchone()
        return dict(row) if row else None

    def sync_linked_payment(self, party_id: str, remark: str, payment: Payment | None, fallback_date: str) -> None:
        """
        Keep the document's payment row in step: insert, update, or delete
        it when the payment amount has gone to zero.
        """
        with immediate_tx(self.conn):
            existing = self.find_linked_payment(remark)
            if payment is not None:
                pay_date = payment.date or fallback_date
                if existing:
                    self.conn.execute(
                        f"UPDATE {self.jama_table} SET {self.PARTY_COL}=?, jama_date=?, jama_txn_type=?, jama_amount=? "
                        f"WHERE id=?",
                        (party_id, pay_date, payment.txn_type, payment.amount, existing["transaction_id"]),
                    )
                else:
                    self.conn.execute(
                        f"INSERT INTO {self.jama_table}({self.PARTY_COL}, jama_date, jama_txn_type, jama_amount, jama_remark) "
                        f"VALUES (?, ?, ?, ?, ?)",
                        (party_id, pay_date, payment.txn_type, payment.amount, remark),
                    )
            elif existing:
                self.conn.execute(f"DELETE FROM {self.jama_table} WHERE id=?", (existing["transaction_id"],))

    def delete_linked_payment(self, remark: str) -> int:
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"DELETE FROM {self.jama_table} WHERE jama_remark = ? OR jama_remark LIKE ?",
                (remark, remark + " %"),
            )
        return cur.rowcount

    # ---------------------------------------------------------------------
    # BALANCES
    # ---------------------------------------------------------------------
    def totals(self, party_id: str) -> Dict[str, float]:
        row = self.conn.execute(
            f"""
            SELECT
              COALESCE((SELECT SUM(maal_amount) FROM {self.maal_table} WHERE {self.PARTY_COL} = ?), 0.0) AS maal,
              COALESCE((SELECT SUM(jama_amount) FROM {self.jama_table} WHERE {self.PARTY_COL} = ?), 0.0) AS jama
            """,
            (party_id, party_id),
        ).fetchone()
        maal, jama = float(row["maal"]), float(row["jama"])
        return {"maal": maal, "jama": jama, "balance": maal - jama}

    def balance(self, party_id: str) -> float:
        return self.totals(party_id)["balance"]

    def list_balances(self) -> List[Dict[str, Any]]:
        """Every party of this role with its maal/jama totals and balance."""
        party_table = "customers" if self.ROLE == "customer" else "suppliers"
        rows = self.conn.execute(
            f"""
            SELECT p.{self.PARTY_COL} AS party_id, p.name, p.mobile,
                   COALESCE(m.total, 0.0) AS maal,
                   COALESCE(j.total, 0.0) AS jama
              FROM {party_table} p
              LEFT JOIN (SELECT {self.PARTY_COL} AS pid, SUM(maal_amount) AS total
                           FROM {self.maal_table} GROUP BY {self.PARTY_COL}) m ON m.pid = p.{self.PARTY_COL}
              LEFT JOIN (SELECT {self.PARTY_COL} AS pid, SUM(jama_amount) AS total
                           FROM {self.jama_table} GROUP BY {self.PARTY_COL}) j ON j.pid = p.{self.PARTY_COL}
             ORDER BY p.name COLLATE NOCASE
            """
        ).fetchall()
        out = []
        for r in rows:
            d = dict(r)
            d["balance"] = float(d["maal"]) - float(d["jama"])
            out.append(d)
        return out


class CustomerLedgerRepo(LedgerRepo):
    ROLE = "customer"
    PARTY_COL = "customer_id"
    HAS_INVOICES = True
    LINKED_DOCS = {"Invoice ": ("invoices", "invoice_id"), "Order ": ("customer_orders", "order_id")}


class SupplierLedgerRepo(LedgerRepo):
    ROLE = "supplier"
    PARTY_COL = "supplier_id"
    LINKED_DOCS = {"Order ": ("supplier_orders", "order_id")}
