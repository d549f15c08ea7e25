from __future__ import annotations
from dataclasses import dataclass, asdict, field
import logging
import sqlite3
from typing import Iterable, Optional

from ...constants import DOC_INVOICE, INVOICE_PAYMENT_REMARK
from ...utils.helpers import round_off
from ...utils.validators import is_strictly_positive_number, non_empty, parse_float
from ..errors import ValidationError
from ..tx import immediate_tx
from .ledger_repo import CustomerLedgerRepo, Payment
from .products_repo import ProductsRepo
from .sequences_repo import SequenceAllocator

_log = logging.getLogger(__name__)


@dataclass
class InvoiceLine:
    product_code: str
    quantity: float
    selling_price: float

    @property
    def amount(self) -> float:
        return self.quantity * self.selling_price


@dataclass
class Surcharges:
    packing: float = 0.0
    freight: float = 0.0
    riksha: float = 0.0

    @property
    def total(self) -> float:
        return self.packing + self.freight + self.riksha


@dataclass
class InvoiceHeader:
    invoice_id: str
    customer_id: str
    invoice_date: str
    remark: str | None
    packing: float
    freight: float
    riksha: float
    grand_total: float


@dataclass
class InvoiceDraft:
    """Validated input for a create or update, before an id is attached."""
    customer_id: str
    invoice_date: str
    remark: str | None
    surcharges: Surcharges
    lines: list[InvoiceLine] = field(default_factory=list)
    payment: Payment | None = None

    @property
    def grand_total(self) -> float:
        # unrounded; rounding is display-only
        return sum(l.amount for l in self.lines) + self.surcharges.total

    def header(self, invoice_id: str) -> InvoiceHeader:
        s = self.surcharges
        return InvoiceHeader(
            invoice_id=invoice_id,
            customer_id=self.customer_id,
            invoice_date=self.invoice_date,
            remark=self.remark,
            packing=s.packing,
            freight=s.freight,
            riksha=s.riksha,
            grand_total=self.grand_total,
        )


def _number(value, label: str, default: float | None = None) -> float:
    try:
        n = parse_float(value, default=default)
    except ValueError as e:
        raise ValidationError(f"{label}: {e}") from e
    if n is None:
        raise ValidationError(f"{label} is required.")
    return n


def build_lines(items: Iterable[dict | InvoiceLine]) -> list[InvoiceLine]:
    """
    Accepts dicts with product_code/productCode, quantity, selling_price/
    sellingPrice (or InvoiceLine objects) and validates each one.
    """
    lines: list[InvoiceLine] = []
    for idx, item in enumerate(items or [], start=1):
        if isinstance(item, InvoiceLine):
            item = asdict(item)
        code = item.get("product_code", item.get("productCode"))
        if not non_empty(code):
            raise ValidationError(f"Line {idx}: product code is required.")
        qty = _number(item.get("quantity"), f"Line {idx} quantity")
        if not is_strictly_positive_number(qty):
            raise ValidationError(f"Line {idx}: quantity must be greater than 0.")
        price = _number(item.get("selling_price", item.get("sellingPrice")), f"Line {idx} price", default=0.0)
        if price < 0:
            raise ValidationError(f"Line {idx}: price cannot be negative.")
        lines.append(InvoiceLine(product_code=str(code).strip(), quantity=qty, selling_price=price))
    return lines


class InvoicesRepo:
    """
    Invoice aggregate: header + lines + the customer maal mirror (+ the
    optional payment captured with the invoice). Every write is one
    transaction; a failure anywhere leaves nothing behind, including the
    claimed invoice number.
    """

    def __init__(self, conn: sqlite3.Connection, sequences: SequenceAllocator | None = None):
        self.conn = conn
        self.sequences = sequences or SequenceAllocator(conn)
        self.products = ProductsRepo(conn)
        self.ledger = CustomerLedgerRepo(conn, self.sequences)

    # ---- Internal helpers -------------------------------------------------

    @staticmethod
    def draft(
        customer_id: str,
        invoice_date: str,
        remark: str | None = None,
        surcharges: Surcharges | dict | None = None,
        lines: Iterable[dict | InvoiceLine] = (),
        payment: Payment | dict | None = None,
    ) -> InvoiceDraft:
        """Validate everything up front; raises ValidationError before any write."""
        missing = [n for n, v in (("customer_id", customer_id), ("invoice_date", invoice_date)) if not non_empty(v)]
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing))

        if isinstance(surcharges, dict):
            surcharges = Surcharges(
                packing=_number(surcharges.get("packing"), "Packing", default=0.0),
                freight=_number(surcharges.get("freight"), "Freight", default=0.0),
                riksha=_number(surcharges.get("riksha"), "Riksha", default=0.0),
            )
        surcharges = surcharges or Surcharges()

        built = build_lines(lines)
        if not built:
            raise ValidationError("An invoice needs at least one line.")

        if isinstance(payment, dict):
            payment = Payment.from_payload(
                payment.get("amount"), payment.get("type") or payment.get("txn_type"), payment.get("date")
            )

        return InvoiceDraft(
            customer_id=str(customer_id).strip(),
            invoice_date=str(invoice_date).strip(),
            remark=remark,
            surcharges=surcharges,
            lines=built,
            payment=payment,
        )

    def _insert_line(self, invoice_id: str, line: InvoiceLine) -> None:
        self.conn.execute(
            "INSERT INTO invoice_items(invoice_id, product_code, quantity, selling_price) VALUES (?, ?, ?, ?)",
            (invoice_id, line.product_code, line.quantity, line.selling_price),
        )

    def _write_lines(self, invoice_id: str, lines: list[InvoiceLine]) -> None:
        # stub before line: the FK on product_code must be satisfied
        for line in lines:
            self.products.ensure_product(line.product_code)
            self._insert_line(invoice_id, line)

    @staticmethod
    def payment_remark(invoice_id: str) -> str:
        return INVOICE_PAYMENT_REMARK.format(doc_id=invoice_id)

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def peek_next_id(self) -> str:
        return self.sequences.peek_next_id(DOC_INVOICE)

    def get_header(self, invoice_id: str) -> Optional[InvoiceHeader]:
        r = self.conn.execute(
            "SELECT invoice_id, customer_id, invoice_date, remark, packing, freight, riksha, grand_total "
            "FROM invoices WHERE invoice_id=?",
            (invoice_id,),
        ).fetchone()
        return InvoiceHeader(**r) if r else None

    def list_items(self, invoice_id: str) -> list[dict]:
        rows = self.conn.execute(
            """
            SELECT ii.id, ii.product_code, p.name AS product_name, p.size, p.packing_type,
                   CAST(ii.quantity AS REAL) AS quantity,
                   CAST(ii.selling_price AS REAL) AS selling_price,
                   CAST(ii.quantity * ii.selling_price AS REAL) AS amount
            FROM invoice_items ii
            LEFT JOIN products p ON p.code = ii.product_code
            WHERE ii.invoice_id = ?
            ORDER BY ii.id
            """,
            (invoice_id,),
        ).fetchall()
        return [dict(r) for r in rows]

    def get_invoice(self, invoice_id: str) -> Optional[dict]:
        """Header (with customer name), lines, linked payment and display rounding."""
        r = self.conn.execute(
            """
            SELECT i.*, c.name AS customer_name, c.address AS customer_address, c.mobile AS customer_mobile
            FROM invoices i
            LEFT JOIN customers c ON c.customer_id = i.customer_id
            WHERE i.invoice_id = ?
            """,
            (invoice_id,),
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        out["items"] = self.list_items(invoice_id)
        out["payment"] = self.ledger.find_linked_payment(self.payment_remark(invoice_id))
        out["rounded_total"], out["round_off"] = round_off(out["grand_total"])
        return out

    def list_invoices(self, customer_id: str | None = None) -> list[dict]:
        sql = """
        SELECT i.invoice_id, i.invoice_date, i.customer_id, c.name AS customer_name,
               i.remark, CAST(i.grand_total AS REAL) AS grand_total
        FROM invoices i
        LEFT JOIN customers c ON c.customer_id = i.customer_id
        """
        params: list = []
        if customer_id:
            sql += " WHERE i.customer_id = ?"
            params.append(customer_id)
        sql += " ORDER BY i.invoice_date DESC, i.rowid DESC"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_invoice(self, draft: InvoiceDraft) -> str:
        with immediate_tx(self.conn):
            invoice_id = self.sequences.next_id(DOC_INVOICE)
            header = draft.header(invoice_id)
            self.conn.execute(
                """
                INSERT INTO invoices(invoice_id, customer_id, invoice_date, remark, packing, freight, riksha, grand_total)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (header.invoice_id, header.customer_id, header.invoice_date, header.remark,
                 header.packing, header.freight, header.riksha, header.grand_total),
            )
            self._write_lines(invoice_id, draft.lines)
            self.ledger.record_invoice_created(header)
            if draft.payment is not None:
                self.ledger.sync_linked_payment(
                    header.customer_id, self.payment_remark(invoice_id), draft.payment, header.invoice_date
                )
        _log.debug("Created invoice %s for %s total=%s", invoice_id, header.customer_id, header.grand_total)
        return invoice_id

    def update_invoice(self, invoice_id: str, draft: InvoiceDraft, *, sync_payment: bool = True) -> bool:
        """
        Replace the whole line set (delete then reinsert), recompute the
        total and carry the header onto the maal mirror. False when the
        invoice does not exist.

        With sync_payment the linked payment follows draft.payment (a missing
        payment removes it); without it the payment row is left as is.
        """
        with immediate_tx(self.conn):
            if self.get_header(invoice_id) is None:
                return False
            header = draft.header(invoice_id)
            self.conn.execute(
                """
                UPDATE invoices
                   SET customer_id=?, invoice_date=?, remark=?, packing=?, freight=?, riksha=?, grand_total=?
                 WHERE invoice_id=?
                """,
                (header.customer_id, header.invoice_date, header.remark,
                 header.packing, header.freight, header.riksha, header.grand_total, invoice_id),
            )
            self.conn.execute("DELETE FROM invoice_items WHERE invoice_id=?", (invoice_id,))
            self._write_lines(invoice_id, draft.lines)
            self.ledger.record_invoice_updated(header)
            if sync_payment:
                self.ledger.sync_linked_payment(
                    header.customer_id, self.payment_remark(invoice_id), draft.payment, header.invoice_date
                )
        _log.debug("Updated invoice %s total=%s", invoice_id, header.grand_total)
        return True

    def delete_invoice(self, invoice_id: str) -> bool:
        """Children first, then the header. False when the invoice does not exist."""
        with immediate_tx(self.conn):
            if self.get_header(invoice_id) is None:
                return False
            self.conn.execute("DELETE FROM invoice_items WHERE invoice_id=?", (invoice_id,))
            self.ledger.record_invoice_deleted(invoice_id)
            self.ledger.delete_linked_payment(self.payment_remark(invoice_id))
            self.conn.execute("DELETE FROM invoices WHERE invoice_id=?", (invoice_id,))
            self.sequences.release(DOC_INVOICE, invoice_id)
        _log.debug("Deleted invoice %s", invoice_id)
        return True
