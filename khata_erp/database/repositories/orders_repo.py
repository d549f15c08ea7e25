from __future__ import annotations
from dataclasses import dataclass, field
from enum import Enum
import logging
import sqlite3
from typing import Iterable, Optional

from ...constants import DOC_CUSTOMER_ORDER, DOC_SUPPLIER_ORDER, ORDER_PAYMENT_REMARK
from ...utils.validators import is_strictly_positive_number, non_empty, parse_float
from ..errors import ValidationError
from ..tx import immediate_tx
from .ledger_repo import CustomerLedgerRepo, LedgerRepo, Payment, SupplierLedgerRepo
from .products_repo import ProductsRepo
from .sequences_repo import SequenceAllocator

_log = logging.getLogger(__name__)


class CustomerOrderStatus(str, Enum):
    """Labels offered for orders placed by customers. Stored values are free text."""
    RECEIVED = "Received"
    IN_PROGRESS = "In Progress"
    WAITING_FOR_PAYMENT = "Waiting for Payment"
    COMPLETED = "Completed"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"


class SupplierOrderStatus(str, Enum):
    """Labels offered for orders placed with suppliers."""
    PLACED = "Placed"
    CONFIRMED = "Confirmed"
    IN_PROGRESS = "In Progress"
    DISPATCHED = "Dispatched"
    RECEIVED = "Received"
    PAYMENT_PENDING = "Payment Pending"
    PAID = "Paid"
    CANCELLED = "Cancelled"


@dataclass
class OrderLine:
    product_code: str
    quantity: float


@dataclass
class OrderDraft:
    party_id: str
    order_date: str
    remark: str | None
    status: str
    lines: list[OrderLine] = field(default_factory=list)
    payment: Payment | None = None


class OrdersRepo:
    """
    Order aggregate: header + lines (code and quantity, no prices), plus an
    optional advance payment kept as a linked jama row `Order <id>`.
    Deleting an order keeps the advance on the party's ledger.
    """

    TABLE = ""
    ITEMS_TABLE = ""
    PARTY_COL = ""
    PARTY_TABLE = ""
    DOC_TYPE = ""
    STATUS: type[Enum] = CustomerOrderStatus
    DEFAULT_STATUS = ""

    def __init__(self, conn: sqlite3.Connection, sequences: SequenceAllocator | None = None):
        self.conn = conn
        self.sequences = sequences or SequenceAllocator(conn)
        self.products = ProductsRepo(conn)
        self.ledger = self._ledger()

    def _ledger(self) -> LedgerRepo:
        raise NotImplementedError

    # ---- Internal helpers -------------------------------------------------

    @classmethod
    def status_options(cls) -> list[str]:
        return [s.value for s in cls.STATUS]

    def draft(
        self,
        party_id: str,
        order_date: str,
        remark: str | None = None,
        status: str | None = None,
        lines: Iterable[dict | OrderLine] = (),
        payment: Payment | dict | None = None,
    ) -> OrderDraft:
        missing = [n for n, v in ((self.PARTY_COL, party_id), ("order_date", order_date)) if not non_empty(v)]
        if missing:
            raise ValidationError("Missing required fields: " + ", ".join(missing))

        built: list[OrderLine] = []
        for idx, item in enumerate(lines or [], start=1):
            if isinstance(item, OrderLine):
                item = {"product_code": item.product_code, "quantity": item.quantity}
            code = item.get("product_code", item.get("productCode"))
            if not non_empty(code):
                raise ValidationError(f"Line {idx}: product code is required.")
            try:
                qty = parse_float(item.get("quantity"))
            except ValueError as e:
                raise ValidationError(f"Line {idx} quantity: {e}") from e
            if not is_strictly_positive_number(qty):
                raise ValidationError(f"Line {idx}: quantity must be greater than 0.")
            built.append(OrderLine(product_code=str(code).strip(), quantity=qty))
        if not built:
            raise ValidationError("An order needs at least one line.")

        if isinstance(payment, dict):
            payment = Payment.from_payload(
                payment.get("amount"), payment.get("type") or payment.get("txn_type"), payment.get("date")
            )

        return OrderDraft(
            party_id=str(party_id).strip(),
            order_date=str(order_date).strip(),
            remark=remark,
            status=status.strip() if non_empty(status) else self.DEFAULT_STATUS,
            lines=built,
            payment=payment,
        )

    def _write_lines(self, order_id: str, lines: list[OrderLine]) -> None:
        for line in lines:
            self.products.ensure_product(line.product_code)
            self.conn.execute(
                f"INSERT INTO {self.ITEMS_TABLE}(order_id, product_code, quantity) VALUES (?, ?, ?)",
                (order_id, line.product_code, line.quantity),
            )

    @staticmethod
    def payment_remark(order_id: str) -> str:
        return ORDER_PAYMENT_REMARK.format(doc_id=order_id)

    def exists(self, order_id: str) -> bool:
        return self.conn.execute(
            f"SELECT 1 FROM {self.TABLE} WHERE order_id=?", (order_id,)
        ).fetchone() is not None

    # ---------------------------------------------------------------------
    # READ
    # ---------------------------------------------------------------------
    def peek_next_id(self) -> str:
        return self.sequences.peek_next_id(self.DOC_TYPE)

    def list_orders(self, party_id: str | None = None) -> list[dict]:
        """Headers with party name, line count and total quantity, newest first."""
        sql = f"""
        SELECT o.order_id, o.{self.PARTY_COL} AS party_id, p.name AS party_name,
               o.order_date, o.remark, o.status,
               COUNT(i.id) AS item_count,
               CAST(COALESCE(SUM(i.quantity), 0) AS REAL) AS total_quantity
        FROM {self.TABLE} o
        LEFT JOIN {self.PARTY_TABLE} p ON p.{self.PARTY_COL} = o.{self.PARTY_COL}
        LEFT JOIN {self.ITEMS_TABLE} i ON i.order_id = o.order_id
        """
        params: list = []
        if party_id:
            sql += f" WHERE o.{self.PARTY_COL} = ?"
            params.append(party_id)
        sql += " GROUP BY o.order_id ORDER BY o.order_date DESC, o.rowid DESC"
        return [dict(r) for r in self.conn.execute(sql, params).fetchall()]

    def get_order(self, order_id: str) -> Optional[dict]:
        r = self.conn.execute(
            f"""
            SELECT o.order_id, o.{self.PARTY_COL} AS party_id, p.name AS party_name,
                   o.order_date, o.remark, o.status
            FROM {self.TABLE} o
            LEFT JOIN {self.PARTY_TABLE} p ON p.{self.PARTY_COL} = o.{self.PARTY_COL}
            WHERE o.order_id = ?
            """,
            (order_id,),
        ).fetchone()
        if r is None:
            return None
        out = dict(r)
        items = self.conn.execute(
            f"""
            SELECT i.id, i.product_code, pr.name AS product_name, pr.size, pr.packing_type,
                   CAST(i.quantity AS REAL) AS quantity
            FROM {self.ITEMS_TABLE} i
            LEFT JOIN products pr ON pr.code = i.product_code
            WHERE i.order_id = ?
            ORDER BY i.id
            """,
            (order_id,),
        ).fetchall()
        out["items"] = [dict(i) for i in items]
        out["payment"] = self.ledger.find_linked_payment(self.payment_remark(order_id))
        return out

    # ---------------------------------------------------------------------
    # WRITE
    # ---------------------------------------------------------------------
    def create_order(self, draft: OrderDraft) -> str:
        with immediate_tx(self.conn):
            order_id = self.sequences.next_id(self.DOC_TYPE)
            self.conn.execute(
                f"INSERT INTO {self.TABLE}(order_id, {self.PARTY_COL}, order_date, remark, status) "
                f"VALUES (?, ?, ?, ?, ?)",
                (order_id, draft.party_id, draft.order_date, draft.remark, draft.status),
            )
            self._write_lines(order_id, draft.lines)
            if draft.payment is not None:
                self.ledger.sync_linked_payment(
                    draft.party_id, self.payment_remark(order_id), draft.payment, draft.order_date
                )
        _log.debug("Created %s %s for %s", self.DOC_TYPE, order_id, draft.party_id)
        return order_id

    def update_order(self, order_id: str, draft: OrderDraft, *, sync_payment: bool = True) -> bool:
        """Header update plus full line replacement. False when the order does not exist."""
        with immediate_tx(self.conn):
            if not self.exists(order_id):
                return False
            self.conn.execute(
                f"UPDATE {self.TABLE} SET {self.PARTY_COL}=?, order_date=?, remark=?, status=? WHERE order_id=?",
                (draft.party_id, draft.order_date, draft.remark, draft.status, order_id),
            )
            self.conn.execute(f"DELETE FROM {self.ITEMS_TABLE} WHERE order_id=?", (order_id,))
            self._write_lines(order_id, draft.lines)
            if sync_payment:
                self.ledger.sync_linked_payment(
                    draft.party_id, self.payment_remark(order_id), draft.payment, draft.order_date
                )
        return True

    def update_status(self, order_id: str, status: str) -> bool:
        if not non_empty(status):
            raise ValidationError("Status cannot be empty.")
        with immediate_tx(self.conn):
            cur = self.conn.execute(
                f"UPDATE {self.TABLE} SET status=? WHERE order_id=?", (status.strip(), order_id)
            )
        return cur.rowcount > 0

    def delete_order(self, order_id: str) -> bool:
        """Lines first, then the header. The advance payment stays on the ledger."""
        with immediate_tx(self.conn):
            self.conn.execute(f"DELETE FROM {self.ITEMS_TABLE} WHERE order_id=?", (order_id,))
            cur = self.conn.execute(f"DELETE FROM {self.TABLE} WHERE order_id=?", (order_id,))
        if cur.rowcount:
            _log.debug("Deleted %s %s", self.DOC_TYPE, order_id)
        return cur.rowcount > 0


class CustomerOrdersRepo(OrdersRepo):
    TABLE = "customer_orders"
    ITEMS_TABLE = "customer_order_items"
    PARTY_COL = "customer_id"
    PARTY_TABLE = "customers"
    DOC_TYPE = DOC_CUSTOMER_ORDER
    STATUS = CustomerOrderStatus
    DEFAULT_STATUS = CustomerOrderStatus.RECEIVED.value

    def _ledger(self) -> LedgerRepo:
        return CustomerLedgerRepo(self.conn, self.sequences)


class SupplierOrdersRepo(OrdersRepo):
    TABLE = "supplier_orders"
    ITEMS_TABLE = "supplier_order_items"
    PARTY_COL = "supplier_id"
    PARTY_TABLE = "suppliers"
    DOC_TYPE = DOC_SUPPLIER_ORDER
    STATUS = SupplierOrderStatus
    DEFAULT_STATUS = SupplierOrderStatus.PLACED.value

    def _ledger(self) -> LedgerRepo:
        return SupplierLedgerRepo(self.conn, self.sequences)
