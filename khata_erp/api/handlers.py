"""
Named operations reachable from the UI: `<entity>:<action>` -> handler.

Every handler takes one payload dict and returns a dict with an explicit
`success` flag. Failures carry `error` (message for the user) and `code`
(validation / not_found / constraint / domain / internal). Exceptions never
cross this boundary; unexpected ones are logged with their traceback.
"""

from __future__ import annotations

from dataclasses import dataclass
import sqlite3
from typing import Any, Callable, Dict, Optional

from ..database.errors import DomainError, NotFoundError, ValidationError
from ..database.repositories import (
    CustomerLedgerRepo,
    CustomerOrdersRepo,
    CustomersRepo,
    HistoryRepo,
    InvoicesRepo,
    ProductsRepo,
    QuickSalesRepo,
    SequenceAllocator,
    SupplierLedgerRepo,
    SupplierOrdersRepo,
    SuppliersRepo,
)
from ..database.repositories.ledger_repo import Payment
from ..utils.loggers import get_logger
from ..utils.product_codes import generate_product_code

_log = get_logger(__name__)

Payload = Dict[str, Any]
Result = Dict[str, Any]
Handler = Callable[[Payload], Result]


def ok(**data) -> Result:
    return {"success": True, **data}


def fail(message: str, code: str = "domain") -> Result:
    return {"success": False, "error": message, "code": code}


def _field(payload: Payload, *names: str, default=None):
    """First present key among `names` (UI forms use both column and short names)."""
    for name in names:
        if name in payload:
            return payload[name]
    return default


def _required(payload: Payload, *names: str):
    value = _field(payload, *names)
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"Missing required field: {names[0]}")
    return value


def _required_int(payload: Payload, *names: str) -> int:
    value = _required(payload, *names)
    try:
        return int(str(value).strip())
    except ValueError:
        raise ValidationError(f"{names[0]} must be a whole number, got {value!r}") from None


def _not_found(what: str, ident) -> NotFoundError:
    return NotFoundError(f"{what} {ident} not found.")


def _payment(payload: Payload, prefix: str = "payment") -> Optional[Payment]:
    """
    Payment sent with a document, either nested (`payment: {amount, type, date}`)
    or flat (`payment_amount`, `payment_type`, `payment_date`).
    """
    nested = payload.get(prefix)
    if isinstance(nested, dict):
        return Payment.from_payload(nested.get("amount"), nested.get("type"), nested.get("date"))
    return Payment.from_payload(
        payload.get(f"{prefix}_amount"), payload.get(f"{prefix}_type"), payload.get(f"{prefix}_date")
    )


def _has_payment(payload: Payload, prefix: str = "payment") -> bool:
    return prefix in payload or f"{prefix}_amount" in payload


@dataclass
class Operation:
    channel: str
    handler: Handler
    writes: bool

    @property
    def entity(self) -> str:
        return self.channel.split(":", 1)[0]


class Registry:
    """Channel name -> Operation. `invoke` is the only way in."""

    def __init__(self) -> None:
        self._ops: Dict[str, Operation] = {}

    def register(self, channel: str, *, writes: bool = False):
        def deco(fn: Handler) -> Handler:
            if channel in self._ops:
                raise ValueError(f"Duplicate channel: {channel}")
            self._ops[channel] = Operation(channel, fn, writes)
            return fn
        return deco

    def __contains__(self, channel: str) -> bool:
        return channel in self._ops

    def channels(self) -> list[str]:
        return sorted(self._ops)

    def operation(self, channel: str) -> Optional[Operation]:
        return self._ops.get(channel)

    def invoke(self, channel: str, payload: Optional[Payload] = None) -> Result:
        op = self._ops.get(channel)
        if op is None:
            return fail(f"Unknown operation: {channel}", "not_found")
        try:
            return op.handler(dict(payload or {}))
        except DomainError as e:
            _log.info("%s refused: %s", channel, e)
            return fail(str(e), e.code)
        except Exception as e:
            _log.exception("%s failed", channel)
            return fail(f"Unexpected error: {e}", "internal")


def build_registry(conn: sqlite3.Connection, *, reuse_freed: Optional[bool] = None) -> Registry:
    """Wire every named operation against one connection."""
    reg = Registry()
    sequences = SequenceAllocator(conn, reuse_freed=reuse_freed)
    products = ProductsRepo(conn)
    customers = CustomersRepo(conn)
    suppliers = SuppliersRepo(conn)
    customer_ledger = CustomerLedgerRepo(conn, sequences)
    supplier_ledger = SupplierLedgerRepo(conn, sequences)
    invoices = InvoicesRepo(conn, sequences)
    customer_orders = CustomerOrdersRepo(conn, sequences)
    supplier_orders = SupplierOrdersRepo(conn, sequences)
    quick_sales = QuickSalesRepo(conn, sequences)
    history = HistoryRepo(conn)

    # ------------------------------------------------------------------
    # products
    # ------------------------------------------------------------------
    @reg.register("products:getAll")
    def products_get_all(p: Payload) -> Result:
        return ok(data=[x.as_dict() for x in products.list_products()])

    @reg.register("products:get")
    def products_get(p: Payload) -> Result:
        code = _required(p, "code")
        product = products.get(code, include_deleted=bool(p.get("include_deleted")))
        if product is None:
            raise _not_found("Product", code)
        return ok(data=product.as_dict())

    @reg.register("products:generateCode")
    def products_generate_code(p: Payload) -> Result:
        return ok(code=generate_product_code(_required(p, "name"), p.get("size")))

    def _product_fields(p: Payload) -> dict:
        return {
            "name": p.get("name"),
            "size": p.get("size"),
            "packing_type": p.get("packing_type"),
            "cost_price": p.get("cost_price"),
            "selling_price": p.get("selling_price"),
        }

    @reg.register("products:create", writes=True)
    def products_create(p: Payload) -> Result:
        code = p.get("code") or generate_product_code(p.get("name") or "", p.get("size"))
        products.create(code, **_product_fields(p))
        return ok(code=code)

    @reg.register("products:update", writes=True)
    def products_update(p: Payload) -> Result:
        code = _required(p, "code")
        original = p.get("original_code") or p.get("originalCode") or code
        if original != code:
            changed = products.update_with_code_change(original, code, **_product_fields(p))
        else:
            changed = products.update(code, **_product_fields(p))
        if not changed:
            raise _not_found("Product", original)
        return ok(code=code)

    @reg.register("products:delete", writes=True)
    def products_delete(p: Payload) -> Result:
        code = _required(p, "code")
        if not products.soft_delete(code):
            raise _not_found("Product", code)
        return ok()

    @reg.register("products:deleteByRowid", writes=True)
    def products_delete_by_rowid(p: Payload) -> Result:
        rowid = _required_int(p, "rowid")
        if not products.soft_delete_by_rowid(rowid):
            raise _not_found("Product row", rowid)
        return ok()

    @reg.register("products:softDeleteBlankCodes", writes=True)
    def products_soft_delete_blank(p: Payload) -> Result:
        return ok(changes=products.soft_delete_blank_codes())

    @reg.register("products:normalizePackingTypes", writes=True)
    def products_normalize_packing(p: Payload) -> Result:
        return ok(changes=products.normalize_packing_types())

    @reg.register("admin:cleanupSoftDeletedProducts", writes=True)
    def admin_cleanup_products(p: Payload) -> Result:
        return ok(**products.cleanup_soft_deleted())

    @reg.register("admin:checkSequences")
    def admin_check_sequences(p: Payload) -> Result:
        anomalies = []
        for doc_type in ("invoice", "quick_sale"):
            anomalies.extend(a.as_dict() for a in sequences.check_pool_consistency(doc_type))
        return ok(anomalies=anomalies)

    # ------------------------------------------------------------------
    # customers / suppliers
    # ------------------------------------------------------------------
    def _register_parties(entity: str, repo, id_field: str) -> None:
        @reg.register(f"{entity}:getAll")
        def get_all(p: Payload) -> Result:
            return ok(data=[x.as_dict(id_field) for x in repo.list_all()])

        @reg.register(f"{entity}:search")
        def search(p: Payload) -> Result:
            return ok(data=[x.as_dict(id_field) for x in repo.search(p.get("term") or "")])

        @reg.register(f"{entity}:get")
        def get(p: Payload) -> Result:
            pid = _required(p, id_field)
            party = repo.get(pid)
            if party is None:
                raise _not_found(repo.LABEL, pid)
            return ok(data=party.as_dict(id_field))

        @reg.register(f"{entity}:create", writes=True)
        def create(p: Payload) -> Result:
            pid = repo.create(p.get(id_field), p.get("name"), p.get("address"), p.get("mobile"))
            return ok(**{id_field: pid})

        @reg.register(f"{entity}:update", writes=True)
        def update(p: Payload) -> Result:
            pid = _required(p, id_field)
            if not repo.update(pid, p.get("name"), p.get("address"), p.get("mobile")):
                raise _not_found(repo.LABEL, pid)
            return ok(**{id_field: pid})

        @reg.register(f"{entity}:delete", writes=True)
        def delete(p: Payload) -> Result:
            pid = _required(p, id_field)
            if not repo.delete(pid):
                raise _not_found(repo.LABEL, pid)
            return ok()

    _register_parties("customers", customers, "customer_id")
    _register_parties("suppliers", suppliers, "supplier_id")

    # ------------------------------------------------------------------
    # invoices
    # ------------------------------------------------------------------
    def _invoice_draft(p: Payload):
        return invoices.draft(
            customer_id=p.get("customer_id"),
            invoice_date=p.get("invoice_date"),
            remark=p.get("remark"),
            surcharges={k: p.get(k) for k in ("packing", "freight", "riksha")},
            lines=p.get("items") or [],
            payment=_payment(p),
        )

    @reg.register("invoices:getNextId")
    def invoices_next_id(p: Payload) -> Result:
        return ok(invoice_id=invoices.peek_next_id())

    @reg.register("invoices:getAll")
    def invoices_get_all(p: Payload) -> Result:
        return ok(data=invoices.list_invoices(p.get("customer_id")))

    @reg.register("invoices:get")
    def invoices_get(p: Payload) -> Result:
        invoice_id = _required(p, "invoice_id")
        data = invoices.get_invoice(invoice_id)
        if data is None:
            raise _not_found("Invoice", invoice_id)
        return ok(data=data)

    @reg.register("invoices:create", writes=True)
    def invoices_create(p: Payload) -> Result:
        return ok(invoice_id=invoices.create_invoice(_invoice_draft(p)))

    @reg.register("invoices:update", writes=True)
    def invoices_update(p: Payload) -> Result:
        invoice_id = _required(p, "invoice_id")
        draft = _invoice_draft(p)
        if not invoices.update_invoice(invoice_id, draft, sync_payment=_has_payment(p)):
            raise _not_found("Invoice", invoice_id)
        return ok(invoice_id=invoice_id)

    @reg.register("invoices:delete", writes=True)
    def invoices_delete(p: Payload) -> Result:
        invoice_id = _required(p, "invoice_id")
        if not invoices.delete_invoice(invoice_id):
            raise _not_found("Invoice", invoice_id)
        return ok()

    # ------------------------------------------------------------------
    # orders
    # ------------------------------------------------------------------
    def _register_orders(entity: str, repo, party_field: str) -> None:
        def draft(p: Payload):
            return repo.draft(
                party_id=p.get(party_field),
                order_date=p.get("order_date"),
                remark=p.get("remark"),
                status=p.get("status"),
                lines=p.get("items") or [],
                payment=_payment(p),
            )

        @reg.register(f"{entity}:getNextId")
        def next_id(p: Payload) -> Result:
            return ok(order_id=repo.peek_next_id())

        @reg.register(f"{entity}:statusOptions")
        def status_options(p: Payload) -> Result:
            return ok(data=repo.status_options(), default=repo.DEFAULT_STATUS)

        @reg.register(f"{entity}:getAll")
        def get_all(p: Payload) -> Result:
            return ok(data=repo.list_orders(p.get(party_field)))

        @reg.register(f"{entity}:get")
        def get(p: Payload) -> Result:
            order_id = _required(p, "order_id")
            data = repo.get_order(order_id)
            if data is None:
                raise _not_found("Order", order_id)
            return ok(data=data)

        @reg.register(f"{entity}:create", writes=True)
        def create(p: Payload) -> Result:
            return ok(order_id=repo.create_order(draft(p)))

        @reg.register(f"{entity}:update", writes=True)
        def update(p: Payload) -> Result:
            order_id = _required(p, "order_id")
            if not repo.update_order(order_id, draft(p), sync_payment=_has_payment(p)):
                raise _not_found("Order", order_id)
            return ok(order_id=order_id)

        @reg.register(f"{entity}:updateStatus", writes=True)
        def update_status(p: Payload) -> Result:
            order_id = _required(p, "order_id")
            if not repo.update_status(order_id, p.get("status")):
                raise _not_found("Order", order_id)
            return ok()

        @reg.register(f"{entity}:delete", writes=True)
        def delete(p: Payload) -> Result:
            order_id = _required(p, "order_id")
            if not repo.delete_order(order_id):
                raise _not_found("Order", order_id)
            return ok()

    _register_orders("customerOrders", customer_orders, "customer_id")
    _register_orders("supplierOrders", supplier_orders, "supplier_id")

    # ------------------------------------------------------------------
    # ledgers: jama (transactions) and standalone maal
    # ------------------------------------------------------------------
    def _register_jama(entity: str, ledger, party_field: str, role: str) -> None:
        def fields(p: Payload) -> dict:
            return {
                "date": _field(p, "jama_date", "date"),
                "txn_type": _field(p, "jama_txn_type", "txn_type"),
                "amount": _field(p, "jama_amount", "amount"),
                "remark": _field(p, "jama_remark", "remark"),
            }

        @reg.register(f"{entity}:getAll")
        def get_all(p: Payload) -> Result:
            return ok(data=history.list_party_payments(_required(p, party_field), role=role))

        @reg.register(f"{entity}:get")
        def get(p: Payload) -> Result:
            tid = _required_int(p, "transaction_id")
            data = ledger.get_jama_entry(tid)
            if data is None:
                raise _not_found("Transaction", tid)
            return ok(data=data)

        @reg.register(f"{entity}:create", writes=True)
        def create(p: Payload) -> Result:
            data = ledger.create_jama_entry(p.get(party_field), **fields(p))
            return ok(transaction_id=data["transaction_id"])

        @reg.register(f"{entity}:update", writes=True)
        def update(p: Payload) -> Result:
            tid = _required_int(p, "transaction_id")
            if not ledger.update_jama_entry(tid, **fields(p)):
                raise _not_found("Transaction", tid)
            return ok()

        @reg.register(f"{entity}:delete", writes=True)
        def delete(p: Payload) -> Result:
            tid = _required_int(p, "transaction_id")
            if not ledger.delete_jama_entry(tid):
                raise _not_found("Transaction", tid)
            return ok()

    def _register_maal(entity: str, ledger, party_field: str, list_fn) -> None:
        def fields(p: Payload) -> dict:
            return {
                "date": _field(p, "maal_date", "date"),
                "amount": _field(p, "maal_amount", "amount"),
                "remark": _field(p, "maal_remark", "remark"),
                "invoice_number": _field(p, "maal_invoice_no", "invoice_number"),
            }

        def ident(p: Payload):
            return _required(p, "id", "maal_invoice_no", "invoice_number")

        @reg.register(f"{entity}:getAll")
        def get_all(p: Payload) -> Result:
            return ok(data=list_fn(_required(p, party_field)))

        @reg.register(f"{entity}:get")
        def get(p: Payload) -> Result:
            key = ident(p)
            data = ledger.get_maal(key)
            if data is None:
                raise _not_found("Maal entry", key)
            return ok(data=data)

        @reg.register(f"{entity}:create", writes=True)
        def create(p: Payload) -> Result:
            f = fields(p)
            data = ledger.create_standalone_maal_entry(
                p.get(party_field), f["date"], f["invoice_number"], f["amount"], f["remark"]
            )
            return ok(id=data["id"], invoice_number=data["invoice_number"])

        @reg.register(f"{entity}:update", writes=True)
        def update(p: Payload) -> Result:
            key = ident(p)
            if not ledger.update_maal_entry(key, **fields(p)):
                raise _not_found("Maal entry", key)
            return ok()

        @reg.register(f"{entity}:delete", writes=True)
        def delete(p: Payload) -> Result:
            key = ident(p)
            if not ledger.delete_maal_entry(key):
                raise _not_found("Maal entry", key)
            return ok()

    _register_jama("transactions", customer_ledger, "customer_id", "customer")
    _register_jama("supplierTransactions", supplier_ledger, "supplier_id", "supplier")
    _register_maal("maal", customer_ledger, "customer_id", customer_ledger.list_maal)
    _register_maal("supplierMaal", supplier_ledger, "supplier_id", history.list_supplier_maal)

    # ------------------------------------------------------------------
    # quick sales
    # ------------------------------------------------------------------
    @reg.register("quickSales:getNextId")
    def quick_sales_next_id(p: Payload) -> Result:
        return ok(qs_id=quick_sales.peek_next_id())

    @reg.register("quickSales:getAll")
    def quick_sales_get_all(p: Payload) -> Result:
        return ok(data=quick_sales.list_quick_sales())

    @reg.register("quickSales:get")
    def quick_sales_get(p: Payload) -> Result:
        qs_id = _required(p, "qs_id")
        data = quick_sales.get(qs_id)
        if data is None:
            raise _not_found("Quick sale", qs_id)
        return ok(data=data)

    @reg.register("quickSales:create", writes=True)
    def quick_sales_create(p: Payload) -> Result:
        return ok(**quick_sales.create(p.get("qs_date"), p.get("items") or [], p.get("remark")))

    @reg.register("quickSales:update", writes=True)
    def quick_sales_update(p: Payload) -> Result:
        qs_id = _required(p, "qs_id")
        if not quick_sales.update(qs_id, p.get("qs_date"), p.get("items") or [], p.get("remark")):
            raise _not_found("Quick sale", qs_id)
        return ok(qs_id=qs_id)

    @reg.register("quickSales:delete", writes=True)
    def quick_sales_delete(p: Payload) -> Result:
        qs_id = _required(p, "qs_id")
        if not quick_sales.delete(qs_id):
            raise _not_found("Quick sale", qs_id)
        return ok()

    # ------------------------------------------------------------------
    # history / balances
    # ------------------------------------------------------------------
    def _ledger_for(role: str):
        if role == "supplier":
            return supplier_ledger
        if role == "customer":
            return customer_ledger
        raise ValidationError(f"Unknown party role: {role}")

    @reg.register("history:party")
    def history_party(p: Payload) -> Result:
        return ok(data=history.list_party_history(_required(p, "customer_id", "party_id")))

    @reg.register("history:payments")
    def history_payments(p: Payload) -> Result:
        role = p.get("role") or "customer"
        _ledger_for(role)
        return ok(data=history.list_party_payments(_required(p, "party_id"), role=role))

    @reg.register("history:supplierMaal")
    def history_supplier_maal(p: Payload) -> Result:
        return ok(data=history.list_supplier_maal(_required(p, "supplier_id", "party_id")))

    @reg.register("ledger:balance")
    def ledger_balance(p: Payload) -> Result:
        ledger = _ledger_for(p.get("role") or "customer")
        return ok(**ledger.totals(_required(p, "party_id")))

    @reg.register("ledger:balances")
    def ledger_balances(p: Payload) -> Result:
        return ok(data=_ledger_for(p.get("role") or "customer").list_balances())

    return reg
